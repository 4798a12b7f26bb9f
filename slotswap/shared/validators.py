"""Shared validation utilities"""

import re
from typing import Optional

EMAIL_PATTERN = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
MAX_TITLE_LENGTH = 255


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    if not re.match(EMAIL_PATTERN, email):
        raise ValueError("Invalid email format")

    return email


def normalize_title(title: Optional[str]) -> Optional[str]:
    """Strip surrounding whitespace. Blank titles are left for the service to reject."""
    if title is None:
        return title

    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValueError(f"Title must be at most {MAX_TITLE_LENGTH} characters")

    return title
