"""
Domain error taxonomy.

Services raise these; main.py maps each kind to its status code.
"""


class SlotSwapError(Exception):
    """Base class for every error the domain raises on purpose"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SlotSwapError):
    """Missing or malformed input"""

    status_code = 400


class AuthenticationError(SlotSwapError):
    """Missing or invalid credentials"""

    status_code = 401


class AuthorizationError(SlotSwapError):
    """Actor is not the owner/receiver of the resource"""

    status_code = 403


class NotFoundError(SlotSwapError):
    status_code = 404


class ConflictError(SlotSwapError):
    """Invariant violation: overlap, wrong status, already resolved, stale state"""

    status_code = 409
