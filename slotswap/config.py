import os
import warnings
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_DATABASE_URL = "sqlite:///./slotswap.db"
DEFAULT_ALLOWED_ORIGINS = "http://localhost:5173,http://localhost:3000"


class Settings(BaseModel):
    """Runtime configuration passed explicitly into the app, database and services"""

    database_url: str = DEFAULT_DATABASE_URL

    # Connection pool (ignored for SQLite)
    db_pool_size: int = 20
    db_max_overflow: int = 30
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_log_slow_queries: bool = True
    db_slow_query_threshold: float = 1.0

    # Tokens
    secret_key: str = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only
    jwt_algorithm: str = "HS256"
    access_token_expire_days: int = 30

    # Events may start at most this many seconds in the past (clock skew / submission latency)
    past_grace_seconds: int = 60

    allowed_origins: list[str] = DEFAULT_ALLOWED_ORIGINS.split(",")
    log_level: str = "INFO"
    create_tables: bool = True


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def load_settings(**overrides) -> Settings:
    """Build Settings from environment variables, with keyword overrides taking precedence"""
    secret_key: Optional[str] = os.getenv("SECRET_KEY")
    if not secret_key and "secret_key" not in overrides:
        warnings.warn(
            "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION",
            RuntimeWarning,
            stacklevel=2,
        )

    values = {
        "database_url": os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        "db_pool_size": int(os.getenv("DB_POOL_SIZE", "20")),
        "db_max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "30")),
        "db_pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
        "db_pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "300")),
        "db_log_slow_queries": _env_bool("DB_LOG_SLOW_QUERIES", "true"),
        "db_slow_query_threshold": float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0")),
        "access_token_expire_days": int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "30")),
        "past_grace_seconds": int(os.getenv("PAST_GRACE_SECONDS", "60")),
        "allowed_origins": [
            origin.strip()
            for origin in os.getenv("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS).split(",")
            if origin.strip()
        ],
        "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
        "create_tables": _env_bool("CREATE_TABLES", "true"),
    }
    if secret_key:
        values["secret_key"] = secret_key

    values.update(overrides)
    return Settings(**values)
