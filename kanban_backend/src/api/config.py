import logging
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"Missing required environment variable '{name}'. "
            "Set it in the environment or in the service .env file."
        )
    return value


# PUBLIC_INTERFACE
def database_dsn() -> str:
    """
    Build the database DSN from the environment.

    Uses:
      - DATABASE_URL (optional full DSN; if provided, it wins)
      - POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_DB, POSTGRES_PORT
      - POSTGRES_HOST (defaults to localhost)
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    user = _required_env("POSTGRES_USER")
    password = _required_env("POSTGRES_PASSWORD")
    db = _required_env("POSTGRES_DB")
    port = _required_env("POSTGRES_PORT")
    host = os.getenv("POSTGRES_HOST", "localhost")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


def pool_min_size() -> int:
    return int(os.getenv("DB_POOL_MIN", "1"))


def pool_max_size() -> int:
    return int(os.getenv("DB_POOL_MAX", "10"))


# PUBLIC_INTERFACE
def cors_allow_origins() -> List[str]:
    """Origins allowed by CORS; all by default, or CORS_ALLOW_ORIGINS (comma separated)."""
    env_val = os.getenv("CORS_ALLOW_ORIGINS")
    if not env_val:
        return ["*"]
    return [o.strip() for o in env_val.split(",") if o.strip()]


def log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def server_host() -> str:
    return os.getenv("HOST", "0.0.0.0")


def server_port() -> int:
    return int(os.getenv("PORT", "4000"))


# PUBLIC_INTERFACE
def configure_logging() -> None:
    """Configure root logging for the service process."""
    logging.basicConfig(level=log_level(), format=LOG_FORMAT)
