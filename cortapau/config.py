"""Runtime configuration read from the environment (and an optional .env file)."""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cortapau.db")

# Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Connection pool for server databases (ignored for SQLite)
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))

UPLOADS_DIR = os.getenv("UPLOADS_DIR", os.path.join(os.getcwd(), "uploads"))

# Author used when a solicitation arrives without autorId
DEMO_AUTHOR_LOGIN = os.getenv("DEMO_AUTHOR_LOGIN", "cidadao_demo@cortapau.local")
DEMO_AUTHOR_NAME = os.getenv("DEMO_AUTHOR_NAME", "Cidadão Demo")

# Audit trail is best-effort: a few quick attempts, then give up and log
AUDIT_WRITE_ATTEMPTS = int(os.getenv("AUDIT_WRITE_ATTEMPTS", "2"))
AUDIT_RETRY_BACKOFF_SECONDS = float(os.getenv("AUDIT_RETRY_BACKOFF_SECONDS", "0.05"))

# Client-side reconciliation
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:3333")
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "10"))
RECONCILE_MAX_WORKERS = int(os.getenv("RECONCILE_MAX_WORKERS", "8"))
RECONCILE_DEADLINE_SECONDS = float(os.getenv("RECONCILE_DEADLINE_SECONDS", "15"))

# bcrypt work factor
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

DEBUG_ROUTES_ENABLED = _env_bool("DEBUG_ROUTES_ENABLED", False)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
