"""Engine, session factory and the request-scoped session dependency."""
from typing import Any, Dict, Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cortapau import config


def engine_options(url: str) -> Dict[str, Any]:
    """create_engine keyword arguments for a database URL."""
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            # Every connection would otherwise get its own empty database
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
    }


def make_engine(url: Optional[str] = None):
    url = url or config.DATABASE_URL
    return create_engine(url, **engine_options(url))


engine = make_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield one session per request and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
