"""Database engine and session factories.

Query routes only read. On PostgreSQL every connection carries a statement
timeout so a runaway spatial scan fails as a StoreFailure instead of
holding the worker.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={settings.STATEMENT_TIMEOUT_MS}"}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=20,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db():
    """FastAPI dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
