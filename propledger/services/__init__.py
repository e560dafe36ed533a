"""Engine and session factory for the ledger store."""

from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from propledger.config import settings


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Build an engine for database_url.

    SQLite shares a single connection across threads (StaticPool); other
    backends get a pre-pinged connection pool.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


engine = create_db_engine(settings.database_url, settings.database_echo)

# Services flush explicitly before every query that must see their writes
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session for one request and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = ["create_db_engine", "engine", "SessionLocal", "get_db"]
