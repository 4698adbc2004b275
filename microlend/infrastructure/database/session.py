"""Engine and session factory for the lending database"""

from typing import Iterator
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from microlend.config import settings


def create_db_engine(database_url: str) -> Engine:
    """
    Build an engine for the configured backend.

    - PostgreSQL: pooled connections sized from Settings, pre-pinged and
      recycled so a restarted server does not hand out dead connections
    - SQLite (local runs and tests): no pool sizing, and connections may be
      shared with the threadpool FastAPI runs sync endpoints on
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return create_engine(database_url, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
    )


engine = create_db_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """Request-scoped session; lifecycle services commit through UnitOfWork"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
