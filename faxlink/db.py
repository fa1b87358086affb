"""Database engine, session factory and the declarative Base."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from faxlink.config import get_settings

Base = declarative_base()


class DatabaseManager:
    """Lazily builds the engine so tests and workers can point it elsewhere first."""

    def __init__(self) -> None:
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def configure(self, database_url: Optional[str] = None) -> Engine:
        """(Re)create the engine for database_url, or the configured URL."""
        settings = get_settings()
        url = database_url or settings.database_url
        if url is None:
            raise ValueError("Database URL is not set.")
        if self._engine is not None:
            self._engine.dispose()

        if url.startswith("sqlite"):
            # Worker threads share one SQLite file; wait on its write lock.
            engine = create_engine(
                url,
                connect_args={"check_same_thread": False, "timeout": 30},
            )
        else:
            engine = create_engine(
                url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_pre_ping=True,
                connect_args={"application_name": settings.app_name},
            )
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autocommit=False, autoflush=False
        )
        return engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self.configure()
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        if self._session_factory is None:
            self.configure()
        return self._session_factory

    @contextmanager
    def db_session(self) -> Iterator[Session]:
        """Session scope for tasks: commit on success, rollback on error."""
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


db_manager = DatabaseManager()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    db = db_manager.session_factory()
    try:
        yield db
    finally:
        db.close()
