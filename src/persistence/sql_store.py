"""
SQLAlchemy-backed key-value store.

One table, one row per key. Works against any SQLAlchemy URL; the default
configuration uses a local SQLite file.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime

from loguru import logger
from sqlalchemy import DateTime, LargeBinary, String, create_engine, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from src.core.errors import PersistenceError
from src.persistence.base import KeyValueStore


class Base(DeclarativeBase):
    pass


class KvEntry(Base):
    """Single snapshot blob."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SqlKeyValueStore(KeyValueStore):
    """Key-value store on top of a relational database."""

    def __init__(self, database_url: str | None = None, engine: Engine | None = None, echo: bool = False):
        if engine is None:
            if not database_url:
                raise PersistenceError("SqlKeyValueStore needs a database_url or an engine")
            connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
            engine = create_engine(database_url, echo=echo, pool_pre_ping=True, connect_args=connect_args)
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        try:
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not initialize kv_entries table: {e}") from e
        logger.debug(f"SqlKeyValueStore ready on {engine.url.render_as_string(hide_password=True)}")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        finally:
            session.close()

    def get(self, key: str) -> bytes | None:
        with self.session_scope() as session:
            entry = session.get(KvEntry, key)
            return bytes(entry.value) if entry is not None else None

    def put(self, key: str, value: bytes) -> None:
        with self.session_scope() as session:
            entry = session.get(KvEntry, key)
            if entry is None:
                session.add(KvEntry(key=key, value=value))
            else:
                entry.value = value

    def list_keys(self, prefix: str = "") -> list[str]:
        with self.session_scope() as session:
            stmt = select(KvEntry.key).order_by(KvEntry.key)
            if prefix:
                stmt = stmt.where(KvEntry.key.startswith(prefix, autoescape=True))
            return list(session.scalars(stmt))

    def delete(self, key: str) -> None:
        with self.session_scope() as session:
            entry = session.get(KvEntry, key)
            if entry is not None:
                session.delete(entry)

    def ping(self) -> tuple[str, str | None]:
        """
        Check database connectivity.

        Returns:
            Tuple of (status, error_message). Status is "ok" or "error".
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return "ok", None
        except SQLAlchemyError as e:
            return "error", str(e)

    def close(self) -> None:
        self.engine.dispose()
