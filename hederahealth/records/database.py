"""
records.database
~~~~~~~~~~~~~~~~

A small durable key-value store on top of SQLite.  The file registry keeps
its index and one JSON document per uploaded file in it, so the store is the
canonical copy of the registry state.

The schema is a single ``kv_entries`` table; values are opaque text.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator, List, Optional

import sqlalchemy as sa
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


class KeyValueEntry(Base):
    __tablename__ = "kv_entries"

    key = sa.Column(sa.String(255), primary_key=True)
    value = sa.Column(sa.Text, nullable=False)


class StoreTransaction:
    """Key-value view bound to one open session."""

    def __init__(self, session: Session):
        self._session = session

    def get(self, key: str) -> Optional[str]:
        entry = self._session.get(KeyValueEntry, key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: str) -> None:
        entry = self._session.get(KeyValueEntry, key)
        if entry is None:
            self._session.add(KeyValueEntry(key=key, value=value))
        else:
            entry.value = value

    def remove(self, key: str) -> bool:
        entry = self._session.get(KeyValueEntry, key)
        if entry is None:
            return False
        self._session.delete(entry)
        return True

    def keys(self, prefix: str = "") -> List[str]:
        stmt = sa.select(KeyValueEntry.key).order_by(KeyValueEntry.key)
        if prefix:
            stmt = stmt.where(KeyValueEntry.key.startswith(prefix, autoescape=True))
        return list(self._session.scalars(stmt))


class KeyValueStore:
    """
    Durable string-to-string map.

    Every top-level call runs in its own transaction; use
    :meth:`transaction` to group several reads and writes atomically.
    """

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        _ensure_parent_dir(url)
        self._engine = sa.create_engine(url, **engine_kwargs)
        Base.metadata.create_all(self._engine)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)

    @classmethod
    def in_memory(cls) -> "KeyValueStore":
        """A private, process-local store; handy for tests."""
        return cls(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        session = self._sessions()
        try:
            yield StoreTransaction(session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def get(self, key: str) -> Optional[str]:
        with self.transaction() as tx:
            return tx.get(key)

    def set(self, key: str, value: str) -> None:
        with self.transaction() as tx:
            tx.set(key, value)

    def remove(self, key: str) -> bool:
        with self.transaction() as tx:
            return tx.remove(key)

    def keys(self, prefix: str = "") -> List[str]:
        with self.transaction() as tx:
            return tx.keys(prefix)

    def close(self) -> None:
        self._engine.dispose()


def _ensure_parent_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if not database or database == ":memory:":
        return
    parent = os.path.dirname(os.path.abspath(database))
    os.makedirs(parent, exist_ok=True)
