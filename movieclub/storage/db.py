"""SQLite database connection and initialization."""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from movieclub.app.config import get_settings

logger = logging.getLogger("movieclub.storage.db")

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class Database:
    """Owns the SQLite file path and the per-thread transaction scope.

    DAO methods call `connect()`. Outside a `transaction()` block every call
    gets its own connection and commits on exit; inside one, all calls on the
    same thread share the transaction's connection and commit together.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else get_settings().db_path
        self._local = threading.local()

    def get_connection(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def init_db(self) -> None:
        schema_sql = _SCHEMA_PATH.read_text(encoding="utf-8")
        conn = self.get_connection()
        try:
            conn.executescript(schema_sql)
            conn.commit()
        finally:
            conn.close()
        logger.info("Database ready at %s", self.db_path)

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, "conn", None) is not None

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        active = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return

        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run every DAO call on this thread in one transaction.

        Nested calls join the outer transaction.
        """
        if self.in_transaction:
            yield self._local.conn
            return

        conn = self.get_connection()
        conn.execute("BEGIN IMMEDIATE")
        self._local.conn = conn
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            logger.warning("Transaction rolled back on %s", self.db_path)
            raise
        finally:
            self._local.conn = None
            conn.close()
