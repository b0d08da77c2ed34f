"""
Storage Backend Module

The record store behind the ledger: users, accounts and transactions tables
with key lookup, filtered listing and insert primitives. Provides an abstract
interface plus in-memory (testing) and SQLite (persistence) implementations.
All monetary values are stored as Decimal strings, dates as ISO strings.

Every operation opens its own connection through StorageBackend.session()
and the connection is closed on every exit path.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Any, Tuple, Union
from decimal import Decimal
from datetime import date, datetime
from pathlib import Path
from contextlib import contextmanager
import sqlite3
import threading
import uuid

from .errors import StoreUnavailableError
from .logging_config import get_logger


logger = get_logger("acme_bank.storage")


# Columns of each table, primary key first
TABLE_COLUMNS: Dict[str, Tuple[str, ...]] = {
    "users": ("id", "email", "firstname", "lastname", "password", "phone"),
    "accounts": ("id", "user_id", "balance", "type"),
    "transactions": ("id", "acct_id", "trans_date", "amount", "payee", "type"),
}

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    email TEXT NOT NULL,
    firstname TEXT NOT NULL,
    lastname TEXT NOT NULL,
    password TEXT NOT NULL,
    phone TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    balance TEXT NOT NULL,
    type INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts(user_id);

CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY,
    acct_id INTEGER NOT NULL,
    trans_date TEXT NOT NULL,
    amount TEXT NOT NULL,
    payee TEXT NOT NULL,
    type INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_transactions_acct_id ON transactions(acct_id);
"""


def _check_columns(table: str, columns) -> Tuple[str, ...]:
    """Validate table and column names before they are placed in SQL"""
    if table not in TABLE_COLUMNS:
        raise ValueError(f"Unknown table: {table}")
    known = TABLE_COLUMNS[table]
    for column in columns:
        if column not in known:
            raise ValueError(f"Unknown column {column!r} for table {table}")
    return known


def _encode_value(value: Any) -> Any:
    """Convert Decimal and date values to their stored string form"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class StorageConnection(ABC):
    """A single connection to the record store, owned by one operation"""

    def __init__(self):
        self._in_transaction = False

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @abstractmethod
    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Load a record by primary key"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching all filters, ordered by id"""
        pass

    @abstractmethod
    def insert(self, table: str, data: Dict[str, Any]) -> int:
        """Insert a record and return its store-assigned id"""
        pass

    @abstractmethod
    def execute_script(self, sql: str) -> None:
        """Run a multi-statement SQL script"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection, discarding any uncommitted work"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """
        Context manager for all-or-nothing writes

        Nested use joins the outer transaction. Any exception, including
        cancellation, rolls back every write made inside the block.
        """
        if self._in_transaction:
            yield
            return

        self.begin_transaction()
        try:
            yield
        except BaseException:
            try:
                self.rollback()
            except Exception as rollback_exc:
                # Propagate the original exception, not the rollback failure
                logger.error(f"Rollback failed: {rollback_exc}")
            raise
        self.commit()


class StorageBackend(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def connect(self) -> StorageConnection:
        """Open a new connection"""
        pass

    @contextmanager
    def session(self):
        """Open a connection for the duration of one operation"""
        connection = self.connect()
        try:
            yield connection
        finally:
            connection.close()

    def create_schema(self) -> None:
        """Create any missing tables"""
        with self.session() as connection:
            connection.execute_script(SCHEMA_SQL)

    def reset(self, script_path: Union[str, Path]) -> None:
        """Execute the SQL in script_path, e.g. to restore a known database state"""
        try:
            sql = Path(script_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot read script {script_path}: {exc}") from exc
        with self.session() as connection:
            connection.execute_script(sql)

    def close(self) -> None:
        """Release backend resources (default no-op)"""
        pass


class InMemoryStorage(StorageBackend):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._tables: Dict[str, Dict[int, Dict[str, Any]]] = {
            table: {} for table in TABLE_COLUMNS
        }
        self._next_id: Dict[str, int] = {table: 1 for table in TABLE_COLUMNS}
        self._lock = threading.RLock()

    def connect(self) -> 'InMemoryConnection':
        return InMemoryConnection(self)

    def create_schema(self) -> None:
        """Tables always exist in memory"""
        pass

    def count(self, table: str) -> int:
        """Count records in table"""
        _check_columns(table, ())
        with self._lock:
            return len(self._tables[table])

    def _allocate_id(self, table: str) -> int:
        with self._lock:
            record_id = self._next_id[table]
            self._next_id[table] = record_id + 1
            return record_id

    def _publish(self, rows: List[Tuple[str, Dict[str, Any]]]) -> None:
        """Make rows visible to every connection in one step"""
        with self._lock:
            for table, row in rows:
                self._tables[table][row["id"]] = row

    def _load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._tables[table].get(record_id)
            return dict(row) if row is not None else None

    def _find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                dict(row)
                for record_id, row in sorted(self._tables[table].items())
                if all(row.get(key) == value for key, value in filters.items())
            ]


class InMemoryConnection(StorageConnection):
    """
    Connection to an InMemoryStorage

    Inserts made inside a transaction are buffered and published together at
    commit, so no other connection ever observes part of a transaction.
    """

    def __init__(self, store: InMemoryStorage):
        super().__init__()
        self._store = store
        self._pending: List[Tuple[str, Dict[str, Any]]] = []
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreUnavailableError("Connection is closed")

    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        _check_columns(table, ())
        self._ensure_open()
        return self._store._load(table, record_id)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        _check_columns(table, filters)
        self._ensure_open()
        return self._store._find(table, filters)

    def insert(self, table: str, data: Dict[str, Any]) -> int:
        _check_columns(table, data)
        if "id" in data:
            raise ValueError("id is assigned by the store")
        self._ensure_open()

        row = {column: None for column in TABLE_COLUMNS[table]}
        row.update({key: _encode_value(value) for key, value in data.items()})
        row["id"] = self._store._allocate_id(table)

        if self._in_transaction:
            self._pending.append((table, row))
        else:
            self._store._publish([(table, row)])
        return row["id"]

    def execute_script(self, sql: str) -> None:
        raise StoreUnavailableError("In-memory store cannot execute SQL scripts")

    def begin_transaction(self) -> None:
        self._ensure_open()
        if not self._in_transaction:
            self._in_transaction = True
            self._pending = []

    def commit(self) -> None:
        if self._in_transaction:
            self._store._publish(self._pending)
            self._pending = []
            self._in_transaction = False

    def rollback(self) -> None:
        if self._in_transaction:
            self._pending = []
            self._in_transaction = False

    def close(self) -> None:
        self.rollback()
        self._closed = True


class SQLiteStorage(StorageBackend):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0):
        self.db_path = str(db_path)
        self.timeout = timeout
        self._anchor: Optional[sqlite3.Connection] = None
        self._session_lock = None

        if self.db_path == ":memory:":
            # Sessions each open their own connection; a named shared-cache
            # database stays alive as long as the anchor connection is open
            self._uri = f"file:acme_bank_{uuid.uuid4().hex}?mode=memory&cache=shared"
            self._anchor = self._open()
            # Shared-cache table locks fail at once instead of honouring the
            # busy timeout, so sessions on this database run one at a time
            self._session_lock = threading.RLock()
        else:
            self._uri = None
            connection = self._open()
            try:
                # WAL lets readers proceed while a transfer is being written
                connection.execute("PRAGMA journal_mode = WAL")
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"Cannot open {self.db_path}: {exc}") from exc
            finally:
                connection.close()

    def _open(self) -> sqlite3.Connection:
        try:
            if self._uri:
                connection = sqlite3.connect(
                    self._uri, uri=True, timeout=self.timeout,
                    check_same_thread=False, isolation_level=None
                )
            else:
                connection = sqlite3.connect(
                    self.db_path, timeout=self.timeout,
                    check_same_thread=False, isolation_level=None
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Cannot open {self.db_path}: {exc}") from exc
        connection.row_factory = sqlite3.Row
        return connection

    def connect(self) -> 'SQLiteConnection':
        if self._session_lock is None:
            return SQLiteConnection(self._open())

        if not self._session_lock.acquire(timeout=self.timeout):
            raise StoreUnavailableError(f"Timed out waiting for a session on {self.db_path}")
        try:
            connection = self._open()
        except BaseException:
            self._session_lock.release()
            raise
        return SQLiteConnection(connection, on_close=self._session_lock.release)

    def close(self) -> None:
        """Close the anchor connection of an in-memory database"""
        if self._anchor is not None:
            self._anchor.close()
            self._anchor = None


class SQLiteConnection(StorageConnection):
    """
    Connection to a SQLite database

    Runs in autocommit mode; atomic() issues explicit BEGIN IMMEDIATE,
    COMMIT and ROLLBACK statements.
    """

    def __init__(self, connection: sqlite3.Connection,
                 on_close: Optional[Callable[[], None]] = None):
        super().__init__()
        self._connection = connection
        self._on_close = on_close

    def _execute(self, sql: str, params: Tuple = ()) -> sqlite3.Cursor:
        if self._connection is None:
            raise StoreUnavailableError("Connection is closed")
        try:
            return self._connection.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"SQLite error: {exc}") from exc

    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        columns = _check_columns(table, ())
        cursor = self._execute(
            f"SELECT {', '.join(columns)} FROM {table} WHERE id = ?", (record_id,)
        )
        row = cursor.fetchone()
        if row:
            return dict(row)
        return None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        columns = _check_columns(table, filters)
        sql = f"SELECT {', '.join(columns)} FROM {table}"
        params: Tuple = ()
        if filters:
            sql += " WHERE " + " AND ".join(f"{key} = ?" for key in filters)
            params = tuple(_encode_value(value) for value in filters.values())
        sql += " ORDER BY id"
        return [dict(row) for row in self._execute(sql, params).fetchall()]

    def insert(self, table: str, data: Dict[str, Any]) -> int:
        _check_columns(table, data)
        if "id" in data:
            raise ValueError("id is assigned by the store")
        columns = list(data)
        placeholders = ", ".join("?" for _ in columns)
        cursor = self._execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(_encode_value(data[column]) for column in columns)
        )
        return cursor.lastrowid

    def execute_script(self, sql: str) -> None:
        if self._connection is None:
            raise StoreUnavailableError("Connection is closed")
        try:
            self._connection.executescript(sql)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"SQLite script failed: {exc}") from exc

    def begin_transaction(self) -> None:
        if not self._in_transaction:
            # Take the write lock up front so the transaction cannot fail to upgrade later
            self._execute("BEGIN IMMEDIATE")
            self._in_transaction = True

    def commit(self) -> None:
        if self._in_transaction:
            self._execute("COMMIT")
            self._in_transaction = False

    def rollback(self) -> None:
        if self._in_transaction:
            self._in_transaction = False
            self._execute("ROLLBACK")

    def close(self) -> None:
        if self._connection is None:
            return
        try:
            if self._in_transaction:
                self.rollback()
        finally:
            self._connection.close()
            self._connection = None
            if self._on_close is not None:
                on_close, self._on_close = self._on_close, None
                on_close()


def create_storage(database_url: str, timeout: float = 5.0) -> StorageBackend:
    """
    Create a storage backend from a database URL

    Supported forms: ``memory://``, ``sqlite:///:memory:`` and
    ``sqlite:///<path>``.
    """
    if database_url == "memory://":
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        path = database_url[len("sqlite:///"):]
        if not path:
            raise ValueError("sqlite URL needs a database path")
        return SQLiteStorage(path, timeout=timeout)
    raise ValueError(f"Unsupported database_url: {database_url}")
