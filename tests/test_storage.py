"""
Tests for storage backends and transaction support
"""

import pytest
import logging
import sqlite3
import tempfile
import threading
from pathlib import Path

from acme_bank.errors import StoreUnavailableError
from acme_bank.storage import (
    InMemoryConnection, InMemoryStorage, SQLiteStorage, StorageBackend, create_storage
)


account_row = {"user_id": 1, "balance": "100.00", "type": 1}


class TestStorageBackends:
    """Behaviour shared by every backend"""

    def test_insert_load_find(self, storage):
        """Test basic insert and query operations"""
        with storage.session() as connection:
            first = connection.insert("accounts", account_row)
            second = connection.insert("accounts", {"user_id": 2, "balance": "5.00", "type": 2})

            assert first != second

            loaded = connection.load("accounts", first)
            assert loaded == {"id": first, "user_id": 1, "balance": "100.00", "type": 1}

            assert connection.load("accounts", 9999) is None

            found = connection.find("accounts", {"user_id": 2})
            assert [row["id"] for row in found] == [second]

            assert len(connection.find("accounts", {})) == 2
            assert connection.find("accounts", {"user_id": 42}) == []

    def test_find_orders_by_id(self, storage):
        """Test listings come back in insertion order"""
        with storage.session() as connection:
            ids = [connection.insert("accounts", account_row) for _ in range(5)]
            found = connection.find("accounts", {"user_id": 1})
        assert [row["id"] for row in found] == ids

    def test_atomic_commit(self, storage):
        """Test rows written inside atomic() are visible after commit"""
        with storage.session() as connection:
            with connection.atomic():
                connection.insert("accounts", account_row)
                connection.insert("accounts", account_row)

        with storage.session() as connection:
            assert len(connection.find("accounts", {"user_id": 1})) == 2

    def test_atomic_rollback(self, storage):
        """Test an exception inside atomic() discards every write"""
        with storage.session() as connection:
            with pytest.raises(RuntimeError):
                with connection.atomic():
                    connection.insert("accounts", account_row)
                    raise RuntimeError("boom")
            assert not connection.in_transaction

        with storage.session() as connection:
            assert connection.find("accounts", {}) == []

    def test_nested_atomic_joins_outer(self, storage):
        """Test an inner atomic block does not commit early"""
        with storage.session() as connection:
            with pytest.raises(RuntimeError):
                with connection.atomic():
                    with connection.atomic():
                        connection.insert("accounts", account_row)
                    raise RuntimeError("outer failure")

        with storage.session() as connection:
            assert connection.find("accounts", {}) == []

    def test_close_discards_open_transaction(self, storage):
        """Test closing a connection mid-transaction leaves nothing behind"""
        connection = storage.connect()
        connection.begin_transaction()
        connection.insert("accounts", account_row)
        connection.close()

        with storage.session() as reader:
            assert reader.find("accounts", {}) == []

    def test_closed_connection_raises(self, storage):
        """Test a closed connection cannot be used"""
        connection = storage.connect()
        connection.close()
        with pytest.raises(StoreUnavailableError):
            connection.load("accounts", 1)

    def test_unknown_table_and_column(self, storage):
        """Test table and column names are validated"""
        with storage.session() as connection:
            with pytest.raises(ValueError, match="Unknown table"):
                connection.find("ledger; DROP TABLE accounts", {})
            with pytest.raises(ValueError, match="Unknown column"):
                connection.find("accounts", {"owner": 1})
            with pytest.raises(ValueError, match="assigned by the store"):
                connection.insert("accounts", {"id": 7, **account_row})


class TestInMemoryStorage:
    """Test InMemoryStorage specifics"""

    def test_uncommitted_rows_are_invisible(self):
        """Test other connections never see a transaction in progress"""
        storage = InMemoryStorage()
        writer = storage.connect()
        writer.begin_transaction()
        writer.insert("transactions", {
            "acct_id": 1, "trans_date": "2024-01-01", "amount": "1.00",
            "payee": "Transfer", "type": 1
        })

        with storage.session() as reader:
            assert reader.find("transactions", {"acct_id": 1}) == []

        writer.commit()
        with storage.session() as reader:
            assert len(reader.find("transactions", {"acct_id": 1})) == 1
        writer.close()

    def test_returned_rows_are_copies(self):
        """Test callers cannot mutate stored rows"""
        storage = InMemoryStorage()
        with storage.session() as connection:
            record_id = connection.insert("accounts", account_row)
            row = connection.load("accounts", record_id)
            row["balance"] = "0.00"
            assert connection.load("accounts", record_id)["balance"] == "100.00"

    def test_count(self):
        storage = InMemoryStorage()
        with storage.session() as connection:
            connection.insert("accounts", account_row)
        assert storage.count("accounts") == 1
        assert storage.count("transactions") == 0

    def test_scripts_raise_store_error(self, tmp_path):
        storage = InMemoryStorage()
        script = tmp_path / "reset.sql"
        script.write_text("DELETE FROM accounts;")
        with pytest.raises(StoreUnavailableError, match="cannot execute SQL scripts"):
            storage.reset(script)

    def test_failed_rollback_keeps_original_error(self):
        """Test a rollback failure is logged and the block's error still propagates"""

        class BrokenRollbackConnection(InMemoryConnection):
            def rollback(self):
                raise StoreUnavailableError("connection dropped")

        class ListHandler(logging.Handler):
            def __init__(self):
                super().__init__()
                self.messages = []

            def emit(self, record):
                self.messages.append(record.getMessage())

        handler = ListHandler()
        storage_logger = logging.getLogger("acme_bank.storage")
        storage_logger.addHandler(handler)
        try:
            connection = BrokenRollbackConnection(InMemoryStorage())
            with pytest.raises(RuntimeError, match="insert failed"):
                with connection.atomic():
                    raise RuntimeError("insert failed")
        finally:
            storage_logger.removeHandler(handler)
        assert any("connection dropped" in message for message in handler.messages)


class TestSQLiteStorage:
    """Test SQLiteStorage specifics"""

    def test_persists_across_instances(self):
        """Test data survives reopening the database file"""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "test.db"
            storage = SQLiteStorage(db_path)
            storage.create_schema()
            with storage.session() as connection:
                record_id = connection.insert("accounts", account_row)
            storage.close()

            reopened = SQLiteStorage(db_path)
            with reopened.session() as connection:
                assert connection.load("accounts", record_id)["balance"] == "100.00"
            reopened.close()

    def test_memory_database_shared_between_sessions(self):
        """Test ':memory:' keeps its data between sessions"""
        storage = SQLiteStorage(":memory:")
        storage.create_schema()
        with storage.session() as connection:
            record_id = connection.insert("accounts", account_row)
        with storage.session() as connection:
            assert connection.load("accounts", record_id) is not None
        storage.close()

    def test_memory_database_sessions_take_turns(self):
        """Test a second thread waits for an open ':memory:' write instead of failing"""
        storage = SQLiteStorage(":memory:", timeout=10)
        storage.create_schema()
        writer = storage.connect()
        writer.begin_transaction()
        writer.insert("accounts", account_row)

        seen = []
        errors = []

        def read_accounts():
            try:
                with storage.session() as reader:
                    seen.append(len(reader.find("accounts", {})))
            except Exception as exc:
                errors.append(exc)

        thread = threading.Thread(target=read_accounts)
        thread.start()
        thread.join(timeout=0.2)
        assert thread.is_alive()

        writer.commit()
        writer.close()
        thread.join(timeout=10)

        assert errors == []
        assert seen == [1]
        storage.close()

    def test_memory_database_session_wait_times_out(self):
        """Test waiting past the timeout for a ':memory:' session is a store error"""
        storage = SQLiteStorage(":memory:", timeout=0.1)
        holder = storage.connect()
        errors = []

        def open_session():
            try:
                storage.connect()
            except StoreUnavailableError as exc:
                errors.append(exc)

        thread = threading.Thread(target=open_session)
        thread.start()
        thread.join(timeout=5)
        holder.close()
        storage.close()
        assert len(errors) == 1

    def test_separate_memory_databases_are_isolated(self):
        """Test two in-memory instances do not share tables"""
        first = SQLiteStorage(":memory:")
        second = SQLiteStorage(":memory:")
        first.create_schema()
        second.create_schema()
        with first.session() as connection:
            connection.insert("accounts", account_row)
        with second.session() as connection:
            assert connection.find("accounts", {}) == []
        first.close()
        second.close()

    def test_money_columns_stay_exact(self, sqlite_storage):
        """Test amounts round-trip as decimal strings"""
        with sqlite_storage.session() as connection:
            record_id = connection.insert("transactions", {
                "acct_id": 1, "trans_date": "2024-01-01", "amount": "0.10",
                "payee": "Acme Electric", "type": 1
            })
            row = connection.load("transactions", record_id)
        assert row["amount"] == "0.10"

    def test_missing_schema_is_store_error(self, tmp_path):
        """Test querying before the schema exists raises StoreUnavailableError"""
        storage = SQLiteStorage(tmp_path / "empty.db")
        with storage.session() as connection:
            with pytest.raises(StoreUnavailableError) as exc_info:
                connection.find("accounts", {})
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)

    def test_reset_runs_script(self, sqlite_storage, tmp_path):
        """Test reset executes a SQL script file"""
        with sqlite_storage.session() as connection:
            connection.insert("accounts", account_row)

        script = tmp_path / "reset.sql"
        script.write_text(
            "DELETE FROM accounts;\n"
            "INSERT INTO accounts (user_id, balance, type) VALUES (9, '25.00', 2);\n"
        )
        sqlite_storage.reset(script)

        with sqlite_storage.session() as connection:
            rows = connection.find("accounts", {})
        assert [(row["user_id"], row["balance"]) for row in rows] == [(9, "25.00")]

    def test_reset_missing_script(self, sqlite_storage, tmp_path):
        with pytest.raises(StoreUnavailableError, match="Cannot read script"):
            sqlite_storage.reset(tmp_path / "missing.sql")


class TestCreateStorage:
    """Test backend selection from database URLs"""

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_urls(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path / 'bank.db'}")
        assert isinstance(storage, SQLiteStorage)
        assert storage.db_path == str(tmp_path / "bank.db")

        in_memory = create_storage("sqlite:///:memory:")
        assert isinstance(in_memory, SQLiteStorage)
        in_memory.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported database_url"):
            create_storage("postgresql://localhost/bank")
        with pytest.raises(ValueError):
            create_storage("sqlite:///")

    def test_backends_share_interface(self):
        assert issubclass(InMemoryStorage, StorageBackend)
        assert issubclass(SQLiteStorage, StorageBackend)
