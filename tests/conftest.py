"""
Shared fixtures: storage backends and a helper for seeding ledger rows
"""

import pytest
from datetime import date

from acme_bank.storage import InMemoryStorage, SQLiteStorage, StorageBackend


class LedgerSeeder:
    """Inserts users, accounts and transactions directly into a store"""

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    def user(self, email="jane.doe@example.com", firstname="Jane",
             lastname="Doe", password="secret", phone="555-0100") -> int:
        with self.storage.session() as connection:
            return connection.insert("users", {
                "email": email,
                "firstname": firstname,
                "lastname": lastname,
                "password": password,
                "phone": phone,
            })

    def account(self, user_id: int, balance: str, account_type: int = 1) -> int:
        with self.storage.session() as connection:
            return connection.insert("accounts", {
                "user_id": user_id,
                "balance": balance,
                "type": account_type,
            })

    def transaction(self, account_id: int, amount: str, trans_date="2024-01-15",
                    payee="Seed", type_code: int = 1) -> int:
        if isinstance(trans_date, date):
            trans_date = trans_date.isoformat()
        with self.storage.session() as connection:
            return connection.insert("transactions", {
                "acct_id": account_id,
                "trans_date": trans_date,
                "amount": amount,
                "payee": payee,
                "type": type_code,
            })


@pytest.fixture
def memory_storage():
    """Fresh in-memory store"""
    return InMemoryStorage()


@pytest.fixture
def sqlite_storage(tmp_path):
    """SQLite store in a temporary file with the schema created"""
    storage = SQLiteStorage(tmp_path / "bank.db")
    storage.create_schema()
    yield storage
    storage.close()


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Each backend in turn"""
    if request.param == "memory":
        yield InMemoryStorage()
        return
    backend = SQLiteStorage(tmp_path / "bank.db")
    backend.create_schema()
    yield backend
    backend.close()


@pytest.fixture
def seeder(storage):
    return LedgerSeeder(storage)
