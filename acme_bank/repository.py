"""
Account and Transaction Repository

Read-side queries feeding the ledger engine and reporting consumers. Every
call runs on its own storage connection. Missing records come back as None or
an empty list, never as an exception.
"""

from typing import List, Optional

from .models import Account, Transaction, User
from .storage import StorageBackend


class AccountRepository:
    """Fetches accounts and their transactions from the record store"""

    def __init__(self, storage: StorageBackend):
        self.storage = storage
        self.accounts_table = "accounts"
        self.transactions_table = "transactions"

    def get_accounts(self, user_id: int) -> List[Account]:
        """Get all accounts owned by a user, ordered by id"""
        with self.storage.session() as connection:
            rows = connection.find(self.accounts_table, {"user_id": user_id})
        return [Account.from_row(row) for row in rows]

    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID"""
        with self.storage.session() as connection:
            row = connection.load(self.accounts_table, account_id)
        if row:
            return Account.from_row(row)
        return None

    def get_transactions(self, account_id: int) -> List[Transaction]:
        """
        Get all transactions recorded against an account

        Rows come back in store order; use ledger.order_transactions for
        display order.
        """
        with self.storage.session() as connection:
            rows = connection.find(self.transactions_table, {"acct_id": account_id})
        return [Transaction.from_row(row) for row in rows]


class UserDirectory:
    """Key-based user lookup used to scope account listings"""

    def __init__(self, storage: StorageBackend):
        self.storage = storage
        self.table_name = "users"

    def get_user(self, user_id: int) -> Optional[User]:
        """Find the user with the given ID"""
        with self.storage.session() as connection:
            row = connection.load(self.table_name, user_id)
        if row:
            return User.from_row(row)
        return None
