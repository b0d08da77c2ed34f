"""
Bank Service

Entry point to all banking actions. A BankService is built from an explicit
BankConfig, so several independently configured services can run side by
side in one process.
"""

from datetime import date
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from .config import BankConfig
from .currency import Money, AmountLike
from .ledger import AccountStatement, AccountSummary, LedgerEngine
from .logging_config import get_logger, setup_logging
from .models import Account, Transaction, User
from .operations import MoneyMovementService, TransferReceipt
from .repository import AccountRepository, UserDirectory
from .storage import StorageBackend, create_storage


class BankService:
    """Facade over the repository, ledger engine and money-movement operations"""

    def __init__(
        self,
        storage: StorageBackend,
        config: Optional[BankConfig] = None,
        clock: Optional[Callable[[], date]] = None
    ):
        self.config = config or BankConfig()
        self.storage = storage
        self.logger = get_logger("acme_bank.service")

        self.accounts = AccountRepository(storage)
        self.users = UserDirectory(storage)
        self.ledger = LedgerEngine(self.accounts)
        self.movements = MoneyMovementService(
            storage,
            clock=clock,
            transfer_payee=self.config.transfer_payee
        )

    @classmethod
    def from_config(
        cls,
        config: BankConfig,
        clock: Optional[Callable[[], date]] = None,
        configure_logging: bool = False
    ) -> 'BankService':
        """Create the storage backend named by config and wrap it in a service"""
        if configure_logging:
            setup_logging(config.log_level, fmt=config.log_format)

        storage = create_storage(config.database_url, timeout=config.database_timeout)
        if config.create_schema:
            storage.create_schema()
        return cls(storage, config=config, clock=clock)

    # Read side

    def get_user(self, user_id: int) -> Optional[User]:
        return self.users.get_user(user_id)

    def get_accounts(self, user_id: int) -> List[Account]:
        return self.accounts.get_accounts(user_id)

    def get_account(self, account_id: int) -> Optional[Account]:
        return self.accounts.get_account(account_id)

    def get_transactions(self, account_id: int) -> List[Transaction]:
        return self.accounts.get_transactions(account_id)

    def get_balance(self, account_id: int) -> Optional[Money]:
        return self.ledger.get_balance(account_id)

    def transaction_history(self, account_id: int) -> Iterator[Transaction]:
        return self.ledger.transaction_history(account_id)

    def get_statement(self, account_id: int) -> Optional[AccountStatement]:
        return self.ledger.get_statement(account_id)

    def get_account_summaries(self, user_id: int) -> List[AccountSummary]:
        return self.ledger.get_account_summaries(user_id)

    # Write side

    def transfer(self, from_account_id: int, to_account_id: int, amount: AmountLike) -> TransferReceipt:
        return self.movements.transfer(from_account_id, to_account_id, amount)

    def pay_bill(self, from_account_id: int, payee: str, amount: AmountLike) -> Transaction:
        return self.movements.pay_bill(from_account_id, payee, amount)

    # Maintenance

    def reset_database(self, script_path: Union[str, Path]) -> None:
        """Execute a SQL script file, e.g. to restore the database to a known state"""
        self.logger.warning(f"Resetting database from {script_path}")
        self.storage.reset(script_path)

    def close(self) -> None:
        self.storage.close()

    def __enter__(self) -> 'BankService':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
