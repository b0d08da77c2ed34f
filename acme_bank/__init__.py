"""
Acme Bank Ledger

Account balances derived from append-only transaction histories, with
atomic double-entry transfers and bill payments. All financial calculations
use Decimal.
"""

from .config import BankConfig, load_config
from .currency import Money
from .errors import (
    BankError, InvalidArgumentError, RowDecodeError, StoreUnavailableError
)
from .models import Account, AccountType, Transaction, TransactionType, User
from .service import BankService

__version__ = "1.0.0"

__all__ = [
    "Account",
    "AccountType",
    "BankConfig",
    "BankError",
    "BankService",
    "InvalidArgumentError",
    "Money",
    "RowDecodeError",
    "StoreUnavailableError",
    "Transaction",
    "TransactionType",
    "User",
    "load_config",
]
