"""
Ledger Engine

Derives account balances from an account's start balance and its append-only
transaction sequence. Balances are never stored; they are recomputed by
summation, so every durable transaction row is always counted. A negative
balance (overdraft) is a valid result, not an error.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional
import logging

from .currency import Money, money_sum
from .logging_config import get_logger
from .models import Account, Transaction, TransactionType
from .repository import AccountRepository


@dataclass(frozen=True)
class StatementLine:
    """A transaction together with the account balance after it"""
    transaction: Transaction
    signed_amount: Money
    balance: Money


@dataclass(frozen=True)
class AccountStatement:
    """Account, its current balance and its ordered history"""
    account: Account
    balance: Money
    lines: List[StatementLine]

    @property
    def transactions(self) -> List[Transaction]:
        return [line.transaction for line in self.lines]

    @property
    def is_overdrawn(self) -> bool:
        return self.balance.is_negative()


@dataclass(frozen=True)
class AccountSummary:
    """An account with its current balance"""
    account: Account
    balance: Money


def signed_amount(transaction: Transaction) -> Money:
    """
    Amount of a transaction as it affects the balance

    Debits reduce the balance and credits increase it. Any other type code
    contributes its stored amount unchanged.
    """
    if transaction.type == TransactionType.DEBIT:
        return -transaction.amount
    return transaction.amount


def current_balance(account: Account, transactions: Iterable[Transaction]) -> Money:
    """
    Start balance plus the signed amounts of the account's transactions

    The result does not depend on the order of transactions. Rows belonging
    to other accounts are ignored.
    """
    return money_sum(
        (signed_amount(tx) for tx in transactions if tx.account_id == account.id),
        start=account.start_balance
    )


def order_transactions(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Sort transactions for display: by date, then insertion order"""
    return sorted(transactions, key=lambda tx: (tx.date, tx.id))


def running_balances(account: Account, transactions: Iterable[Transaction]) -> List[StatementLine]:
    """Ordered statement lines, each carrying the balance after that transaction"""
    balance = account.start_balance
    lines = []
    for tx in order_transactions(t for t in transactions if t.account_id == account.id):
        amount = signed_amount(tx)
        balance = balance + amount
        lines.append(StatementLine(transaction=tx, signed_amount=amount, balance=balance))
    return lines


class LedgerEngine:
    """
    Balance and history queries over the repository
    """

    def __init__(self, repository: AccountRepository, logger: Optional[logging.Logger] = None):
        self.repository = repository
        self.logger = logger or get_logger("acme_bank.ledger")

    def get_balance(self, account_id: int) -> Optional[Money]:
        """Current balance of an account, or None if the account does not exist"""
        account = self.repository.get_account(account_id)
        if account is None:
            return None
        return current_balance(account, self.repository.get_transactions(account_id))

    def transaction_history(self, account_id: int) -> Iterator[Transaction]:
        """
        Lazily yield an account's transactions in display order

        The store is queried when iteration starts, so calling this again
        picks up rows written in the meantime.
        """
        yield from order_transactions(self.repository.get_transactions(account_id))

    def get_statement(self, account_id: int) -> Optional[AccountStatement]:
        """Current balance and ordered history with running balances"""
        account = self.repository.get_account(account_id)
        if account is None:
            return None

        lines = running_balances(account, self.repository.get_transactions(account_id))
        balance = lines[-1].balance if lines else account.start_balance
        if balance.is_negative():
            self.logger.debug(f"Account {account_id} is overdrawn: {balance}")
        return AccountStatement(account=account, balance=balance, lines=lines)

    def get_account_summaries(self, user_id: int) -> List[AccountSummary]:
        """Every account a user owns with its current balance"""
        summaries = []
        for account in self.repository.get_accounts(user_id):
            transactions = self.repository.get_transactions(account.id)
            summaries.append(AccountSummary(
                account=account,
                balance=current_balance(account, transactions)
            ))
        return summaries
