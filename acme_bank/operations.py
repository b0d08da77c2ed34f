"""
Money-Movement Operations

The two write paths of the ledger: transfers between accounts and bill
payments. Each call validates its arguments, stamps the transaction date and
appends its rows in one all-or-nothing write. No balance check is made, so
both operations may overdraw the paying account.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional
import logging

from .currency import Money, AmountLike
from .errors import InvalidArgumentError, StoreUnavailableError
from .logging_config import get_logger, log_action
from .models import Transaction, TransactionType
from .storage import StorageBackend, StorageConnection


DEFAULT_TRANSFER_PAYEE = "Transfer"


@dataclass(frozen=True)
class TransferReceipt:
    """The double-entry pair written by one transfer"""
    debit: Transaction
    credit: Transaction

    @property
    def amount(self) -> Money:
        return self.debit.amount

    @property
    def date(self) -> date:
        return self.debit.date


class MoneyMovementService:
    """
    Records transfers and bill payments as new transaction rows
    """

    def __init__(
        self,
        storage: StorageBackend,
        clock: Optional[Callable[[], date]] = None,
        transfer_payee: str = DEFAULT_TRANSFER_PAYEE,
        logger: Optional[logging.Logger] = None
    ):
        self.storage = storage
        self.clock = clock or date.today
        self.transfer_payee = transfer_payee
        self.table_name = "transactions"
        self.logger = logger or get_logger("acme_bank.operations")

    def transfer(self, from_account_id: int, to_account_id: int, amount: AmountLike) -> TransferReceipt:
        """
        Transfer funds from one account to another

        Writes a debit on the from account and a credit on the to account,
        both dated today with the same amount. Either both rows become
        durable or neither does. The from account may be overdrawn.

        Args:
            from_account_id: Account to remove funds from
            to_account_id: Account to add funds to
            amount: Positive amount to move

        Returns:
            TransferReceipt with the debit and credit transactions

        Raises:
            InvalidArgumentError: Bad amount, same account on both sides, or
                unknown account
            StoreUnavailableError: The write failed; nothing was recorded
        """
        money = self._validate_amount(amount)
        if from_account_id == to_account_id:
            raise InvalidArgumentError("Cannot transfer between an account and itself")

        trans_date = self._today()
        debit_row = Transaction.to_row(
            from_account_id, money, trans_date, self.transfer_payee, TransactionType.DEBIT
        )
        credit_row = Transaction.to_row(
            to_account_id, money, trans_date, self.transfer_payee, TransactionType.CREDIT
        )

        try:
            with self.storage.session() as connection:
                with connection.atomic():
                    self._require_account(connection, from_account_id)
                    self._require_account(connection, to_account_id)
                    debit_id = connection.insert(self.table_name, debit_row)
                    credit_id = connection.insert(self.table_name, credit_row)
        except StoreUnavailableError as exc:
            log_action(
                self.logger, "error", f"Transfer failed and was rolled back: {exc}",
                action="transfer", account_id=from_account_id, amount=money,
                extra={"to_account_id": to_account_id}
            )
            raise

        receipt = TransferReceipt(
            debit=Transaction(
                id=debit_id, account_id=from_account_id, amount=money,
                date=trans_date, payee=self.transfer_payee, type=TransactionType.DEBIT
            ),
            credit=Transaction(
                id=credit_id, account_id=to_account_id, amount=money,
                date=trans_date, payee=self.transfer_payee, type=TransactionType.CREDIT
            )
        )

        log_action(
            self.logger, "info", "Transfer recorded",
            action="transfer", account_id=from_account_id, amount=money,
            extra={
                "to_account_id": to_account_id,
                "date": trans_date.isoformat(),
                "debit_id": debit_id,
                "credit_id": credit_id
            }
        )
        return receipt

    def pay_bill(self, from_account_id: int, payee: str, amount: AmountLike) -> Transaction:
        """
        Record a bill payment as a single debit on the paying account

        The account may be overdrawn.

        Raises:
            InvalidArgumentError: Bad amount, blank payee or unknown account
            StoreUnavailableError: The write failed; nothing was recorded
        """
        money = self._validate_amount(amount)
        if not isinstance(payee, str) or not payee.strip():
            raise InvalidArgumentError("Payee must be a non-empty string")
        payee = payee.strip()

        trans_date = self._today()
        row = Transaction.to_row(from_account_id, money, trans_date, payee, TransactionType.DEBIT)

        try:
            with self.storage.session() as connection:
                with connection.atomic():
                    self._require_account(connection, from_account_id)
                    transaction_id = connection.insert(self.table_name, row)
        except StoreUnavailableError as exc:
            log_action(
                self.logger, "error", f"Bill payment failed and was rolled back: {exc}",
                action="pay_bill", account_id=from_account_id, amount=money,
                extra={"payee": payee}
            )
            raise

        log_action(
            self.logger, "info", "Bill payment recorded",
            action="pay_bill", account_id=from_account_id, amount=money,
            extra={
                "payee": payee,
                "date": trans_date.isoformat(),
                "transaction_id": transaction_id
            }
        )
        return Transaction(
            id=transaction_id, account_id=from_account_id, amount=money,
            date=trans_date, payee=payee, type=TransactionType.DEBIT
        )

    def _validate_amount(self, amount: AmountLike) -> Money:
        try:
            money = Money.of(amount)
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid amount {amount!r}: {exc}") from exc
        if not money.is_positive():
            raise InvalidArgumentError(f"Amount must be positive, got {money}")
        return money

    def _today(self) -> date:
        today = self.clock()
        if isinstance(today, datetime):
            return today.date()
        return today

    def _require_account(self, connection: StorageConnection, account_id: int) -> None:
        if connection.load("accounts", account_id) is None:
            raise InvalidArgumentError(f"Account {account_id} not found")
