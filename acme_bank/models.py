"""
Ledger Entities

Account, Transaction and User records plus their named-field decoding from
store rows. Rows are validated once here; code past this boundary only ever
sees Money amounts and date objects.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional

from .currency import Money
from .errors import RowDecodeError


class TransactionType(IntEnum):
    """Transaction type codes written by the money-movement operations"""
    DEBIT = 1   # Funds leaving the account
    CREDIT = 2  # Funds arriving in the account


class AccountType(IntEnum):
    """Conventional account type codes; the ledger treats them as opaque"""
    CHECKING = 1
    SAVINGS = 2


def _require(row: Mapping[str, Any], table: str, column: str) -> Any:
    try:
        value = row[column]
    except (KeyError, IndexError):
        raise RowDecodeError(table, f"row is missing column {column!r}")
    if value is None:
        raise RowDecodeError(table, f"column {column!r} is null")
    return value


def _decode_int(row: Mapping[str, Any], table: str, column: str) -> int:
    value = _require(row, table, column)
    if isinstance(value, bool):
        raise RowDecodeError(table, f"column {column!r} is not an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise RowDecodeError(table, f"column {column!r} is not an integer: {value!r}") from exc


def _decode_money(row: Mapping[str, Any], table: str, column: str) -> Money:
    value = _require(row, table, column)
    try:
        if isinstance(value, float):
            # Legacy REAL columns: go through str() to avoid the binary expansion
            return Money(Decimal(str(value)))
        return Money(Decimal(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise RowDecodeError(table, f"column {column!r} is not an amount: {value!r}") from exc


def _decode_str(row: Mapping[str, Any], table: str, column: str) -> str:
    value = _require(row, table, column)
    if not isinstance(value, str):
        raise RowDecodeError(table, f"column {column!r} is not text: {value!r}")
    return value


def parse_transaction_date(value: Any) -> date:
    """
    Parse a stored transaction date

    Accepts ISO dates, ISO timestamps (the date part is kept) and the
    unpadded ``Y-M-D`` form written by older clients.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Unsupported date value: {value!r}")

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    parts = text.split(" ")[0].split("-")
    if len(parts) != 3:
        raise ValueError(f"Unrecognised date: {value!r}")
    year, month, day = (int(part) for part in parts)
    return date(year, month, day)


@dataclass(frozen=True)
class Account:
    """
    A user-owned account

    The start balance is fixed when the account is opened; every later
    change is a Transaction.
    """
    id: int
    user_id: int
    start_balance: Money
    account_type: int

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Account':
        return cls(
            id=_decode_int(row, "accounts", "id"),
            user_id=_decode_int(row, "accounts", "user_id"),
            start_balance=_decode_money(row, "accounts", "balance"),
            account_type=_decode_int(row, "accounts", "type"),
        )


@dataclass(frozen=True)
class Transaction:
    """An append-only ledger entry"""
    id: int
    account_id: int
    amount: Money
    date: date
    payee: str
    type: int

    @property
    def is_debit(self) -> bool:
        return self.type == TransactionType.DEBIT

    @property
    def is_credit(self) -> bool:
        return self.type == TransactionType.CREDIT

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Transaction':
        raw_date = _require(row, "transactions", "trans_date")
        try:
            trans_date = parse_transaction_date(raw_date)
        except ValueError as exc:
            raise RowDecodeError(
                "transactions", f"column 'trans_date' is not a date: {raw_date!r}"
            ) from exc

        return cls(
            id=_decode_int(row, "transactions", "id"),
            account_id=_decode_int(row, "transactions", "acct_id"),
            amount=_decode_money(row, "transactions", "amount"),
            date=trans_date,
            payee=_decode_str(row, "transactions", "payee"),
            type=_decode_int(row, "transactions", "type"),
        )

    @staticmethod
    def to_row(account_id: int, amount: Money, trans_date: date,
               payee: str, type_code: int) -> Dict[str, Any]:
        """Build the five data columns of a new transactions row"""
        return {
            "acct_id": account_id,
            "trans_date": trans_date.isoformat(),
            "amount": amount.to_storage(),
            "payee": payee,
            "type": int(type_code),
        }


@dataclass(frozen=True)
class User:
    """Profile of an account owner, read-only to the ledger"""
    id: int
    email: str
    firstname: str
    lastname: str
    password: str = field(repr=False)
    phone: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.firstname} {self.lastname}"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'User':
        try:
            phone = row["phone"]
        except (KeyError, IndexError):
            raise RowDecodeError("users", "row is missing column 'phone'")
        return cls(
            id=_decode_int(row, "users", "id"),
            email=_decode_str(row, "users", "email"),
            firstname=_decode_str(row, "users", "firstname"),
            lastname=_decode_str(row, "users", "lastname"),
            password=_decode_str(row, "users", "password"),
            phone=phone,
        )
