"""
Money Module

Fixed-point monetary amounts for the ledger. Every amount read from the
record store or supplied by a caller is converted to Money exactly once.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Iterable, Union
import re

# Set global decimal context for financial precision
getcontext().prec = 28

# Accounts are kept in a single currency with cent precision
CURRENCY_PRECISION = 2
_QUANTUM = Decimal('0.1') ** CURRENCY_PRECISION

AmountLike = Union['Money', Decimal, int, str]

# Optional sign and '$', plain digits or comma-grouped thousands, optional fraction
_AMOUNT_PATTERN = re.compile(
    r'(?P<sign>[+-])?\$?'
    r'(?P<integer>\d{1,3}(?:,\d{3})+|\d+)?'
    r'(?P<fraction>\.\d+)?'
)


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation rounded to cent precision.
    All monetary values MUST use this class.
    """
    amount: Decimal

    def __post_init__(self):
        try:
            if isinstance(self.amount, float):
                # Go through str() so 0.1 becomes Decimal('0.1'), not its binary expansion
                object.__setattr__(self, 'amount', Decimal(str(self.amount)))
            elif not isinstance(self.amount, Decimal):
                object.__setattr__(self, 'amount', Decimal(self.amount))

            if not self.amount.is_finite():
                raise ValueError(f"Money amount must be finite, got {self.amount}")

            rounded = self.amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP)
        except InvalidOperation as exc:
            raise ValueError(f"Money amount out of range: {self.amount!r}") from exc
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal('0'))

    @classmethod
    def of(cls, value: AmountLike) -> 'Money':
        """
        Coerce a caller-supplied value to Money

        Args:
            value: Money, Decimal, int or numeric string

        Returns:
            Money instance

        Raises:
            ValueError: If value is not a valid number
        """
        if isinstance(value, Money):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Cannot convert {value!r} to Money")
        if isinstance(value, str):
            return cls(decimal_from_string(value))
        if isinstance(value, (Decimal, int)):
            return cls(Decimal(value))
        if isinstance(value, float):
            return cls(Decimal(str(value)))
        raise ValueError(f"Cannot convert {type(value).__name__} to Money")

    def __add__(self, other: 'Money') -> 'Money':
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount + other.amount)

    def __sub__(self, other: 'Money') -> 'Money':
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self.amount - other.amount)

    def __neg__(self) -> 'Money':
        return Money(-self.amount)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount))

    def __lt__(self, other: 'Money') -> bool:
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        """Check if amount is negative"""
        return self.amount < Decimal('0')

    def to_storage(self) -> str:
        """Decimal string written to the record store"""
        return str(self.amount)

    def to_string(self) -> str:
        """Format for display"""
        return f"{self.amount:,.{CURRENCY_PRECISION}f}"

    def __str__(self) -> str:
        return self.to_string()


def money_sum(values: Iterable[Money], start: Money = None) -> Money:
    """Sum Money values, starting from zero unless a start value is given"""
    total = start if start is not None else Money.zero()
    for value in values:
        total = total + value
    return total


def decimal_from_string(value: str) -> Decimal:
    """
    Strictly convert a caller-supplied amount string to Decimal

    Accepts an optional sign, an optional leading '$', digits with optional
    well-formed thousands groups and an optional fractional part, e.g.
    "30", "-12.5", "$1,234.56". Anything else is rejected.

    Args:
        value: String representation of number

    Returns:
        Decimal value

    Raises:
        ValueError: If string is not a well-formed amount
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    match = _AMOUNT_PATTERN.fullmatch(value.strip())
    if not match or not (match.group('integer') or match.group('fraction')):
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    sign, integer, fraction = match.group('sign', 'integer', 'fraction')
    text = f"{sign or ''}{(integer or '0').replace(',', '')}{fraction or ''}"
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Cannot convert '{value}' to Decimal") from exc
