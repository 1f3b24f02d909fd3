"""
Money Module

Fixed two-digit Decimal money for every balance, amount and interest figure.
NEVER uses float for monetary values: floats are converted through ``str`` so
``0.1`` becomes ``Decimal('0.1')`` and not its binary approximation.

Rounding rule: ROUND_HALF_UP (half away from zero) to the cent, applied after
every individual operation so stored balance snapshots are reproducible.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Union
import re

from .exceptions import InvalidAmount

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')

# Largest single amount and largest balance a deposit may produce
MAX_AMOUNT = Decimal('1000000000000')

# Largest interest rate per period (100%)
MAX_RATE = Decimal('1')

AmountLike = Union[int, float, Decimal, str]


def round2(value: Decimal) -> Decimal:
    """Round a Decimal to the cent, half away from zero"""
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidAmount(f"Amount {value} is too large to represent in cents")


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert a user supplied number to a finite Decimal without rounding

    Raises:
        InvalidAmount: If the value is not numeric, is a bool, NaN or infinite
    """
    if isinstance(value, bool):
        raise InvalidAmount("Amount must be a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmount(f"Cannot convert '{value}' to an amount")
    else:
        raise InvalidAmount(f"Amount must be a number, got {type(value).__name__}")

    if not result.is_finite():
        raise InvalidAmount("Amount must be a finite number")

    return result


@dataclass(frozen=True)
class Money:
    """
    Immutable money value with exactly two fractional digits.
    """
    amount: Decimal

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))
        elif not self.amount.is_finite():
            raise InvalidAmount("Amount must be a finite number")

        object.__setattr__(self, 'amount', round2(self.amount))

    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal('0'))

    @classmethod
    def parse(cls, value: AmountLike) -> 'Money':
        """Build Money from any accepted numeric input, rounding to the cent"""
        return cls(to_decimal(value))

    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + other.amount)

    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - other.amount)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        if not isinstance(multiplier, Decimal):
            multiplier = Decimal(str(multiplier))
        return Money(self.amount * multiplier)

    def __neg__(self) -> 'Money':
        return Money(-self.amount)

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
        return self.amount > Decimal('0')

    def is_negative(self) -> bool:
        return self.amount < Decimal('0')

    def to_string(self) -> str:
        """Format for display"""
        if self.is_negative():
            return f"-${-self.amount:,.2f}"
        return f"${self.amount:,.2f}"

    def __str__(self) -> str:
        return self.to_string()


def parse_amount(value: AmountLike) -> Decimal:
    """
    Validate a transaction amount and return it unrounded

    The amount must be finite, positive, no larger than MAX_AMOUNT and
    worth at least one cent after rounding. Callers compare the unrounded
    value against balances and store the rounded one.

    Raises:
        InvalidAmount: If any of the above does not hold
    """
    raw = to_decimal(value)
    if raw <= Decimal('0'):
        raise InvalidAmount("Amount must be greater than zero")
    if raw > MAX_AMOUNT:
        raise InvalidAmount(f"Amount must not exceed {MAX_AMOUNT}")
    if round2(raw) == Decimal('0'):
        raise InvalidAmount(f"Amount {raw} rounds to zero cents")
    return raw


def decimal_from_string(value: str) -> Decimal:
    """
    Convert a formatted currency string to Decimal

    Handles "$7,00" (comma decimal separator), "$1,234.50" and quoted values.

    Args:
        value: String representation of number

    Returns:
        Decimal value

    Raises:
        InvalidAmount: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise InvalidAmount("Value must be a non-empty string")

    # Remove currency symbols, quotes and whitespace
    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if ',' in clean_value and '.' in clean_value:
        # Both comma and dot - comma is the thousands separator
        clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:  # Decimal separator
            clean_value = clean_value.replace(',', '.')
        else:  # Thousands separator
            clean_value = clean_value.replace(',', '')

    try:
        result = Decimal(clean_value)
    except InvalidOperation:
        raise InvalidAmount(f"Cannot convert '{value}' to Decimal")

    if not result.is_finite():
        raise InvalidAmount(f"Cannot convert '{value}' to Decimal")
    return result
