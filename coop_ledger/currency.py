"""
Money Module

Decimal money representation for ledger amounts. A cooperative keeps its
books in a single currency (Rupiah by default), so there is no conversion
here, only precision handling. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable
import re

# High precision for intermediate ratio calculations
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 currency codes with minor-unit precision"""
    IDR = ("IDR", 2)  # Indonesian Rupiah
    USD = ("USD", 2)  # US Dollar

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


@dataclass(frozen=True)
class Money:
    """
    Immutable money value with currency and proper precision.
    All ledger amounts MUST use this class.
    """
    amount: Decimal
    currency: Currency = Currency.IDR

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)

    @classmethod
    def zero(cls, currency: Currency = Currency.IDR) -> 'Money':
        return cls(Decimal('0'), currency)

    def __add__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency.code} and {other.currency.code}")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract {other.currency.code} from {self.currency.code}")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount), self.currency)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Money):
            return False
        return self.amount == other.amount and self.currency == other.currency

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount < other.amount

    def __le__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount <= other.amount

    def __gt__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
        return self.amount > other.amount

    def __ge__(self, other: 'Money') -> bool:
        if self.currency != other.currency:
            raise ValueError(f"Cannot compare {self.currency.code} and {other.currency.code}")
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
        if self.currency.precision == 0:
            return f"{self.currency.code} {self.amount:,.0f}"
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def sum_money(values: Iterable[Money], currency: Currency = Currency.IDR) -> Money:
    """Sum Money values, returning zero in `currency` for an empty iterable"""
    total = Money.zero(currency)
    for value in values:
        total = total + value
    return total


def to_money(value: Any, currency: Currency = Currency.IDR) -> Money:
    """
    Coerce a payload value (Money, Decimal, int or numeric string) to Money

    Raises:
        ValueError: If the value is not a number
    """
    if isinstance(value, Money):
        return value
    if isinstance(value, float):
        # Route through repr so binary float noise is not carried into Decimal
        value = Decimal(repr(value))
    if isinstance(value, str):
        return Money(decimal_from_string(value), currency)
    try:
        amount = Decimal(value)
        if not amount.is_finite():
            raise InvalidOperation
        return Money(amount, currency)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Cannot convert {value!r} to an amount")


_CURRENCY_PREFIX = re.compile(r'^(rp\.?|idr|usd|\$)\s*', re.IGNORECASE)
_NUMBER = re.compile(r'^[+-]?\d[\d.,]*$')


def _is_grouped(text: str, separator: str) -> bool:
    """True for thousands grouping such as 2.500.000 or 12,500"""
    return re.fullmatch(rf'[1-9]\d{{0,2}}(\{separator}\d{{3}})+', text) is not None


def decimal_from_string(value: str) -> Decimal:
    """
    Convert a string to Decimal, tolerating a currency prefix and
    thousands separators ("Rp 2.500.000" and "2,500,000.00" both parse)

    A single separator followed by exactly three digits is Rupiah grouping,
    so "2.500" is 2500; "0.500" and "12,5" are decimals. Anything other
    than digits, separators and a leading sign is rejected.

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    text = _CURRENCY_PREFIX.sub('', value.strip()).strip()
    if not _NUMBER.match(text):
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    sign = ''
    if text[0] in '+-':
        sign, text = text[0], text[1:]

    if ',' in text and '.' in text:
        # Whichever separator comes last is the decimal separator
        decimal_separator = ',' if text.rfind(',') > text.rfind('.') else '.'
        group_separator = '.' if decimal_separator == ',' else ','
        integer, _, fraction = text.rpartition(decimal_separator)
        if not _is_grouped(integer, group_separator):
            raise ValueError(f"Cannot convert '{value}' to Decimal")
        text = integer.replace(group_separator, '') + '.' + fraction
    elif text.count('.') > 1 or text.count(',') > 1:
        separator = '.' if '.' in text else ','
        if not _is_grouped(text, separator):
            raise ValueError(f"Cannot convert '{value}' to Decimal")
        text = text.replace(separator, '')
    elif '.' in text or ',' in text:
        separator = '.' if '.' in text else ','
        integer, fraction = text.split(separator)
        if _is_grouped(text, separator):
            text = integer + fraction
        else:
            text = integer + '.' + fraction

    try:
        return Decimal(sign + text)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
