"""Fixed-point money value and its database column type."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from sqlalchemy import Numeric
from sqlalchemy.types import TypeDecorator

CENT = Decimal("0.01")

MoneyLike = Union["Money", Decimal, int, str]


def round_money(value: Decimal) -> Decimal:
    """Round to the nearest cent, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value: MoneyLike) -> Decimal:
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, float):
        raise TypeError("Money does not accept float, pass a str or Decimal")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid money amount: {value!r}") from e
    # NaN and Infinity pass quantize silently and only fail on comparison
    if not result.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return result


@dataclass(frozen=True)
class Money:
    """
    Two-decimal currency amount.

    The amount is rounded half-up to the cent exactly once, when the value is
    built. Arithmetic between Money values is exact on cents, so totals never
    drift. Floats and non-finite values are refused at construction.
    """

    amount: Decimal

    def __post_init__(self) -> None:
        try:
            amount = round_money(_to_decimal(self.amount))
        except InvalidOperation as e:
            raise ValueError(f"Invalid money amount: {self.amount!r}") from e
        object.__setattr__(self, "amount", amount)

    @classmethod
    def from_value(cls, value: MoneyLike) -> "Money":
        return value if isinstance(value, Money) else cls(_to_decimal(value))

    @classmethod
    def zero(cls) -> "Money":
        return cls(Decimal("0"))

    def add(self, other: MoneyLike) -> "Money":
        return Money(self.amount + _to_decimal(other))

    def subtract(self, other: MoneyLike) -> "Money":
        return Money(self.amount - _to_decimal(other))

    def multiply(self, factor: Union[Decimal, int, str]) -> "Money":
        """Multiply by a quantity; the product is rounded once."""
        return Money(self.amount * _to_decimal(factor))

    def is_negative(self) -> bool:
        return self.amount < 0

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_zero(self) -> bool:
        return self.amount == 0

    def greater_than(self, other: MoneyLike) -> bool:
        return self.amount > _to_decimal(other)

    def greater_than_or_equal(self, other: MoneyLike) -> bool:
        return self.amount >= _to_decimal(other)

    def less_than(self, other: MoneyLike) -> bool:
        return self.amount < _to_decimal(other)

    def less_than_or_equal(self, other: MoneyLike) -> bool:
        return self.amount <= _to_decimal(other)

    def __add__(self, other: MoneyLike) -> "Money":
        return self.add(other)

    def __sub__(self, other: MoneyLike) -> "Money":
        return self.subtract(other)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, (Money, Decimal, int, str)):
            try:
                return self.amount == _to_decimal(other)
            except ValueError:
                return False
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.amount)

    def __lt__(self, other: MoneyLike) -> bool:
        return self.less_than(other)

    def __le__(self, other: MoneyLike) -> bool:
        return self.less_than_or_equal(other)

    def __gt__(self, other: MoneyLike) -> bool:
        return self.greater_than(other)

    def __ge__(self, other: MoneyLike) -> bool:
        return self.greater_than_or_equal(other)

    def __str__(self) -> str:
        return f"{self.amount:.2f}"

    def __repr__(self) -> str:
        return f"Money('{self}')"


class MoneyType(TypeDecorator):
    """NUMERIC(12, 2) column that loads and stores Money."""

    impl = Numeric(12, 2)
    cache_ok = True

    def process_bind_param(self, value: Optional[MoneyLike], dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return Money.from_value(value).amount

    def process_result_value(self, value: Optional[Decimal], dialect) -> Optional[Money]:
        if value is None:
            return None
        return Money.from_value(Decimal(str(value)))
