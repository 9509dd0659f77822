"""Cent arithmetic for prices and totals.

Unit prices are rounded to the cent once, half up; line totals and order
totals are exact sums of those rounded values.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

CENT = Decimal("0.01")

Amount = Union[int, float, str, Decimal]


def to_cents(value: Amount) -> Decimal:
    # str() keeps the decimal literal the client sent instead of the binary float
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(price: Amount, quantity: int) -> Decimal:
    return to_cents(price) * quantity


def order_total(lines: Iterable[Decimal]) -> Decimal:
    return sum(lines, Decimal("0.00"))
