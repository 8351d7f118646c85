"""Decimal helpers for weights and money.

Everything is stored as NUMERIC(12, 3) and handled as Decimal; floats
never enter the arithmetic.
"""

from decimal import ROUND_HALF_UP, Decimal

THREE_PLACES = Decimal("0.001")
ZERO = Decimal("0")

# Collection units: 5 galba make one chakra
GALBA_PER_CHAKRA = Decimal(5)


def to_decimal(value) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    # str() first so 0.1 stays 0.1
    return Decimal(str(value))


def quantize(value) -> Decimal:
    """Round to the 3-decimal display convention."""
    return to_decimal(value).quantize(THREE_PLACES, rounding=ROUND_HALF_UP)


def to_chakra(chakra, galba) -> Decimal:
    """Total quantity in chakra for a (chakra, galba) pair."""
    return quantize(
        to_decimal(chakra or 0) + to_decimal(galba or 0) / GALBA_PER_CHAKRA
    )


def normalize_units(chakra: int, galba: int) -> tuple[int, int]:
    """Carry whole chakra out of galba: (3, 7) -> (4, 2)."""
    carried, remaining = divmod(galba, int(GALBA_PER_CHAKRA))
    return chakra + carried, remaining
