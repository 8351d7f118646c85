"""Box identity rules.

A box id lives in one of two namespaces:

  factory    "1".."600"          fixed pool, seeded once
  auxiliary  "Chkara<N>", N >= 1  created on demand

Ordering dispatches on the namespace: factory ids compare numerically
("9" before "10"), auxiliary ids follow every factory id and compare by N.
"""

import re
from dataclasses import dataclass

from oliveflow.config import settings
from oliveflow.middleware.exceptions import InputValidationError

FACTORY = "factory"
AUXILIARY = "auxiliary"

_DIGITS_RE = re.compile(r"^[0-9]+$")


def _auxiliary_re() -> re.Pattern:
    return re.compile(rf"^{re.escape(settings.auxiliary_prefix)}([1-9][0-9]*)$")


@dataclass(frozen=True)
class BoxIdentity:
    namespace: str
    number: int

    @property
    def box_id(self) -> str:
        if self.namespace == FACTORY:
            return str(self.number)
        return f"{settings.auxiliary_prefix}{self.number}"


def parse_box_id(box_id: str) -> BoxIdentity:
    """Classify a box id, raising InputValidationError if it fits neither pool."""
    box_id = (box_id or "").strip()
    if _DIGITS_RE.match(box_id):
        number = int(box_id)
        if str(number) != box_id or not 1 <= number <= settings.factory_pool_size:
            raise InputValidationError(
                f"Box id {box_id!r} must be a number between 1 and "
                f"{settings.factory_pool_size}",
                error_code="INVALID_BOX_ID",
            )
        return BoxIdentity(FACTORY, number)

    match = _auxiliary_re().match(box_id)
    if match:
        return BoxIdentity(AUXILIARY, int(match.group(1)))

    raise InputValidationError(
        f"Box id {box_id!r} is neither a factory box (1-"
        f"{settings.factory_pool_size}) nor {settings.auxiliary_prefix}<N>",
        error_code="INVALID_BOX_ID",
    )


def is_auxiliary(box_id: str) -> bool:
    return bool(_auxiliary_re().match(box_id or ""))


def is_factory(box_id: str) -> bool:
    if not _DIGITS_RE.match(box_id or ""):
        return False
    return str(int(box_id)) == box_id and 1 <= int(box_id) <= settings.factory_pool_size


def factory_ids() -> list[str]:
    return [str(n) for n in range(1, settings.factory_pool_size + 1)]


def box_sort_key(box_id: str) -> tuple:
    """Numeric-aware sort key; unparseable ids sort last, lexically."""
    if _DIGITS_RE.match(box_id):
        return (0, int(box_id), "")
    match = _auxiliary_re().match(box_id)
    if match:
        return (1, int(match.group(1)), "")
    return (2, 0, box_id)


def next_auxiliary_id(existing_ids: list[str]) -> str:
    """Smallest unused N among existing Chkara<N> ids (first gap wins)."""
    numbers = sorted({
        parse_box_id(box_id).number
        for box_id in existing_ids
        if is_auxiliary(box_id)
    })
    candidate = 1
    for number in numbers:
        if number != candidate:
            break
        candidate += 1
    return f"{settings.auxiliary_prefix}{candidate}"
