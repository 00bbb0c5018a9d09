from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any
import math
import re

# Quantity lookup order for order items. The checkout writes "qty"; older
# records only carry "quantity".
QUANTITY_FIELDS = ("qty", "quantity")

_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return _CONTROL_RE.sub("", str(value)).strip()


def to_number(value: Any) -> float | int | None:
    """Coerce a stored value to a finite number, or None when that is not possible.

    Accepts ints, floats, Decimals and numeric strings ("2", "2.5", "2,5").
    Booleans are not numbers here even though Python treats them as ints.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = clean_text(value)
    if not text:
        return None
    compact = text.replace(" ", "")
    if "," in compact and "." not in compact:
        compact = compact.replace(",", ".")
    try:
        number = float(compact)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    if number.is_integer() and "." not in compact and "e" not in compact.lower():
        return int(number)
    return number


def finite_number(value: Any) -> float | int | None:
    """Like to_number, but only for values that already are numbers (no strings)."""
    if isinstance(value, str):
        return None
    return to_number(value)


def resolve_quantity(record: Mapping[str, Any] | Any) -> float | int:
    """Return the item quantity: "qty", then "quantity", then 0."""
    if not isinstance(record, Mapping):
        return 0
    for field in QUANTITY_FIELDS:
        number = to_number(record.get(field))
        if number is not None:
            return number
    return 0


def coerce_items(value: Any) -> list[Mapping[str, Any]]:
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]
