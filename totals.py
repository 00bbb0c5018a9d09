from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from models import Order, OrderItem
from normalize import finite_number, resolve_quantity


def _item_price(item: OrderItem | Mapping[str, Any]) -> float | int:
    raw = item.get("price") if isinstance(item, Mapping) else item.price
    return finite_number(raw) or 0


def _item_quantity(item: OrderItem | Mapping[str, Any]) -> float | int:
    if isinstance(item, Mapping):
        return resolve_quantity(item)
    return item.quantity


def compute_line_total(item: OrderItem | Mapping[str, Any]) -> float | int:
    return _item_price(item) * _item_quantity(item)


def compute_subtotal(order: Order, items: Iterable[OrderItem | Mapping[str, Any]]) -> float | int:
    """Stored order total when it is a finite number, else the sum of the line totals.

    Line totals are summed in item order without rounding; rounding only
    happens when the value is formatted.
    """
    stored = finite_number(order.total_price)
    if stored is not None:
        return stored
    total: float | int = 0
    for item in items:
        total += compute_line_total(item)
    return total
