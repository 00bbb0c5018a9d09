from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from normalize import clean_text, coerce_items, finite_number, resolve_quantity

STATUS_OPTIONS = ("neu", "in_bearbeitung", "unterwegs", "geliefert", "storniert")
STATUS_LABELS = {
    "neu": "Neu",
    "in_bearbeitung": "In Bearbeitung",
    "unterwegs": "Unterwegs",
    "geliefert": "Geliefert",
    "storniert": "Storniert",
}

CUSTOMER_FIELDS = ("name", "owner_name", "street", "zip", "city", "phone", "email")


@dataclass(frozen=True)
class OrderItem:
    """One order line with its quantity already resolved to a number."""

    name: str
    unit: str
    price: float | int | None
    quantity: float | int

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OrderItem":
        return cls(
            name=clean_text(record.get("name")),
            unit=clean_text(record.get("unit")),
            price=finite_number(record.get("price")),
            quantity=resolve_quantity(record),
        )


@dataclass(frozen=True)
class Order:
    id: int
    customer_number: str
    items: tuple[OrderItem, ...] = ()
    total_price: float | int | None = None
    total_items: int | None = None
    status: str = ""
    payment_method: str | None = None
    delivery_note: str | None = None
    created_at: str | datetime | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Order":
        total_items = finite_number(record.get("total_items"))
        created_at = record.get("created_at")
        if created_at is not None and not isinstance(created_at, datetime):
            created_at = str(created_at)
        delivery_note = record.get("delivery_note")
        payment_method = record.get("payment_method")
        return cls(
            id=int(record["id"]),
            customer_number=clean_text(record.get("customer_number")),
            items=tuple(OrderItem.from_record(item) for item in coerce_items(record.get("items"))),
            total_price=finite_number(record.get("total_price")),
            total_items=int(total_items) if total_items is not None else None,
            status=clean_text(record.get("status")),
            payment_method=clean_text(payment_method) or None,
            delivery_note=str(delivery_note) if delivery_note is not None else None,
            created_at=created_at,
        )

    def to_dict(self) -> dict[str, Any]:
        created_at = self.created_at
        if isinstance(created_at, datetime):
            created_at = created_at.isoformat()
        return {
            "id": self.id,
            "customer_number": self.customer_number,
            "items": [
                {"name": it.name, "unit": it.unit, "price": it.price, "quantity": it.quantity}
                for it in self.items
            ],
            "total_price": self.total_price,
            "total_items": self.total_items,
            "status": self.status,
            "payment_method": self.payment_method,
            "delivery_note": self.delivery_note,
            "created_at": created_at,
        }


@dataclass(frozen=True)
class Customer:
    customer_number: str = ""
    name: str = ""
    owner_name: str = ""
    street: str = ""
    zip: str = ""
    city: str = ""
    phone: str = ""
    email: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Customer":
        values = {key: clean_text(record.get(key)) for key in CUSTOMER_FIELDS}
        return cls(customer_number=clean_text(record.get("customer_number")), **values)

    def searchable_text(self) -> str:
        return " ".join(
            [self.name, self.owner_name, self.phone, self.email, self.city, self.street]
        ).lower()

    def to_dict(self) -> dict[str, Any]:
        payload = {"customer_number": self.customer_number}
        payload.update({key: getattr(self, key) for key in CUSTOMER_FIELDS})
        return payload
