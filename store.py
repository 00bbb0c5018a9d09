from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any
import json
import logging

import psycopg2
from psycopg2.extras import RealDictCursor

from config import Config

logger = logging.getLogger(__name__)

CUSTOMER_COLUMNS = "customer_number, name, owner_name, street, zip, city, phone, email"


class StoreUnavailable(Exception):
    """The order store could not answer (connection, query or file error)."""


class OrderStore:
    """Read/update access to orders and customers.

    Lookups return ``None`` when the record does not exist and raise
    ``StoreUnavailable`` for every other failure.
    """

    def get_order_by_id(self, order_id: int) -> dict[str, Any] | None:
        raise NotImplementedError

    def get_customer_by_number(self, customer_number: str) -> dict[str, Any] | None:
        raise NotImplementedError

    def list_orders(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def list_customers(self) -> list[dict[str, Any]]:
        raise NotImplementedError

    def update_order_status(self, order_id: int, status: str) -> dict[str, Any] | None:
        raise NotImplementedError


class PostgresStore(OrderStore):
    """Hosted Postgres with ``orders`` and ``customers`` tables."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("DATABASE_URL is required for the postgres store")
        self.database_url = database_url

    def _connect(self):
        return psycopg2.connect(self.database_url, cursor_factory=RealDictCursor)

    def _execute(self, query: str, params: tuple = (), *, fetch: str = "all", commit: bool = False):
        try:
            conn = self._connect()
        except psycopg2.Error as exc:
            raise StoreUnavailable(f"Database connection failed: {exc}") from exc
        try:
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                if fetch == "one":
                    result = cursor.fetchone()
                else:
                    result = cursor.fetchall()
            if commit:
                conn.commit()
            return result
        except psycopg2.Error as exc:
            conn.rollback()
            raise StoreUnavailable(f"Database query failed: {exc}") from exc
        finally:
            conn.close()

    def get_order_by_id(self, order_id: int) -> dict[str, Any] | None:
        row = self._execute("SELECT * FROM orders WHERE id = %s", (order_id,), fetch="one")
        return dict(row) if row else None

    def get_customer_by_number(self, customer_number: str) -> dict[str, Any] | None:
        row = self._execute(
            f"SELECT {CUSTOMER_COLUMNS} FROM customers WHERE customer_number = %s LIMIT 1",
            (customer_number,),
            fetch="one",
        )
        return dict(row) if row else None

    def list_orders(self) -> list[dict[str, Any]]:
        rows = self._execute("SELECT * FROM orders ORDER BY created_at DESC")
        return [dict(row) for row in rows]

    def list_customers(self) -> list[dict[str, Any]]:
        rows = self._execute(f"SELECT {CUSTOMER_COLUMNS} FROM customers")
        return [dict(row) for row in rows]

    def update_order_status(self, order_id: int, status: str) -> dict[str, Any] | None:
        row = self._execute(
            "UPDATE orders SET status = %s WHERE id = %s RETURNING *",
            (status, order_id),
            fetch="one",
            commit=True,
        )
        return dict(row) if row else None


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise StoreUnavailable(f"Could not read {path.name}: {exc}") from exc


class JsonFileStore(OrderStore):
    """Orders as ``<data_dir>/orders/<id>.json``, customers in ``<data_dir>/customers.json``."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)
        self.orders_dir = self.data_dir / "orders"
        self.customers_path = self.data_dir / "customers.json"
        self._write_lock = Lock()

    def _order_path(self, order_id: int) -> Path:
        return self.orders_dir / f"{int(order_id)}.json"

    def get_order_by_id(self, order_id: int) -> dict[str, Any] | None:
        path = self._order_path(order_id)
        if not path.exists():
            return None
        data = _read_json(path)
        if not isinstance(data, dict):
            raise StoreUnavailable(f"Order file {path.name} does not contain an object")
        data.setdefault("id", int(order_id))
        return data

    def list_customers(self) -> list[dict[str, Any]]:
        if not self.customers_path.exists():
            return []
        data = _read_json(self.customers_path)
        if not isinstance(data, list):
            raise StoreUnavailable("customers.json must contain a list")
        return [entry for entry in data if isinstance(entry, dict)]

    def get_customer_by_number(self, customer_number: str) -> dict[str, Any] | None:
        key = str(customer_number or "").strip()
        if not key:
            return None
        for customer in self.list_customers():
            if str(customer.get("customer_number") or "").strip() == key:
                return customer
        return None

    def list_orders(self) -> list[dict[str, Any]]:
        if not self.orders_dir.exists():
            return []
        orders = []
        for path in self.orders_dir.glob("*.json"):
            try:
                data = _read_json(path)
            except StoreUnavailable as exc:
                logger.warning("Skipping unreadable order file: %s", exc)
                continue
            if not isinstance(data, dict):
                continue
            if "id" not in data and path.stem.isdigit():
                data["id"] = int(path.stem)
            orders.append(data)
        orders.sort(key=lambda order: str(order.get("created_at") or ""), reverse=True)
        return orders

    def update_order_status(self, order_id: int, status: str) -> dict[str, Any] | None:
        with self._write_lock:
            data = self.get_order_by_id(order_id)
            if data is None:
                return None
            data["status"] = status
            try:
                self._order_path(order_id).write_text(
                    json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8"
                )
            except OSError as exc:
                raise StoreUnavailable(f"Could not write order {order_id}: {exc}") from exc
        return data


def open_store(config: Config) -> OrderStore:
    if config.store_backend == "postgres":
        return PostgresStore(config.database_url)
    return JsonFileStore(config.data_dir)
