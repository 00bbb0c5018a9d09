import json
import tempfile
from pathlib import Path
from unittest import mock

import psycopg2

from config import Config
from store import JsonFileStore, PostgresStore, StoreUnavailable, open_store


def _write(path: Path, payload) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")


def test_json_store_lookups() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        data_dir = Path(tmp)
        _write(data_dir / "orders" / "42.json", {"customer_number": "K-1007", "items": []})
        _write(
            data_dir / "customers.json",
            [{"customer_number": "K-1007", "name": "Kiosk am Markt"}, "junk"],
        )
        store = JsonFileStore(data_dir)

        order = store.get_order_by_id(42)
        assert order["id"] == 42
        assert order["customer_number"] == "K-1007"
        assert store.get_order_by_id(7) is None

        assert store.get_customer_by_number(" K-1007 ")["name"] == "Kiosk am Markt"
        assert store.get_customer_by_number("K-9999") is None
        assert store.get_customer_by_number("") is None
        assert len(store.list_customers()) == 1
    print("SUCCESS: JSON store finds orders and customers.")


def test_json_store_broken_files() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        data_dir = Path(tmp)
        (data_dir / "orders").mkdir()
        (data_dir / "orders" / "5.json").write_text("{not json", encoding="utf-8")
        _write(data_dir / "orders" / "6.json", {"created_at": "2024-01-01T00:00:00Z"})
        store = JsonFileStore(data_dir)

        try:
            store.get_order_by_id(5)
        except StoreUnavailable:
            pass
        else:
            raise AssertionError("Expected StoreUnavailable for a broken order file")

        listed = store.list_orders()
        assert [order["id"] for order in listed] == [6]
    print("SUCCESS: unreadable order files are reported, not guessed.")


def test_json_store_list_and_update() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        data_dir = Path(tmp)
        _write(data_dir / "orders" / "1.json", {"id": 1, "status": "neu", "created_at": "2024-03-01T08:00:00Z"})
        _write(data_dir / "orders" / "2.json", {"id": 2, "status": "neu", "created_at": "2024-03-05T08:00:00Z"})
        store = JsonFileStore(data_dir)

        assert [order["id"] for order in store.list_orders()] == [2, 1]

        updated = store.update_order_status(1, "geliefert")
        assert updated["status"] == "geliefert"
        stored = json.loads((data_dir / "orders" / "1.json").read_text(encoding="utf-8"))
        assert stored["status"] == "geliefert"
        assert store.update_order_status(99, "geliefert") is None
    print("SUCCESS: JSON store lists newest first and persists status changes.")


def test_postgres_store_wraps_driver_errors() -> None:
    store = PostgresStore("postgresql://user:pw@localhost:1/orders")
    with mock.patch.object(psycopg2, "connect", side_effect=psycopg2.OperationalError("refused")):
        try:
            store.get_order_by_id(42)
        except StoreUnavailable as exc:
            assert "refused" in str(exc)
        else:
            raise AssertionError("Expected StoreUnavailable")
    print("SUCCESS: database errors become StoreUnavailable.")


def test_postgres_store_queries() -> None:
    cursor = mock.MagicMock()
    cursor.fetchone.return_value = {"id": 42, "customer_number": "K-1007"}
    connection = mock.MagicMock()
    connection.cursor.return_value.__enter__.return_value = cursor

    store = PostgresStore("postgresql://localhost/orders")
    with mock.patch.object(psycopg2, "connect", return_value=connection):
        order = store.get_order_by_id(42)

    assert order == {"id": 42, "customer_number": "K-1007"}
    query, params = cursor.execute.call_args[0]
    assert "FROM orders WHERE id = %s" in query
    assert params == (42,)
    connection.close.assert_called_once()
    print("SUCCESS: Postgres store issues parameterised queries.")


def test_open_store_backend_selection() -> None:
    assert isinstance(open_store(Config(store_backend="json")), JsonFileStore)
    assert isinstance(
        open_store(Config(store_backend="postgres", database_url="postgresql://localhost/orders")),
        PostgresStore,
    )
    try:
        PostgresStore("")
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError without DATABASE_URL")
    print("SUCCESS: STORE_BACKEND selects the store implementation.")


if __name__ == "__main__":
    test_json_store_lookups()
    test_json_store_broken_files()
    test_json_store_list_and_update()
    test_postgres_store_wraps_driver_errors()
    test_postgres_store_queries()
    test_open_store_backend_selection()
