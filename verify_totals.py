from models import Order, OrderItem
from normalize import coerce_items, resolve_quantity, to_number
from totals import compute_line_total, compute_subtotal


def _order(**overrides) -> Order:
    record = {"id": 1, "customer_number": "K-1", "items": []}
    record.update(overrides)
    return Order.from_record(record)


def test_resolve_quantity_precedence() -> None:
    assert resolve_quantity({"quantity": 3}) == 3
    assert resolve_quantity({"qty": 4}) == 4
    assert resolve_quantity({"qty": "5"}) == 5
    # Both present: qty wins.
    assert resolve_quantity({"quantity": 2, "qty": 9}) == 9
    assert resolve_quantity({"qty": "abc", "quantity": 7}) == 7
    assert resolve_quantity({"qty": None, "quantity": "2,5"}) == 2.5
    assert compute_line_total({"price": 10, "quantity": 2, "qty": 9}) == 90
    print("SUCCESS: qty is read first, quantity is the fallback.")


def test_resolve_quantity_defaults_to_zero() -> None:
    assert resolve_quantity({}) == 0
    assert resolve_quantity({"quantity": "viele", "qty": ""}) == 0
    assert resolve_quantity({"quantity": True}) == 0
    assert resolve_quantity(None) == 0
    assert resolve_quantity("3") == 0
    print("SUCCESS: unparseable quantities become 0.")


def test_to_number() -> None:
    assert to_number(" 12 ") == 12
    assert to_number("1.5") == 1.5
    assert to_number("1,5") == 1.5
    assert to_number("nan") is None
    assert to_number(False) is None
    print("SUCCESS: numeric coercion accepts dot and comma decimals.")


def test_line_total_with_missing_price() -> None:
    assert compute_line_total({"name": "A", "quantity": 3}) == 0
    assert compute_line_total({"name": "A", "price": "teuer", "quantity": 3}) == 0
    assert compute_line_total(OrderItem(name="A", unit="kg", price=None, quantity=2)) == 0
    assert compute_line_total({"price": 2.5, "qty": 4}) == 10
    print("SUCCESS: line totals treat missing prices as 0.")


def test_subtotal_prefers_stored_total() -> None:
    order = _order(total_price=99.9, items=[{"price": 1, "quantity": 1}])
    assert compute_subtotal(order, order.items) == 99.9
    empty = _order(total_price=12)
    assert compute_subtotal(empty, []) == 12
    print("SUCCESS: stored total_price wins over the item sum.")


def test_subtotal_falls_back_to_item_sum() -> None:
    order = _order(
        total_price=None,
        items=[{"price": 2.50, "quantity": 3}, {"price": 1.00, "quantity": 2}],
    )
    assert compute_subtotal(order, order.items) == 9.5
    text_total = _order(total_price="9.5", items=[{"price": 1, "qty": 2}])
    assert compute_subtotal(text_total, text_total.items) == 2
    assert compute_subtotal(_order(), []) == 0
    print("SUCCESS: missing total_price is derived from price x quantity.")


def test_coerce_items() -> None:
    assert coerce_items(None) == []
    assert coerce_items({"name": "x"}) == []
    assert coerce_items("[]") == []
    assert coerce_items([{"name": "x"}, "junk", 3]) == [{"name": "x"}]
    order = _order(items={"broken": True})
    assert order.items == ()
    print("SUCCESS: malformed item lists become empty.")


if __name__ == "__main__":
    test_resolve_quantity_precedence()
    test_resolve_quantity_defaults_to_zero()
    test_to_number()
    test_line_total_with_missing_price()
    test_subtotal_prefers_stored_total()
    test_subtotal_falls_back_to_item_sum()
    test_coerce_items()
