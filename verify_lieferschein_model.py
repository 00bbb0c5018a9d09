from document_model import Image, SignatureBlock, Table, TextBlock, TotalLine
from lieferschein import (
    ITEM_COLUMNS,
    NO_ITEMS_TEXT,
    NO_NOTE_TEXT,
    WATERMARK_OPACITY,
    build_delivery_note,
)
from models import Customer, Order

LOGO = "http://localhost:5000/static/cactus-logo.png"


def _order(**overrides) -> Order:
    record = {
        "id": 42,
        "customer_number": "K-1007",
        "items": [{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}],
        "total_price": None,
        "status": "neu",
        "payment_method": "bar",
        "delivery_note": "Hintereingang benutzen",
        "created_at": "2024-03-05T10:00:00Z",
    }
    record.update(overrides)
    return Order.from_record(record)


def _block(model, section_name, kind):
    section = model.pages[0].section(section_name)
    return next(block for block in section.blocks if isinstance(block, kind))


def _blocks(model, section_name, kind):
    section = model.pages[0].section(section_name)
    return [block for block in section.blocks if isinstance(block, kind)]


def test_section_order_and_single_page() -> None:
    order = _order()
    model = build_delivery_note(order, list(order.items), None, LOGO)
    assert len(model.pages) == 1
    names = [section.name for section in model.pages[0].sections]
    assert names == ["header", "recipient", "meta", "delivery", "items", "subtotal", "signatures"]
    assert model.filename == "lieferschein_42.pdf"
    print("SUCCESS: Lieferschein has all sections on one page.")


def test_end_to_end_widget_row() -> None:
    order = _order()
    model = build_delivery_note(order, list(order.items), None, LOGO)

    items = _block(model, "items", Table)
    assert items.header == (
        "Pos.",
        "Artikel",
        "Einheit",
        "Menge",
        "Einzelpreis (inkl. MwSt.)",
        "Gesamt (inkl. MwSt.)",
    )
    assert [row.cells for row in items.rows] == [("1", "Widget", "pc", "2", "10,00 €", "20,00 €")]

    subtotal = _block(model, "subtotal", TotalLine)
    assert subtotal.value == "20,00 €"

    recipient = _blocks(model, "recipient", TextBlock)[-1]
    assert recipient.plain_lines == ["K-1007"]
    print("SUCCESS: order 42 renders Widget row and 20,00 € subtotal.")


def test_item_column_widths() -> None:
    assert [column.width_pct for column in ITEM_COLUMNS] == [5, 40, 15, 8, 22, 19]
    assert [column.align for column in ITEM_COLUMNS] == ["left", "left", "left", "right", "right", "right"]
    print("SUCCESS: item columns keep their fixed relative widths.")


def test_empty_items_placeholder_row() -> None:
    order = _order(items=[])
    model = build_delivery_note(order, [], None, LOGO)
    items = _block(model, "items", Table)
    assert len(items.header) == 6
    assert len(items.rows) == 1
    assert items.rows[0].full_width is True
    assert items.rows[0].cells == (NO_ITEMS_TEXT,)
    assert _block(model, "subtotal", TotalLine).value == "0,00 €"
    print("SUCCESS: empty orders show one placeholder row and 0,00 €.")


def test_stored_total_used_for_subtotal() -> None:
    order = _order(total_price=123.4)
    model = build_delivery_note(order, list(order.items), None, LOGO)
    assert _block(model, "subtotal", TotalLine).value == "123,40 €"
    heading = _blocks(model, "items", TextBlock)[0].plain_lines[0]
    assert heading == "Artikel · Anzahl: 1 · Summe (inkl. MwSt.): 123,40 €"
    print("SUCCESS: stored total_price drives the subtotal.")


def test_total_items_hint_in_heading() -> None:
    order = _order(total_items=5)
    model = build_delivery_note(order, list(order.items), None, LOGO)
    heading = _blocks(model, "items", TextBlock)[0].plain_lines[0]
    assert heading.startswith("Artikel · Anzahl: 5 ·")
    print("SUCCESS: total_items is shown as given.")


def test_recipient_with_customer() -> None:
    order = _order()
    customer = Customer.from_record(
        {
            "customer_number": "K-1007",
            "name": "Kiosk am Markt",
            "owner_name": "Ayse Demir",
            "street": "Marktplatz 3",
            "zip": "78224",
            "city": "Singen",
            "phone": "07731 1234",
            "email": "",
        }
    )
    model = build_delivery_note(order, list(order.items), customer, LOGO)
    recipient = _blocks(model, "recipient", TextBlock)[-1]
    assert recipient.plain_lines == [
        "Kiosk am Markt",
        "Inhaber: Ayse Demir",
        "Marktplatz 3",
        "78224 Singen",
        "Tel: 07731 1234",
    ]
    assert recipient.lines[0][0].bold is True
    print("SUCCESS: customer address lines are listed, empty ones omitted.")


def test_recipient_blank_name_falls_back_to_customer_number() -> None:
    order = _order()
    customer = Customer.from_record({"customer_number": "K-1007", "name": "  ", "city": "Singen"})
    model = build_delivery_note(order, list(order.items), customer, LOGO)
    recipient = _blocks(model, "recipient", TextBlock)[-1]
    assert recipient.plain_lines == ["K-1007", "Singen"]
    print("SUCCESS: blank customer names fall back to the customer number.")


def test_meta_row() -> None:
    order = _order()
    model = build_delivery_note(order, list(order.items), None, LOGO)
    meta = _block(model, "meta", Table)
    assert meta.header == ("Kundennummer", "Lieferschein-Nr.", "Datum", "Bestellung erstellt", "Zahlungsart")
    assert meta.rows[0].cells == ("K-1007", "#42", "5.3.2024", "05.03.24, 11:00", "Barzahlung")
    print("SUCCESS: meta table carries customer number, note number and dates.")


def test_meta_placeholders_for_missing_values() -> None:
    order = _order(customer_number="", payment_method=None, created_at="gestern")
    model = build_delivery_note(order, list(order.items), None, LOGO)
    meta = _block(model, "meta", Table)
    assert meta.rows[0].cells == ("–", "#42", "gestern", "gestern", "–")
    print("SUCCESS: missing meta values show a dash, bad dates stay verbatim.")


def test_delivery_note_placeholder() -> None:
    for note in (None, "", "   \n "):
        order = _order(delivery_note=note)
        model = build_delivery_note(order, list(order.items), None, LOGO)
        paragraph = _blocks(model, "delivery", TextBlock)[-1]
        assert paragraph.plain_lines == [NO_NOTE_TEXT]

    order = _order(delivery_note="Bitte klingeln")
    model = build_delivery_note(order, list(order.items), None, LOGO)
    assert _blocks(model, "delivery", TextBlock)[-1].plain_lines == ["Bitte klingeln"]
    print("SUCCESS: blank delivery notes show the placeholder text.")


def test_signatures_and_watermark() -> None:
    order = _order(items=[])
    model = build_delivery_note(order, [], None, LOGO)
    signatures = _block(model, "signatures", SignatureBlock)
    assert signatures.labels == ("Unterschrift Fahrer", "Unterschrift Kunde")

    watermark = model.pages[0].watermark
    assert watermark is not None
    assert watermark.ref == LOGO
    assert watermark.opacity == WATERMARK_OPACITY
    assert watermark.opacity <= 0.1

    logo = _block(model, "header", Image)
    assert logo.ref == LOGO
    header_text = _blocks(model, "header", TextBlock)
    assert header_text[0].plain_lines[0] == "Cactus Großhandel"
    assert header_text[-1].plain_lines == ["Lieferschein"]
    print("SUCCESS: signatures, letterhead and watermark are always present.")


def test_items_keep_input_order() -> None:
    order = _order(
        items=[
            {"name": "B", "unit": "kg", "price": 1.5, "qty": "2"},
            {"name": "A", "unit": "Stk", "price": None, "quantity": 3},
            {"name": "C", "unit": "Karton", "price": 4, "quantity": "x"},
        ]
    )
    model = build_delivery_note(order, list(order.items), None, LOGO)
    rows = [row.cells for row in _block(model, "items", Table).rows]
    assert rows == [
        ("1", "B", "kg", "2", "1,50 €", "3,00 €"),
        ("2", "A", "Stk", "3", "0,00 €", "0,00 €"),
        ("3", "C", "Karton", "0", "4,00 €", "0,00 €"),
    ]
    assert _block(model, "subtotal", TotalLine).value == "3,00 €"
    print("SUCCESS: rows follow input order with 1-based positions.")


def test_missing_items_sequence_is_rejected() -> None:
    order = _order()
    try:
        build_delivery_note(order, None, None, LOGO)
    except TypeError:
        pass
    else:
        raise AssertionError("Expected TypeError for items=None")
    print("SUCCESS: the builder refuses a missing item sequence.")


if __name__ == "__main__":
    test_section_order_and_single_page()
    test_end_to_end_widget_row()
    test_item_column_widths()
    test_empty_items_placeholder_row()
    test_stored_total_used_for_subtotal()
    test_total_items_hint_in_heading()
    test_recipient_with_customer()
    test_recipient_blank_name_falls_back_to_customer_number()
    test_meta_row()
    test_meta_placeholders_for_missing_values()
    test_delivery_note_placeholder()
    test_signatures_and_watermark()
    test_items_keep_input_order()
    test_missing_items_sequence_is_rejected()
