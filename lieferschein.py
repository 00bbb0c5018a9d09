from __future__ import annotations

from collections.abc import Sequence

from document_model import (
    Column,
    DocumentModel,
    Image,
    Page,
    Row,
    Section,
    SignatureBlock,
    Span,
    Table,
    TextBlock,
    TotalLine,
)
from formatting import (
    PLACEHOLDER,
    format_currency,
    format_date,
    format_datetime,
    format_quantity,
    payment_label,
)
from models import Customer, Order, OrderItem
from totals import compute_line_total, compute_subtotal

TITLE = "Lieferschein"

COMPANY_NAME = "Cactus Großhandel"
COMPANY_ADDRESS = ("Holzeckstraße 1", "78224 Singen (Hohentwiel)", "Deutschland")
COMPANY_CONTACT = (
    ("Tel: ", "+49 15568 538598"),
    ("E-Mail: ", "info@cactusgrosshandel.com"),
    ("Website: ", "www.cactusgrosshandel.com"),
)

META_COLUMNS = (
    Column("Kundennummer"),
    Column("Lieferschein-Nr."),
    Column("Datum"),
    Column("Bestellung erstellt"),
    Column("Zahlungsart"),
)

# Fixed relative widths; the renderer scales them to the frame width.
ITEM_COLUMNS = (
    Column("Pos.", 5),
    Column("Artikel", 40),
    Column("Einheit", 15),
    Column("Menge", 8, "right"),
    Column("Einzelpreis (inkl. MwSt.)", 22, "right"),
    Column("Gesamt (inkl. MwSt.)", 19, "right"),
)

NO_ITEMS_TEXT = "Keine Artikel vorhanden."
NO_NOTE_TEXT = "Kein Hinweis."
SUBTOTAL_LABEL = "Zwischensumme (inkl. MwSt.):"
SIGNATURE_LABELS = ("Unterschrift Fahrer", "Unterschrift Kunde")

LOGO_SIZE = 66
WATERMARK_SIZE = 360
WATERMARK_OPACITY = 0.04


def _line(*parts: str | tuple[str, bool]) -> tuple[Span, ...]:
    spans = []
    for part in parts:
        if isinstance(part, tuple):
            spans.append(Span(part[0], bold=part[1]))
        else:
            spans.append(Span(part))
    return tuple(spans)


def _title_block(role: str, text: str) -> TextBlock:
    return TextBlock(role=role, lines=(_line(text),))


def _header_section(logo_ref: str | None) -> Section:
    lines = [_line((COMPANY_NAME, True))]
    lines.extend(_line(text) for text in COMPANY_ADDRESS)
    lines.extend(_line(label, (value, True)) for label, value in COMPANY_CONTACT)
    return Section(
        name="header",
        blocks=(
            TextBlock(role="company", lines=tuple(lines)),
            Image(ref=logo_ref, role="logo", width=LOGO_SIZE, height=LOGO_SIZE),
            _title_block("title", TITLE),
        ),
    )


def recipient_name(order: Order, customer: Customer | None) -> str:
    if customer is not None and customer.name.strip():
        return customer.name
    return order.customer_number


def _recipient_lines(order: Order, customer: Customer | None) -> tuple[tuple[Span, ...], ...]:
    lines = [_line((recipient_name(order, customer), True))]
    if customer is None:
        return tuple(lines)

    if customer.owner_name:
        lines.append(_line(f"Inhaber: {customer.owner_name}"))
    if customer.street:
        lines.append(_line(customer.street))
    if customer.zip or customer.city:
        lines.append(_line(f"{customer.zip} {customer.city}".strip()))
    if customer.phone:
        lines.append(_line(f"Tel: {customer.phone}"))
    if customer.email:
        lines.append(_line(f"E-Mail: {customer.email}"))
    return tuple(lines)


def _meta_section(order: Order) -> Section:
    row = Row(
        cells=(
            order.customer_number or PLACEHOLDER,
            f"#{order.id}",
            format_date(order.created_at),
            format_datetime(order.created_at),
            payment_label(order.payment_method),
        )
    )
    return Section(name="meta", blocks=(Table(role="meta", columns=META_COLUMNS, rows=(row,)),))


def _delivery_section(order: Order) -> Section:
    note = order.delivery_note or ""
    text = note if note.strip() else NO_NOTE_TEXT
    return Section(
        name="delivery",
        blocks=(
            _title_block("section_title", "Lieferhinweis"),
            TextBlock(role="paragraph", lines=tuple(_line(part) for part in text.splitlines() or [text])),
        ),
    )


def item_rows(items: Sequence[OrderItem]) -> tuple[Row, ...]:
    if not items:
        return (Row(cells=(NO_ITEMS_TEXT,), full_width=True),)
    rows = []
    for position, item in enumerate(items, start=1):
        rows.append(
            Row(
                cells=(
                    str(position),
                    item.name,
                    item.unit,
                    format_quantity(item.quantity),
                    format_currency(item.price),
                    format_currency(compute_line_total(item)),
                )
            )
        )
    return tuple(rows)


def _items_section(order: Order, items: Sequence[OrderItem], subtotal_text: str) -> Section:
    count = order.total_items if order.total_items is not None else len(items)
    heading = f"Artikel · Anzahl: {count} · Summe (inkl. MwSt.): {subtotal_text}"
    return Section(
        name="items",
        blocks=(
            _title_block("section_title", heading),
            Table(role="items", columns=ITEM_COLUMNS, rows=item_rows(items)),
        ),
    )


def build_delivery_note(
    order: Order,
    items: Sequence[OrderItem],
    customer: Customer | None,
    logo_ref: str | None,
) -> DocumentModel:
    """Assemble the single-page Lieferschein for one order.

    Missing optional data never fails the build; it falls back to
    placeholders. ``order`` and ``items`` are required.
    """
    if order is None:
        raise ValueError("order is required")
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
        raise TypeError("items must be a sequence of OrderItem")

    subtotal_text = format_currency(compute_subtotal(order, items))

    sections = (
        _header_section(logo_ref),
        Section(
            name="recipient",
            blocks=(
                _title_block("section_title", "Empfänger (Kunde)"),
                TextBlock(role="paragraph", lines=_recipient_lines(order, customer)),
            ),
        ),
        _meta_section(order),
        _delivery_section(order),
        _items_section(order, items, subtotal_text),
        Section(name="subtotal", blocks=(TotalLine(label=SUBTOTAL_LABEL, value=subtotal_text),)),
        Section(name="signatures", blocks=(SignatureBlock(labels=SIGNATURE_LABELS),)),
    )

    watermark = None
    if logo_ref:
        watermark = Image(
            ref=logo_ref,
            role="watermark",
            width=WATERMARK_SIZE,
            height=WATERMARK_SIZE,
            opacity=WATERMARK_OPACITY,
        )

    return DocumentModel(
        title=f"{TITLE} #{order.id}",
        filename=f"lieferschein_{order.id}.pdf",
        pages=(Page(sections=sections, watermark=watermark),),
    )
