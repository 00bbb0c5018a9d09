import tempfile
from io import BytesIO
from pathlib import Path
from unittest import mock
from unittest.mock import MagicMock

import fitz
import reportlab
import requests
from PIL import Image as PILImage
from reportlab.lib.pagesizes import A4

import pdf_renderer
from document_model import Column, DocumentModel, Page, Section, Table
from errors import RenderFailure
from lieferschein import build_delivery_note
from models import Customer, Order
from pdf_renderer import MARGIN_X, FontSet, column_widths, render_pdf, stream_pdf

VERA_DIR = Path(reportlab.__file__).parent / "fonts"


def _fonts() -> FontSet:
    return FontSet(
        family="VeraTest",
        light=VERA_DIR / "Vera.ttf",
        regular=VERA_DIR / "Vera.ttf",
        semibold=VERA_DIR / "VeraBd.ttf",
    )


def _write_logo(path: Path) -> str:
    PILImage.new("RGBA", (64, 64), (34, 139, 34, 255)).save(path, format="PNG")
    return path.as_uri()


def _order(items) -> Order:
    return Order.from_record(
        {
            "id": 42,
            "customer_number": "K-1007",
            "items": items,
            "payment_method": "rechnung",
            "delivery_note": "Bitte beim Nachbarn abgeben",
            "created_at": "2024-03-05T10:00:00Z",
        }
    )


def _pdf_text(data: bytes) -> tuple[int, list[str]]:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return doc.page_count, [page.get_text() for page in doc]


def test_render_single_page_pdf() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        logo = _write_logo(Path(tmp) / "logo.png")
        order = _order([{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}])
        customer = Customer.from_record({"customer_number": "K-1007", "name": "Kiosk am Markt", "city": "Singen"})
        model = build_delivery_note(order, list(order.items), customer, logo)

        data = render_pdf(model, _fonts())

    assert data.startswith(b"%PDF")
    page_count, texts = _pdf_text(data)
    assert page_count == 1
    text = texts[0]
    for expected in ("Lieferschein", "Widget", "20,00", "Kiosk am Markt", "#42", "Auf Rechnung", "Unterschrift Fahrer"):
        assert expected in text, expected
    print("SUCCESS: order 42 renders as a one page PDF.")


def test_empty_order_renders_placeholder() -> None:
    order = _order([])
    model = build_delivery_note(order, [], None, None)
    data = render_pdf(model, _fonts())
    _, texts = _pdf_text(data)
    assert "Keine Artikel vorhanden." in texts[0]
    assert "0,00" in texts[0]
    print("SUCCESS: empty orders render the placeholder row.")


def test_missing_logo_is_not_fatal() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        missing = (Path(tmp) / "nope.png").as_uri()
        order = _order([{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}])
        model = build_delivery_note(order, list(order.items), None, missing)
        data = render_pdf(model, _fonts())
    assert data.startswith(b"%PDF")
    print("SUCCESS: an unreachable logo is skipped.")


def test_long_item_list_continues_on_next_page() -> None:
    items = [{"name": f"Artikel {index}", "unit": "Stk", "price": 1, "quantity": 1} for index in range(1, 121)]
    order = _order(items)
    model = build_delivery_note(order, list(order.items), None, None)

    data = render_pdf(model, _fonts())

    page_count, texts = _pdf_text(data)
    assert page_count > 1
    assert "Artikel 120" in texts[-1]
    # Header row is repeated on the continuation page.
    assert "Pos." in texts[1]
    assert "120,00" in texts[-1]
    print("SUCCESS: long orders flow onto further pages.")


def test_missing_font_raises_render_failure() -> None:
    fonts = FontSet(
        family="Missing",
        light=Path("/nonexistent/Light.ttf"),
        regular=Path("/nonexistent/Regular.ttf"),
        semibold=Path("/nonexistent/SemiBold.ttf"),
    )
    model = build_delivery_note(_order([]), [], None, None)
    try:
        render_pdf(model, fonts)
    except RenderFailure as exc:
        assert "Font file" in str(exc)
    else:
        raise AssertionError("Expected RenderFailure for missing fonts")
    print("SUCCESS: missing fonts fail the render.")


def test_item_column_widths_fill_the_frame() -> None:
    order = _order([{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}])
    model = build_delivery_note(order, list(order.items), None, None)
    items = model.pages[0].section("items").blocks[-1]
    frame_width = A4[0] - 2 * MARGIN_X

    widths = column_widths(items, frame_width)

    assert len(widths) == 6
    assert abs(sum(widths) - frame_width) < 1e-6
    assert abs(widths[1] / widths[0] - 40 / 5) < 1e-9
    assert abs(widths[4] / widths[5] - 22 / 19) < 1e-9

    even = Table(role="meta", columns=(Column("A"), Column("B")), rows=())
    assert column_widths(even, 500) == [250, 250]
    print("SUCCESS: item columns are scaled to the frame width.")


def test_column_widths_reject_bad_values() -> None:
    for columns in (
        (Column("A", 50), Column("B", 0)),
        (Column("A", 50), Column("B", -5)),
        (Column("A", 50), Column("B")),
        (),
    ):
        table = Table(role="items", columns=columns, rows=())
        try:
            column_widths(table, 500)
        except RenderFailure:
            pass
        else:
            raise AssertionError(f"Expected RenderFailure for {columns!r}")
    print("SUCCESS: empty, missing and non-positive widths are refused.")


def _png_bytes() -> bytes:
    buffer = BytesIO()
    PILImage.new("RGBA", (64, 64), (34, 139, 34, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


def _image_count(data: bytes) -> int:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return len(doc[0].get_images(full=True))


def test_http_logo_is_fetched_and_drawn() -> None:
    response = MagicMock()
    response.content = _png_bytes()
    response.raise_for_status.return_value = None
    order = _order([{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}])
    logo_url = "http://shop.example/static/cactus-logo.png"
    model = build_delivery_note(order, list(order.items), None, logo_url)

    with mock.patch.object(pdf_renderer.requests, "get", return_value=response) as http_get:
        data = render_pdf(model, _fonts())

    http_get.assert_called_once_with(logo_url, timeout=pdf_renderer.IMAGE_TIMEOUT_SECONDS)
    response.raise_for_status.assert_called_once()
    # Header logo plus the faded watermark.
    assert _image_count(data) >= 2
    print("SUCCESS: an http logo is downloaded and drawn with its watermark.")


def test_http_logo_failure_is_not_fatal() -> None:
    order = _order([{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}])
    model = build_delivery_note(order, list(order.items), None, "https://shop.example/static/cactus-logo.png")

    failing = MagicMock()
    failing.raise_for_status.side_effect = requests.HTTPError("404 Client Error")
    for patch_kwargs in ({"side_effect": requests.ConnectionError("refused")}, {"return_value": failing}):
        with mock.patch.object(pdf_renderer.requests, "get", **patch_kwargs):
            data = render_pdf(model, _fonts())
        assert data.startswith(b"%PDF")
        assert _image_count(data) == 0
        _, texts = _pdf_text(data)
        assert "Widget" in texts[0]
    print("SUCCESS: an unreachable http logo is skipped.")


def test_unsupported_page_size() -> None:
    model = DocumentModel(
        title="x",
        filename="x.pdf",
        pages=(Page(sections=(Section(name="subtotal", blocks=()),), size="Letter"),),
    )
    try:
        render_pdf(model, _fonts())
    except RenderFailure:
        pass
    else:
        raise AssertionError("Expected RenderFailure for Letter pages")
    print("SUCCESS: only A4 pages are rendered.")


def test_stream_pdf_chunks() -> None:
    order = _order([{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}])
    model = build_delivery_note(order, list(order.items), None, None)
    chunks = list(stream_pdf(model, _fonts(), chunk_size=1024))
    assert len(chunks) > 1
    assert all(len(chunk) <= 1024 for chunk in chunks)
    data = b"".join(chunks)
    assert data.startswith(b"%PDF")
    assert data.rstrip().endswith(b"%%EOF")
    print("SUCCESS: PDF bytes are handed out in chunks.")


if __name__ == "__main__":
    test_render_single_page_pdf()
    test_empty_order_renders_placeholder()
    test_missing_logo_is_not_fatal()
    test_long_item_list_continues_on_next_page()
    test_missing_font_raises_render_failure()
    test_item_column_widths_fill_the_frame()
    test_column_widths_reject_bad_values()
    test_http_logo_is_fetched_and_drawn()
    test_http_logo_failure_is_not_fatal()
    test_unsupported_page_size()
    test_stream_pdf_chunks()
