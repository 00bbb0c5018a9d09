import tempfile
from pathlib import Path
from unittest import mock
from unittest.mock import MagicMock

import reportlab
from PIL import Image as PILImage

import app as dashboard_app
import delivery_note_service
from config import Config
from delivery_note_service import (
    build_document,
    generate_delivery_note,
    local_static_file,
    parse_order_id,
    resolve_base_url,
    resolve_logo_url,
)
from errors import InvalidInput, NotFound, RenderFailure, UpstreamUnavailable
from store import OrderStore, StoreUnavailable

VERA_DIR = Path(reportlab.__file__).parent / "fonts"

ORDER_42 = {
    "id": 42,
    "customer_number": "K-1007",
    "items": [{"name": "Widget", "unit": "pc", "price": 10, "quantity": 2}],
    "total_price": None,
    "status": "neu",
    "payment_method": "bar",
    "delivery_note": None,
    "created_at": "2024-03-05T10:00:00Z",
}
ORDER_43 = {
    "id": 43,
    "customer_number": "K-2000",
    "items": [],
    "total_price": 15.5,
    "status": "geliefert",
    "payment_method": "rechnung",
    "delivery_note": "Rampe 2",
    "created_at": "2024-03-04T08:00:00Z",
}
CUSTOMER_1007 = {"customer_number": "K-1007", "name": "Kiosk am Markt", "city": "Singen"}


def _config(**overrides) -> Config:
    values = dict(
        fonts_dir=VERA_DIR,
        font_family="VeraService",
        font_light="Vera.ttf",
        font_regular="Vera.ttf",
        font_semibold="VeraBd.ttf",
        logo_path="",
        app_base_url="http://testserver",
    )
    values.update(overrides)
    return Config(**values)


def _store(order=None, customer=None) -> MagicMock:
    store = MagicMock(spec=OrderStore)
    store.get_order_by_id.return_value = order
    store.get_customer_by_number.return_value = customer
    store.list_orders.return_value = []
    store.list_customers.return_value = []
    return store


def test_parse_order_id() -> None:
    assert parse_order_id("42") == 42
    assert parse_order_id(" 7 ") == 7
    for raw in ("abc", "", "0", "-1", "1.5", None, "42a"):
        try:
            parse_order_id(raw)
        except InvalidInput:
            pass
        else:
            raise AssertionError(f"Expected InvalidInput for {raw!r}")
    print("SUCCESS: only positive integer ids are accepted.")


def test_invalid_id_never_reaches_the_store() -> None:
    store = _store(order=dict(ORDER_42))
    try:
        generate_delivery_note("abc", store=store, base_url="http://x", config=_config())
    except InvalidInput as exc:
        assert exc.status_code == 400
    else:
        raise AssertionError("Expected InvalidInput")
    store.get_order_by_id.assert_not_called()
    print("SUCCESS: invalid ids fail before any store read.")


def test_missing_order_is_not_found() -> None:
    store = _store(order=None)
    try:
        generate_delivery_note("999", store=store, base_url="http://x", config=_config())
    except NotFound as exc:
        assert exc.status_code == 404
    else:
        raise AssertionError("Expected NotFound")
    store.get_customer_by_number.assert_not_called()
    print("SUCCESS: unknown orders raise NotFound.")


def test_store_failure_is_upstream_unavailable() -> None:
    store = _store()
    store.get_order_by_id.side_effect = StoreUnavailable("connection refused")
    try:
        generate_delivery_note("42", store=store, base_url="http://x", config=_config())
    except UpstreamUnavailable as exc:
        assert exc.status_code == 404
        assert exc.public_message == "Bestellung konnte nicht geladen werden."
    else:
        raise AssertionError("Expected UpstreamUnavailable")
    print("SUCCESS: store errors map to the load failure.")


def test_generate_pdf_with_customer_lookup_failure() -> None:
    store = _store(order=dict(ORDER_42))
    store.get_customer_by_number.side_effect = StoreUnavailable("timeout")
    note = generate_delivery_note("42", store=store, base_url="http://x", config=_config())
    assert note.order_id == 42
    assert note.filename == "lieferschein_42.pdf"
    assert note.mimetype == "application/pdf"
    assert b"".join(note.chunks).startswith(b"%PDF")
    store.get_order_by_id.assert_called_once_with(42)
    store.get_customer_by_number.assert_called_once_with("K-1007")
    print("SUCCESS: a failed customer lookup still yields a PDF.")


def test_render_error_becomes_render_failure() -> None:
    store = _store(order=dict(ORDER_42))
    with mock.patch.object(delivery_note_service, "stream_pdf", side_effect=RuntimeError("boom")):
        try:
            generate_delivery_note("42", store=store, base_url="http://x", config=_config())
        except RenderFailure as exc:
            assert exc.status_code == 500
        else:
            raise AssertionError("Expected RenderFailure")
    print("SUCCESS: renderer errors surface as RenderFailure.")


def test_resolve_base_url() -> None:
    assert resolve_base_url(_config(app_base_url="https://shop.example/")) == "https://shop.example"
    bare = _config(app_base_url="")
    assert resolve_base_url(bare, {"Host": "localhost:8080"}) == "http://localhost:8080"
    assert (
        resolve_base_url(bare, {"Host": "internal", "X-Forwarded-Host": "admin.example", "X-Forwarded-Proto": "https"})
        == "https://admin.example"
    )
    assert resolve_base_url(bare, {}) == "http://localhost:5000"
    print("SUCCESS: base URL prefers config, then request headers.")


def test_resolve_logo_url() -> None:
    assert resolve_logo_url("https://shop.example", "/static/logo.png") == "https://shop.example/static/logo.png"
    assert resolve_logo_url("https://shop.example/", "static/logo.png") == "https://shop.example/static/logo.png"
    assert resolve_logo_url("https://shop.example", "https://cdn.example/l.png") == "https://cdn.example/l.png"
    assert resolve_logo_url("https://shop.example", "") == ""
    print("SUCCESS: logo paths are resolved against the base URL.")


def _client(store, *, authorized=True, **config_overrides):
    config_overrides.setdefault("dashboard_token", "secret")
    patches = [
        mock.patch.object(dashboard_app, "_get_store", return_value=store),
        mock.patch.object(dashboard_app, "config", _config(**config_overrides)),
    ]
    for patcher in patches:
        patcher.start()
    client = dashboard_app.app.test_client()
    if authorized:
        client.environ_base["HTTP_AUTHORIZATION"] = f"Bearer {config_overrides['dashboard_token']}"
    return client, patches


def _stop(patches) -> None:
    for patcher in patches:
        patcher.stop()


def test_lieferschein_endpoint_streams_pdf() -> None:
    store = _store(order=dict(ORDER_42), customer=dict(CUSTOMER_1007))
    client, patches = _client(store)
    try:
        response = client.get("/api/orders/42/lieferschein")
    finally:
        _stop(patches)
    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.headers["Content-Disposition"] == 'inline; filename="lieferschein_42.pdf"'
    assert response.headers["Cache-Control"] == "no-store"
    assert response.data.startswith(b"%PDF")
    print("SUCCESS: GET lieferschein returns the PDF inline.")


def test_lieferschein_endpoint_errors() -> None:
    store = _store(order=None)
    client, patches = _client(store)
    try:
        bad_id = client.get("/api/orders/abc/lieferschein")
        missing = client.get("/api/orders/999/lieferschein")
        store.get_order_by_id.side_effect = StoreUnavailable("down")
        unavailable = client.get("/api/orders/42/lieferschein")
    finally:
        _stop(patches)

    assert bad_id.status_code == 400
    assert bad_id.get_json()["error"] == {"code": "invalid_order_id", "message": "Ungültige Bestell-ID."}
    assert missing.status_code == 404
    assert missing.get_json()["error"]["code"] == "not_found"
    assert unavailable.status_code == 404
    assert unavailable.get_json()["error"]["code"] == "load_failed"
    assert "down" not in unavailable.get_data(as_text=True)
    assert store.get_order_by_id.call_count == 2
    print("SUCCESS: endpoint maps errors to JSON bodies.")


def test_lieferschein_endpoint_render_failure() -> None:
    store = _store(order=dict(ORDER_42))
    client, patches = _client(store)
    try:
        with mock.patch.object(delivery_note_service, "stream_pdf", side_effect=RuntimeError("layout exploded")):
            response = client.get("/api/orders/42/lieferschein")
    finally:
        _stop(patches)
    assert response.status_code == 500
    body = response.get_json()
    assert body["error"]["code"] == "render_failed"
    assert "layout exploded" not in body["error"]["message"]
    print("SUCCESS: render failures return 500 without internals.")


def test_html_preview() -> None:
    store = _store(order=dict(ORDER_42), customer=dict(CUSTOMER_1007))
    client, patches = _client(store)
    try:
        response = client.get("/orders/42/lieferschein")
        bad = client.get("/orders/x/lieferschein")
    finally:
        _stop(patches)
    assert response.status_code == 200
    assert response.mimetype == "text/html"
    html = response.get_data(as_text=True)
    assert "Lieferschein #42" in html
    assert "Widget" in html
    assert "Kiosk am Markt" in html
    assert "/api/orders/42/lieferschein" in html
    assert bad.status_code == 400
    print("SUCCESS: HTML preview shows the same document.")


def test_auth_guard() -> None:
    store = _store()
    client, patches = _client(store, authorized=False, dashboard_token="secret")
    try:
        anonymous = client.get("/api/auth/check")
        wrong = client.get("/api/auth/check", headers={"Authorization": "Bearer nope"})
        ok = client.get("/api/auth/check", headers={"Authorization": "Bearer secret"})
    finally:
        _stop(patches)
    assert anonymous.status_code == 401
    assert wrong.status_code == 401
    assert ok.status_code == 204
    print("SUCCESS: API routes require the dashboard token.")


def test_missing_token_rejects_api_requests() -> None:
    store = _store(order=dict(ORDER_42))
    client, patches = _client(store, authorized=False, dashboard_token="")
    try:
        patch = client.patch("/api/orders/42", json={"status": "storniert"})
        with_header = client.get("/api/orders", headers={"Authorization": "Bearer "})
    finally:
        _stop(patches)
    assert patch.status_code == 500
    assert patch.get_json()["error"]["code"] == "config_error"
    assert with_header.status_code == 500
    store.update_order_status.assert_not_called()
    store.get_order_by_id.assert_not_called()
    print("SUCCESS: without DASHBOARD_TOKEN the API refuses every request.")


def test_non_mapping_record_is_upstream_unavailable() -> None:
    store = _store(order=["not", "a", "record"])
    try:
        generate_delivery_note("42", store=store, base_url="http://x", config=_config())
    except UpstreamUnavailable as exc:
        assert exc.status_code == 404
    else:
        raise AssertionError("Expected UpstreamUnavailable")

    client, patches = _client(store)
    try:
        response = client.get("/api/orders/42/lieferschein")
    finally:
        _stop(patches)
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "load_failed"
    print("SUCCESS: malformed store records map to the load failure.")


def test_static_logo_is_read_from_disk() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        static_dir = Path(tmp) / "static"
        static_dir.mkdir()
        logo = static_dir / "cactus-logo.png"
        PILImage.new("RGBA", (32, 32), (34, 139, 34, 255)).save(logo, format="PNG")

        assert local_static_file("/static/cactus-logo.png", static_dir) == logo.resolve()
        assert local_static_file("/static/missing.png", static_dir) is None
        assert local_static_file("/static/../secret.txt", static_dir) is None
        assert local_static_file("https://cdn.example/logo.png", static_dir) is None

        store = _store(order=dict(ORDER_42))
        config = _config(logo_path="/static/cactus-logo.png")
        with mock.patch.object(delivery_note_service, "STATIC_DIR", static_dir):
            printed = build_document(42, store=store, base_url="http://testserver", config=config)
            previewed = build_document(
                42, store=store, base_url="http://testserver", config=config, prefer_local_logo=False
            )
            with mock.patch("pdf_renderer.requests.get") as http_get:
                note = generate_delivery_note("42", store=store, base_url="http://testserver", config=config)
                data = b"".join(note.chunks)

    assert printed.pages[0].watermark.ref == logo.resolve().as_uri()
    assert previewed.pages[0].watermark.ref == "http://testserver/static/cactus-logo.png"
    assert data.startswith(b"%PDF")
    http_get.assert_not_called()
    print("SUCCESS: the PDF reads the logo from the static folder, not over HTTP.")


def test_orders_list_filters() -> None:
    store = _store()
    store.list_orders.return_value = [dict(ORDER_42), dict(ORDER_43)]
    store.list_customers.return_value = [dict(CUSTOMER_1007)]
    client, patches = _client(store)
    try:
        everything = client.get("/api/orders").get_json()
        delivered = client.get("/api/orders?status=geliefert").get_json()
        by_name = client.get("/api/orders?q=kiosk").get_json()
        invalid = client.get("/api/orders?status=verloren")
        store.list_orders.side_effect = StoreUnavailable("down")
        unavailable = client.get("/api/orders")
    finally:
        _stop(patches)

    assert everything["total"] == 2
    assert [order["id"] for order in everything["orders"]] == [42, 43]
    assert everything["orders"][0]["subtotal"] == 20
    assert everything["orders"][0]["customer"]["name"] == "Kiosk am Markt"
    assert everything["orders"][1]["customer"] is None
    assert [order["id"] for order in delivered["orders"]] == [43]
    assert delivered["orders"][0]["status_label"] == "Geliefert"
    assert [order["id"] for order in by_name["orders"]] == [42]
    assert invalid.status_code == 400
    assert unavailable.status_code == 503
    print("SUCCESS: order list filters by status and search text.")


def test_order_status_patch() -> None:
    updated = dict(ORDER_42, status="unterwegs")
    store = _store(order=dict(ORDER_42))
    store.update_order_status.return_value = updated
    client, patches = _client(store)
    try:
        response = client.patch("/api/orders/42", json={"status": "unterwegs"})
        invalid = client.patch("/api/orders/42", json={"status": "weg"})
        not_json = client.patch("/api/orders/42", data="status=neu")
    finally:
        _stop(patches)

    assert response.status_code == 200
    assert response.get_json()["status"] == "unterwegs"
    store.update_order_status.assert_called_once_with(42, "unterwegs")
    assert invalid.status_code == 400
    assert not_json.status_code == 400
    print("SUCCESS: PATCH updates the order status.")


if __name__ == "__main__":
    test_parse_order_id()
    test_invalid_id_never_reaches_the_store()
    test_missing_order_is_not_found()
    test_store_failure_is_upstream_unavailable()
    test_generate_pdf_with_customer_lookup_failure()
    test_render_error_becomes_render_failure()
    test_resolve_base_url()
    test_resolve_logo_url()
    test_lieferschein_endpoint_streams_pdf()
    test_lieferschein_endpoint_errors()
    test_lieferschein_endpoint_render_failure()
    test_html_preview()
    test_auth_guard()
    test_missing_token_rejects_api_requests()
    test_non_mapping_record_is_upstream_unavailable()
    test_static_logo_is_read_from_disk()
    test_orders_list_filters()
    test_order_status_patch()
