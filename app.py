from __future__ import annotations

from threading import Lock
from typing import Any
import hmac
import logging

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request, url_for
from werkzeug.exceptions import HTTPException

from config import Config
from delivery_note_service import build_document, generate_delivery_note, parse_order_id, resolve_base_url
from errors import DeliveryNoteError
from html_renderer import render_html
from models import STATUS_LABELS, STATUS_OPTIONS, Customer, Order
from store import OrderStore, StoreUnavailable, open_store
from totals import compute_subtotal

load_dotenv()
config = Config.from_env()

logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)

_STORE: OrderStore | None = None
_STORE_LOCK = Lock()

if not config.dashboard_token:
    logger.warning("DASHBOARD_TOKEN is not set; /api/ requests will be rejected")


def _get_store() -> OrderStore:
    global _STORE
    with _STORE_LOCK:
        if _STORE is None:
            _STORE = open_store(config)
        return _STORE


def _api_error(status_code: int, code: str, message: str):
    return jsonify({"error": {"code": code, "message": message}}), status_code


def require_auth(req) -> Any:
    if req.method == "OPTIONS":
        return None

    if not config.dashboard_token:
        return _api_error(500, "config_error", "DASHBOARD_TOKEN is not configured")

    authorization = (req.headers.get("Authorization") or "").strip()
    if not authorization.lower().startswith("bearer "):
        return _api_error(401, "unauthorized", "Missing or invalid Authorization header")

    token = authorization[7:].strip()
    if not token or not hmac.compare_digest(token, config.dashboard_token):
        return _api_error(401, "unauthorized", "Invalid dashboard token")
    return None


def _customers_by_number(store: OrderStore) -> dict[str, Customer]:
    try:
        records = store.list_customers()
    except StoreUnavailable as exc:
        logger.warning("Customer list unavailable: %s", exc)
        return {}
    customers: dict[str, Customer] = {}
    for record in records:
        customer = Customer.from_record(record)
        if customer.customer_number:
            customers[customer.customer_number] = customer
    return customers


def _serialize_order(order: Order, customer: Customer | None) -> dict[str, Any]:
    payload = order.to_dict()
    payload["status_label"] = STATUS_LABELS.get(order.status, order.status)
    payload["subtotal"] = compute_subtotal(order, order.items)
    payload["customer"] = customer.to_dict() if customer else None
    return payload


def _filter_orders(
    orders: list[Order],
    customers: dict[str, Customer],
    *,
    status: str | None,
    q: str,
) -> list[Order]:
    query = q.strip().lower()
    result = []
    for order in orders:
        if status and order.status != status:
            continue
        if query:
            customer = customers.get(order.customer_number)
            searchable = " ".join(
                [
                    order.customer_number.lower(),
                    (order.delivery_note or "").lower(),
                    customer.searchable_text() if customer else "",
                ]
            )
            if query not in searchable:
                continue
        result.append(order)
    return result


def _load_order_record(order_id: str) -> tuple[Order | None, Any]:
    try:
        parsed_id = parse_order_id(order_id)
    except DeliveryNoteError as exc:
        return None, _api_error(exc.status_code, exc.code, exc.public_message)
    try:
        record = _get_store().get_order_by_id(parsed_id)
    except StoreUnavailable as exc:
        logger.error("Loading order %s failed: %s", parsed_id, exc)
        return None, _api_error(404, "load_failed", "Bestellung konnte nicht geladen werden.")
    if not record:
        return None, _api_error(404, "not_found", "Bestellung konnte nicht geladen werden.")
    return Order.from_record(record), None


@app.before_request
def _api_auth_guard():
    if not request.path.startswith("/api/"):
        return None
    return require_auth(request)


@app.errorhandler(HTTPException)
def _http_error_handler(error: HTTPException):
    if not request.path.startswith("/api/"):
        return error
    code_map = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
    }
    status_code = error.code or 500
    code = code_map.get(status_code, "http_error")
    return _api_error(status_code, code, error.description or error.name)


@app.errorhandler(500)
def _internal_error_handler(error):
    if not request.path.startswith("/api/"):
        return error
    return _api_error(500, "internal_error", "Unexpected server error")


@app.route("/api/auth/check")
def api_auth_check():
    return ("", 204)


@app.route("/api/orders")
def api_orders():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in STATUS_OPTIONS:
        return _api_error(400, "invalid_status", f"Invalid status value: {status}")
    q = request.args.get("q") or ""

    store = _get_store()
    try:
        records = store.list_orders()
    except StoreUnavailable as exc:
        logger.error("Listing orders failed: %s", exc)
        return _api_error(503, "load_failed", "Bestellungen konnten nicht geladen werden.")

    orders = []
    for record in records:
        try:
            orders.append(Order.from_record(record))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping unusable order record %r: %s", record.get("id"), exc)

    customers = _customers_by_number(store)
    filtered = _filter_orders(orders, customers, status=status, q=q)
    return jsonify(
        {
            "orders": [_serialize_order(order, customers.get(order.customer_number)) for order in filtered],
            "total": len(filtered),
            "statuses": [{"value": value, "label": STATUS_LABELS[value]} for value in STATUS_OPTIONS],
        }
    )


@app.route("/api/orders/<order_id>", methods=["GET", "PATCH"])
def api_order_detail(order_id: str):
    order, load_error = _load_order_record(order_id)
    if load_error is not None:
        return load_error

    store = _get_store()
    if request.method == "PATCH":
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            return _api_error(400, "invalid_payload", "Payload must be a JSON object")
        new_status = str(payload.get("status") or "").strip().lower()
        if new_status not in STATUS_OPTIONS:
            return _api_error(400, "invalid_status", f"Invalid status value: {new_status}")
        if new_status != order.status:
            try:
                record = store.update_order_status(order.id, new_status)
            except StoreUnavailable as exc:
                logger.error("Updating status of order %s failed: %s", order.id, exc)
                return _api_error(503, "update_failed", "Status konnte nicht aktualisiert werden.")
            if not record:
                return _api_error(404, "not_found", "Bestellung konnte nicht geladen werden.")
            order = Order.from_record(record)
            logger.info("Order %s status set to %s", order.id, new_status)

    customer = None
    if order.customer_number:
        try:
            record = store.get_customer_by_number(order.customer_number)
        except StoreUnavailable as exc:
            logger.warning("Customer lookup for %s failed: %s", order.customer_number, exc)
            record = None
        customer = Customer.from_record(record) if record else None
    return jsonify(_serialize_order(order, customer))


@app.route("/api/orders/<order_id>/lieferschein")
def api_order_lieferschein(order_id: str):
    try:
        note = generate_delivery_note(
            order_id,
            store=_get_store(),
            base_url=resolve_base_url(config, request.headers),
            config=config,
        )
    except DeliveryNoteError as exc:
        logger.info("Lieferschein for order %r not generated: %s", order_id, exc)
        return _api_error(exc.status_code, exc.code, exc.public_message)

    response = Response(note.chunks, mimetype=note.mimetype, direct_passthrough=True)
    response.headers["Content-Disposition"] = f'inline; filename="{note.filename}"'
    response.headers["Cache-Control"] = "no-store"
    return response


@app.route("/orders/<order_id>/lieferschein")
def order_lieferschein_preview(order_id: str):
    try:
        parsed_id = parse_order_id(order_id)
        model = build_document(
            parsed_id,
            store=_get_store(),
            base_url=resolve_base_url(config, request.headers),
            config=config,
            prefer_local_logo=False,
        )
    except DeliveryNoteError as exc:
        logger.info("Lieferschein preview for order %r not available: %s", order_id, exc)
        return Response(exc.public_message, status=exc.status_code, mimetype="text/plain")

    html = render_html(model, pdf_url=url_for("api_order_lieferschein", order_id=parsed_id))
    response = Response(html, mimetype="text/html")
    response.headers["Cache-Control"] = "no-store"
    return response


if __name__ == "__main__":
    app.run(host=config.dashboard_host, port=config.dashboard_port, debug=config.debug)
