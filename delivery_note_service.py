from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator
from urllib.parse import urlparse
import logging

from config import Config
from document_model import DocumentModel
from errors import DeliveryNoteError, InvalidInput, NotFound, RenderFailure, UpstreamUnavailable
from lieferschein import build_delivery_note
from models import Customer, Order
from pdf_renderer import FontSet, stream_pdf
from store import OrderStore, StoreUnavailable

logger = logging.getLogger(__name__)

PDF_MIMETYPE = "application/pdf"
DEFAULT_BASE_URL = "http://localhost:5000"
STATIC_URL_PREFIX = "/static/"
STATIC_DIR = Path(__file__).resolve().parent / "static"


@dataclass
class DeliveryNote:
    order_id: int
    filename: str
    mimetype: str
    chunks: Iterator[bytes]


def parse_order_id(raw: Any) -> int:
    text = str(raw if raw is not None else "").strip()
    if not text or not (text.isascii() and text.isdigit()):
        raise InvalidInput(f"Order id is not a positive integer: {text!r}")
    order_id = int(text)
    if order_id <= 0:
        raise InvalidInput(f"Order id is not a positive integer: {text!r}")
    return order_id


def resolve_base_url(config: Config, headers: Mapping[str, str] | None = None) -> str:
    """Configured APP_BASE_URL, else the forwarded/request host, else localhost."""
    if config.app_base_url:
        return config.app_base_url.rstrip("/")
    headers = headers or {}
    host = (headers.get("X-Forwarded-Host") or headers.get("Host") or "").split(",")[0].strip()
    proto = (headers.get("X-Forwarded-Proto") or "http").split(",")[0].strip() or "http"
    if host:
        return f"{proto}://{host}"
    return DEFAULT_BASE_URL


def resolve_logo_url(base_url: str, logo_path: str) -> str:
    if not logo_path:
        return ""
    if urlparse(logo_path).scheme in ("http", "https", "file"):
        return logo_path
    return f"{base_url.rstrip('/')}/{logo_path.lstrip('/')}"


def local_static_file(logo_path: str, static_dir: Path | None = None) -> Path | None:
    """Map a same-origin ``/static/...`` path to the file this app serves for it."""
    if not logo_path.startswith(STATIC_URL_PREFIX):
        return None
    root = (static_dir or STATIC_DIR).resolve()
    candidate = (root / logo_path[len(STATIC_URL_PREFIX):]).resolve()
    if root not in candidate.parents or not candidate.is_file():
        return None
    return candidate


def resolve_logo_ref(base_url: str, logo_path: str, *, prefer_local: bool = True) -> str:
    """Logo reference for rendering: the local static file when there is one, else the URL.

    The PDF renderer reads local files directly instead of requesting its own
    ``/static/`` route over HTTP. Browsers (HTML preview) always get the URL.
    """
    if prefer_local:
        local = local_static_file(logo_path)
        if local is not None:
            return local.as_uri()
    return resolve_logo_url(base_url, logo_path)


def load_order(store: OrderStore, order_id: int) -> Order:
    try:
        record = store.get_order_by_id(order_id)
    except StoreUnavailable as exc:
        logger.error("Loading order %s failed: %s", order_id, exc)
        raise UpstreamUnavailable(f"Order {order_id} could not be loaded") from exc
    if not record:
        raise NotFound(f"Order {order_id} does not exist")
    if not isinstance(record, Mapping):
        logger.error("Order %s is not a record: %r", order_id, type(record).__name__)
        raise UpstreamUnavailable(f"Order {order_id} could not be read")
    try:
        return Order.from_record(record)
    except (KeyError, TypeError, ValueError) as exc:
        logger.error("Order %s has an unusable record: %s", order_id, exc)
        raise UpstreamUnavailable(f"Order {order_id} could not be read") from exc


def load_customer(store: OrderStore, customer_number: str) -> Customer | None:
    if not customer_number:
        return None
    try:
        record = store.get_customer_by_number(customer_number)
    except StoreUnavailable as exc:
        logger.warning("Customer lookup for %s failed, continuing without: %s", customer_number, exc)
        return None
    if not record or not isinstance(record, Mapping):
        return None
    return Customer.from_record(record)


def build_document(
    order_id: int,
    *,
    store: OrderStore,
    base_url: str,
    config: Config,
    prefer_local_logo: bool = True,
) -> DocumentModel:
    order = load_order(store, order_id)
    customer = load_customer(store, order.customer_number)
    logo_ref = resolve_logo_ref(base_url, config.logo_path, prefer_local=prefer_local_logo)
    try:
        return build_delivery_note(order, list(order.items), customer, logo_ref)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Building Lieferschein model for order %s failed", order_id)
        raise RenderFailure(f"Document model for order {order_id} failed: {exc}") from exc


def generate_delivery_note(
    raw_order_id: Any,
    *,
    store: OrderStore,
    base_url: str,
    config: Config,
) -> DeliveryNote:
    """Load an order and its customer and render the Lieferschein PDF.

    Raises a DeliveryNoteError subclass: InvalidInput before any store read,
    NotFound/UpstreamUnavailable for loading problems, RenderFailure for
    everything that goes wrong afterwards.
    """
    order_id = parse_order_id(raw_order_id)
    model = build_document(order_id, store=store, base_url=base_url, config=config)
    try:
        chunks = stream_pdf(model, FontSet.from_config(config), config.pdf_chunk_size)
    except DeliveryNoteError:
        logger.exception("Rendering Lieferschein for order %s failed", order_id)
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("Rendering Lieferschein for order %s failed", order_id)
        raise RenderFailure(f"Rendering order {order_id} failed: {exc}") from exc
    return DeliveryNote(order_id=order_id, filename=model.filename, mimetype=PDF_MIMETYPE, chunks=chunks)
