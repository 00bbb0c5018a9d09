from __future__ import annotations


class DeliveryNoteError(Exception):
    """Base error for the Lieferschein pipeline.

    ``status_code``, ``code`` and ``public_message`` are what the HTTP layer
    shows the caller. The exception text itself stays in the logs.
    """

    status_code = 500
    code = "internal_error"
    public_message = "Unexpected server error"


class InvalidInput(DeliveryNoteError):
    status_code = 400
    code = "invalid_order_id"
    public_message = "Ungültige Bestell-ID."


class NotFound(DeliveryNoteError):
    status_code = 404
    code = "not_found"
    public_message = "Bestellung konnte nicht geladen werden."


class UpstreamUnavailable(DeliveryNoteError):
    status_code = 404
    code = "load_failed"
    public_message = "Bestellung konnte nicht geladen werden."


class RenderFailure(DeliveryNoteError):
    status_code = 500
    code = "render_failed"
    public_message = "Lieferschein konnte nicht erstellt werden."
