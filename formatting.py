from __future__ import annotations

from datetime import date, datetime
from typing import Any

from dateutil import tz
from dateutil.parser import parse, ParserError

from normalize import finite_number, to_number

PLACEHOLDER = "–"
CURRENCY_SUFFIX = " €"
DISPLAY_TZ = tz.gettz("Europe/Berlin")

PAYMENT_LABELS = {
    "bar": "Barzahlung",
    "cash": "Barzahlung",
    "rechnung": "Auf Rechnung",
    "invoice": "Auf Rechnung",
}


def format_currency(value: Any) -> str:
    """Format a money amount as "1234,50 €". Anything that is not a number counts as 0."""
    number = finite_number(value)
    if number is None:
        number = 0
    text = f"{float(number):.2f}".replace(".", ",")
    if text == "-0,00":
        text = "0,00"
    return text + CURRENCY_SUFFIX


def format_quantity(value: Any) -> str:
    number = to_number(value)
    if number is None:
        return "0"
    if float(number).is_integer():
        return str(int(number))
    return f"{number:g}".replace(".", ",")


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = parse(str(value))
        except (ParserError, ValueError, OverflowError, TypeError):
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(DISPLAY_TZ)
    return parsed


def format_date(value: Any) -> str:
    """Render a timestamp as a German short date ("5.3.2024").

    Unparseable input is returned unchanged, empty input becomes the placeholder.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return PLACEHOLDER
    parsed = _parse_timestamp(value)
    if parsed is None:
        return str(value)
    return f"{parsed.day}.{parsed.month}.{parsed.year}"


def format_datetime(value: Any) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return PLACEHOLDER
    parsed = _parse_timestamp(value)
    if parsed is None:
        return str(value)
    return parsed.strftime("%d.%m.%y, %H:%M")


def payment_label(method: Any) -> str:
    if not isinstance(method, str):
        return PLACEHOLDER
    return PAYMENT_LABELS.get(method.strip().lower(), PLACEHOLDER)
