from datetime import datetime, timezone
from decimal import Decimal

from formatting import (
    PLACEHOLDER,
    format_currency,
    format_date,
    format_datetime,
    format_quantity,
    payment_label,
)


def test_format_currency() -> None:
    assert format_currency(9.5) == "9,50 €"
    assert format_currency(20) == "20,00 €"
    assert format_currency(Decimal("1234.5")) == "1234,50 €"
    print("SUCCESS: currency values use comma decimals and a trailing euro sign.")


def test_format_currency_non_numeric_is_zero() -> None:
    for value in (None, "abc", "9.5", True, float("nan"), float("inf"), [], {}):
        assert format_currency(value) == "0,00 €", value
    assert format_currency(-0.001) == "0,00 €"
    print("SUCCESS: missing and non-numeric amounts render as 0,00 €.")


def test_format_date() -> None:
    assert format_date("2024-03-05T10:00:00Z") == "5.3.2024"
    assert format_date("2024-12-24") == "24.12.2024"
    # Late UTC evening is already the next day in Berlin.
    assert format_date("2024-03-05T23:30:00+00:00") == "6.3.2024"
    assert format_date(datetime(2024, 7, 1, 8, 0, tzinfo=timezone.utc)) == "1.7.2024"
    print("SUCCESS: dates render as German short dates.")


def test_format_date_keeps_unparseable_input() -> None:
    assert format_date("not-a-date") == "not-a-date"
    assert format_datetime("not-a-date") == "not-a-date"
    assert format_date(None) == PLACEHOLDER
    assert format_date("   ") == PLACEHOLDER
    print("SUCCESS: unparseable dates are shown verbatim.")


def test_format_datetime() -> None:
    assert format_datetime("2024-03-05T10:00:00Z") == "05.03.24, 11:00"
    assert format_datetime("2024-08-01T10:15:00+00:00") == "01.08.24, 12:15"
    assert format_datetime("2024-03-05 09:05") == "05.03.24, 09:05"
    print("SUCCESS: timestamps render as date plus short time.")


def test_payment_label() -> None:
    assert payment_label("bar") == "Barzahlung"
    assert payment_label("cash") == "Barzahlung"
    assert payment_label("rechnung") == "Auf Rechnung"
    assert payment_label("Invoice") == "Auf Rechnung"
    assert payment_label(None) == PLACEHOLDER
    assert payment_label("paypal") == PLACEHOLDER
    assert payment_label(42) == PLACEHOLDER
    print("SUCCESS: payment methods map to fixed labels.")


def test_format_quantity() -> None:
    assert format_quantity(2) == "2"
    assert format_quantity(2.0) == "2"
    assert format_quantity(2.5) == "2,5"
    assert format_quantity("x") == "0"
    print("SUCCESS: quantities drop trailing zeros.")


if __name__ == "__main__":
    test_format_currency()
    test_format_currency_non_numeric_is_zero()
    test_format_date()
    test_format_date_keeps_unparseable_input()
    test_format_datetime()
    test_payment_label()
    test_format_quantity()
