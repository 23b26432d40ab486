from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CURRENCY_SYMBOL = "R$"
HEX_COLOR_PATTERN = re.compile(r"^[0-9A-Fa-f]{6}$")
LIGHT_BACKGROUND_THRESHOLD = 160
CENTS = Decimal("0.01")


def parse_amount(value: Decimal | int | float | str) -> Decimal:
    """Parse an amount typed by a user.

    Numbers pass through. Strings may carry the currency symbol and use the
    Brazilian convention (``"R$ 1.234,56"``); plain decimal strings such as
    ``"1234.56"`` are accepted as well.
    """
    if isinstance(value, bool):
        raise ValueError("Invalid amount.")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        cleaned = value.replace(CURRENCY_SYMBOL, "").replace(" ", "").replace("\xa0", "").strip()
        if not cleaned:
            raise ValueError("Invalid amount.")
        if "," in cleaned:
            cleaned = cleaned.replace(".", "").replace(",", ".")
        try:
            result = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValueError("Invalid amount.") from exc
    if not result.is_finite():
        raise ValueError("Invalid amount.")
    return result


def format_currency(value: Decimal | int | float) -> str:
    amount = _coerce_amount(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    integer_part, fraction_part = f"{abs(amount):.2f}".split(".")
    grouped = f"{int(integer_part):,}".replace(",", ".")
    return f"{sign}{CURRENCY_SYMBOL} {grouped},{fraction_part}"


def format_date(value: date | datetime | str | None) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return value.strftime("%d/%m/%Y")


def is_valid_hex_color(value: str) -> bool:
    return bool(HEX_COLOR_PATTERN.match(value.strip().lstrip("#")))


def normalize_hex_color(value: str) -> str:
    if not is_valid_hex_color(value):
        raise ValueError("Color must be a hex value like #4ADE80.")
    return f"#{value.strip().lstrip('#').upper()}"


def contrasting_text_color(hex_color: str) -> str:
    """Black or white, whichever reads better on ``hex_color``.

    Uses the W3C perceived brightness formula.
    """
    digits = hex_color.strip().lstrip("#")
    red = int(digits[0:2], 16)
    green = int(digits[2:4], 16)
    blue = int(digits[4:6], 16)
    brightness = (red * 299 + green * 587 + blue * 114) / 1000
    return "#000000" if brightness > LIGHT_BACKGROUND_THRESHOLD else "#FFFFFF"


def _coerce_amount(amount: Decimal | int | float) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
