# formatting.py
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP


def round_clp(amount) -> int:
    """Whole pesos, half up. CLP has no decimals."""
    value = Decimal(str(float(amount or 0.0)))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_clp(amount, with_label: bool = False) -> str:
    """Chilean pesos: no decimals, '.' as thousands separator -> $12.345"""
    try:
        pesos = round_clp(amount)
    except (TypeError, ValueError):
        return f"${amount}"
    sign = "-" if pesos < 0 else ""
    text = f"{sign}${abs(pesos):,}".replace(",", ".")
    return f"{text} CLP" if with_label else text


def format_date(value) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    return str(value)


def format_datetime(value) -> str:
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    return format_date(value)


def format_phone(phone: str | None, country_code: str | None = None, default_code: str | None = None) -> str:
    raw = (phone or "").strip()
    code = (country_code or default_code or "").strip()
    if not raw:
        return ""
    if code and not raw.startswith("+"):
        return f"{code} {raw}"
    return raw
