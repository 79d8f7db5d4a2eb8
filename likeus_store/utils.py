import re
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

CENT = Decimal("0.01")


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back from the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value: Optional[str], *, end_of_day: bool = False):
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        candidate = str(value).strip()
        if not candidate:
            return None
        normalized = candidate.replace("Z", "+00:00")
        if re.fullmatch(r"\d{4}-\d{2}-\d{2}", candidate):
            normalized = f"{candidate}T00:00:00"
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
        if end_of_day and re.fullmatch(r"\d{4}-\d{2}-\d{2}", candidate):
            parsed = parsed + timedelta(days=1)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_iso(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def to_decimal(value, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not parsed.is_finite():
        return default
    return parsed


def money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    return f"{money(value):.2f}"


def to_cents(value: Decimal) -> int:
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
