"""Shared parsing helpers for request payloads.

parse_date:      returns None on empty input, raises ValidationError on bad input
parse_datetime:  same for ISO-8601 timestamps; naive values are taken as UTC
parse_int:       optional integer field with bounds
parse_number:    optional float field with bounds (hours)
"""
import math
from datetime import date, datetime, timezone

from app.core.exceptions import ValidationError


_DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")


def parse_date(value, field="date"):
    """Accept a date, a datetime, ``YYYY-MM-DD[THH:MM:SS]`` or ``DD.MM.YYYY``."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValidationError(
        f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
        details={field: "invalid date"},
    )


def parse_datetime(value, field="datetime"):
    """Parse an ISO-8601 timestamp into an aware datetime (UTC if naive)."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid {field}. Use ISO-8601, e.g. 2025-01-31T14:00:00Z.",
                details={field: "invalid datetime"},
            ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_int(value, field, *, minimum=None, maximum=None):
    """Coerce an optional integer field, enforcing inclusive bounds."""
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"}) from exc
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"})
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: "out of range"})
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={field: "out of range"})
    return number


def parse_number(value, field, *, minimum=None, maximum=None):
    """Coerce an optional numeric field to float, enforcing inclusive bounds."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={field: "invalid"})
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number", details={field: "invalid"}) from exc
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a number", details={field: "invalid"})
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={field: "out of range"})
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={field: "out of range"})
    return number
