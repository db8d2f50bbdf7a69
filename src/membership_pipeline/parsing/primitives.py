from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Collection, Mapping

from .types import FieldValidationError, RejectCode


_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# the closed boolean truth table; anything outside it is rejected.
_TRUE_STRINGS = {"true", "t", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "f", "no", "n", "0", ""}


def _got(v: Any) -> str:
    """Describe a received value the same way in every message: `<type> '<value>'`."""
    return f"{type(v).__name__} {str(v)!r}"


def normalize_cell(v: Any) -> Any:
    """Transform a raw sheet cell into normalized shape: strings stripped, blank -> `None`."""
    if v is None:
        return None
    if isinstance(v, str):
        s = v.strip()
        return s if s else None
    return v


## -- text fields

def trim(v: Any) -> str | None:
    """Strip leading/trailing whitespace; treat `None` and empty strings as `None`."""
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def require_non_empty_string(v: Any, *, kind: str, field: str) -> str:
    """
    Required text. Returns the trimmed value.
    Raises on:
    - `None` typed input.
    - non `str` typed input.
    - strings that are empty after trimming.
    """
    if not isinstance(v, str) or v.strip() == "":
        raise FieldValidationError(
            RejectCode.missing_required, field, f"{kind} {field} is required, got: {_got(v)}"
        )
    return v.strip()


def coerce_optional_string(v: Any) -> str:
    """Optional text. `None`/`''` become `''`, anything else is stringified and trimmed."""
    return trim(v) or ""


def require_enum(v: Any, allowed: Collection[str], *, kind: str, field: str) -> str:
    """Required text drawn from a closed allow-list (compared after trimming, case-sensitive)."""
    s = require_non_empty_string(v, kind=kind, field=field)
    if s not in allowed:
        raise FieldValidationError(
            RejectCode.invalid_enum,
            field,
            f"{kind} {field} must be one of [{', '.join(allowed)}], got: {s!r}",
        )
    return s


def require_email(v: Any, *, kind: str, field: str) -> str:
    """Required text in `local@domain.tld` shape. Returns the trimmed address."""
    s = require_non_empty_string(v, kind=kind, field=field)
    if not _EMAIL_RE.match(s):
        raise FieldValidationError(
            RejectCode.invalid_email, field, f"{kind} {field} must be valid format, got: {s!r}"
        )
    return s


## -- numeric fields

def parse_optional_number(v: Any, *, kind: str, field: str) -> int | float | None:
    """
    Optional number. Accepts `int`, `float` and numeric strings.
    Integral values come back as `int`, others as `float`. Blank -> `None`.

    Never a silent zero: booleans, NaN/infinity and non-numeric text raise.
    """
    v = normalize_cell(v)
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, (int, float, Decimal, str)):
        raise FieldValidationError(
            RejectCode.invalid_numeric, field, f"{kind} {field} must be a valid number if provided, got: {_got(v)}"
        )
    try:
        d = Decimal(str(v))
    except (InvalidOperation, ValueError):
        raise FieldValidationError(
            RejectCode.invalid_numeric, field, f"{kind} {field} must be a valid number if provided, got: {v!r}"
        )
    # float range; also keeps `int(d)` away from huge exponents.
    if not d.is_finite() or abs(d.adjusted()) > 308:
        raise FieldValidationError(
            RejectCode.invalid_numeric, field, f"{kind} {field} must be a finite number, got: {v!r}"
        )
    if d == d.to_integral_value():
        return int(d)
    return float(d)


def require_non_negative_integer(v: Any, *, kind: str, field: str) -> int:
    """Required integer >= 0. Integral floats (`3.0`, `"3"`) are accepted, `3.5` is not."""
    n = parse_optional_number(v, kind=kind, field=field)
    if n is None:
        raise FieldValidationError(
            RejectCode.missing_required, field, f"{kind} {field} must be number >= 0, got: {_got(v)}"
        )
    if not isinstance(n, int) or n < 0:
        raise FieldValidationError(
            RejectCode.invalid_int, field, f"{kind} {field} must be number >= 0, got: {v!r}"
        )
    return n


def parse_optional_positive_integer(v: Any, *, kind: str, field: str) -> int | None:
    """Optional integer >= 1. Blank -> `None`."""
    n = parse_optional_number(v, kind=kind, field=field)
    if n is None:
        return None
    if not isinstance(n, int) or n < 1:
        raise FieldValidationError(
            RejectCode.invalid_int, field, f"{kind} {field} must be a positive integer if provided, got: {v!r}"
        )
    return n


## -- dates and timestamps

def parse_optional_date(v: Any, *, kind: str, field: str) -> date | None:
    """
    Optional calendar date. Accepts `date`, `datetime` (date part kept) and ISO strings
    (`2026-02-19`, or a full ISO timestamp). Blank -> `None`.
    """
    v = normalize_cell(v)
    if v is None:
        return None
    # `datetime` is a `date` subclass; check it first.
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str):
        try:
            return date.fromisoformat(v)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise FieldValidationError(
        RejectCode.invalid_timestamp, field, f"{kind} {field} date must be valid Date, got: {_got(v)}"
    )


def require_date(v: Any, *, kind: str, field: str) -> date:
    """Required calendar date, see `parse_optional_date`."""
    d = parse_optional_date(v, kind=kind, field=field)
    if d is None:
        raise FieldValidationError(
            RejectCode.missing_required, field, f"{kind} {field} date must be valid Date, got: {_got(v)}"
        )
    return d


def parse_optional_timestamp(v: Any, *, kind: str, field: str) -> datetime | None:
    """
    Optional timestamp. Accepts the ISO forms:
    - `2026-02-10T12:34:56Z`
    - `2026-02-10 12:34:56+00:00`
    - `2026-02-10T12:34:56`  (assumption: UTC if tz missing)
    - `2026-02-10`           (midnight UTC)

    Also accepts `datetime`/`date` objects as handed over by a sheet API. Blank -> `None`.
    """
    v = normalize_cell(v)
    if v is None:
        return None

    if isinstance(v, datetime):
        dt = v
    elif isinstance(v, date):
        dt = datetime(v.year, v.month, v.day)
    elif isinstance(v, str):
        s = v.replace("Z", "+00:00")
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            raise FieldValidationError(
                RejectCode.invalid_timestamp, field, f"{kind} {field} date must be parseable, got: {v!r}"
            )
    else:
        raise FieldValidationError(
            RejectCode.invalid_timestamp, field, f"{kind} {field} date must be Date or string, got: {_got(v)}"
        )

    # assumption, UTC for non specified timestamps.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


## -- cross-field checks

def require_ordered(start: Any, end: Any, *, kind: str, start_field: str, end_field: str) -> None:
    """`end` must be >= `start` when both are present."""
    if start is None or end is None:
        return
    if end < start:
        raise FieldValidationError(
            RejectCode.out_of_order,
            f"{start_field}/{end_field}",
            f"{kind} {end_field} must be >= {start_field} ({end_field}: {end.isoformat()}, {start_field}: {start.isoformat()})",
        )


def require_at_least_one(a: str, b: str, *, kind: str, fields: tuple[str, str]) -> None:
    """At least one of two already-coerced text fields must be non-empty."""
    if a == "" and b == "":
        raise FieldValidationError(
            RejectCode.missing_required,
            f"{fields[0]}/{fields[1]}",
            f"{kind} requires at least one of {fields[0]} or {fields[1]}, both are empty",
        )


## -- booleans

def coerce_boolean(v: Any, *, kind: str, field: str) -> bool:
    """
    Closed truth table:

    | input                                                        | result |
    |--------------------------------------------------------------|--------|
    | `True`, `1`, `"true"`, `"t"`, `"yes"`, `"y"`, `"1"`          | `True` |
    | `False`, `0`, `None`, `""`, `"false"`, `"f"`, `"no"`, `"n"`, `"0"` | `False` |

    Strings are compared trimmed and case-insensitively. Anything else raises,
    so `"false"` can never read as true just because it is a non-empty string.
    """
    if v is None:
        return False
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in _TRUE_STRINGS:
            return True
        if s in _FALSE_STRINGS:
            return False
    raise FieldValidationError(
        RejectCode.invalid_bool, field, f"{kind} {field} must be a boolean (true/false), got: {_got(v)}"
    )


## -- rich text

def require_text_or_rich_text(v: Any, *, kind: str, field: str) -> str | Mapping[str, Any]:
    """
    Required body: either plain text/HTML or a rich-text mapping with a `text` key
    (as produced when a cell carries a link, e.g. `{"text": ..., "url": ...}`).
    """
    if v is None or v == "":
        raise FieldValidationError(RejectCode.missing_required, field, f"{kind} {field} is required, got: {v!r}")
    if isinstance(v, str):
        return require_non_empty_string(v, kind=kind, field=field)
    if isinstance(v, Mapping):
        if "text" not in v:
            raise FieldValidationError(
                RejectCode.invalid_type, field, f"{kind} {field} object must have 'text' property"
            )
        return dict(v)
    raise FieldValidationError(
        RejectCode.invalid_type, field, f"{kind} {field} must be string or RichText object, got: {type(v).__name__}"
    )
