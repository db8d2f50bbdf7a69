from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, ClassVar, Mapping

from membership_pipeline.parsing.primitives import (
    coerce_boolean,
    coerce_optional_string,
    parse_optional_positive_integer,
    require_email,
    require_non_empty_string,
    require_non_negative_integer,
)
from membership_pipeline.parsing.schema import ValidatedRecord
from membership_pipeline.parsing.types import DeliveryStateError

# attempts -> delay before the next try. Must be non-decreasing in `attempts`.
Backoff = Callable[[int], timedelta]


def _as_utc(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _iso_text(v: Any) -> str:
    """Timestamps are kept as ISO text; `''` means not set."""
    if isinstance(v, datetime):
        return _as_utc(v).isoformat()
    return coerce_optional_string(v)


def parse_iso(s: str) -> datetime | None:
    """Lenient ISO parse for stored timestamps. Unparseable or empty -> `None`."""
    if not s:
        return None
    try:
        return _as_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))
    except ValueError:
        return None


@dataclass
class DeliveryQueueItem(ValidatedRecord):
    """
    One pending email delivery in the `ExpirationFIFO` queue, with its retry state.

    States:
    - PENDING: `dead` is false, `attempts < effective_max`.
    - DEAD: terminal. Stays in the queue until an operator purges it.

    A delivered item is removed from the queue by the worker; that is not a state here.
    """
    KIND: ClassVar[str] = "DeliveryQueueItem"
    SHEET_NAME: ClassVar[str] = "ExpirationFIFO"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "id": "id",
        "email": "email",
        "subject": "subject",
        "htmlBody": "html_body",
        "groups": "groups",
        "attempts": "attempts",
        "lastAttemptAt": "last_attempt_at",
        "lastError": "last_error",
        "nextAttemptAt": "next_attempt_at",
        "maxAttempts": "max_attempts",
        "dead": "dead",
    }

    id: str
    email: str
    subject: str
    html_body: str
    attempts: int = 0
    groups: str = ""
    last_attempt_at: str = ""
    last_error: str = ""
    next_attempt_at: str = ""
    max_attempts: int | None = None
    dead: bool = False

    def __post_init__(self) -> None:
        self.id = require_non_empty_string(self.id, kind=self.KIND, field="id")
        self.email = require_email(self.email, kind=self.KIND, field="email")
        self.subject = require_non_empty_string(self.subject, kind=self.KIND, field="subject")
        self.html_body = require_non_empty_string(self.html_body, kind=self.KIND, field="htmlBody")
        self.attempts = require_non_negative_integer(self.attempts, kind=self.KIND, field="attempts")
        self.groups = coerce_optional_string(self.groups)
        self.last_attempt_at = _iso_text(self.last_attempt_at)
        self.last_error = coerce_optional_string(self.last_error)
        self.next_attempt_at = _iso_text(self.next_attempt_at)
        self.max_attempts = parse_optional_positive_integer(self.max_attempts, kind=self.KIND, field="maxAttempts")
        self.dead = coerce_boolean(self.dead, kind=self.KIND, field="dead")

    def effective_max(self, default: int) -> int:
        """`max_attempts` when set on the item, else the caller's policy value."""
        return self.max_attempts if self.max_attempts is not None else default

    def next_attempt_datetime(self) -> datetime | None:
        return parse_iso(self.next_attempt_at)

    def is_due(self, now: datetime) -> bool:
        """
        Eligible for an attempt at `now`: not dead, and no future `next_attempt_at`.
        An unparseable `next_attempt_at` counts as due rather than stranding the item.
        """
        if self.dead:
            return False
        nxt = self.next_attempt_datetime()
        return nxt is None or nxt <= _as_utc(now)

    def record_failure(self, now: datetime, error: str, backoff: Backoff, default_max: int) -> DeliveryQueueItem:
        """
        Apply one failed delivery attempt made at `now`, in place.

            attempts += 1; last_attempt_at = now; last_error = error
            attempts >= effective max -> dead, next_attempt_at = ''
            otherwise                 -> next_attempt_at = now + backoff(attempts)

        Raises `DeliveryStateError` on a dead item and `ValueError` on a negative delay.
        """
        if self.dead:
            raise DeliveryStateError(f"{self.KIND} {self.id} is dead; purge it instead of retrying")

        now = _as_utc(now)
        attempts = self.attempts + 1
        dead = attempts >= self.effective_max(default_max)

        # check the delay before touching any state.
        next_attempt_at = ""
        if not dead:
            delay = backoff(attempts)
            if delay < timedelta(0):
                raise ValueError(f"backoff returned a negative delay for attempt {attempts}: {delay}")
            next_attempt_at = (now + delay).isoformat()

        self.attempts = attempts
        self.last_attempt_at = now.isoformat()
        self.last_error = str(error).strip()
        self.dead = dead
        self.next_attempt_at = next_attempt_at
        return self
