from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Mapping

from membership_pipeline.alerts.gateway import Alert, AlertGateway
from membership_pipeline.parsing.primitives import (
    coerce_optional_string,
    parse_optional_timestamp,
    require_non_empty_string,
)
from membership_pipeline.parsing.schema import ValidatedRecord
from membership_pipeline.parsing.types import FieldValidationError

log = logging.getLogger(__name__)

CONSTRUCTION_ERROR_TYPE = "audit-construction-error"


@dataclass
class AuditEntry(ValidatedRecord):
    """
    One line of the `Audit` sheet.

    `timestamp` defaults to now (UTC) when blank. Use `AuditEntry.create` from business
    code: an audit write must never be the thing that breaks a run.
    """
    KIND: ClassVar[str] = "AuditEntry"
    SHEET_NAME: ClassVar[str] = "Audit"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Timestamp": "timestamp",
        "Type": "type",
        "Outcome": "outcome",
        "Note": "note",
        "Error": "error",
        "JSON": "json",
    }

    type: str
    outcome: str
    note: str = ""
    error: str = ""
    json: str = ""
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        self.type = require_non_empty_string(self.type, kind=self.KIND, field="Type")
        self.outcome = require_non_empty_string(self.outcome, kind=self.KIND, field="Outcome")
        self.note = coerce_optional_string(self.note)
        self.error = coerce_optional_string(self.error)
        self.json = coerce_optional_string(self.json)
        ts = parse_optional_timestamp(self.timestamp, kind=self.KIND, field="Timestamp")
        self.timestamp = ts if ts is not None else datetime.now(timezone.utc)

    @classmethod
    def create(
        cls,
        type: Any,
        outcome: Any,
        note: Any = "",
        error: Any = "",
        json: Any = "",
        timestamp: Any = None,
        *,
        alerts: AlertGateway | None = None,
        recipient: str | None = None,
    ) -> AuditEntry:
        """
        Build an entry, never raising.

        On a broken rule an `audit-construction-error` entry describing the failure is
        returned instead, and (when a gateway is given) operators are told once.
        """
        try:
            return cls(type=type, outcome=outcome, note=note, error=error, json=json, timestamp=timestamp)
        except FieldValidationError as e:
            log.error("Failed to create audit entry: %s", e.detail)
            if alerts is not None and recipient:
                _send_construction_alert(alerts, recipient, e, type, outcome)
            # keep the attempted timestamp unless it was the broken field.
            return cls(
                type=CONSTRUCTION_ERROR_TYPE,
                outcome="fail",
                note=f"Original audit entry construction failed: {e.detail}",
                error=f'Attempted: type="{type}", outcome="{outcome}"',
                timestamp=None if e.field == "Timestamp" else timestamp,
            )


def _send_construction_alert(
    alerts: AlertGateway, recipient: str, err: FieldValidationError, type: Any, outcome: Any
) -> None:
    body = (
        f"Audit entry construction failed at {datetime.now(timezone.utc).isoformat()}\n\n"
        f"Error: {err.detail}\n\n"
        "Attempted parameters:\n"
        f"- type: {type!r}\n"
        f"- outcome: {outcome!r}\n\n"
        "A safe error entry has been created instead to prevent system failure.\n"
        "Review the calling code for proper audit entry parameter validation."
    )
    try:
        alerts.send(Alert(to=recipient, subject="CRITICAL: Audit Entry Construction Failed", body=body))
    except Exception:
        log.error("Failed to send audit construction failure alert", exc_info=True)
