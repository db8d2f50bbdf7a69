from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Sequence, TypeVar

from membership_pipeline.alerts.gateway import Alert, AlertGateway

from .schema import ValidatedRecord
from .types import ErrorCollector, RejectRow

log = logging.getLogger(__name__)

R = TypeVar("R", bound=ValidatedRecord)

DEFAULT_ALERT_RECIPIENT = "membership-automation@sc3.club"


@dataclass(slots=True)
class BatchResult(Generic[R]):
    """
    Outcome of validating one table snapshot.

    `records` and `errors` partition the input: every row is in exactly one of them.
    """
    records: list[R]
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    total: int = 0
    alert_sent: bool = False

    @property
    def rejects(self) -> list[RejectRow]:
        return self.errors.rejects


def build_alert(
    record_cls: type[ValidatedRecord],
    errors: ErrorCollector,
    *,
    total: int,
    context: str,
    recipient: str,
    detected_at: datetime,
) -> Alert:
    """The one consolidated alert for a batch with at least one rejected row."""
    n = len(errors)
    noun = "Error" if n == 1 else "Errors"
    lines = [
        f"{record_cls.KIND} validation errors detected at {detected_at.isoformat()}",
        "",
        f"Context: {context}",
        f"Total rows processed: {total}",
        f"Rows skipped due to errors: {n}",
        "",
        "Errors:",
        *(f"  {msg}" for msg in errors.errors),
        "",
        "Processing continued with valid rows only.",
        f"Review the {record_cls.SHEET_NAME} sheet for data quality issues.",
    ]
    return Alert(
        to=recipient,
        subject=f"ALERT: {n} {record_cls.KIND} Validation {noun}",
        body="\n".join(lines),
    )


class BatchValidator:
    """
    Validate whole tables row by row, then alert operators once.

    Collaborators are injected: the alert gateway, the logger, and a clock returning the
    detection timestamp (tz-aware) used in the alert body.
    """

    def __init__(
        self,
        alerts: AlertGateway,
        *,
        recipient: str = DEFAULT_ALERT_RECIPIENT,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.alerts = alerts
        self.recipient = recipient
        self.logger = logger or log
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def validate_rows(
        self,
        record_cls: type[R],
        rows: Sequence[Sequence[Any]],
        headers: Sequence[Any],
        context: str,
    ) -> BatchResult[R]:
        """
        Decode every row (data row `i` is reported as sheet row `i + 2`) and keep the valid ones.

        Rejected rows never abort the batch. With at least one rejection a single
        consolidated alert is sent; a failing send is logged and the valid records are
        still returned unchanged.
        """
        errors = ErrorCollector()
        records: list[R] = []
        for i, row in enumerate(rows):
            decoded = record_cls.decode(row, headers, i + 2, errors, logger=self.logger)
            if not isinstance(decoded, RejectRow):
                records.append(decoded)

        result = BatchResult(records=records, errors=errors, total=len(rows))
        if not errors:
            return result

        self.logger.error(
            "%d validation error(s) in %s:\n%s", len(errors), context, "\n".join(errors.errors)
        )
        alert = build_alert(
            record_cls,
            errors,
            total=len(rows),
            context=context,
            recipient=self.recipient,
            detected_at=self.clock(),
        )
        try:
            self.alerts.send(alert)
        except Exception:
            # alerting is observability; never let it cost the valid rows.
            self.logger.error("Failed to send validation error alert for %s", context, exc_info=True)
        else:
            result.alert_sent = True
            self.logger.warning("validation alert sent to %s: %s", alert.to, alert.subject)
        return result


def validate_rows(
    record_cls: type[R],
    rows: Sequence[Sequence[Any]],
    headers: Sequence[Any],
    context: str,
    *,
    alerts: AlertGateway,
    recipient: str = DEFAULT_ALERT_RECIPIENT,
    logger: logging.Logger | None = None,
) -> BatchResult[R]:
    """One-shot convenience around `BatchValidator.validate_rows`."""
    return BatchValidator(alerts, recipient=recipient, logger=logger).validate_rows(
        record_cls, rows, headers, context
    )
