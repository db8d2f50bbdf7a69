from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID

from psycopg import Connection

from membership_pipeline.alerts.gateway import Alert, AlertGateway
from membership_pipeline.db.reject_writers import insert_reject_rows
from membership_pipeline.db.validation_runs import finish_validation_run, insert_validation_run
from membership_pipeline.delivery.backoff import exponential_backoff
from membership_pipeline.delivery.enqueue import EnqueueOutcome, enqueue_expiry_notices
from membership_pipeline.delivery.worker import (
    DeliveryOutcome,
    assign_next_batch_timestamps,
    process_queue,
    purge_dead,
)
from membership_pipeline.ingest.readers import Table, TableStore
from membership_pipeline.ingest.summary import ValidationSummary
from membership_pipeline.parsing.batch import BatchValidator
from membership_pipeline.parsing.profiles.action_specs import ActionSpec
from membership_pipeline.parsing.profiles.delivery_queue import DeliveryQueueItem
from membership_pipeline.parsing.profiles.members import Member
from membership_pipeline.parsing.registry import KindSpec

log = logging.getLogger(__name__)


def validate_table(
    store: TableStore,
    *,
    table_name: str,
    spec: KindSpec,
    validator: BatchValidator,
    context: str,
    ledger: Optional[Connection] = None,
) -> ValidationSummary:
    """
    End-to-end validation of one stored table:
      - read the full snapshot once,
      - decode every row through the kind's rules (bad rows rejected, never fatal),
      - alert once if anything was rejected,
      - when `ledger` is given, record the run and its reject rows in Postgres.

    Raises only on infra related exceptions (store unreadable, DB errors).
    """
    run_id: UUID | None = None
    if ledger is not None:
        ## -- create run ledger, committed immediately
        run_id = insert_validation_run(ledger, sheet_name=table_name, kind=spec.record_cls.KIND, context=context)

    try:
        table = store.read(table_name)
        result = validator.validate_rows(spec.record_cls, table.rows, table.headers, context)

        if ledger is not None and run_id is not None:
            insert_reject_rows(ledger, run_id=run_id, kind=spec.record_cls.KIND, rejects=result.rejects)
            finish_validation_run(
                ledger,
                run_id=run_id,
                status="succeeded",
                total=result.total,
                valid=len(result.records),
                rejected=len(result.errors),
                alert_sent=result.alert_sent,
            )
            ledger.commit()
    except Exception:
        if ledger is not None and run_id is not None:
            # revert everything except the run ledger row
            ledger.rollback()
            finish_validation_run(ledger, run_id=run_id, status="failed")
            ledger.commit()
        raise

    return ValidationSummary(
        kind=spec.record_cls.KIND,
        source=table_name,
        total=result.total,
        valid=len(result.records),
        rejected=len(result.errors),
        alert_sent=result.alert_sent,
        run_id=run_id,
    )


## -- delivery queue

@dataclass(frozen=True)
class QueueSnapshot:
    """A decoded queue plus the raw rows that failed to decode (kept so nothing is dropped)."""
    table: Table
    items: list[DeliveryQueueItem]
    invalid_rows: list[list[Any]]


def read_queue(store: TableStore, validator: BatchValidator, *, context: str) -> QueueSnapshot:
    table = store.read(DeliveryQueueItem.SHEET_NAME)
    result = validator.validate_rows(DeliveryQueueItem, table.rows, table.headers, context)
    # data row i is sheet row i + 2
    invalid = [list(table.rows[n - 2]) for n in result.errors.row_numbers]
    return QueueSnapshot(table=table, items=result.records, invalid_rows=invalid)


def write_queue(store: TableStore, snapshot: QueueSnapshot, items: list[DeliveryQueueItem]) -> None:
    """Write items back in the table's own column order; undecodable rows are kept at the end, unchanged."""
    headers = snapshot.table.headers
    rows = [item.encode_for(headers) for item in items] + snapshot.invalid_rows
    store.write(DeliveryQueueItem.SHEET_NAME, headers, rows)


def email_sender(gateway: AlertGateway):
    """Adapt a mail gateway into a queue `send` callable: one HTML email per item."""
    def send(item: DeliveryQueueItem) -> None:
        gateway.send(Alert(to=item.email, subject=item.subject, body=item.html_body, html=True))
    return send


def process_delivery_queue(
    store: TableStore,
    *,
    validator: BatchValidator,
    mailer: AlertGateway,
    batch_size: int,
    default_max_attempts: int,
    backoff_base_seconds: int,
    schedule_next_in: Optional[int] = None,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> DeliveryOutcome:
    """
    One delivery pass over the `ExpirationFIFO` table: read once, attempt due items,
    write the rebuilt queue back once.

    With `schedule_next_in` (seconds), the next batch of unscheduled items is stamped
    with that run time before writing. A `dry_run` leaves the stored queue untouched.
    """
    now = now or datetime.now(timezone.utc)
    snapshot = read_queue(store, validator, context="queue process")

    outcome = process_queue(
        snapshot.items,
        email_sender(mailer),
        now=now,
        batch_size=batch_size,
        default_max_attempts=default_max_attempts,
        backoff=exponential_backoff(timedelta(seconds=backoff_base_seconds)),
    )

    queue = outcome.queue
    if schedule_next_in is not None:
        next_run_at = (now + timedelta(seconds=schedule_next_in)).isoformat()
        queue = assign_next_batch_timestamps(queue, batch_size, now, next_run_at)
        outcome.queue = queue

    if dry_run:
        log.info("dry run: queue not written back (%d item(s))", len(queue))
    else:
        write_queue(store, snapshot, queue)
    return outcome


def purge_dead_items(store: TableStore, *, validator: BatchValidator) -> list[DeliveryQueueItem]:
    """Operator purge: drop dead-lettered items from the queue, returning what was removed."""
    snapshot = read_queue(store, validator, context="queue purge")
    kept, purged = purge_dead(snapshot.items)
    if purged:
        write_queue(store, snapshot, kept)
        for item in purged:
            log.warning("purged dead item %s (%s) after %d attempt(s): %s", item.id, item.email, item.attempts, item.last_error)
    return purged


def enqueue_expiry_items(
    store: TableStore,
    *,
    validator: BatchValidator,
    today: date,
    since: Optional[date] = None,
    dry_run: bool = False,
) -> EnqueueOutcome:
    """
    Queue the expiry notices due in `(since, today]` (default: the day before `today`).

    Reads `ActiveMembers` and `ActionSpecs` once, appends to `ExpirationFIFO` and writes
    it back once. A missing queue table starts empty with the canonical headers.
    """
    since = since or today - timedelta(days=1)
    members_table = store.read(Member.SHEET_NAME)
    members = validator.validate_rows(Member, members_table.rows, members_table.headers, "queue enqueue").records
    specs_table = store.read(ActionSpec.SHEET_NAME)
    specs = validator.validate_rows(ActionSpec, specs_table.rows, specs_table.headers, "queue enqueue").records

    try:
        snapshot = read_queue(store, validator, context="queue enqueue")
    except (FileNotFoundError, KeyError):
        log.info("no %s table yet, starting an empty queue", DeliveryQueueItem.SHEET_NAME)
        snapshot = QueueSnapshot(table=Table(headers=list(DeliveryQueueItem.headers())), items=[], invalid_rows=[])

    outcome = enqueue_expiry_notices(snapshot.items, members, specs, since=since, today=today)

    if dry_run:
        log.info("dry run: queue not written back (%d new item(s))", len(outcome.added))
    elif outcome.added:
        write_queue(store, snapshot, outcome.queue)
    return outcome
