from __future__ import annotations

from typing import Literal
from uuid import UUID

from psycopg import Connection


RunStatus = Literal["running", "succeeded", "failed"]


def insert_validation_run(conn: Connection, *, sheet_name: str, kind: str, context: str = "") -> UUID:
    """
    Create a `validation_runs` row, returns `run_id`.

    Committed immediately. The run ledger will persist even if later steps error.
    """
    row = conn.execute(
        """
        INSERT INTO validation_runs (sheet_name, kind, context, status)
        VALUES (%s, %s, %s, 'running')
        RETURNING run_id
        """,
        (sheet_name, kind, context),
    ).fetchone()
    assert row is not None
    conn.commit()
    return row[0]


def finish_validation_run(
    conn: Connection,
    *,
    run_id: UUID,
    status: RunStatus,
    total: int | None = None,
    valid: int | None = None,
    rejected: int | None = None,
    alert_sent: bool | None = None,
) -> None:
    """Close a run with its final counts. Counts stay NULL for a run that failed before finishing."""
    conn.execute(
        """
        UPDATE validation_runs
           SET status = %s, total = %s, valid = %s, rejected = %s, alert_sent = %s, finished_at = now()
         WHERE run_id = %s
        """,
        (status, total, valid, rejected, alert_sent, run_id),
    )
