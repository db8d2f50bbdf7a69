from __future__ import annotations

from typing import Any, Sequence
from uuid import UUID

from psycopg import Connection, sql
from psycopg.types.json import Jsonb

from membership_pipeline.db.table_store import to_jsonable
from membership_pipeline.parsing.types import RejectRow


def insert_reject_rows(conn: Connection, *, run_id: UUID, kind: str, rejects: Sequence[RejectRow]) -> int:
    """
    Insert `rejects` into `reject_rows` for one validation run. Returns the number written.

    Table/column identifiers are fixed constants; values are parameterized.
    """
    cols = ("run_id", "kind", "source_row", "raw_payload", "reason_code", "reason_detail")

    query = sql.SQL("INSERT INTO {tbl} ({cols}) VALUES ({vals})").format(
        tbl=sql.Identifier("reject_rows"),
        cols=sql.SQL(", ").join(sql.Identifier(c) for c in cols),
        vals=sql.SQL(", ").join(sql.Placeholder() for _ in cols),
    )

    params: list[tuple[Any, ...]] = [
        (
            run_id,
            kind,
            int(r.source_row),
            Jsonb(to_jsonable(dict(r.raw_payload))),
            r.reason_code.value,
            str(r.reason_detail),
        )
        for r in rejects
    ]

    if params:
        with conn.cursor() as cur:
            cur.executemany(query, params)
    return len(params)
