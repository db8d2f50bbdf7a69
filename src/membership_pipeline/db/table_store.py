from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Sequence

from psycopg import Connection, sql
from psycopg.types.json import Jsonb

from membership_pipeline.ingest.readers import Table


def to_jsonable(v: Any) -> Any:
    """Adapt a cell to something `jsonb` can hold. Dates and timestamps become ISO strings."""
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, Decimal):
        return int(v) if v == v.to_integral_value() else float(v)
    if isinstance(v, Mapping):
        return {str(k): to_jsonable(x) for k, x in v.items()}
    return v


class PostgresTableStore:
    """
    Sheet-shaped tables kept in Postgres (`sheet_headers` + `sheet_rows`).

    Rows are positional `jsonb` arrays, so reading back gives the same shape a
    spreadsheet API would. `write` replaces the table's rows and commits once.
    """

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def read(self, name: str) -> Table:
        hdr = self.conn.execute(
            "SELECT headers FROM sheet_headers WHERE sheet_name = %s", (name,)
        ).fetchone()
        if hdr is None:
            raise KeyError(f"Unknown table: {name}")

        rows = self.conn.execute(
            "SELECT cells FROM sheet_rows WHERE sheet_name = %s ORDER BY row_index", (name,)
        ).fetchall()
        return Table(headers=list(hdr[0]), rows=[list(r[0]) for r in rows])

    def write(self, name: str, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        """
        Replace `name` in one transaction. Any failure rolls back and the previous
        contents stay.
        """
        insert = sql.SQL("INSERT INTO {tbl} ({cols}) VALUES (%s, %s, %s)").format(
            tbl=sql.Identifier("sheet_rows"),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in ("sheet_name", "row_index", "cells")),
        )
        params = [(name, i, Jsonb([to_jsonable(c) for c in r])) for i, r in enumerate(rows)]

        try:
            self.conn.execute(
                """
                INSERT INTO sheet_headers (sheet_name, headers, updated_at)
                VALUES (%s, %s, now())
                ON CONFLICT (sheet_name) DO UPDATE
                  SET headers = EXCLUDED.headers, updated_at = EXCLUDED.updated_at
                """,
                (name, Jsonb(list(headers))),
            )
            self.conn.execute("DELETE FROM sheet_rows WHERE sheet_name = %s", (name,))
            if params:
                with self.conn.cursor() as cur:
                    cur.executemany(insert, params)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
