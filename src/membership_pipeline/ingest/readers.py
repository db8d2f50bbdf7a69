from __future__ import annotations

import csv
import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence


@dataclass(frozen=True)
class Table:
    """A full snapshot of one named table: header row plus data rows (header row excluded)."""
    headers: list[str]
    rows: list[list[Any]] = field(default_factory=list)


class TableStore(Protocol):
    """
    The backing store a batch reads once and writes back once.

    `write` replaces the whole table and must be all-or-nothing: after a crash the
    previous contents are still there.
    """
    def read(self, name: str) -> Table: ...

    def write(self, name: str, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None: ...


def to_cell_text(v: Any) -> str:
    """How a Python value is written into a text cell."""
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, Mapping):
        return json.dumps(dict(v), sort_keys=True)
    return str(v)


class CsvTableStore:
    """
    One `<name>.csv` per table under `root`.

    Cells come back as strings exactly as stored (blank cells as `''`); the record
    rules do all coercion.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        return self.root / f"{name}.csv"

    def read(self, name: str) -> Table:
        path = self.path_for(name)
        with path.open("r", encoding="utf-8", newline="") as f:
            reader = csv.reader(f)
            try:
                headers = next(reader)
            except StopIteration:
                raise ValueError(f"{path} is empty, expected a header row") from None
            rows = [list(r) for r in reader]
        # trailing blank lines are not data rows; interior ones keep their position
        while rows and not any(c.strip() for c in rows[-1]):
            rows.pop()
        return Table(headers=headers, rows=rows)

    def write(self, name: str, headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        """Write to a temp file in the same directory, then atomically replace the table."""
        path = self.path_for(name)
        self.root.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{name}.", suffix=".csv.tmp", dir=self.root)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                w = csv.writer(f)
                w.writerow(list(headers))
                for r in rows:
                    w.writerow([to_cell_text(c) for c in r])
            os.replace(tmp, path)
        except BaseException:
            # leave the previous table in place
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
