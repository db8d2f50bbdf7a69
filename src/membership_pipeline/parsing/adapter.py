from __future__ import annotations

from typing import Any, Sequence


def zip_row(headers: Sequence[Any], row: Sequence[Any]) -> dict[str, Any]:
    """
    Pair every header name with the cell at the same position.

    This is the only place physical column position matters. Everything downstream
    reads fields out of the returned map by name, so operators may reorder sheet
    columns freely.

    - header names are stringified and stripped (`" Email "` -> `"Email"`).
    - a row shorter than the headers yields `None` for the missing cells.
    - cells beyond the last header are ignored.
    - duplicate header names: the right-most column wins.
    """
    out: dict[str, Any] = {}
    for i, h in enumerate(headers):
        name = str(h).strip() if h is not None else ""
        out[name] = row[i] if i < len(row) else None
    return out


def project_row(named: dict[str, Any], headers: Sequence[str]) -> list[Any]:
    """Inverse of `zip_row`: lay values out in the given header order (`None` for unknown headers)."""
    return [named.get(str(h).strip()) for h in headers]
