from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class RejectCode(str, Enum):
    """Typed rejection classifications."""
    missing_required = "missing_required"
    invalid_enum = "invalid_enum"
    invalid_numeric = "invalid_numeric"
    invalid_int = "invalid_int"
    invalid_timestamp = "invalid_timestamp"     # also used for date parsing errors
    invalid_bool = "invalid_bool"
    invalid_email = "invalid_email"
    invalid_type = "invalid_type"
    out_of_order = "out_of_order"               # paired fields, e.g. end < start


class FieldValidationError(ValueError):
    """
    Raised while constructing a record when one field (or a pair of fields) breaks its rule.

    The message always names the record kind, the field and the offending value,
    e.g. `ActionSpec Type is required, got: str ''`.
    """

    def __init__(self, code: RejectCode, field: str, detail: str) -> None:
        super().__init__(detail)
        self.code = code            # classification of the failure
        self.field = field          # the field (or `a/b` pair) that failed
        self.detail = detail        # full human-readable message


class DeliveryStateError(ValueError):
    """Raised when a delivery transition is requested on an item that may not take it."""


@dataclass(frozen=True, slots=True)
class RejectRow:
    """A row that failed to decode, with the position an operator would see in the sheet."""
    reason_code: RejectCode
    reason_detail: str
    raw_payload: Mapping[str, Any]  # the raw, header-keyed row being decoded.
    source_row: int                 # 1-based, header row counted (data row i -> i + 2)

    @property
    def message(self) -> str:
        """The per-row line used in logs and consolidated alerts."""
        return f"Row {self.source_row}: {self.reason_detail}"


@dataclass(slots=True)
class ErrorCollector:
    """
    Append-only list of rejected rows for ONE batch.

    Not deduplicated: two rows failing with the same message are two entries.
    """
    rejects: list[RejectRow] = field(default_factory=list)

    def add(self, reject: RejectRow) -> None:
        self.rejects.append(reject)

    @property
    def errors(self) -> list[str]:
        """Per-row messages in row order, e.g. `Row 4: PublicGroup Name is required, got: str ''`."""
        return [r.message for r in self.rejects]

    @property
    def row_numbers(self) -> list[int]:
        return [r.source_row for r in self.rejects]

    def __len__(self) -> int:
        return len(self.rejects)

    def __bool__(self) -> bool:
        return bool(self.rejects)
