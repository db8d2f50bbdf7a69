from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Mapping

from membership_pipeline.parsing.primitives import coerce_boolean, coerce_optional_string, require_non_empty_string
from membership_pipeline.parsing.schema import ValidatedRecord


@dataclass
class BootstrapRow(ValidatedRecord):
    """
    Maps a logical table name used in code (`reference`) to where it physically lives.

    An empty `id` means the table lives in the local spreadsheet/store.
    """
    KIND: ClassVar[str] = "Bootstrap"
    SHEET_NAME: ClassVar[str] = "Bootstrap"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Reference": "reference",
        "id": "id",
        "sheetName": "sheet_name",
        "createIfMissing": "create_if_missing",
    }

    reference: str
    sheet_name: str
    id: str = ""
    create_if_missing: bool = False

    def __post_init__(self) -> None:
        self.reference = require_non_empty_string(self.reference, kind=self.KIND, field="Reference")
        self.sheet_name = require_non_empty_string(self.sheet_name, kind=self.KIND, field="sheetName")
        self.id = coerce_optional_string(self.id)
        self.create_if_missing = coerce_boolean(self.create_if_missing, kind=self.KIND, field="createIfMissing")
