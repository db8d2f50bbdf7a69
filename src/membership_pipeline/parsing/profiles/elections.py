from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Mapping

from membership_pipeline.parsing.primitives import (
    coerce_optional_string,
    parse_optional_timestamp,
    require_non_empty_string,
    require_ordered,
)
from membership_pipeline.parsing.schema import ValidatedRecord


@dataclass
class Election(ValidatedRecord):
    """One election from the `Elections` sheet. `start`/`end` are optional, but ordered when both set."""
    KIND: ClassVar[str] = "Election"
    SHEET_NAME: ClassVar[str] = "Elections"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Title": "title",
        "Start": "start",
        "End": "end",
        "Form Edit URL": "form_edit_url",
        "Election Officers": "election_officers",
        "TriggerId": "trigger_id",
    }

    title: str
    start: datetime | None = None
    end: datetime | None = None
    form_edit_url: str = ""
    election_officers: str = ""
    trigger_id: str = ""

    def __post_init__(self) -> None:
        self.title = require_non_empty_string(self.title, kind=self.KIND, field="Title")
        self.start = parse_optional_timestamp(self.start, kind=self.KIND, field="Start")
        self.end = parse_optional_timestamp(self.end, kind=self.KIND, field="End")
        require_ordered(self.start, self.end, kind=self.KIND, start_field="Start", end_field="End")
        self.form_edit_url = coerce_optional_string(self.form_edit_url)
        self.election_officers = coerce_optional_string(self.election_officers)
        self.trigger_id = coerce_optional_string(self.trigger_id)
