from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Mapping

from membership_pipeline.parsing.primitives import coerce_optional_string, require_at_least_one, require_non_empty_string
from membership_pipeline.parsing.schema import ValidatedRecord


@dataclass
class ElectionConfig(ValidatedRecord):
    """
    One key/value row from the `ElectionConfiguration` sheet.

    The lookup key may be written under `Key` or under `Setting`; at least one is required.
    """
    KIND: ClassVar[str] = "ElectionConfig"
    SHEET_NAME: ClassVar[str] = "ElectionConfiguration"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Key": "key",
        "Setting": "setting",
        "Value": "value",
    }

    key: str
    setting: str
    value: str

    def __post_init__(self) -> None:
        self.key = coerce_optional_string(self.key)
        self.setting = coerce_optional_string(self.setting)
        require_at_least_one(self.key, self.setting, kind=self.KIND, fields=("Key", "Setting"))
        self.value = require_non_empty_string(self.value, kind=self.KIND, field="Value")
