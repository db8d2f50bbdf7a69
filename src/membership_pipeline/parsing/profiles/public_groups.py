from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Mapping

from membership_pipeline.parsing.primitives import require_non_empty_string
from membership_pipeline.parsing.schema import ValidatedRecord


@dataclass
class PublicGroup(ValidatedRecord):
    """A mailing group members can subscribe to (`Subscription` e.g. `auto`, `manual`)."""
    KIND: ClassVar[str] = "PublicGroup"
    SHEET_NAME: ClassVar[str] = "PublicGroups"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Name": "name",
        "Email": "email",
        "Subscription": "subscription",
    }

    name: str
    email: str
    subscription: str

    def __post_init__(self) -> None:
        self.name = require_non_empty_string(self.name, kind=self.KIND, field="Name")
        self.email = require_non_empty_string(self.email, kind=self.KIND, field="Email")
        self.subscription = require_non_empty_string(self.subscription, kind=self.KIND, field="Subscription")
