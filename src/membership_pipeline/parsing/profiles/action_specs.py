from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Mapping

from membership_pipeline.parsing.primitives import (
    parse_optional_number,
    require_enum,
    require_non_empty_string,
    require_text_or_rich_text,
)
from membership_pipeline.parsing.schema import ValidatedRecord

# the membership lifecycle actions an email template can be attached to.
ACTION_TYPES: tuple[str, ...] = ("Migrate", "Join", "Renew", "Expiry1", "Expiry2", "Expiry3", "Expiry4")


@dataclass
class ActionSpec(ValidatedRecord):
    """
    One email template from the `ActionSpecs` sheet.

    `body` is plain text/HTML or a rich-text mapping (`{"text": ..., "url": ...}`).
    `offset` is the day offset used by the expiry actions; `None` when blank.
    """
    KIND: ClassVar[str] = "ActionSpec"
    SHEET_NAME: ClassVar[str] = "ActionSpecs"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Type": "type",
        "Offset": "offset",
        "Subject": "subject",
        "Body": "body",
    }

    type: str
    subject: str
    body: str | Mapping[str, Any]
    offset: int | float | None = None

    def __post_init__(self) -> None:
        self.type = require_enum(self.type, ACTION_TYPES, kind=self.KIND, field="Type")
        self.subject = require_non_empty_string(self.subject, kind=self.KIND, field="Subject")
        self.body = require_text_or_rich_text(self.body, kind=self.KIND, field="Body")
        self.offset = parse_optional_number(self.offset, kind=self.KIND, field="Offset")

    @property
    def body_text(self) -> str:
        """The body as text, whichever shape it was stored in."""
        if isinstance(self.body, Mapping):
            return str(self.body.get("text", ""))
        return self.body
