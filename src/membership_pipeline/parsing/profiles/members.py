from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import ClassVar, Mapping

from membership_pipeline.parsing.primitives import (
    coerce_boolean,
    coerce_optional_string,
    parse_optional_date,
    parse_optional_number,
    require_date,
    require_email,
    require_non_empty_string,
    require_ordered,
)
from membership_pipeline.parsing.schema import ValidatedRecord


@dataclass
class Member(ValidatedRecord):
    """
    One row of `ActiveMembers`.

    - email is format-checked and lower-cased, it is the member's identity everywhere else.
    - `joined`/`expires` are calendar dates with `expires >= joined`.
    - the three `Directory Share *` columns are booleans (closed truth table).
    """
    KIND: ClassVar[str] = "Member"
    SHEET_NAME: ClassVar[str] = "ActiveMembers"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Status": "status",
        "Email": "email",
        "First": "first",
        "Last": "last",
        "Phone": "phone",
        "Joined": "joined",
        "Expires": "expires",
        "Period": "period",
        "Directory Share Name": "share_name",
        "Directory Share Email": "share_email",
        "Directory Share Phone": "share_phone",
        "Renewed On": "renewed_on",
    }

    status: str
    email: str
    first: str
    last: str
    joined: date
    expires: date
    phone: str = ""
    period: int | float | None = None
    share_name: bool = False
    share_email: bool = False
    share_phone: bool = False
    renewed_on: date | None = None

    def __post_init__(self) -> None:
        self.email = require_email(self.email, kind=self.KIND, field="Email").lower()
        self.status = require_non_empty_string(self.status, kind=self.KIND, field="Status")
        self.first = require_non_empty_string(self.first, kind=self.KIND, field="First")
        self.last = require_non_empty_string(self.last, kind=self.KIND, field="Last")
        self.joined = require_date(self.joined, kind=self.KIND, field="Joined")
        self.expires = require_date(self.expires, kind=self.KIND, field="Expires")
        require_ordered(self.joined, self.expires, kind=self.KIND, start_field="Joined", end_field="Expires")
        self.phone = coerce_optional_string(self.phone)
        self.period = parse_optional_number(self.period, kind=self.KIND, field="Period")
        self.share_name = coerce_boolean(self.share_name, kind=self.KIND, field="Directory Share Name")
        self.share_email = coerce_boolean(self.share_email, kind=self.KIND, field="Directory Share Email")
        self.share_phone = coerce_boolean(self.share_phone, kind=self.KIND, field="Directory Share Phone")
        self.renewed_on = parse_optional_date(self.renewed_on, kind=self.KIND, field="Renewed On")

    def days_until_expiry(self, today: date) -> int:
        """Negative once expired."""
        return (self.expires - today).days
