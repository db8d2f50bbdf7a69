from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar, Mapping

from membership_pipeline.parsing.primitives import (
    coerce_optional_string,
    parse_optional_timestamp,
    require_non_empty_string,
)
from membership_pipeline.parsing.schema import ValidatedRecord


@dataclass
class Transaction(ValidatedRecord):
    """A membership payment/form submission from `Transactions`; `processed` is `None` until handled."""
    KIND: ClassVar[str] = "Transaction"
    SHEET_NAME: ClassVar[str] = "Transactions"
    COLUMNS: ClassVar[Mapping[str, str]] = {
        "Email Address": "email_address",
        "First Name": "first_name",
        "Last Name": "last_name",
        "Phone": "phone",
        "Payment": "payment",
        "Directory": "directory",
        "Payable Status": "payable_status",
        "Processed": "processed",
        "Timestamp": "timestamp",
    }

    email_address: str
    first_name: str
    last_name: str
    phone: str = ""
    payment: str = ""
    directory: str = ""
    payable_status: str = ""
    processed: datetime | None = None
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        self.email_address = require_non_empty_string(self.email_address, kind=self.KIND, field="Email Address")
        self.first_name = require_non_empty_string(self.first_name, kind=self.KIND, field="First Name")
        self.last_name = require_non_empty_string(self.last_name, kind=self.KIND, field="Last Name")
        self.phone = coerce_optional_string(self.phone)
        self.payment = coerce_optional_string(self.payment)
        self.directory = coerce_optional_string(self.directory)
        self.payable_status = coerce_optional_string(self.payable_status)
        self.processed = parse_optional_timestamp(self.processed, kind=self.KIND, field="Processed")
        self.timestamp = parse_optional_timestamp(self.timestamp, kind=self.KIND, field="Timestamp")
