from __future__ import annotations

import logging
from typing import Any, ClassVar, Mapping, Sequence, TypeVar

from .adapter import project_row, zip_row
from .types import ErrorCollector, FieldValidationError, RejectCode, RejectRow

log = logging.getLogger(__name__)

R = TypeVar("R", bound="ValidatedRecord")


class ValidatedRecord:
    """
    Shared contract for every record kind read from a sheet.

    Concrete kinds are dataclasses whose `__post_init__` runs the field rules once.
    An instance that exists is valid; there is no re-validation path, so build a
    new instance (`from_mapping`) rather than patching fields when freshness matters.

    Class-level expectations:
    - `KIND`: name used in messages and alert subjects.
    - `SHEET_NAME`: the backing table this kind normally lives in.
    - `COLUMNS`: header name -> attribute name, in canonical header order.
    """
    KIND: ClassVar[str]
    SHEET_NAME: ClassVar[str]
    COLUMNS: ClassVar[Mapping[str, str]]

    @classmethod
    def headers(cls) -> tuple[str, ...]:
        """Canonical header order (used for encode only, never for decode lookups)."""
        return tuple(cls.COLUMNS)

    ## -- encode

    def to_mapping(self) -> dict[str, Any]:
        """Header-keyed values."""
        return {h: getattr(self, attr) for h, attr in self.COLUMNS.items()}

    def encode(self) -> list[Any]:
        """Positional row in canonical header order, length == `len(headers())`."""
        return [getattr(self, attr) for attr in self.COLUMNS.values()]

    def encode_for(self, headers: Sequence[str]) -> list[Any]:
        """
        Positional row laid out for a sheet's actual header order.
        Use this for persistence so reordered columns are written back in place.
        """
        return project_row(self.to_mapping(), headers)

    ## -- decode

    @classmethod
    def from_mapping(cls: type[R], named: Mapping[str, Any]) -> R:
        """
        Construct from a header-keyed mapping. Fields are pulled by header name only.
        Raises `FieldValidationError` on the first broken rule.
        """
        kwargs = {attr: named.get(h) for h, attr in cls.COLUMNS.items()}
        return cls(**kwargs)

    @classmethod
    def decode(
        cls: type[R],
        row: Sequence[Any],
        headers: Sequence[Any],
        source_row: int,
        collector: ErrorCollector | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> R | RejectRow:
        """
        Decode one raw sheet row. Never raises.

        Returns the record, or a `RejectRow` naming the sheet row (`source_row`) and
        the broken rule. Rejections are logged and, when given, appended to `collector`
        so one bad row can never abort a batch.
        """
        named = zip_row(headers, row)
        try:
            return cls.from_mapping(named)
        except FieldValidationError as e:
            reject = RejectRow(
                reason_code=e.code,
                reason_detail=e.detail,
                raw_payload=named,
                source_row=source_row,
            )
        except (TypeError, ValueError) as e:
            # values no rule anticipated (e.g. an unorderable pair); still just a bad row.
            reject = RejectRow(
                reason_code=RejectCode.invalid_type,
                reason_detail=f"{cls.KIND} {e}",
                raw_payload=named,
                source_row=source_row,
            )

        (logger or log).error("%s %s", cls.KIND, reject.message)
        if collector is not None:
            collector.add(reject)
        return reject
