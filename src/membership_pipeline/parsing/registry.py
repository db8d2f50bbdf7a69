from __future__ import annotations

from dataclasses import dataclass

from .schema import ValidatedRecord


@dataclass(frozen=True)
class KindSpec:
    """Contains a record kind's expectations: which class decodes it and which table it lives in."""
    name: str
    record_cls: type[ValidatedRecord]

    @property
    def sheet_name(self) -> str:
        return self.record_cls.SHEET_NAME


def _all_kinds() -> dict[str, type[ValidatedRecord]]:
    # imported lazily so `parsing.schema` never depends on the concrete profiles.
    from .profiles.action_specs import ActionSpec
    from .profiles.audit_entries import AuditEntry
    from .profiles.bootstrap import BootstrapRow
    from .profiles.delivery_queue import DeliveryQueueItem
    from .profiles.election_config import ElectionConfig
    from .profiles.elections import Election
    from .profiles.members import Member
    from .profiles.public_groups import PublicGroup
    from .profiles.transactions import Transaction

    return {
        "action_specs": ActionSpec,
        "bootstrap": BootstrapRow,
        "election_config": ElectionConfig,
        "elections": Election,
        "public_groups": PublicGroup,
        "audit": AuditEntry,
        "members": Member,
        "transactions": Transaction,
        "delivery_queue": DeliveryQueueItem,
    }


def kind_names() -> list[str]:
    return list(_all_kinds())


def get_kind_spec(name: str) -> KindSpec:
    """
    A registry that assigns a CLI kind name its record class.
    Field rules live in the profile modules.
    """
    kinds = _all_kinds()
    if name not in kinds:
        raise ValueError(f"Unknown kind: {name} (expected one of: {', '.join(kinds)})")
    return KindSpec(name=name, record_cls=kinds[name])
