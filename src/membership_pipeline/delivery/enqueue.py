from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Sequence

from membership_pipeline.parsing.profiles.action_specs import ActionSpec
from membership_pipeline.parsing.profiles.delivery_queue import DeliveryQueueItem
from membership_pipeline.parsing.profiles.members import Member
from membership_pipeline.parsing.types import FieldValidationError

log = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([^}]+)\}")

EXPIRED_STATUS = "Expired"


def expand_template(template: str, values: Mapping[str, Any]) -> str:
    """
    Replace `{Header}` placeholders with values from `values`.

    Dates render as ISO `YYYY-MM-DD`; unknown keys and empty values render as `''`.
    """
    def sub(m: re.Match[str]) -> str:
        v = values.get(m.group(1))
        if isinstance(v, datetime):
            return v.date().isoformat()
        if isinstance(v, date):
            return v.isoformat()
        return str(v) if v else ""

    return _PLACEHOLDER.sub(sub, template)


def expiry_specs(specs: Sequence[ActionSpec]) -> list[ActionSpec]:
    """The `Expiry*` templates, latest offset first (ties by type)."""
    found = [s for s in specs if s.type.startswith("Expiry")]
    return sorted(found, key=lambda s: (-(s.offset or 0), s.type))


def due_expiry_spec(member: Member, specs: Sequence[ActionSpec], *, since: date, today: date) -> ActionSpec | None:
    """
    The one expiry notice `member` should get for the window `(since, today]`, if any.

    A spec is scheduled `offset` days after `Expires`. When several fall in the
    window only the latest one is sent.
    """
    if member.status == EXPIRED_STATUS:
        return None
    for spec in expiry_specs(specs):
        offset = spec.offset or 0
        scheduled_by_today = member.days_until_expiry(today) + offset <= 0
        scheduled_after_since = member.days_until_expiry(since) + offset > 0
        if scheduled_by_today and scheduled_after_since:
            return spec
    return None


def notice_id(spec: ActionSpec, member: Member) -> str:
    """Stable per (action, member, expiry) so re-running a window never enqueues twice."""
    return f"{spec.type}:{member.email}:{member.expires.isoformat()}"


@dataclass
class EnqueueOutcome:
    queue: list[DeliveryQueueItem]
    added: list[DeliveryQueueItem]
    skipped_existing: int = 0

    def render_one_line(self) -> str:
        return f"enqueue: added={len(self.added)} already_queued={self.skipped_existing} queue={len(self.queue)}"


def enqueue_expiry_notices(
    queue: Sequence[DeliveryQueueItem],
    members: Sequence[Member],
    specs: Sequence[ActionSpec],
    *,
    since: date,
    today: date,
) -> EnqueueOutcome:
    """
    Append one `DeliveryQueueItem` per member whose expiry notice falls in `(since, today]`.

    Subject and body are the ActionSpec templates expanded with the member's columns.
    Items already in the queue (same `notice_id`) are not added again.
    """
    if since >= today:
        raise ValueError(f"since ({since}) must be before today ({today})")

    existing = {item.id for item in queue}
    added: list[DeliveryQueueItem] = []
    skipped = 0
    for member in members:
        spec = due_expiry_spec(member, specs, since=since, today=today)
        if spec is None:
            continue
        item_id = notice_id(spec, member)
        if item_id in existing:
            skipped += 1
            continue

        values = member.to_mapping()
        try:
            item = DeliveryQueueItem(
                id=item_id,
                email=member.email,
                subject=expand_template(spec.subject, values),
                html_body=expand_template(spec.body_text, values),
            )
        except FieldValidationError as e:
            # e.g. a template that expands to nothing
            log.error("cannot queue %s for %s: %s", spec.type, member.email, e)
            continue
        log.info("queued %s for %s (expires %s)", spec.type, member.email, member.expires.isoformat())
        existing.add(item_id)
        added.append(item)

    return EnqueueOutcome(queue=[*queue, *added], added=added, skipped_existing=skipped)
