from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from membership_pipeline.parsing.profiles.delivery_queue import Backoff, DeliveryQueueItem

log = logging.getLogger(__name__)

# delivers one item; raising means the attempt failed.
Sender = Callable[[DeliveryQueueItem], None]


@dataclass(frozen=True)
class SelectedBatch:
    """Items picked for this pass, with their positions in the original queue."""
    items: list[DeliveryQueueItem]
    indices: list[int]


@dataclass
class DeliveryOutcome:
    """Result of one pass over the queue. `queue` is what should be written back."""
    queue: list[DeliveryQueueItem]
    delivered: list[DeliveryQueueItem] = field(default_factory=list)
    retried: list[DeliveryQueueItem] = field(default_factory=list)
    dead: list[DeliveryQueueItem] = field(default_factory=list)

    def render_one_line(self) -> str:
        return (
            f"delivery: delivered={len(self.delivered)} retried={len(self.retried)} "
            f"dead={len(self.dead)} remaining={len(self.queue)}"
        )


def select_batch(queue: Sequence[DeliveryQueueItem], batch_size: int, now: datetime) -> SelectedBatch:
    """
    First `batch_size` items that are due at `now`, in queue order.
    Dead items and items scheduled in the future are skipped.
    """
    items: list[DeliveryQueueItem] = []
    indices: list[int] = []
    for i, item in enumerate(queue):
        if len(items) >= batch_size:
            break
        if item.is_due(now):
            items.append(item)
            indices.append(i)
    return SelectedBatch(items=items, indices=indices)


def rebuild_queue(
    queue: Sequence[DeliveryQueueItem],
    processed_indices: Sequence[int],
    retries: Sequence[DeliveryQueueItem],
    dead: Sequence[DeliveryQueueItem],
) -> list[DeliveryQueueItem]:
    """
    The queue to persist after a pass:
    1) items to retry, in processing order
    2) items not processed this pass, unchanged and in queue order (already-dead ones included)
    3) items that died this pass, kept until an operator purges them

    Delivered items are the processed ones in neither `retries` nor `dead`; they drop out.
    """
    processed = set(processed_indices)
    untouched = [item for i, item in enumerate(queue) if i not in processed]
    return [*retries, *untouched, *dead]


def assign_next_batch_timestamps(
    queue: Sequence[DeliveryQueueItem], batch_size: int, now: datetime, next_run_at: str
) -> list[DeliveryQueueItem]:
    """
    Stamp `next_run_at` on the first `batch_size` items that are due at `now`.

    Returns copies; the input items are not modified. Dead items and items scheduled
    after `now` (e.g. retries) keep their `next_attempt_at` and do not count toward
    `batch_size`. Past-due items are eligible and get re-stamped.
    """
    out: list[DeliveryQueueItem] = []
    assigned = 0
    for item in queue:
        c = copy.copy(item)
        if assigned < batch_size and c.is_due(now):
            c.next_attempt_at = next_run_at
            assigned += 1
        out.append(c)
    return out


def purge_dead(queue: Sequence[DeliveryQueueItem]) -> tuple[list[DeliveryQueueItem], list[DeliveryQueueItem]]:
    """Split into `(kept, purged)`; the operator-only way a dead item leaves the queue."""
    kept = [item for item in queue if not item.dead]
    purged = [item for item in queue if item.dead]
    return kept, purged


def process_queue(
    queue: Sequence[DeliveryQueueItem],
    send: Sender,
    *,
    now: datetime,
    batch_size: int,
    default_max_attempts: int,
    backoff: Backoff,
) -> DeliveryOutcome:
    """
    Run one delivery pass: select due items, try each once (sequentially), then rebuild.

    Items in the selected batch are copied before their retry state changes, so the
    caller's `queue` is left as it was.
    """
    batch = select_batch(queue, batch_size, now)
    delivered: list[DeliveryQueueItem] = []
    retries: list[DeliveryQueueItem] = []
    dead: list[DeliveryQueueItem] = []

    for item in batch.items:
        try:
            send(item)
        except Exception as e:
            failed = copy.copy(item).record_failure(now, str(e), backoff, default_max_attempts)
            if failed.dead:
                log.error(
                    "delivery %s to %s dead after %d attempt(s): %s",
                    failed.id, failed.email, failed.attempts, failed.last_error,
                )
                dead.append(failed)
            else:
                log.warning(
                    "delivery %s to %s failed (attempt %d), next at %s: %s",
                    failed.id, failed.email, failed.attempts, failed.next_attempt_at, failed.last_error,
                )
                retries.append(failed)
        else:
            log.info("delivered %s to %s", item.id, item.email)
            delivered.append(item)

    rebuilt = rebuild_queue(queue, batch.indices, retries, dead)
    return DeliveryOutcome(queue=rebuilt, delivered=delivered, retried=retries, dead=dead)
