"""Lifecycle rules shared by every trackable unit (stories and tasks).

The functions here operate on anything exposing ``status`` and
``updated_at``; they do not know whether they are moving a story or a task.
"""
from datetime import datetime
from typing import Optional, Protocol

from ..core.clock import Clock
from ..core.exceptions import InvalidStateError
from ..domain.status import ACTIVE_STATUSES, WorkItemStatus
from ..utils.logging import get_logger

logger = get_logger(__name__)


class HasStatus(Protocol):
    id: Optional[int]
    title: str
    status: WorkItemStatus
    updated_at: Optional[datetime]


# Forward edges; BLOCKED is reachable from any non-DONE state and handled apart
FORWARD_TRANSITIONS = {
    WorkItemStatus.TODO: (WorkItemStatus.IN_PROGRESS,),
    WorkItemStatus.IN_PROGRESS: (WorkItemStatus.IN_REVIEW, WorkItemStatus.TESTING, WorkItemStatus.DONE),
    WorkItemStatus.IN_REVIEW: (WorkItemStatus.TESTING, WorkItemStatus.DONE),
    WorkItemStatus.TESTING: (WorkItemStatus.DONE,),
    WorkItemStatus.DONE: (),
    WorkItemStatus.BLOCKED: (),
}


def can_transition(current: WorkItemStatus, new: WorkItemStatus) -> bool:
    if new is WorkItemStatus.BLOCKED:
        return current is not WorkItemStatus.DONE and current is not WorkItemStatus.BLOCKED
    return new in FORWARD_TRANSITIONS[current]


def touch(item: HasStatus, clock: Clock) -> None:
    """Bump ``updated_at`` without ever moving it backwards."""
    now = clock.now()
    if item.updated_at is None or now > item.updated_at:
        item.updated_at = now


def update_status(
    item: HasStatus,
    new_status: WorkItemStatus,
    clock: Clock,
    reason: Optional[str] = None,
) -> None:
    """Unchecked transition for administrative callers.

    This is the only path by which an item can move backwards. ``reason`` is
    logged and never persisted.
    """
    previous = item.status
    item.status = new_status
    touch(item, clock)
    if reason:
        logger.info(
            "%s %s moved %s -> %s: %s",
            type(item).__name__, item.id, previous.value, new_status.value, reason,
        )
    else:
        logger.debug(
            "%s %s moved %s -> %s",
            type(item).__name__, item.id, previous.value, new_status.value,
        )


def start(item: HasStatus, clock: Clock) -> bool:
    """Move TODO to IN_PROGRESS. Any other state is left alone.

    Returns True when the item actually changed.
    """
    if item.status is not WorkItemStatus.TODO:
        return False
    update_status(item, WorkItemStatus.IN_PROGRESS, clock)
    return True


def complete(item: HasStatus, clock: Clock) -> None:
    if item.status not in ACTIVE_STATUSES:
        raise InvalidStateError(
            f"{type(item).__name__} '{item.title}' must be in progress, in review "
            f"or testing to be completed (current status: {item.status.value})",
            {"current_status": item.status.value},
        )
    update_status(item, WorkItemStatus.DONE, clock)


def is_done(item: HasStatus) -> bool:
    return item.status is WorkItemStatus.DONE


def progress(item: HasStatus) -> int:
    if item.status is WorkItemStatus.DONE:
        return 100
    if item.status in ACTIVE_STATUSES:
        return 50
    return 0
