"""Task transitions layered over the shared work-item lifecycle.

Blocking is an overlay: ``task.blocked`` and ``task.block_reason`` are kept
next to the status so a task can be blocked in any active state and resume
where it was.
"""
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel

from ..core.clock import Clock
from ..core.exceptions import InvalidStateError, ValidationError
from ..domain.records import Task, UserId, UserStory
from ..domain.status import ACTIVE_STATUSES, WorkItemStatus
from ..utils.logging import get_logger
from . import work_item
from .dependencies import unmet_dependencies

logger = get_logger(__name__)

BACKWARD_MOVES = {
    WorkItemStatus.IN_REVIEW: WorkItemStatus.IN_PROGRESS,
    WorkItemStatus.TESTING: WorkItemStatus.IN_REVIEW,
}


class StoryTaskMetrics(BaseModel):
    total_tasks: int
    completed_tasks: int
    total_estimated_hours: float
    total_actual_hours: float
    progress_percentage: float


def _status_error(task: Task, expected: str) -> InvalidStateError:
    return InvalidStateError(
        f"Task '{task.title}' must be {expected} (current status: {task.status.value})",
        {"task_id": task.id, "current_status": task.status.value},
    )


def _ensure_not_blocked(task: Task) -> None:
    if task.blocked:
        raise InvalidStateError(
            f"Task '{task.title}' is blocked: {task.block_reason}",
            {"task_id": task.id, "blocked_reason": task.block_reason},
        )


def assign(task: Task, user_id: UserId, clock: Clock) -> None:
    if task.is_assigned or task.status is not WorkItemStatus.TODO:
        raise InvalidStateError(
            f"Task '{task.title}' can only be assigned while unassigned and in todo",
            {
                "task_id": task.id,
                "current_status": task.status.value,
                "assignee_id": task.assignee_id,
            },
        )
    task.assignee_id = user_id
    work_item.touch(task, clock)


def reassign(task: Task, user_id: UserId, clock: Clock) -> Optional[UserId]:
    """Hand the task to another user; returns the previous assignee."""
    if task.status is WorkItemStatus.DONE:
        raise _status_error(task, "unfinished to be reassigned")
    previous = task.assignee_id
    task.assignee_id = user_id
    work_item.touch(task, clock)
    return previous


def unassign(task: Task, clock: Clock) -> None:
    if task.status is WorkItemStatus.DONE:
        raise _status_error(task, "unfinished to be unassigned")
    task.assignee_id = None
    work_item.touch(task, clock)


def start(
    task: Task,
    story: UserStory,
    dependencies: Iterable[UserStory],
    clock: Clock,
) -> bool:
    """Start the task, auto-starting its story when the story is still todo.

    Returns True if the story was started as a side effect. Starting a task
    that already left todo changes nothing.
    """
    if task.status is not WorkItemStatus.TODO:
        return False
    if not task.is_assigned:
        raise InvalidStateError(
            f"Task '{task.title}' must be assigned before it can start",
            {"task_id": task.id, "current_status": task.status.value},
        )
    _ensure_not_blocked(task)

    unmet = unmet_dependencies(story, dependencies)
    if unmet:
        raise InvalidStateError(
            f"Story '{story.title}' has unfinished dependencies: "
            + ", ".join(dep.title for dep in unmet),
            {
                "story_id": story.id,
                "offending_stories": [dep.id for dep in unmet],
            },
        )

    work_item.start(task, clock)
    return work_item.start(story, clock)


def move_to_review(task: Task, clock: Clock) -> None:
    if task.status is not WorkItemStatus.IN_PROGRESS:
        raise _status_error(task, "in progress to move to review")
    _ensure_not_blocked(task)
    if task.actual_hours <= 0:
        raise ValidationError(
            f"No hours logged on task '{task.title}'; log work before review",
            {"task_id": task.id},
        )
    work_item.update_status(task, WorkItemStatus.IN_REVIEW, clock)


def move_to_testing(task: Task, clock: Clock) -> None:
    if task.status not in (WorkItemStatus.IN_PROGRESS, WorkItemStatus.IN_REVIEW):
        raise _status_error(task, "in progress or in review to move to testing")
    _ensure_not_blocked(task)
    work_item.update_status(task, WorkItemStatus.TESTING, clock)


def complete(
    task: Task,
    story: Optional[UserStory],
    story_tasks: Sequence[Task],
    clock: Clock,
) -> bool:
    """Complete the task; completes the story when every sibling is done.

    ``story_tasks`` are all tasks of the owning story (the task itself may be
    among them). Returns True if the story was completed as a side effect.
    """
    if task.status not in ACTIVE_STATUSES:
        raise _status_error(task, "in progress, in review or testing to be completed")
    _ensure_not_blocked(task)
    if task.actual_hours == 0:
        logger.warning("Completing task '%s' with no hours logged", task.title)

    work_item.complete(task, clock)
    if task.completed_at is None:
        task.completed_at = clock.now()

    if story is None or story.status is WorkItemStatus.DONE:
        return False
    siblings_done = all(
        sibling.status is WorkItemStatus.DONE
        for sibling in story_tasks
        if sibling.id != task.id
    )
    if siblings_done:
        work_item.update_status(
            story, WorkItemStatus.DONE, clock, reason="all tasks completed"
        )
        return True
    return False


def block(task: Task, reason: str, clock: Clock, blocked_by: Optional[UserId] = None) -> None:
    if task.status is WorkItemStatus.DONE:
        raise _status_error(task, "unfinished to be blocked")
    if task.status is WorkItemStatus.TODO:
        raise _status_error(task, "started before it can be blocked")
    if reason is None or not reason.strip():
        raise ValidationError("A block reason must be provided", {"task_id": task.id})

    task.blocked = True
    task.block_reason = reason.strip()
    task.blocked_at = clock.now()
    task.blocked_by = blocked_by if blocked_by is not None else task.assignee_id
    work_item.touch(task, clock)


def unblock(task: Task, clock: Clock) -> str:
    """Clear the block and return the reason it carried."""
    if not task.blocked:
        raise ValidationError(f"Task '{task.title}' is not blocked", {"task_id": task.id})

    reason = task.block_reason or ""
    task.blocked = False
    task.block_reason = None
    task.blocked_at = None
    task.blocked_by = None
    if task.status not in ACTIVE_STATUSES:
        work_item.update_status(task, WorkItemStatus.IN_PROGRESS, clock, reason="unblocked")
    else:
        work_item.touch(task, clock)
    return reason


def move_backward(task: Task, reason: str, clock: Clock) -> WorkItemStatus:
    if task.status is WorkItemStatus.DONE:
        raise _status_error(task, "unfinished to move backward")
    target = BACKWARD_MOVES.get(task.status)
    if target is None:
        raise _status_error(task, "in review or testing to move backward")
    work_item.update_status(task, target, clock, reason=reason or "moved backward")
    return target


def log_hours(task: Task, hours: float, clock: Clock) -> None:
    if hours is None or hours < 0:
        raise ValidationError(
            "Hours cannot be negative",
            {"task_id": task.id, "hours": hours},
        )
    task.actual_hours += hours
    work_item.touch(task, clock)


def update_estimated_hours(task: Task, hours: float, clock: Clock) -> None:
    if hours is None or hours < 0:
        raise ValidationError(
            "Estimated hours cannot be negative",
            {"task_id": task.id, "hours": hours},
        )
    task.estimated_hours = hours
    work_item.touch(task, clock)


def hours_progress(task: Task) -> float:
    if task.estimated_hours == 0:
        return 0.0
    return min(100.0, task.actual_hours * 100.0 / task.estimated_hours)


def remaining_hours(task: Task) -> float:
    return max(0.0, task.estimated_hours - task.actual_hours)


def is_over_estimate(task: Task) -> bool:
    return task.actual_hours > task.estimated_hours


def story_progress(tasks: Sequence[Task]) -> float:
    if not tasks:
        return 0.0
    done = sum(1 for task in tasks if task.status is WorkItemStatus.DONE)
    return done * 100.0 / len(tasks)


def story_task_metrics(tasks: Sequence[Task]) -> StoryTaskMetrics:
    return StoryTaskMetrics(
        total_tasks=len(tasks),
        completed_tasks=sum(1 for task in tasks if task.status is WorkItemStatus.DONE),
        total_estimated_hours=sum(task.estimated_hours for task in tasks),
        total_actual_hours=sum(task.actual_hours for task in tasks),
        progress_percentage=story_progress(tasks),
    )
