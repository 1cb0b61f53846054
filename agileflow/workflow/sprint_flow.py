"""Sprint lifecycle rules and the metrics derived from a sprint's members.

Everything here is a pure function of records already loaded by the caller,
so metric computations may run side by side.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from ..core.clock import Clock
from ..core.exceptions import InvalidStateError, ValidationError
from ..domain.records import SprintBacklog, StoryId, StoryPoints, Task, UserStory
from ..domain.status import SprintStatus, WorkItemStatus
from . import task_flow
from .dependencies import find_dependency_cycle, unmet_dependencies

HEALTH_ISSUE_PENALTY = 20
HEALTH_WARNING_PENALTY = 10
HEALTH_PROGRESS_BONUS = 10
HIGH_PROGRESS = 80.0
LOW_PROGRESS = 30.0


class SprintMetrics(BaseModel):
    sprint_id: Optional[int]
    status: SprintStatus

    velocity: StoryPoints
    progress_percentage: float
    total_story_points: StoryPoints
    completed_story_points: StoryPoints
    remaining_story_points: StoryPoints

    total_stories: int
    completed_stories: int
    in_progress_stories: int
    todo_stories: int

    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int

    total_estimated_hours: float
    total_actual_hours: float
    remaining_hours: float

    sprint_duration_days: int
    days_elapsed: int
    days_remaining: int

    expected_velocity_rate: float
    actual_velocity_rate: float
    on_track: bool


class BurndownPoint(BaseModel):
    day: date
    ideal_remaining: float
    is_weekend: bool = False


class SprintBurndown(BaseModel):
    sprint_id: Optional[int]
    total_story_points: StoryPoints
    remaining_story_points: StoryPoints
    completed_story_points: StoryPoints
    ideal_remaining: float
    elapsed_days: int
    total_days: int
    behind_schedule: bool
    ideal_line: List[BurndownPoint] = Field(default_factory=list)


class SprintHealthReport(BaseModel):
    sprint_id: Optional[int]
    status: SprintStatus
    health_score: int
    progress_percentage: float
    issues: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class SprintStartCheck(BaseModel):
    errors: List[str] = Field(default_factory=list)
    offending_story_ids: List[StoryId] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


# Lifecycle

def transition(sprint: SprintBacklog, new_status: SprintStatus, clock: Clock) -> None:
    if not sprint.status.can_transition_to(new_status):
        raise InvalidStateError(
            f"Invalid sprint transition from {sprint.status.value} to {new_status.value}",
            {"sprint_id": sprint.id, "current_status": sprint.status.value},
        )
    sprint.status = new_status
    now = clock.now()
    if sprint.updated_at is None or now > sprint.updated_at:
        sprint.updated_at = now
    if new_status is SprintStatus.COMPLETED:
        sprint.completed_at = now


def ensure_mutable(sprint: SprintBacklog) -> None:
    if sprint.status.is_finished:
        raise InvalidStateError(
            f"Sprint '{sprint.name}' is {sprint.status.value} and can no longer change",
            {"sprint_id": sprint.id, "current_status": sprint.status.value},
        )


def validate_dates(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError(
            "Sprint end date must not be before its start date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )


def _dependencies_of(story: UserStory, lookup: Mapping[StoryId, UserStory]) -> List[UserStory]:
    return [lookup[dep_id] for dep_id in story.dependency_ids if dep_id in lookup]


def stories_with_unmet_dependencies(
    stories: Sequence[UserStory],
    dependency_lookup: Mapping[StoryId, UserStory],
) -> List[UserStory]:
    return [
        story for story in stories
        if unmet_dependencies(story, _dependencies_of(story, dependency_lookup))
    ]


def check_can_start(
    sprint: SprintBacklog,
    members: Sequence[UserStory],
    dependency_lookup: Mapping[StoryId, UserStory],
    other_active_sprints: int,
) -> SprintStartCheck:
    """Collect every reason the sprint cannot start, not just the first."""
    check = SprintStartCheck()
    if sprint.status is not SprintStatus.PLANNED:
        check.errors.append(
            f"Sprint must be planned to start (current status: {sprint.status.value})"
        )
    if other_active_sprints > 0:
        check.errors.append("Another sprint is already active for this project")
    if not members:
        check.errors.append("Sprint must contain at least one user story")
    blocked = stories_with_unmet_dependencies(members, dependency_lookup)
    if blocked:
        check.errors.append(
            "User stories with unmet dependencies: "
            + ", ".join(story.title for story in blocked)
        )
        check.offending_story_ids = [story.id for story in blocked]
    if sprint.end_date < sprint.start_date:
        check.errors.append("Sprint end date is before its start date")
    return check


def start(sprint: SprintBacklog, check: SprintStartCheck, clock: Clock) -> None:
    if not check.is_valid:
        raise InvalidStateError(
            f"Sprint '{sprint.name}' cannot start: " + "; ".join(check.errors),
            {
                "sprint_id": sprint.id,
                "current_status": sprint.status.value,
                "errors": list(check.errors),
                "offending_stories": list(check.offending_story_ids),
            },
        )
    transition(sprint, SprintStatus.ACTIVE, clock)


def check_capacity(
    sprint: SprintBacklog,
    members: Sequence[UserStory],
    story: UserStory,
) -> None:
    if sprint.capacity is None:
        return
    allocated = total_story_points(members)
    if allocated + story.story_points > sprint.capacity:
        raise ValidationError(
            f"Sprint capacity exceeded. Available: {sprint.capacity - allocated}, "
            f"required: {story.story_points}",
            {
                "sprint_id": sprint.id,
                "capacity": sprint.capacity,
                "allocated": allocated,
                "required": story.story_points,
            },
        )


# Metrics

def velocity(stories) -> StoryPoints:
    return sum(story.story_points for story in stories if story.status is WorkItemStatus.DONE)


def total_story_points(stories) -> StoryPoints:
    return sum(story.story_points for story in stories)


def remaining_story_points(stories) -> StoryPoints:
    return sum(story.story_points for story in stories if story.status is not WorkItemStatus.DONE)


def progress(stories: Sequence[UserStory]) -> float:
    if not stories:
        return 0.0
    done = sum(1 for story in stories if story.status is WorkItemStatus.DONE)
    return done * 100.0 / len(stories)


def days_elapsed(sprint: SprintBacklog, today: date) -> int:
    if sprint.status is SprintStatus.PLANNED or today < sprint.start_date:
        return 0
    if today > sprint.end_date:
        return sprint.duration_days
    return (today - sprint.start_date).days


def _count(items, status: WorkItemStatus) -> int:
    return sum(1 for item in items if item.status is status)


def compute_metrics(
    sprint: SprintBacklog,
    stories: Sequence[UserStory],
    tasks: Sequence[Task],
    today: date,
) -> SprintMetrics:
    total_points = total_story_points(stories)
    completed_points = velocity(stories)
    duration = sprint.duration_days
    elapsed = days_elapsed(sprint, today)

    expected_rate = total_points / duration if duration > 0 else 0.0
    actual_rate = completed_points / elapsed if elapsed > 0 else 0.0

    return SprintMetrics(
        sprint_id=sprint.id,
        status=sprint.status,
        velocity=completed_points,
        progress_percentage=progress(stories),
        total_story_points=total_points,
        completed_story_points=completed_points,
        remaining_story_points=remaining_story_points(stories),
        total_stories=len(stories),
        completed_stories=_count(stories, WorkItemStatus.DONE),
        in_progress_stories=_count(stories, WorkItemStatus.IN_PROGRESS),
        todo_stories=_count(stories, WorkItemStatus.TODO),
        total_tasks=len(tasks),
        completed_tasks=_count(tasks, WorkItemStatus.DONE),
        in_progress_tasks=_count(tasks, WorkItemStatus.IN_PROGRESS),
        total_estimated_hours=sum(task.estimated_hours for task in tasks),
        total_actual_hours=sum(task.actual_hours for task in tasks),
        remaining_hours=sum(task_flow.remaining_hours(task) for task in tasks),
        sprint_duration_days=duration,
        days_elapsed=elapsed,
        days_remaining=max(0, duration - elapsed),
        expected_velocity_rate=expected_rate,
        actual_velocity_rate=actual_rate,
        on_track=actual_rate >= expected_rate or elapsed == 0,
    )


def ideal_remaining(sprint: SprintBacklog, total_points: StoryPoints, elapsed: int) -> float:
    total_days = sprint.duration_days
    if total_days <= 0:
        return 0.0
    burn_rate = total_points / total_days
    return max(0.0, total_points - burn_rate * elapsed)


def burndown(
    sprint: SprintBacklog,
    stories: Sequence[UserStory],
    today: date,
) -> SprintBurndown:
    total_points = total_story_points(stories)
    remaining = remaining_story_points(stories)
    elapsed = days_elapsed(sprint, today)
    ideal_now = ideal_remaining(sprint, total_points, elapsed)

    line: List[BurndownPoint] = []
    for offset in range(sprint.duration_days + 1):
        day = sprint.start_date + timedelta(days=offset)
        line.append(
            BurndownPoint(
                day=day,
                ideal_remaining=round(ideal_remaining(sprint, total_points, offset), 2),
                is_weekend=day.weekday() >= 5,
            )
        )

    return SprintBurndown(
        sprint_id=sprint.id,
        total_story_points=total_points,
        remaining_story_points=remaining,
        completed_story_points=total_points - remaining,
        ideal_remaining=ideal_now,
        elapsed_days=elapsed,
        total_days=sprint.duration_days,
        behind_schedule=remaining > ideal_now,
        ideal_line=line,
    )


def health_score(issue_count: int, warning_count: int, progress_percentage: float) -> int:
    score = 100
    score -= issue_count * HEALTH_ISSUE_PENALTY
    score -= warning_count * HEALTH_WARNING_PENALTY
    if progress_percentage > HIGH_PROGRESS:
        score += HEALTH_PROGRESS_BONUS
    elif progress_percentage < LOW_PROGRESS:
        score -= HEALTH_PROGRESS_BONUS
    return max(0, min(100, score))


def analyze_health(
    sprint: SprintBacklog,
    stories: Sequence[UserStory],
    tasks: Sequence[Task],
    dependency_lookup: Mapping[StoryId, UserStory],
    today: date,
    behind_schedule_threshold: float = 20.0,
) -> SprintHealthReport:
    issues: List[str] = []
    warnings: List[str] = []
    recommendations: List[str] = []

    blocked = stories_with_unmet_dependencies(stories, dependency_lookup)
    if blocked:
        issues.append(f"{len(blocked)} user story(ies) with unmet dependencies")
        recommendations.append("Finish or descope the prerequisite stories first")

    graph: Dict[StoryId, List[StoryId]] = {
        story.id: list(story.dependency_ids) for story in dependency_lookup.values()
    }
    graph.update({story.id: list(story.dependency_ids) for story in stories})
    for story in stories:
        cycle = find_dependency_cycle(story.id, graph)
        if cycle:
            recommendations.append(
                "Break the dependency cycle " + " -> ".join(f"#{story_id}" for story_id in cycle)
            )
            break

    unassigned = [task for task in tasks if not task.is_assigned]
    if unassigned:
        warnings.append(f"{len(unassigned)} unassigned task(s)")
        recommendations.append("Assign every task for better visibility")

    over_estimate = [task for task in tasks if task_flow.is_over_estimate(task)]
    if over_estimate:
        warnings.append(f"{len(over_estimate)} task(s) over their estimate")

    current_progress = progress(stories)
    total_days = sprint.duration_days
    if total_days > 0:
        expected_progress = days_elapsed(sprint, today) * 100.0 / total_days
        if current_progress < expected_progress - behind_schedule_threshold:
            warnings.append(
                f"Sprint behind schedule: {current_progress:.1f}% done vs "
                f"{expected_progress:.1f}% expected"
            )
            recommendations.append("Reduce scope or increase team capacity")

    return SprintHealthReport(
        sprint_id=sprint.id,
        status=sprint.status,
        health_score=health_score(len(issues), len(warnings), current_progress),
        progress_percentage=current_progress,
        issues=issues,
        warnings=warnings,
        recommendations=recommendations,
    )
