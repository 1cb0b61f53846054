from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Sequence

from ..core.clock import Clock, SystemClock
from ..core.exceptions import InvalidStateError, ValidationError
from ..core.store import Stores
from ..domain.records import (
    ProjectId,
    SprintBacklog,
    SprintId,
    StoryId,
    StoryPoints,
    Task,
    UserStory,
)
from ..domain.status import SprintStatus, WorkItemStatus
from ..utils.logging import get_logger
from ..workflow import sprint_flow, work_item
from ..workflow.dependencies import unmet_dependencies
from ..workflow.sprint_flow import SprintBurndown, SprintHealthReport, SprintMetrics, SprintStartCheck
from .task_service import load_stories


class SprintService:
    """
    Sprint lifecycle, membership and metrics.

    This is the single place that enforces one active sprint per project and
    one sprint per story; no other entry point moves a story into a sprint.
    """

    def __init__(
        self,
        stores: Stores,
        clock: Optional[Clock] = None,
        behind_schedule_threshold: float = 20.0,
    ) -> None:
        self.stores = stores
        self.clock = clock or SystemClock()
        self.behind_schedule_threshold = behind_schedule_threshold
        self._logger = get_logger(__name__)

    # Lookups

    async def get_sprint(self, sprint_id: SprintId) -> SprintBacklog:
        return await self.stores.sprints.get(sprint_id)

    async def get_project_sprints(self, project_id: ProjectId) -> List[SprintBacklog]:
        await self.stores.projects.get(project_id)
        return await self.stores.sprints.find_by(project_id=project_id)

    async def get_active_sprint(self, project_id: ProjectId) -> Optional[SprintBacklog]:
        active = await self.stores.sprints.find_by(project_id=project_id, status=SprintStatus.ACTIVE)
        return active[0] if active else None

    async def get_sprint_stories(self, sprint_id: SprintId) -> List[UserStory]:
        await self.stores.sprints.get(sprint_id)
        return await self.stores.stories.find_by(sprint_id=sprint_id)

    async def _members(self, sprint: SprintBacklog) -> List[UserStory]:
        return await self.stores.stories.find_by(sprint_id=sprint.id)

    async def _tasks(self, sprint: SprintBacklog) -> List[Task]:
        return await self.stores.tasks.find_by(sprint_id=sprint.id)

    async def _dependency_lookup(self, stories: Sequence[UserStory]) -> Dict[StoryId, UserStory]:
        wanted = []
        for story in stories:
            wanted.extend(dep_id for dep_id in story.dependency_ids if dep_id not in wanted)
        return {dep.id: dep for dep in await load_stories(self.stores, wanted)}

    async def _next_sprint_number(self, project_id: ProjectId) -> int:
        sprints = await self.stores.sprints.find_by(project_id=project_id)
        return max((sprint.sprint_number for sprint in sprints), default=0) + 1

    # Lifecycle

    async def create_sprint(
        self,
        project_id: ProjectId,
        start_date: date,
        end_date: date,
        sprint_number: Optional[int] = None,
        name: Optional[str] = None,
        goal: Optional[str] = None,
        capacity: Optional[StoryPoints] = None,
    ) -> SprintBacklog:
        project = await self.stores.projects.get(project_id)
        sprint_flow.validate_dates(start_date, end_date)
        if capacity is not None and capacity < 0:
            raise ValidationError("Sprint capacity cannot be negative", {"capacity": capacity})

        if sprint_number is None:
            sprint_number = await self._next_sprint_number(project.id)
        elif sprint_number < 1:
            raise ValidationError("Sprint number must be positive", {"sprint_number": sprint_number})
        elif await self.stores.sprints.count_by(project_id=project.id, sprint_number=sprint_number):
            raise ValidationError(
                f"Sprint {sprint_number} already exists in project '{project.name}'",
                {"project_id": project.id, "sprint_number": sprint_number},
            )

        now = self.clock.now()
        sprint = SprintBacklog(
            project_id=project.id,
            sprint_number=sprint_number,
            name=name or f"Sprint {sprint_number}",
            start_date=start_date,
            end_date=end_date,
            goal=goal,
            capacity=capacity,
            created_at=now,
            updated_at=now,
        )
        await self.stores.sprints.save(sprint)
        self._logger.info("Created sprint %d (%s) for project %d", sprint.id, sprint.name, project.id)
        return sprint

    async def update_sprint(
        self,
        sprint_id: SprintId,
        name: Optional[str] = None,
        goal: Optional[str] = None,
        capacity: Optional[StoryPoints] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> SprintBacklog:
        sprint = await self.stores.sprints.get(sprint_id)
        sprint_flow.ensure_mutable(sprint)
        new_start = start_date or sprint.start_date
        new_end = end_date or sprint.end_date
        sprint_flow.validate_dates(new_start, new_end)
        if capacity is not None and capacity < 0:
            raise ValidationError("Sprint capacity cannot be negative", {"capacity": capacity})

        if name:
            sprint.name = name
        if goal is not None:
            sprint.goal = goal
        if capacity is not None:
            sprint.capacity = capacity
        sprint.start_date = new_start
        sprint.end_date = new_end
        work_item.touch(sprint, self.clock)
        await self.stores.sprints.save(sprint)
        return sprint

    async def validate_sprint_can_start(self, sprint_id: SprintId) -> SprintStartCheck:
        sprint = await self.stores.sprints.get(sprint_id)
        return await self._start_check(sprint)

    async def _start_check(self, sprint: SprintBacklog) -> SprintStartCheck:
        members = await self._members(sprint)
        active = await self.stores.sprints.find_by(
            project_id=sprint.project_id, status=SprintStatus.ACTIVE
        )
        return sprint_flow.check_can_start(
            sprint,
            members,
            await self._dependency_lookup(members),
            other_active_sprints=sum(1 for other in active if other.id != sprint.id),
        )

    async def start_sprint(self, sprint_id: SprintId) -> SprintBacklog:
        sprint = await self.stores.sprints.get(sprint_id)
        check = await self._start_check(sprint)
        try:
            sprint_flow.start(sprint, check, self.clock)
        except InvalidStateError as e:
            self._logger.warning("Cannot start sprint %d: %s", sprint.id, e.message)
            raise
        await self.stores.sprints.save(sprint)
        self._logger.info("Started sprint %d", sprint.id)
        return sprint

    async def complete_sprint(self, sprint_id: SprintId) -> SprintBacklog:
        """Close the sprint, freezing its velocity.

        Stories that are not done go back to the backlog together with their
        tasks; their statuses are left as they are.
        """
        sprint = await self.stores.sprints.get(sprint_id)
        members = await self._members(sprint)
        tasks = await self._tasks(sprint)
        metrics = sprint_flow.compute_metrics(sprint, members, tasks, self.clock.today())

        sprint_flow.transition(sprint, SprintStatus.COMPLETED, self.clock)
        sprint.velocity = metrics.velocity
        await self.stores.sprints.save(sprint)

        returned = await self._return_unfinished(sprint, members, tasks)
        self._logger.info(
            "Completed sprint %d: velocity %d, progress %.1f%%, %d story(ies) returned to backlog",
            sprint.id, metrics.velocity, metrics.progress_percentage, returned,
        )
        return sprint

    async def cancel_sprint(self, sprint_id: SprintId) -> SprintBacklog:
        sprint = await self.stores.sprints.get(sprint_id)
        sprint_flow.transition(sprint, SprintStatus.CANCELLED, self.clock)
        await self.stores.sprints.save(sprint)
        returned = await self._return_unfinished(sprint, await self._members(sprint), await self._tasks(sprint))
        self._logger.info("Cancelled sprint %d, %d story(ies) returned to backlog", sprint.id, returned)
        return sprint

    async def _return_unfinished(
        self,
        sprint: SprintBacklog,
        members: Sequence[UserStory],
        tasks: Sequence[Task],
    ) -> int:
        unfinished = [story for story in members if story.status is not WorkItemStatus.DONE]
        for story in unfinished:
            await self._detach(story, [task for task in tasks if task.story_id == story.id])
        return len(unfinished)

    async def _detach(self, story: UserStory, tasks: Sequence[Task]) -> None:
        story.sprint_id = None
        work_item.touch(story, self.clock)
        await self.stores.stories.save(story)
        for task in tasks:
            task.sprint_id = None
            work_item.touch(task, self.clock)
            await self.stores.tasks.save(task)

    async def _attach(self, sprint: SprintBacklog, story: UserStory) -> None:
        story.sprint_id = sprint.id
        work_item.touch(story, self.clock)
        await self.stores.stories.save(story)
        for task in await self.stores.tasks.find_by(story_id=story.id):
            task.sprint_id = sprint.id
            work_item.touch(task, self.clock)
            await self.stores.tasks.save(task)

    async def delete_sprint(self, sprint_id: SprintId) -> None:
        sprint = await self.stores.sprints.get(sprint_id)
        if sprint.status is not SprintStatus.PLANNED:
            raise InvalidStateError(
                f"Only planned sprints can be deleted (current status: {sprint.status.value})",
                {"sprint_id": sprint.id, "current_status": sprint.status.value},
            )
        tasks = await self._tasks(sprint)
        for story in await self._members(sprint):
            await self._detach(story, [task for task in tasks if task.story_id == story.id])
        await self.stores.sprints.delete(sprint)
        self._logger.info("Deleted sprint %d", sprint.id)

    async def clone_sprint(
        self,
        sprint_id: SprintId,
        start_date: date,
        end_date: date,
        name: Optional[str] = None,
    ) -> SprintBacklog:
        """New planned sprint with the source's goal and capacity; no stories are copied."""
        source = await self.stores.sprints.get(sprint_id)
        clone = await self.create_sprint(
            project_id=source.project_id,
            start_date=start_date,
            end_date=end_date,
            name=name,
            goal=source.goal,
            capacity=source.capacity,
        )
        self._logger.info("Cloned sprint %d into sprint %d", source.id, clone.id)
        return clone

    # Membership

    async def _check_can_add(
        self,
        sprint: SprintBacklog,
        story: UserStory,
        members: Sequence[UserStory],
    ) -> None:
        sprint_flow.ensure_mutable(sprint)
        backlog = await self.stores.backlogs.get(story.backlog_id)
        if backlog.project_id != sprint.project_id:
            raise InvalidStateError(
                f"User story {story.id} belongs to another project",
                {"story_id": story.id, "sprint_id": sprint.id},
            )
        if story.status is WorkItemStatus.DONE:
            raise InvalidStateError(
                f"User story '{story.title}' is already done",
                {"story_id": story.id, "current_status": story.status.value},
            )
        if story.sprint_id is not None and story.sprint_id != sprint.id:
            owner = await self.stores.sprints.get(story.sprint_id)
            raise InvalidStateError(
                f"User story '{story.title}' is already in sprint '{owner.name}' ({owner.status.value})",
                {"story_id": story.id, "sprint_id": owner.id, "current_status": owner.status.value},
            )
        unmet = unmet_dependencies(story, await load_stories(self.stores, story.dependency_ids))
        if unmet:
            raise InvalidStateError(
                f"User story '{story.title}' has unfinished dependencies: "
                + ", ".join(dep.title for dep in unmet),
                {"story_id": story.id, "offending_stories": [dep.id for dep in unmet]},
            )
        sprint_flow.check_capacity(sprint, members, story)

    async def _check_can_remove(self, sprint: SprintBacklog, story: UserStory) -> List[Task]:
        sprint_flow.ensure_mutable(sprint)
        if story.sprint_id != sprint.id:
            raise InvalidStateError(
                f"User story {story.id} is not in sprint '{sprint.name}'",
                {"story_id": story.id, "sprint_id": sprint.id},
            )
        tasks = await self.stores.tasks.find_by(story_id=story.id)
        in_progress = [task.id for task in tasks if task.status is WorkItemStatus.IN_PROGRESS]
        if in_progress:
            raise InvalidStateError(
                f"User story '{story.title}' has tasks in progress",
                {"story_id": story.id, "tasks_in_progress": in_progress},
            )
        return tasks

    async def add_user_story(self, sprint_id: SprintId, story_id: StoryId) -> SprintBacklog:
        sprint = await self.stores.sprints.get(sprint_id)
        story = await self.stores.stories.get(story_id)
        if story.sprint_id == sprint.id:
            return sprint
        await self._check_can_add(sprint, story, await self._members(sprint))
        await self._attach(sprint, story)
        self._logger.info("Added user story %d to sprint %d", story.id, sprint.id)
        return sprint

    async def remove_user_story(self, sprint_id: SprintId, story_id: StoryId) -> SprintBacklog:
        sprint = await self.stores.sprints.get(sprint_id)
        story = await self.stores.stories.get(story_id)
        tasks = await self._check_can_remove(sprint, story)
        await self._detach(story, tasks)
        self._logger.info("Removed user story %d from sprint %d", story.id, sprint.id)
        return sprint

    async def move_story_between_sprints(
        self,
        story_id: StoryId,
        from_sprint_id: SprintId,
        to_sprint_id: SprintId,
    ) -> SprintBacklog:
        """Remove from one sprint and add to another, checking both sides first."""
        if from_sprint_id == to_sprint_id:
            raise ValidationError("Source and target sprints are the same", {"sprint_id": to_sprint_id})
        source = await self.stores.sprints.get(from_sprint_id)
        target = await self.stores.sprints.get(to_sprint_id)
        story = await self.stores.stories.get(story_id)

        tasks = await self._check_can_remove(source, story)
        detached = story.model_copy(update={"sprint_id": None})
        await self._check_can_add(target, detached, await self._members(target))

        await self._detach(story, tasks)
        await self._attach(target, story)
        self._logger.info(
            "Moved user story %d from sprint %d to sprint %d", story.id, source.id, target.id
        )
        return target

    # Metrics

    async def get_velocity(self, sprint_id: SprintId) -> StoryPoints:
        sprint = await self.stores.sprints.get(sprint_id)
        if sprint.velocity is not None:
            return sprint.velocity
        return sprint_flow.velocity(await self._members(sprint))

    async def get_average_velocity(self, project_id: ProjectId, last: int = 3) -> float:
        """Mean frozen velocity of the most recent completed sprints."""
        completed = await self.stores.sprints.find_by(project_id=project_id, status=SprintStatus.COMPLETED)
        completed.sort(key=lambda sprint: sprint.sprint_number)
        recent = [sprint.velocity or 0 for sprint in completed[-last:]]
        return sum(recent) / len(recent) if recent else 0.0

    async def get_progress(self, sprint_id: SprintId) -> float:
        sprint = await self.stores.sprints.get(sprint_id)
        return sprint_flow.progress(await self._members(sprint))

    async def get_metrics(self, sprint_id: SprintId) -> SprintMetrics:
        sprint = await self.stores.sprints.get(sprint_id)
        return sprint_flow.compute_metrics(
            sprint, await self._members(sprint), await self._tasks(sprint), self.clock.today()
        )

    async def get_burndown(self, sprint_id: SprintId) -> SprintBurndown:
        sprint = await self.stores.sprints.get(sprint_id)
        return sprint_flow.burndown(sprint, await self._members(sprint), self.clock.today())

    async def get_health_report(self, sprint_id: SprintId) -> SprintHealthReport:
        sprint = await self.stores.sprints.get(sprint_id)
        members = await self._members(sprint)
        return sprint_flow.analyze_health(
            sprint,
            members,
            await self._tasks(sprint),
            await self._dependency_lookup(members),
            self.clock.today(),
            behind_schedule_threshold=self.behind_schedule_threshold,
        )
