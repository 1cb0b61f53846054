from __future__ import annotations

from typing import List, Optional

from ..core.clock import Clock, SystemClock
from ..core.exceptions import InvalidStateError, NotFoundError, ValidationError
from ..core.store import Stores
from ..domain.records import SprintId, StoryId, Task, TaskId, UserId, UserStory
from ..domain.status import WorkItemStatus
from ..utils.logging import get_logger
from ..workflow import task_flow, work_item
from ..workflow.task_flow import StoryTaskMetrics


async def load_stories(stores: Stores, story_ids) -> List[UserStory]:
    """Resolve story ids, skipping those that no longer exist."""
    stories = []
    for story_id in story_ids:
        try:
            stories.append(await stores.stories.get(story_id))
        except NotFoundError:
            continue
    return stories


class TaskService:
    """
    Task lifecycle: assignment, progression, blocking and time tracking.

    Each command loads the task (and the records its rules need), applies the
    workflow function and saves whatever it changed.
    """

    def __init__(self, stores: Stores, clock: Optional[Clock] = None) -> None:
        self.stores = stores
        self.clock = clock or SystemClock()
        self._logger = get_logger(__name__)

    async def create_task(
        self,
        story_id: StoryId,
        title: str,
        description: Optional[str] = None,
        estimated_hours: float = 0.0,
    ) -> Task:
        """Create a task under a story; it joins the story's sprint, if any."""
        if not title or not title.strip():
            raise ValidationError("Task title must not be empty", {"story_id": story_id})
        if estimated_hours is None or estimated_hours < 0:
            raise ValidationError(
                "Estimated hours cannot be negative",
                {"story_id": story_id, "hours": estimated_hours},
            )

        story = await self.stores.stories.get(story_id)
        now = self.clock.now()
        task = Task(
            story_id=story.id,
            sprint_id=story.sprint_id,
            title=title.strip(),
            description=description,
            estimated_hours=estimated_hours,
            created_at=now,
            updated_at=now,
        )
        await self.stores.tasks.save(task)
        self._logger.info("Created task %d under story %d", task.id, story.id)
        return task

    async def get_task(self, task_id: TaskId) -> Task:
        return await self.stores.tasks.get(task_id)

    async def get_story_tasks(self, story_id: StoryId) -> List[Task]:
        await self.stores.stories.get(story_id)
        return await self.stores.tasks.find_by(story_id=story_id)

    async def get_sprint_tasks(self, sprint_id: SprintId) -> List[Task]:
        await self.stores.sprints.get(sprint_id)
        return await self.stores.tasks.find_by(sprint_id=sprint_id)

    async def get_user_tasks(
        self,
        user_id: UserId,
        status: Optional[WorkItemStatus] = None,
    ) -> List[Task]:
        """Tasks assigned to a user, optionally narrowed to one status."""
        await self.stores.users.get(user_id)
        if status is None:
            return await self.stores.tasks.find_by(assignee_id=user_id)
        return await self.stores.tasks.find_by(assignee_id=user_id, status=status)

    async def get_unassigned_tasks(self, sprint_id: SprintId) -> List[Task]:
        return [task for task in await self.get_sprint_tasks(sprint_id) if not task.is_assigned]

    async def get_over_estimated_tasks(self, sprint_id: SprintId) -> List[Task]:
        return [
            task for task in await self.get_sprint_tasks(sprint_id)
            if task_flow.is_over_estimate(task)
        ]

    async def assign_task(self, task_id: TaskId, user_id: UserId) -> Task:
        task = await self.stores.tasks.get(task_id)
        user = await self.stores.users.get(user_id)
        if not user.is_active:
            raise ValidationError(
                f"User '{user.username}' is inactive and cannot take tasks",
                {"user_id": user.id},
            )
        task_flow.assign(task, user.id, self.clock)
        await self.stores.tasks.save(task)
        self._logger.info("Assigned task %d to user %d", task.id, user.id)
        return task

    async def reassign_task(self, task_id: TaskId, user_id: UserId) -> Task:
        task = await self.stores.tasks.get(task_id)
        user = await self.stores.users.get(user_id)
        previous = task_flow.reassign(task, user.id, self.clock)
        await self.stores.tasks.save(task)
        self._logger.info(
            "Reassigned task %d from user %s to user %d", task.id, previous, user.id
        )
        return task

    async def unassign_task(self, task_id: TaskId) -> Task:
        task = await self.stores.tasks.get(task_id)
        task_flow.unassign(task, self.clock)
        await self.stores.tasks.save(task)
        self._logger.info("Unassigned task %d", task.id)
        return task

    async def start_task(self, task_id: TaskId) -> Task:
        task = await self.stores.tasks.get(task_id)
        story = await self.stores.stories.get(task.story_id)
        dependencies = await load_stories(self.stores, story.dependency_ids)

        was_todo = task.status is WorkItemStatus.TODO
        try:
            story_started = task_flow.start(task, story, dependencies, self.clock)
        except InvalidStateError as e:
            self._logger.warning("Cannot start task %d: %s", task.id, e.message)
            raise

        if not was_todo:
            return task
        await self.stores.tasks.save(task)
        if story_started:
            await self.stores.stories.save(story)
            self._logger.info("Story %d started with its first task", story.id)
        self._logger.info("Started task %d", task.id)
        return task

    async def log_hours(self, task_id: TaskId, hours: float) -> Task:
        task = await self.stores.tasks.get(task_id)
        task_flow.log_hours(task, hours, self.clock)
        await self.stores.tasks.save(task)
        self._logger.info("Logged %.2fh on task %d (total %.2fh)", hours, task.id, task.actual_hours)
        return task

    async def update_estimated_hours(self, task_id: TaskId, hours: float) -> Task:
        task = await self.stores.tasks.get(task_id)
        task_flow.update_estimated_hours(task, hours, self.clock)
        await self.stores.tasks.save(task)
        return task

    async def move_to_review(self, task_id: TaskId) -> Task:
        task = await self.stores.tasks.get(task_id)
        task_flow.move_to_review(task, self.clock)
        await self.stores.tasks.save(task)
        self._logger.info("Task %d moved to review", task.id)
        return task

    async def move_to_testing(self, task_id: TaskId) -> Task:
        task = await self.stores.tasks.get(task_id)
        task_flow.move_to_testing(task, self.clock)
        await self.stores.tasks.save(task)
        self._logger.info("Task %d moved to testing", task.id)
        return task

    async def complete_task(self, task_id: TaskId) -> Task:
        task = await self.stores.tasks.get(task_id)
        story = await self.stores.stories.get(task.story_id)
        siblings = await self.stores.tasks.find_by(story_id=story.id)

        story_completed = task_flow.complete(task, story, siblings, self.clock)
        await self.stores.tasks.save(task)
        if story_completed:
            await self.stores.stories.save(story)
            self._logger.info("Story %d completed: all tasks done", story.id)
        self._logger.info("Completed task %d", task.id)
        return task

    async def block_task(
        self,
        task_id: TaskId,
        reason: str,
        blocked_by: Optional[UserId] = None,
    ) -> Task:
        task = await self.stores.tasks.get(task_id)
        task_flow.block(task, reason, self.clock, blocked_by)
        await self.stores.tasks.save(task)
        self._logger.warning("Task %d blocked: %s", task.id, task.block_reason)
        return task

    async def unblock_task(self, task_id: TaskId) -> Task:
        task = await self.stores.tasks.get(task_id)
        reason = task_flow.unblock(task, self.clock)
        await self.stores.tasks.save(task)
        self._logger.info("Task %d unblocked (was: %s)", task.id, reason)
        return task

    async def move_backward(self, task_id: TaskId, reason: str) -> Task:
        task = await self.stores.tasks.get(task_id)
        task_flow.move_backward(task, reason, self.clock)
        await self.stores.tasks.save(task)
        return task

    async def update_status(
        self,
        task_id: TaskId,
        status: WorkItemStatus,
        reason: Optional[str] = None,
    ) -> Task:
        """Administrative override; skips every workflow gate."""
        task = await self.stores.tasks.get(task_id)
        work_item.update_status(task, status, self.clock, reason=reason or "administrative update")
        if status is WorkItemStatus.DONE and task.completed_at is None:
            task.completed_at = self.clock.now()
        await self.stores.tasks.save(task)
        return task

    async def delete_task(self, task_id: TaskId) -> None:
        task = await self.stores.tasks.get(task_id)
        if task.status is WorkItemStatus.DONE:
            raise InvalidStateError(
                f"Task '{task.title}' is done and cannot be deleted",
                {"task_id": task.id, "current_status": task.status.value},
            )
        await self.stores.tasks.delete(task)
        self._logger.info("Deleted task %d", task.id)

    async def get_story_task_metrics(self, story_id: StoryId) -> StoryTaskMetrics:
        return task_flow.story_task_metrics(await self.get_story_tasks(story_id))
