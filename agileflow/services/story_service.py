from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..core.clock import Clock, SystemClock
from ..core.exceptions import InvalidStateError, ValidationError
from ..core.store import Stores
from ..domain.records import BacklogId, EpicId, StoryId, UserStory
from ..domain.status import WorkItemStatus
from ..utils.logging import get_logger
from ..workflow import dependencies as deps
from ..workflow import sprint_flow, task_flow, work_item
from .task_service import load_stories

# Fields a caller may edit directly; status, sprint and dependencies have their own commands
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "acceptance_criteria",
    "story_points",
    "priority",
    "business_value",
    "urgency",
    "time_criticality",
    "risk_reduction",
})


class StoryService:
    def __init__(
        self,
        stores: Stores,
        clock: Optional[Clock] = None,
        reject_dependency_cycles: bool = False,
    ) -> None:
        self.stores = stores
        self.clock = clock or SystemClock()
        self.reject_dependency_cycles = reject_dependency_cycles
        self._logger = get_logger(__name__)

    async def create_story(
        self,
        backlog_id: BacklogId,
        title: str,
        description: Optional[str] = None,
        story_points: int = 0,
        epic_id: Optional[EpicId] = None,
        **attributes: Any,
    ) -> UserStory:
        """Create a story under a backlog.

        ``attributes`` may carry any other editable field (scores,
        acceptance criteria, priority).
        """
        if not title or not title.strip():
            raise ValidationError("User story title must not be empty", {"backlog_id": backlog_id})
        unknown = set(attributes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown user story fields: {', '.join(sorted(unknown))}")

        backlog = await self.stores.backlogs.get(backlog_id)
        if epic_id is not None:
            epic = await self.stores.epics.get(epic_id)
            self._check_epic_backlog(epic.backlog_id, backlog.id, epic.id)

        now = self.clock.now()
        story = self._validated(
            {
                **attributes,
                "backlog_id": backlog.id,
                "epic_id": epic_id,
                "title": title.strip(),
                "description": description,
                "story_points": story_points,
                "created_at": now,
                "updated_at": now,
            }
        )
        await self.stores.stories.save(story)
        self._logger.info("Created user story %d in backlog %d", story.id, backlog.id)
        return story

    async def get_story(self, story_id: StoryId) -> UserStory:
        return await self.stores.stories.get(story_id)

    async def get_backlog_stories(self, backlog_id: BacklogId) -> List[UserStory]:
        await self.stores.backlogs.get(backlog_id)
        return await self.stores.stories.find_by(backlog_id=backlog_id)

    async def update_story(self, story_id: StoryId, **changes: Any) -> UserStory:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown user story fields: {', '.join(sorted(unknown))}")
        story = await self.stores.stories.get(story_id)
        updated = self._validated({**story.model_dump(), **changes})
        if updated.sprint_id is not None and updated.story_points > story.story_points:
            await self._check_sprint_capacity(updated)
        work_item.touch(updated, self.clock)
        await self.stores.stories.save(updated)
        return updated

    async def _check_sprint_capacity(self, story: UserStory) -> None:
        sprint = await self.stores.sprints.get(story.sprint_id)
        if sprint.status.is_finished:
            return
        others = [s for s in await self.stores.stories.find_by(sprint_id=sprint.id) if s.id != story.id]
        sprint_flow.check_capacity(sprint, others, story)

    def _validated(self, data: Dict[str, Any]) -> UserStory:
        try:
            return UserStory.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid user story: " + "; ".join(
                    f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                )
            ) from e

    @staticmethod
    def _check_epic_backlog(epic_backlog_id: BacklogId, backlog_id: BacklogId, epic_id: EpicId) -> None:
        if epic_backlog_id != backlog_id:
            raise ValidationError(
                "Epic belongs to another backlog",
                {"epic_id": epic_id, "backlog_id": backlog_id},
            )

    # Dependencies

    async def add_dependency(self, story_id: StoryId, dependency_id: StoryId) -> UserStory:
        story = await self.stores.stories.get(story_id)
        dependency = await self.stores.stories.get(dependency_id)
        deps.validate_new_dependency(story, dependency)
        if dependency.id in story.dependency_ids:
            return story

        if self.reject_dependency_cycles:
            graph = {s.id: list(s.dependency_ids) for s in await self.stores.stories.find_by()}
            graph[story.id] = list(story.dependency_ids) + [dependency.id]
            cycle = deps.find_dependency_cycle(story.id, graph)
            if cycle:
                raise ValidationError(
                    "Dependency would create a cycle: "
                    + " -> ".join(f"#{node}" for node in cycle),
                    {"story_id": story.id, "cycle": cycle},
                )

        story.dependency_ids.append(dependency.id)
        work_item.touch(story, self.clock)
        await self.stores.stories.save(story)
        self._logger.info("Story %d now depends on story %d", story.id, dependency.id)
        return story

    async def remove_dependency(self, story_id: StoryId, dependency_id: StoryId) -> UserStory:
        story = await self.stores.stories.get(story_id)
        if dependency_id not in story.dependency_ids:
            raise ValidationError(
                f"Story {story.id} does not depend on story {dependency_id}",
                {"story_id": story.id, "dependency_id": dependency_id},
            )
        story.dependency_ids.remove(dependency_id)
        work_item.touch(story, self.clock)
        await self.stores.stories.save(story)
        return story

    async def get_dependencies(self, story_id: StoryId) -> List[UserStory]:
        story = await self.stores.stories.get(story_id)
        return await load_stories(self.stores, story.dependency_ids)

    async def are_dependencies_completed(self, story_id: StoryId) -> bool:
        story = await self.stores.stories.get(story_id)
        return deps.are_dependencies_completed(story, await load_stories(self.stores, story.dependency_ids))

    async def can_be_started(self, story_id: StoryId) -> bool:
        story = await self.stores.stories.get(story_id)
        return deps.can_be_started(story, await load_stories(self.stores, story.dependency_ids))

    # Lifecycle

    async def start_story(self, story_id: StoryId) -> UserStory:
        story = await self.stores.stories.get(story_id)
        unmet = deps.unmet_dependencies(story, await load_stories(self.stores, story.dependency_ids))
        if story.status is WorkItemStatus.TODO and unmet:
            raise InvalidStateError(
                f"Story '{story.title}' has unfinished dependencies: "
                + ", ".join(dep.title for dep in unmet),
                {
                    "story_id": story.id,
                    "current_status": story.status.value,
                    "offending_stories": [dep.id for dep in unmet],
                },
            )
        if work_item.start(story, self.clock):
            await self.stores.stories.save(story)
            self._logger.info("Started user story %d", story.id)
        return story

    async def complete_story(self, story_id: StoryId) -> UserStory:
        """Explicit completion, only for stories without open tasks."""
        story = await self.stores.stories.get(story_id)
        tasks = await self.stores.tasks.find_by(story_id=story.id)
        open_tasks = [task for task in tasks if task.status is not WorkItemStatus.DONE]
        if open_tasks:
            raise InvalidStateError(
                f"Story '{story.title}' still has {len(open_tasks)} unfinished task(s)",
                {
                    "story_id": story.id,
                    "current_status": story.status.value,
                    "open_tasks": [task.id for task in open_tasks],
                },
            )
        work_item.complete(story, self.clock)
        await self.stores.stories.save(story)
        self._logger.info("Completed user story %d", story.id)
        return story

    async def update_status(
        self,
        story_id: StoryId,
        status: WorkItemStatus,
        reason: Optional[str] = None,
    ) -> UserStory:
        story = await self.stores.stories.get(story_id)
        work_item.update_status(story, status, self.clock, reason=reason or "administrative update")
        await self.stores.stories.save(story)
        return story

    async def delete_story(self, story_id: StoryId) -> None:
        story = await self.stores.stories.get(story_id)
        tasks = await self.stores.tasks.find_by(story_id=story.id)
        in_progress = [task.id for task in tasks if task.status is WorkItemStatus.IN_PROGRESS]
        if in_progress:
            raise InvalidStateError(
                f"Story '{story.title}' has tasks in progress and cannot be deleted",
                {"story_id": story.id, "tasks_in_progress": in_progress},
            )

        for task in tasks:
            await self.stores.tasks.delete(task)
        for dependent in await self.stores.stories.find_by():
            if story.id in dependent.dependency_ids:
                dependent.dependency_ids = [i for i in dependent.dependency_ids if i != story.id]
                work_item.touch(dependent, self.clock)
                await self.stores.stories.save(dependent)
        await self.stores.stories.delete(story)
        self._logger.info("Deleted user story %d with %d task(s)", story.id, len(tasks))

    # Derived values

    async def get_story_progress(self, story_id: StoryId) -> float:
        await self.stores.stories.get(story_id)
        return task_flow.story_progress(await self.stores.tasks.find_by(story_id=story_id))

    async def are_all_tasks_completed(self, story_id: StoryId) -> bool:
        await self.stores.stories.get(story_id)
        tasks = await self.stores.tasks.find_by(story_id=story_id)
        return bool(tasks) and all(task.status is WorkItemStatus.DONE for task in tasks)

    async def is_ready_for_sprint(self, story_id: StoryId) -> bool:
        return is_ready_for_sprint(await self.stores.stories.get(story_id))

    # Epics

    async def assign_to_epic(self, story_id: StoryId, epic_id: EpicId) -> UserStory:
        story = await self.stores.stories.get(story_id)
        epic = await self.stores.epics.get(epic_id)
        if story.epic_id is not None:
            raise InvalidStateError(
                f"User story {story.id} is already assigned to an epic",
                {"story_id": story.id, "epic_id": story.epic_id},
            )
        self._check_epic_backlog(epic.backlog_id, story.backlog_id, epic.id)
        story.epic_id = epic.id
        work_item.touch(story, self.clock)
        await self.stores.stories.save(story)
        return story

    async def remove_from_epic(self, story_id: StoryId, epic_id: EpicId) -> UserStory:
        story = await self.stores.stories.get(story_id)
        epic = await self.stores.epics.get(epic_id)
        if story.epic_id != epic.id:
            raise InvalidStateError(
                f"User story {story.id} is not assigned to epic {epic.id}",
                {"story_id": story.id, "epic_id": epic.id},
            )
        story.epic_id = None
        work_item.touch(story, self.clock)
        await self.stores.stories.save(story)
        return story

    async def get_epic_progress(self, epic_id: EpicId) -> int:
        """Whole-number percentage of the epic's stories that are done."""
        await self.stores.epics.get(epic_id)
        stories = await self.stores.stories.find_by(epic_id=epic_id)
        if not stories:
            return 0
        done = sum(1 for story in stories if story.status is WorkItemStatus.DONE)
        return done * 100 // len(stories)


def is_ready_for_sprint(story: UserStory) -> bool:
    return (
        story.has_description()
        and story.story_points > 0
        and bool(story.acceptance_criteria)
        and not story.is_in_sprint
    )
