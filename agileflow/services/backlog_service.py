from typing import List, Optional, Sequence

from ..core.clock import Clock, SystemClock
from ..core.exceptions import AgileflowError, ValidationError
from ..core.store import Stores
from ..domain.records import BacklogId, ProductBacklog, SprintBacklog, SprintId, StoryId, UserStory
from ..domain.status import MoSCoWCategory, PrioritizationMethod
from ..utils.logging import get_logger
from ..workflow import prioritization, work_item
from .sprint_service import SprintService
from .story_service import is_ready_for_sprint

logger = get_logger(__name__)


class BacklogService:
    """Service for ordering the product backlog and feeding sprints from it"""

    def __init__(
        self,
        stores: Stores,
        clock: Optional[Clock] = None,
        sprint_service: Optional[SprintService] = None,
    ):
        self.stores = stores
        self.clock = clock or SystemClock()
        self.sprint_service = sprint_service or SprintService(stores, self.clock)

    async def get_backlog(self, backlog_id: BacklogId) -> ProductBacklog:
        return await self.stores.backlogs.get(backlog_id)

    async def get_all_stories(self, backlog_id: BacklogId) -> List[UserStory]:
        await self.stores.backlogs.get(backlog_id)
        return await self.stores.stories.find_by(backlog_id=backlog_id)

    async def get_unassigned_stories(self, backlog_id: BacklogId) -> List[UserStory]:
        """Stories not scheduled in any sprint"""
        return [story for story in await self.get_all_stories(backlog_id) if not story.is_in_sprint]

    async def apply_prioritization(
        self,
        backlog_id: BacklogId,
        method: Optional[PrioritizationMethod] = None,
    ) -> List[UserStory]:
        """Score, order and renumber every story of the backlog.

        Nothing is saved unless every story passes validation. Returns the
        stories in their new order.
        """
        backlog = await self.stores.backlogs.get(backlog_id)
        method = PrioritizationMethod(method or backlog.prioritization_method)
        logger.info("Applying prioritization method %s to backlog %d", method.value, backlog_id)

        stories = await self.stores.stories.find_by(backlog_id=backlog.id)
        if not stories:
            logger.warning("No stories found in backlog %d", backlog_id)
            return []

        try:
            ordered = prioritization.apply_prioritization(stories, method)
        except ValidationError as e:
            logger.warning("Prioritization of backlog %d rejected: %s", backlog_id, e.message)
            raise

        for story in ordered:
            work_item.touch(story, self.clock)
            await self.stores.stories.save(story)

        backlog.prioritization_method = method
        backlog.total_business_value = total_business_value(stories)
        await self.stores.backlogs.save(backlog)

        logger.info("Prioritized %d stories in backlog %d", len(ordered), backlog_id)
        return ordered

    async def reorder_stories(self, backlog_id: BacklogId, story_ids: Sequence[StoryId]) -> List[UserStory]:
        """Set priorities 1..N following the order of ``story_ids``"""
        await self.stores.backlogs.get(backlog_id)
        if len(set(story_ids)) != len(story_ids):
            raise ValidationError("Story ids must not repeat", {"story_ids": list(story_ids)})

        by_id = {story.id: story for story in await self.stores.stories.find_by(backlog_id=backlog_id)}
        missing = [story_id for story_id in story_ids if story_id not in by_id]
        if missing:
            raise ValidationError(
                "All stories must belong to the specified backlog",
                {"backlog_id": backlog_id, "story_ids": missing},
            )

        ordered = [by_id[story_id] for story_id in story_ids]
        prioritization.assign_priorities(ordered)
        for story in ordered:
            work_item.touch(story, self.clock)
            await self.stores.stories.save(story)

        logger.info("Reordered %d stories in backlog %d", len(ordered), backlog_id)
        return ordered

    async def get_top_priority_stories(self, backlog_id: BacklogId, limit: int = 10) -> List[UserStory]:
        if limit < 0:
            raise ValidationError("Limit cannot be negative", {"limit": limit})
        stories = await self.get_all_stories(backlog_id)
        return sorted(stories, key=lambda story: story.priority)[:limit]

    async def get_ready_stories(self, backlog_id: BacklogId) -> List[UserStory]:
        return [story for story in await self.get_all_stories(backlog_id) if is_ready_for_sprint(story)]

    async def calculate_total_business_value(self, backlog_id: BacklogId) -> int:
        return total_business_value(await self.get_all_stories(backlog_id))

    async def get_moscow_category(self, story_id: StoryId) -> MoSCoWCategory:
        return prioritization.moscow_category(await self.stores.stories.get(story_id))

    async def move_story_to_sprint(self, story_id: StoryId, sprint_id: SprintId) -> SprintBacklog:
        """Check the story is sprint-worthy, then hand it to the sprint"""
        story = await self.stores.stories.get(story_id)
        try:
            prioritization.validate_for_prioritization([story], action="move to sprint")
            return await self.sprint_service.add_user_story(sprint_id, story.id)
        except AgileflowError as e:
            logger.warning("Cannot move story %d to sprint %d: %s", story_id, sprint_id, e.message)
            raise


def total_business_value(stories: Sequence[UserStory]) -> int:
    return sum(story.business_value for story in stories if story.business_value is not None)
