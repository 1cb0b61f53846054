import logging

import pytest

from agileflow.core.exceptions import InvalidStateError, ValidationError
from agileflow.domain.status import MoSCoWCategory, PrioritizationMethod


class TestApplyPrioritization:
    @pytest.mark.asyncio
    async def test_moscow_orders_and_numbers_stories(self, services, backlog, make_story):
        s = await make_story("S", points=5, business_value=8, urgency=6)
        t = await make_story("T", points=3, business_value=4, urgency=9)
        await services.stories.add_dependency(t.id, s.id)

        ordered = await services.backlogs.apply_prioritization(backlog.id, PrioritizationMethod.MOSCOW)

        assert [story.id for story in ordered] == [s.id, t.id]
        assert (await services.stories.get_story(s.id)).priority == 1
        assert (await services.stories.get_story(t.id)).priority == 2

        saved = await services.backlogs.get_backlog(backlog.id)
        assert saved.total_business_value == 12
        assert saved.prioritization_method is PrioritizationMethod.MOSCOW

    @pytest.mark.asyncio
    async def test_wsjf_prefers_small_valuable_jobs(self, services, backlog, make_story):
        big = await make_story("Big", points=13, business_value=9, time_criticality=9, risk_reduction=9)
        small = await make_story("Small", points=2, business_value=5, time_criticality=5, risk_reduction=5)

        ordered = await services.backlogs.apply_prioritization(backlog.id, PrioritizationMethod.WSJF)

        assert [story.id for story in ordered] == [small.id, big.id]
        saved = await services.backlogs.get_backlog(backlog.id)
        assert saved.prioritization_method is PrioritizationMethod.WSJF

    @pytest.mark.asyncio
    async def test_defaults_to_backlog_method(self, services, backlog, make_story):
        low = await make_story("Low", business_value=2)
        high = await make_story("High", business_value=9)

        ordered = await services.backlogs.apply_prioritization(backlog.id)

        assert [story.id for story in ordered] == [high.id, low.id]

    @pytest.mark.asyncio
    async def test_invalid_story_aborts_without_writing(self, services, backlog, make_story):
        good = await make_story("Good", business_value=9, priority=7)
        bad = await make_story("Bad", description="   ")

        with pytest.raises(ValidationError) as excinfo:
            await services.backlogs.apply_prioritization(backlog.id)

        assert excinfo.value.details == {"story_id": bad.id}
        assert "must have a description" in excinfo.value.message
        assert (await services.stories.get_story(good.id)).priority == 7
        assert (await services.backlogs.get_backlog(backlog.id)).total_business_value == 0

    @pytest.mark.asyncio
    async def test_zero_points_rejected(self, services, backlog, make_story):
        await make_story("Unsized", points=0)
        with pytest.raises(ValidationError) as excinfo:
            await services.backlogs.apply_prioritization(backlog.id)
        assert "positive story points" in excinfo.value.message

    @pytest.mark.asyncio
    async def test_empty_backlog(self, services, backlog):
        assert await services.backlogs.apply_prioritization(backlog.id) == []

    @pytest.mark.asyncio
    async def test_logs_outcome(self, services, backlog, make_story, caplog):
        await make_story("A", business_value=3)
        await make_story("B", business_value=5)

        with caplog.at_level(logging.INFO, logger="agileflow.services.backlog_service"):
            await services.backlogs.apply_prioritization(backlog.id)

        assert f"Prioritized 2 stories in backlog {backlog.id}" in caplog.messages


class TestBacklogQueries:
    @pytest.mark.asyncio
    async def test_reorder_stories(self, services, backlog, make_story):
        a = await make_story("A")
        b = await make_story("B")
        c = await make_story("C")

        await services.backlogs.reorder_stories(backlog.id, [c.id, a.id, b.id])

        top = await services.backlogs.get_top_priority_stories(backlog.id, limit=2)
        assert [story.id for story in top] == [c.id, a.id]

    @pytest.mark.asyncio
    async def test_reorder_rejects_foreign_and_repeated_ids(self, services, backlog, make_story):
        a = await make_story("A")
        with pytest.raises(ValidationError):
            await services.backlogs.reorder_stories(backlog.id, [a.id, a.id])
        with pytest.raises(ValidationError) as excinfo:
            await services.backlogs.reorder_stories(backlog.id, [a.id, 999])
        assert excinfo.value.details["story_ids"] == [999]

    @pytest.mark.asyncio
    async def test_ready_and_unassigned_stories(self, services, backlog, make_story, make_sprint):
        ready = await make_story("Ready", acceptance_criteria=["Works"])
        await make_story("No criteria")
        scheduled = await make_story("Scheduled", acceptance_criteria=["Works"])
        sprint = await make_sprint()
        await services.sprints.add_user_story(sprint.id, scheduled.id)

        assert [s.id for s in await services.backlogs.get_ready_stories(backlog.id)] == [ready.id]
        unassigned = await services.backlogs.get_unassigned_stories(backlog.id)
        assert scheduled.id not in [s.id for s in unassigned]
        assert len(unassigned) == 2

    @pytest.mark.asyncio
    async def test_business_value_and_category(self, services, backlog, make_story):
        must = await make_story("Must", business_value=8)
        await make_story("Unscored")

        assert await services.backlogs.calculate_total_business_value(backlog.id) == 8
        assert await services.backlogs.get_moscow_category(must.id) is MoSCoWCategory.MUST_HAVE


class TestMoveStoryToSprint:
    @pytest.mark.asyncio
    async def test_moves_valid_story(self, services, make_story, make_sprint):
        story = await make_story()
        sprint = await make_sprint()

        await services.backlogs.move_story_to_sprint(story.id, sprint.id)

        assert (await services.stories.get_story(story.id)).sprint_id == sprint.id

    @pytest.mark.asyncio
    async def test_story_without_description_rejected(self, services, make_story, make_sprint):
        story = await make_story(description=None)
        sprint = await make_sprint()

        with pytest.raises(ValidationError) as excinfo:
            await services.backlogs.move_story_to_sprint(story.id, sprint.id)
        assert excinfo.value.message.startswith("Cannot move to sprint")

    @pytest.mark.asyncio
    async def test_sprint_rules_still_apply(self, services, make_story, make_sprint):
        base = await make_story("Base")
        dependent = await make_story("Dependent")
        await services.stories.add_dependency(dependent.id, base.id)
        sprint = await make_sprint()

        with pytest.raises(InvalidStateError):
            await services.backlogs.move_story_to_sprint(dependent.id, sprint.id)
