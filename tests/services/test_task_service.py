import pytest

from agileflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from agileflow.domain.status import WorkItemStatus


class TestTaskCreation:
    @pytest.mark.asyncio
    async def test_task_joins_story_sprint(self, services, make_story, make_sprint):
        story = await make_story()
        sprint = await make_sprint()
        await services.sprints.add_user_story(sprint.id, story.id)

        task = await services.tasks.create_task(story.id, "Write migration", estimated_hours=4)

        assert task.id is not None
        assert task.sprint_id == sprint.id
        assert task.status is WorkItemStatus.TODO

    @pytest.mark.asyncio
    async def test_unknown_story(self, services):
        with pytest.raises(NotFoundError):
            await services.tasks.create_task(404, "Orphan")

    @pytest.mark.asyncio
    async def test_negative_estimate(self, services, make_story):
        story = await make_story()
        with pytest.raises(ValidationError):
            await services.tasks.create_task(story.id, "Bad", estimated_hours=-1)


class TestTaskLifecycle:
    @pytest.mark.asyncio
    async def test_start_persists_task_and_story(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story, started=True)

        assert (await services.tasks.get_task(task.id)).status is WorkItemStatus.IN_PROGRESS
        assert (await services.stories.get_story(story.id)).status is WorkItemStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_start_blocked_by_dependency_saves_nothing(
        self, services, make_story, make_task, developer
    ):
        prerequisite = await make_story("Schema")
        story = await make_story("Screens")
        await services.stories.add_dependency(story.id, prerequisite.id)
        task = await make_task(story)
        await services.tasks.assign_task(task.id, developer.id)

        with pytest.raises(InvalidStateError) as excinfo:
            await services.tasks.start_task(task.id)

        assert excinfo.value.details["offending_stories"] == [prerequisite.id]
        assert (await services.tasks.get_task(task.id)).status is WorkItemStatus.TODO
        assert (await services.stories.get_story(story.id)).status is WorkItemStatus.TODO

    @pytest.mark.asyncio
    async def test_review_needs_logged_hours(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story, hours=8, started=True)

        with pytest.raises(ValidationError):
            await services.tasks.move_to_review(task.id)

        await services.tasks.log_hours(task.id, 1)
        task = await services.tasks.move_to_review(task.id)
        assert task.status is WorkItemStatus.IN_REVIEW

    @pytest.mark.asyncio
    async def test_completing_last_task_completes_story(self, services, make_story, make_task, clock):
        story = await make_story()
        first = await make_task(story, "Backend", started=True)
        second = await make_task(story, "Frontend", started=True)

        await services.tasks.complete_task(first.id)
        assert (await services.stories.get_story(story.id)).status is WorkItemStatus.IN_PROGRESS

        clock.advance(hours=3)
        second = await services.tasks.complete_task(second.id)

        assert second.completed_at == clock.now()
        assert (await services.stories.get_story(story.id)).status is WorkItemStatus.DONE

    @pytest.mark.asyncio
    async def test_block_and_unblock(self, services, make_story, make_task, developer):
        story = await make_story()
        task = await make_task(story, started=True)

        blocked = await services.tasks.block_task(task.id, "Waiting on API keys")
        assert blocked.blocked
        assert blocked.blocked_by == developer.id

        unblocked = await services.tasks.unblock_task(task.id)
        assert not unblocked.blocked
        assert unblocked.block_reason is None
        assert unblocked.status is WorkItemStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_move_backward_after_review(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story, started=True)
        await services.tasks.log_hours(task.id, 2)
        await services.tasks.move_to_review(task.id)

        task = await services.tasks.move_backward(task.id, "changes requested")
        assert task.status is WorkItemStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_negative_hours_leave_task_untouched(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story, started=True)
        await services.tasks.log_hours(task.id, 2)

        with pytest.raises(ValidationError):
            await services.tasks.log_hours(task.id, -5)
        assert (await services.tasks.get_task(task.id)).actual_hours == 2


class TestAssignment:
    @pytest.mark.asyncio
    async def test_inactive_user_cannot_take_tasks(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story)
        user = await services.projects.create_user("ghost")
        await services.projects.deactivate_user(user.id)

        with pytest.raises(ValidationError):
            await services.tasks.assign_task(task.id, user.id)

    @pytest.mark.asyncio
    async def test_reassign_and_unassign(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story, started=True)
        other = await services.projects.create_user("other")

        task = await services.tasks.reassign_task(task.id, other.id)
        assert task.assignee_id == other.id

        task = await services.tasks.unassign_task(task.id)
        assert task.assignee_id is None


class TestAdministration:
    @pytest.mark.asyncio
    async def test_update_status_sets_completion_date(self, services, make_story, make_task, clock):
        story = await make_story()
        task = await make_task(story)
        task = await services.tasks.update_status(task.id, WorkItemStatus.DONE, "imported")
        assert task.completed_at == clock.now()

    @pytest.mark.asyncio
    async def test_done_task_cannot_be_deleted(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story, started=True)
        await services.tasks.complete_task(task.id)

        with pytest.raises(InvalidStateError):
            await services.tasks.delete_task(task.id)

    @pytest.mark.asyncio
    async def test_delete_open_task(self, services, make_story, make_task):
        story = await make_story()
        task = await make_task(story)
        await services.tasks.delete_task(task.id)
        with pytest.raises(NotFoundError):
            await services.tasks.get_task(task.id)

    @pytest.mark.asyncio
    async def test_story_task_metrics(self, services, make_story, make_task):
        story = await make_story()
        done = await make_task(story, "Done", hours=4, started=True)
        await services.tasks.log_hours(done.id, 5)
        await services.tasks.complete_task(done.id)
        await make_task(story, "Open", hours=6)

        metrics = await services.tasks.get_story_task_metrics(story.id)

        assert metrics.total_tasks == 2
        assert metrics.completed_tasks == 1
        assert metrics.total_estimated_hours == 10
        assert metrics.total_actual_hours == 5
        assert metrics.progress_percentage == 50.0

    @pytest.mark.asyncio
    async def test_sprint_task_filters(self, services, make_story, make_sprint, make_task):
        story = await make_story()
        sprint = await make_sprint()
        await services.sprints.add_user_story(sprint.id, story.id)
        assigned = await make_task(story, "Assigned", hours=1, started=True)
        await services.tasks.log_hours(assigned.id, 3)
        unassigned = await make_task(story, "Loose")

        assert [t.id for t in await services.tasks.get_unassigned_tasks(sprint.id)] == [unassigned.id]
        assert [t.id for t in await services.tasks.get_over_estimated_tasks(sprint.id)] == [assigned.id]
