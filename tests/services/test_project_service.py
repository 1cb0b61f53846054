from datetime import date

import pytest

from agileflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from agileflow.domain.status import PrioritizationMethod, WorkItemStatus


class TestProjects:
    @pytest.mark.asyncio
    async def test_project_gets_a_backlog(self, services, project):
        backlog = await services.projects.get_project_backlog(project.id)
        assert backlog.name == "Apollo Backlog"
        assert backlog.prioritization_method is PrioritizationMethod.MOSCOW

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, services, project):
        with pytest.raises(ValidationError):
            await services.projects.create_project("Apollo")

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, services):
        with pytest.raises(ValidationError):
            await services.projects.create_project(
                "Gemini", start_date=date(2024, 3, 1), end_date=date(2024, 2, 1)
            )

    @pytest.mark.asyncio
    async def test_list_projects(self, services, project):
        await services.projects.create_project("Gemini")
        assert [p.name for p in await services.projects.list_projects()] == ["Apollo", "Gemini"]

    @pytest.mark.asyncio
    async def test_missing_project(self, services):
        with pytest.raises(NotFoundError) as excinfo:
            await services.projects.get_project(7)
        assert excinfo.value.message == "Project 7 not found"


class TestUsers:
    @pytest.mark.asyncio
    async def test_username_is_unique(self, services, developer):
        with pytest.raises(ValidationError):
            await services.projects.create_user("dev")

    @pytest.mark.asyncio
    async def test_inactive_user_cannot_take_tasks(self, services, developer, make_story, make_task):
        task = await make_task(await make_story())
        await services.projects.deactivate_user(developer.id)

        with pytest.raises(ValidationError):
            await services.tasks.assign_task(task.id, developer.id)

    @pytest.mark.asyncio
    async def test_blank_epic_title_rejected(self, services, backlog):
        with pytest.raises(ValidationError):
            await services.projects.create_epic(backlog.id, " ")

    @pytest.mark.asyncio
    async def test_user_with_task_in_progress_cannot_be_deactivated(
        self, services, developer, make_story, make_task
    ):
        task = await make_task(await make_story(), started=True)

        with pytest.raises(InvalidStateError) as excinfo:
            await services.projects.deactivate_user(developer.id)

        assert excinfo.value.details["tasks_in_progress"] == [task.id]
        assert (await services.projects.get_user(developer.id)).is_active

    @pytest.mark.asyncio
    async def test_user_with_finished_work_can_be_deactivated(
        self, services, developer, make_story, make_task
    ):
        task = await make_task(await make_story(), started=True)
        await services.tasks.log_hours(task.id, 1)
        await services.tasks.complete_task(task.id)

        user = await services.projects.deactivate_user(developer.id)

        assert not user.is_active


class TestWorkload:
    @pytest.mark.asyncio
    async def test_user_statistics(self, services, developer, make_story, make_task):
        story = await make_story()
        finished = await make_task(story, "Finished", started=True)
        await make_task(story, "Running", started=True)
        waiting = await make_task(story, "Waiting")
        await services.tasks.assign_task(waiting.id, developer.id)
        await make_task(story, "Nobody's")
        await services.tasks.log_hours(finished.id, 2)
        await services.tasks.complete_task(finished.id)

        stats = await services.projects.get_user_statistics(developer.id)

        assert (stats.todo_tasks, stats.in_progress_tasks, stats.done_tasks) == (1, 1, 1)
        assert stats.total_tasks == 3
        assert stats.completion_rate == pytest.approx(100 / 3)
        assert await services.projects.count_user_active_tasks(developer.id) == 2

    @pytest.mark.asyncio
    async def test_statistics_without_tasks(self, services, developer):
        stats = await services.projects.get_user_statistics(developer.id)
        assert stats.total_tasks == 0
        assert stats.completion_rate == 0.0

    @pytest.mark.asyncio
    async def test_availability(self, services, developer, make_story, make_task):
        idle = await services.projects.create_user("idle")
        retired = await services.projects.create_user("retired")
        await services.projects.deactivate_user(retired.id)
        story = await make_story()
        for title in ("One", "Two"):
            await make_task(story, title, started=True)

        assert not await services.projects.is_user_available(developer.id, max_active_tasks=2)
        assert await services.projects.is_user_available(developer.id, max_active_tasks=3)
        assert not await services.projects.is_user_available(retired.id)

        available = await services.projects.get_available_users(max_active_tasks=2)
        assert [user.id for user in available] == [idle.id]

        loaded = await services.projects.get_most_loaded_users(limit=1)
        assert [(w.user_id, w.active_tasks) for w in loaded] == [(developer.id, 2)]

    @pytest.mark.asyncio
    async def test_user_tasks(self, services, developer, make_story, make_task):
        story = await make_story()
        running = await make_task(story, "Running", started=True)
        await make_task(story, "Unassigned")

        assert [t.id for t in await services.tasks.get_user_tasks(developer.id)] == [running.id]
        assert await services.tasks.get_user_tasks(developer.id, WorkItemStatus.DONE) == []

        with pytest.raises(NotFoundError):
            await services.tasks.get_user_tasks(404)
