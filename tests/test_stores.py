from datetime import date, datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from agileflow.core.exceptions import NotFoundError
from agileflow.domain.records import Project, ProductBacklog, SprintBacklog, UserStory
from agileflow.domain.status import SprintStatus, WorkItemStatus
from agileflow.models import Base
from agileflow.services import build_services
from agileflow.stores import InMemoryStore, build_sql_stores


@pytest_asyncio.fixture
async def session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def sql_stores(session):
    return build_sql_stores(session)


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_assigns_ids(self):
        store = InMemoryStore(Project)
        first = await store.save(Project(name="Apollo"))
        second = await store.save(Project(name="Gemini"))
        assert (first.id, second.id) == (1, 2)
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_loaded_records_are_copies(self):
        store = InMemoryStore(UserStory, "User story")
        story = await store.save(UserStory(backlog_id=1, title="Login"))

        loaded = await store.get(story.id)
        loaded.dependency_ids.append(9)
        story.title = "Changed"

        fresh = await store.get(story.id)
        assert fresh.dependency_ids == []
        assert fresh.title == "Login"

    @pytest.mark.asyncio
    async def test_missing_records(self):
        store = InMemoryStore(UserStory, "User story")
        with pytest.raises(NotFoundError) as excinfo:
            await store.get(3)
        assert excinfo.value.message == "User story 3 not found"
        with pytest.raises(NotFoundError):
            await store.save(UserStory(id=3, backlog_id=1, title="Ghost"))

    @pytest.mark.asyncio
    async def test_find_and_delete(self):
        store = InMemoryStore(UserStory)
        a = await store.save(UserStory(backlog_id=1, title="A", sprint_id=4))
        await store.save(UserStory(backlog_id=1, title="B"))

        assert [s.title for s in await store.find_by(sprint_id=None)] == ["B"]
        assert await store.count_by(backlog_id=1) == 2

        await store.delete(a)
        assert await store.count_by(backlog_id=1) == 1


class TestSqlAlchemyStore:
    @pytest.mark.asyncio
    async def test_round_trip(self, sql_stores):
        project = await sql_stores.projects.save(Project(name="Apollo"))
        backlog = await sql_stores.backlogs.save(ProductBacklog(project_id=project.id, name="Apollo Backlog"))
        story = await sql_stores.stories.save(
            UserStory(
                backlog_id=backlog.id,
                title="Login",
                story_points=5,
                acceptance_criteria=["Valid password logs in"],
                business_value=7,
                status=WorkItemStatus.IN_REVIEW,
                updated_at=datetime(2024, 1, 2, 10, 30),
            )
        )

        loaded = await sql_stores.stories.get(story.id)

        assert loaded.status is WorkItemStatus.IN_REVIEW
        assert loaded.acceptance_criteria == ["Valid password logs in"]
        assert loaded.story_points == 5
        assert loaded.updated_at.replace(tzinfo=None) == datetime(2024, 1, 2, 10, 30)
        assert loaded.created_at is not None

    @pytest.mark.asyncio
    async def test_update_and_filters(self, sql_stores):
        project = await sql_stores.projects.save(Project(name="Apollo"))
        sprint = await sql_stores.sprints.save(
            SprintBacklog(
                project_id=project.id,
                sprint_number=1,
                name="Sprint 1",
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 15),
            )
        )

        sprint.status = SprintStatus.ACTIVE
        await sql_stores.sprints.save(sprint)

        active = await sql_stores.sprints.find_by(project_id=project.id, status=SprintStatus.ACTIVE)
        assert [s.id for s in active] == [sprint.id]
        assert active[0].start_date == date(2024, 1, 1)
        assert await sql_stores.sprints.count_by(status=SprintStatus.PLANNED) == 0

    @pytest.mark.asyncio
    async def test_dependency_list_updates(self, sql_stores):
        project = await sql_stores.projects.save(Project(name="Apollo"))
        backlog = await sql_stores.backlogs.save(ProductBacklog(project_id=project.id, name="B"))
        a = await sql_stores.stories.save(UserStory(backlog_id=backlog.id, title="A"))
        b = await sql_stores.stories.save(UserStory(backlog_id=backlog.id, title="B"))

        b.dependency_ids.append(a.id)
        await sql_stores.stories.save(b)
        assert (await sql_stores.stories.get(b.id)).dependency_ids == [a.id]

        assert [s.id for s in await sql_stores.stories.find_by(sprint_id=None)] == [a.id, b.id]

    @pytest.mark.asyncio
    async def test_delete_and_missing(self, sql_stores):
        project = await sql_stores.projects.save(Project(name="Apollo"))
        await sql_stores.projects.delete(project)

        with pytest.raises(NotFoundError) as excinfo:
            await sql_stores.projects.get(project.id)
        assert excinfo.value.entity == "Project"

    @pytest.mark.asyncio
    async def test_sprint_scenario(self, sql_stores, clock, settings):
        services = build_services(sql_stores, clock, settings)
        project = await services.projects.create_project("Apollo")
        backlog = await services.projects.get_project_backlog(project.id)
        developer = await services.projects.create_user("dev")
        sprint = await services.sprints.create_sprint(project.id, date(2024, 1, 1), date(2024, 1, 15))
        story = await services.stories.create_story(backlog.id, "Login", "As a user I log in", 5)
        await services.sprints.add_user_story(sprint.id, story.id)
        await services.sprints.start_sprint(sprint.id)

        task = await services.tasks.create_task(story.id, "Form", estimated_hours=4)
        await services.tasks.assign_task(task.id, developer.id)
        await services.tasks.start_task(task.id)
        await services.tasks.log_hours(task.id, 3.5)
        await services.tasks.complete_task(task.id)

        assert (await services.stories.get_story(story.id)).status is WorkItemStatus.DONE
        completed = await services.sprints.complete_sprint(sprint.id)
        assert completed.velocity == 5
        assert (await services.tasks.get_task(task.id)).sprint_id == sprint.id
