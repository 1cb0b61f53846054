"""Shared pytest fixtures for agileflow tests."""
from datetime import date, datetime, timezone

import pytest
import pytest_asyncio

from agileflow.config import Settings
from agileflow.core.clock import FixedClock
from agileflow.services import build_services
from agileflow.stores.memory import build_memory_stores

SPRINT_START = date(2024, 1, 1)
SPRINT_END = date(2024, 1, 15)


@pytest.fixture
def clock():
    # Monday morning
    return FixedClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def stores():
    return build_memory_stores()


@pytest.fixture
def services(stores, clock, settings):
    return build_services(stores, clock, settings)


@pytest_asyncio.fixture
async def project(services):
    return await services.projects.create_project("Apollo", "Moon landing")


@pytest_asyncio.fixture
async def backlog(services, project):
    return await services.projects.get_project_backlog(project.id)


@pytest_asyncio.fixture
async def developer(services):
    return await services.projects.create_user("dev", "dev@example.com")


@pytest.fixture
def make_story(services, backlog):
    """Factory for sprint-worthy stories in the project backlog."""

    async def _make(title="Story", points=3, description="As a user I want something", **attributes):
        return await services.stories.create_story(
            backlog.id,
            title,
            description=description,
            story_points=points,
            **attributes,
        )

    return _make


@pytest.fixture
def make_sprint(services, project):
    async def _make(capacity=None, start=SPRINT_START, end=SPRINT_END, **kwargs):
        return await services.sprints.create_sprint(
            project.id, start, end, capacity=capacity, **kwargs
        )

    return _make


@pytest.fixture
def make_task(services, developer):
    """Factory for tasks; ``started`` assigns the developer and starts the task."""

    async def _make(story, title="Task", hours=8.0, started=False):
        task = await services.tasks.create_task(story.id, title, estimated_hours=hours)
        if started:
            await services.tasks.assign_task(task.id, developer.id)
            task = await services.tasks.start_task(task.id)
        return task

    return _make
