from dataclasses import dataclass
from typing import Optional

from ..config import Settings, get_settings
from ..core.clock import Clock, SystemClock
from ..core.store import Stores
from .backlog_service import BacklogService
from .project_service import ProjectService
from .sprint_service import SprintService
from .story_service import StoryService
from .task_service import TaskService


@dataclass
class Services:
    projects: ProjectService
    stories: StoryService
    tasks: TaskService
    sprints: SprintService
    backlogs: BacklogService


def build_services(
    stores: Stores,
    clock: Optional[Clock] = None,
    settings: Optional[Settings] = None,
) -> Services:
    """Wire every service over one set of stores and one clock."""
    clock = clock or SystemClock()
    settings = settings or get_settings()
    sprints = SprintService(
        stores, clock, behind_schedule_threshold=settings.behind_schedule_threshold
    )
    return Services(
        projects=ProjectService(
            stores, default_prioritization_method=settings.default_prioritization_method
        ),
        stories=StoryService(
            stores, clock, reject_dependency_cycles=settings.reject_dependency_cycles
        ),
        tasks=TaskService(stores, clock),
        sprints=sprints,
        backlogs=BacklogService(stores, clock, sprint_service=sprints),
    )


__all__ = [
    "Services",
    "build_services",
    "BacklogService",
    "ProjectService",
    "SprintService",
    "StoryService",
    "TaskService",
]
