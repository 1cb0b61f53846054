"""Persistence contract used by the services.

A store owns one aggregate type. Services never reach past it, so the same
workflow code runs against the in-memory store and the SQLAlchemy store.
"""
from dataclasses import dataclass
from typing import Any, Generic, List, Protocol, TypeVar

from ..domain.records import (
    Epic,
    ProductBacklog,
    Project,
    Record,
    SprintBacklog,
    Task,
    User,
    UserStory,
)

R = TypeVar("R", bound=Record)


class Store(Protocol, Generic[R]):
    async def get(self, record_id: int) -> R:
        """Return the record or raise ``NotFoundError``."""
        ...

    async def find_by(self, **equals: Any) -> List[R]:
        """Records whose fields equal every keyword given, ordered by id."""
        ...

    async def count_by(self, **equals: Any) -> int: ...

    async def save(self, record: R) -> R:
        """Insert or update; assigns ``record.id`` on insert."""
        ...

    async def delete(self, record: R) -> None: ...


@dataclass
class Stores:
    projects: Store[Project]
    backlogs: Store[ProductBacklog]
    epics: Store[Epic]
    users: Store[User]
    stories: Store[UserStory]
    tasks: Store[Task]
    sprints: Store[SprintBacklog]
