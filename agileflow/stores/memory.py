from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from ..core.exceptions import NotFoundError
from ..core.store import Stores
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


class InMemoryStore(Generic[R]):
    """Dict-backed store.

    Records are copied on the way in and on the way out, so a caller mutating
    a loaded record sees no effect until it saves it.
    """

    def __init__(self, record_cls: Type[R], entity: Optional[str] = None) -> None:
        self.record_cls = record_cls
        self.entity = entity or record_cls.__name__
        self._rows: Dict[int, R] = {}
        self._next_id = 1

    async def get(self, record_id: int) -> R:
        record = self._rows.get(record_id)
        if record is None:
            raise NotFoundError(self.entity, record_id)
        return record.model_copy(deep=True)

    async def find_by(self, **equals: Any) -> List[R]:
        return [
            record.model_copy(deep=True)
            for _, record in sorted(self._rows.items())
            if all(getattr(record, field) == value for field, value in equals.items())
        ]

    async def count_by(self, **equals: Any) -> int:
        return len(await self.find_by(**equals))

    async def save(self, record: R) -> R:
        if record.id is None:
            record.id = self._next_id
            self._next_id += 1
        elif record.id not in self._rows:
            raise NotFoundError(self.entity, record.id)
        self._rows[record.id] = record.model_copy(deep=True)
        return record

    async def delete(self, record: R) -> None:
        if self._rows.pop(record.id, None) is None:
            raise NotFoundError(self.entity, record.id)

    def __len__(self) -> int:
        return len(self._rows)


def build_memory_stores() -> Stores:
    return Stores(
        projects=InMemoryStore(Project),
        backlogs=InMemoryStore(ProductBacklog, "Product backlog"),
        epics=InMemoryStore(Epic),
        users=InMemoryStore(User),
        stories=InMemoryStore(UserStory, "User story"),
        tasks=InMemoryStore(Task),
        sprints=InMemoryStore(SprintBacklog, "Sprint"),
    )
