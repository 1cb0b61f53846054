from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

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
from ..models import (
    BaseModel,
    EpicRow,
    ProductBacklogRow,
    ProjectRow,
    SprintRow,
    TaskRow,
    UserRow,
    UserStoryRow,
)
from ..utils.logging import get_logger

R = TypeVar("R", bound=Record)


class SqlAlchemyStore(Generic[R]):
    """Store over one ORM table.

    Writes are flushed, never committed: the session owner decides where the
    transaction ends.
    """

    def __init__(
        self,
        session: AsyncSession,
        row_cls: Type[BaseModel],
        record_cls: Type[R],
        entity: Optional[str] = None,
    ) -> None:
        self.session = session
        self.row_cls = row_cls
        self.record_cls = record_cls
        self.entity = entity or record_cls.__name__
        self._logger = get_logger(__name__)

    def _to_record(self, row: BaseModel) -> R:
        return self.record_cls.model_validate(row.to_dict())

    def _columns(self, record: R) -> dict:
        names = {column.name for column in self.row_cls.__table__.columns}
        return {
            key: value
            for key, value in record.model_dump(exclude={"id"}).items()
            if key in names
        }

    async def _load(self, record_id: int) -> BaseModel:
        row = await self.session.get(self.row_cls, record_id)
        if row is None:
            raise NotFoundError(self.entity, record_id)
        return row

    async def get(self, record_id: int) -> R:
        return self._to_record(await self._load(record_id))

    async def find_by(self, **equals: Any) -> List[R]:
        query = select(self.row_cls).filter_by(**equals).order_by(self.row_cls.id)
        result = await self.session.execute(query)
        return [self._to_record(row) for row in result.scalars().all()]

    async def count_by(self, **equals: Any) -> int:
        query = select(func.count()).select_from(self.row_cls).filter_by(**equals)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def save(self, record: R) -> R:
        values = self._columns(record)
        if record.id is None:
            if values.get("created_at") is None:
                values.pop("created_at", None)
            row = self.row_cls(**values)
            self.session.add(row)
        else:
            row = await self._load(record.id)
            for key, value in values.items():
                setattr(row, key, value)

        await self.session.flush()
        record.id = row.id
        self._logger.debug("Saved %s %s", self.entity, record.id)
        return record

    async def delete(self, record: R) -> None:
        row = await self._load(record.id)
        await self.session.delete(row)
        await self.session.flush()


def build_sql_stores(session: AsyncSession) -> Stores:
    return Stores(
        projects=SqlAlchemyStore(session, ProjectRow, Project),
        backlogs=SqlAlchemyStore(session, ProductBacklogRow, ProductBacklog, "Product backlog"),
        epics=SqlAlchemyStore(session, EpicRow, Epic),
        users=SqlAlchemyStore(session, UserRow, User),
        stories=SqlAlchemyStore(session, UserStoryRow, UserStory, "User story"),
        tasks=SqlAlchemyStore(session, TaskRow, Task),
        sprints=SqlAlchemyStore(session, SprintRow, SprintBacklog, "Sprint"),
    )
