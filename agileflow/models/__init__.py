from .base import Base, BaseModel
from .backlog import UserStoryRow
from .project import EpicRow, ProductBacklogRow, ProjectRow
from .sprint import SprintRow
from .task import TaskRow
from .user import UserRow

__all__ = [
    "Base",
    "BaseModel",
    "ProjectRow",
    "ProductBacklogRow",
    "EpicRow",
    "UserStoryRow",
    "TaskRow",
    "SprintRow",
    "UserRow",
]
