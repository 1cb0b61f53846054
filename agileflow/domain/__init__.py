from .records import (
    Epic,
    ProductBacklog,
    Project,
    SprintBacklog,
    Task,
    User,
    UserStory,
)
from .status import (
    MoSCoWCategory,
    PrioritizationMethod,
    SprintStatus,
    WorkItemStatus,
)

__all__ = [
    "Epic",
    "ProductBacklog",
    "Project",
    "SprintBacklog",
    "Task",
    "User",
    "UserStory",
    "MoSCoWCategory",
    "PrioritizationMethod",
    "SprintStatus",
    "WorkItemStatus",
]
