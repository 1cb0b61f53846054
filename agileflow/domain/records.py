"""Plain records consumed and produced by the workflow engine.

Relations between aggregates are held as identifiers only; resolving an id to
a record always goes through a store.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .status import PrioritizationMethod, SprintStatus, WorkItemStatus

# Type aliases
ProjectId = int
BacklogId = int
EpicId = int
StoryId = int
TaskId = int
SprintId = int
UserId = int
StoryPoints = int


class Record(BaseModel):
    model_config = ConfigDict(use_enum_values=False, from_attributes=True)

    id: Optional[int] = None

    @field_validator("*", mode="after")
    @classmethod
    def _datetimes_are_utc(cls, value: Any) -> Any:
        # SQLite hands back naive datetimes
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Project(Record):
    name: str
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ProductBacklog(Record):
    project_id: ProjectId
    name: str
    total_business_value: int = 0
    prioritization_method: PrioritizationMethod = PrioritizationMethod.MOSCOW


class Epic(Record):
    backlog_id: BacklogId
    title: str
    description: Optional[str] = None


class User(Record):
    username: str
    email: Optional[str] = None
    is_active: bool = True


class UserStory(Record):
    backlog_id: BacklogId
    epic_id: Optional[EpicId] = None
    sprint_id: Optional[SprintId] = None
    title: str
    description: Optional[str] = None
    acceptance_criteria: List[str] = Field(default_factory=list)
    story_points: StoryPoints = Field(default=0, ge=0)
    priority: int = 0
    business_value: Optional[int] = Field(default=None, ge=1, le=10)
    urgency: Optional[int] = Field(default=None, ge=1, le=10)
    time_criticality: Optional[int] = Field(default=None, ge=1, le=10)
    risk_reduction: Optional[int] = Field(default=None, ge=1, le=10)
    dependency_ids: List[StoryId] = Field(default_factory=list)
    status: WorkItemStatus = WorkItemStatus.TODO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_in_sprint(self) -> bool:
        return self.sprint_id is not None

    def has_description(self) -> bool:
        return bool(self.description and self.description.strip())


class Task(Record):
    story_id: StoryId
    sprint_id: Optional[SprintId] = None
    assignee_id: Optional[UserId] = None
    title: str
    description: Optional[str] = None
    estimated_hours: float = Field(default=0.0, ge=0)
    actual_hours: float = Field(default=0.0, ge=0)
    blocked: bool = False
    block_reason: Optional[str] = None
    blocked_at: Optional[datetime] = None
    blocked_by: Optional[UserId] = None
    completed_at: Optional[datetime] = None
    status: WorkItemStatus = WorkItemStatus.TODO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_assigned(self) -> bool:
        return self.assignee_id is not None


class SprintBacklog(Record):
    project_id: ProjectId
    sprint_number: int
    name: str
    start_date: date
    end_date: date
    goal: Optional[str] = None
    status: SprintStatus = SprintStatus.PLANNED
    capacity: Optional[StoryPoints] = Field(default=None, ge=0)
    velocity: Optional[StoryPoints] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days


__all__ = [
    "Record",
    "Project",
    "ProductBacklog",
    "Epic",
    "User",
    "UserStory",
    "Task",
    "SprintBacklog",
    "ProjectId",
    "BacklogId",
    "EpicId",
    "StoryId",
    "TaskId",
    "SprintId",
    "UserId",
    "StoryPoints",
]
