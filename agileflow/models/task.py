from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text

from ..domain.status import WorkItemStatus
from .base import BaseModel
from .project import enum_column


class TaskRow(BaseModel):
    __tablename__ = "tasks"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = enum_column(WorkItemStatus, WorkItemStatus.TODO)
    estimated_hours = Column(Float, default=0.0)
    actual_hours = Column(Float, default=0.0)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Block info
    blocked = Column(Boolean, default=False)
    block_reason = Column(Text, nullable=True)
    blocked_at = Column(DateTime(timezone=True), nullable=True)
    blocked_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    story_id = Column(Integer, ForeignKey("user_stories.id"), nullable=False, index=True)
    sprint_id = Column(Integer, ForeignKey("sprint_backlogs.id"), nullable=True, index=True)
    assignee_id = Column(Integer, ForeignKey("users.id"), nullable=True)
