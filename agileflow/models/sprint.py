from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from ..domain.status import SprintStatus
from .base import BaseModel
from .project import enum_column


class SprintRow(BaseModel):
    __tablename__ = "sprint_backlogs"
    __table_args__ = (
        UniqueConstraint("project_id", "sprint_number", name="uq_sprint_number_per_project"),
    )

    sprint_number = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    goal = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = enum_column(SprintStatus, SprintStatus.PLANNED)

    # Sprint metrics
    capacity = Column(Integer, nullable=True)  # story points
    velocity = Column(Integer, nullable=True)  # frozen on completion
    completed_at = Column(DateTime(timezone=True), nullable=True)

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
