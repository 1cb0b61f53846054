from sqlalchemy import Column, ForeignKey, Integer, JSON, String, Text

from ..domain.status import WorkItemStatus
from .base import BaseModel
from .project import enum_column


class UserStoryRow(BaseModel):
    __tablename__ = "user_stories"

    # Core fields
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    acceptance_criteria = Column(JSON, default=list)
    status = enum_column(WorkItemStatus, WorkItemStatus.TODO)
    story_points = Column(Integer, default=0)
    priority = Column(Integer, default=0)

    # Prioritization inputs, 1..10 or unset
    business_value = Column(Integer, nullable=True)
    urgency = Column(Integer, nullable=True)
    time_criticality = Column(Integer, nullable=True)
    risk_reduction = Column(Integer, nullable=True)

    # Ids of the stories this one depends on
    dependency_ids = Column(JSON, default=list)

    backlog_id = Column(Integer, ForeignKey("product_backlogs.id"), nullable=False, index=True)
    epic_id = Column(Integer, ForeignKey("epics.id"), nullable=True)
    sprint_id = Column(Integer, ForeignKey("sprint_backlogs.id"), nullable=True, index=True)
