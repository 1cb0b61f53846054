from sqlalchemy import Column, Date, Enum, ForeignKey, Integer, String, Text

from ..domain.status import PrioritizationMethod
from .base import BaseModel


def enum_column(enum_cls, default):
    """Store enum values (not member names) as plain strings."""
    return Column(
        Enum(enum_cls, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=default,
    )


class ProjectRow(BaseModel):
    __tablename__ = "projects"

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)


class ProductBacklogRow(BaseModel):
    __tablename__ = "product_backlogs"

    name = Column(String, nullable=False)
    total_business_value = Column(Integer, default=0)
    prioritization_method = enum_column(PrioritizationMethod, PrioritizationMethod.MOSCOW)

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)


class EpicRow(BaseModel):
    __tablename__ = "epics"

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    backlog_id = Column(Integer, ForeignKey("product_backlogs.id"), nullable=False, index=True)
