from sqlalchemy import Boolean, Column, String

from .base import BaseModel


class UserRow(BaseModel):
    __tablename__ = "users"

    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
