"""
User model. Authentication lives upstream; only identity and role are kept.
"""

from sqlalchemy import Boolean, Column, Enum, Integer, String

from eventhub.db.base import Base, TimestampMixin
from eventhub.models.enums import Role


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(Enum(Role, native_enum=False, length=20), nullable=False, default=Role.CLIENT)
    is_active = Column(Boolean, default=True, nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
