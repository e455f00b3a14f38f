import uuid

from sqlalchemy import Column, String, DateTime, JSON, Boolean, Uuid
from sqlalchemy.orm import relationship

from coopflow.db.base import Base, utcnow


class Role(Base):
    """A named role with its ``RESOURCE:ACTION`` permission grants."""

    __tablename__ = "roles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False, unique=True)
    description = Column(String(255), nullable=True)
    permissions = Column(JSON, nullable=False, default=list)
    is_system = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    users = relationship("User", back_populates="role")

    def __repr__(self) -> str:
        return f"<Role {self.name}>"
