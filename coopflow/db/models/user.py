import uuid

from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from coopflow.db.base import Base, utcnow


class User(Base):
    """Staff or member account. Each user holds exactly one role."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id = Column(Uuid, ForeignKey("roles.id"), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    member_id = Column(String(64), nullable=True, index=True)  # set for cooperative members
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    role = relationship("Role", back_populates="users")

    def __repr__(self) -> str:
        return f"<User {self.email}>"
