"""
Profile and UserRole models
"""
from sqlalchemy import Column, String, Boolean, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP
import uuid
from inventrack.database import Base

ROLE_ADMIN = "admin"
ROLE_USER = "user"
VALID_ROLES = (ROLE_ADMIN, ROLE_USER)


class Profile(Base):
    """
    Application user.

    A profile belongs to one organization at a time. Only approved profiles
    with an organization may use inventory routes.
    """
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255))
    employee_id = Column(String(50))
    organization_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    password_hash = Column(String(255), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    organization = relationship("Organization", back_populates="profiles")
    roles = relationship("UserRole", back_populates="profile", cascade="all, delete-orphan")

    @property
    def role_names(self):
        return sorted(r.role for r in self.roles)

    @property
    def is_admin(self) -> bool:
        return any(r.role == ROLE_ADMIN for r in self.roles)


class UserRole(Base):
    """Role grant (admin | user) for a profile"""
    __tablename__ = "user_roles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    profile = relationship("Profile", back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        CheckConstraint("role IN ('admin', 'user')", name="valid_role"),
    )
