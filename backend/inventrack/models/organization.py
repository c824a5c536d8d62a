"""
Organization (tenant) model
"""
from sqlalchemy import Column, String, Text, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP
import uuid
from inventrack.database import Base


class Organization(Base):
    """
    Customer boundary.

    Inventory data of an organization lives in its own set of tables named
    ``<table_prefix>_<base>``; an empty prefix means the unprefixed base tables.
    Users whose email ends with ``email_domain`` are provisioned into it on
    first registration.
    """
    __tablename__ = "organizations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False, unique=True)
    description = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    table_prefix = Column(String(50), nullable=False, default="")
    email_domain = Column(String(255), nullable=True, unique=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    profiles = relationship("Profile", back_populates="organization")
