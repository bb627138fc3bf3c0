# models.py
"""
Database models for FabricAI.

This file defines all SQLAlchemy models used by the application,
providing a single source of truth for the store schema.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Boolean, DateTime, Text, Integer, Float, ForeignKey, Uuid
)
from sqlalchemy.orm import relationship

from fabricai.db import Base

ROLE_ADMIN = "admin"
ROLE_SELLER = "venditore"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------------
# Identity
# -----------------------
class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(320), unique=True, nullable=False, index=True)
    hashed_password = Column(String(512), nullable=False)
    role = Column(String(32), nullable=False, default=ROLE_SELLER)
    full_name = Column(String(255), nullable=True)
    plan = Column(String(32), nullable=False, default="free")
    generations_used = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


# -----------------------
# Catalog
# -----------------------
class Fabric(Base):
    __tablename__ = "fabrics"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    preview_image_url = Column(String(1024), nullable=True)
    preview_storage_key = Column(String(512), nullable=True)
    texture_prompt = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    colors = relationship("Color", back_populates="fabric", cascade="all, delete-orphan", passive_deletes=True)


class Color(Base):
    __tablename__ = "colors"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    fabric_id = Column(Uuid(as_uuid=True), ForeignKey("fabrics.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    hex_value = Column(String(7), nullable=False)
    preview_image_url = Column(String(1024), nullable=False)
    preview_storage_key = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    fabric = relationship("Fabric", back_populates="colors")


# -----------------------
# Gallery
# -----------------------
class Folder(Base):
    __tablename__ = "folders"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    created_by = Column(String(320), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class SavedImage(Base):
    __tablename__ = "saved_images"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    folder_id = Column(Uuid(as_uuid=True), ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    image_url = Column(String(1024), nullable=False)
    storage_key = Column(String(512), nullable=True)
    created_by = Column(String(320), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


# -----------------------
# Usage
# -----------------------
class GenerationLog(Base):
    __tablename__ = "generation_logs"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    template_mode = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)


class UsageLimits(Base):
    """Single-row table holding the configurable generation caps."""
    __tablename__ = "usage_limits"
    id = Column(Integer, primary_key=True, default=1)
    daily_limit = Column(Integer, nullable=True)
    weekly_limit = Column(Integer, nullable=True)
    cost_per_image = Column(Float, nullable=False, default=0.003)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
