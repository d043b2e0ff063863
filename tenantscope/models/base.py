"""
Base model mixin with common fields for tenantscope's own tables.

Provides:
- UUID primary keys (generic Uuid type, works on PostgreSQL and SQLite)
- Automatic timestamp management (created_at, updated_at)
- Soft delete support (deleted_at), honoured by registry.model_provider
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Uuid, event

from tenantscope.database import Base


class BaseModel:
    """
    Common columns for every model.

    Usage:
        class Tenant(Base, BaseModel):
            __tablename__ = 'tenants'
            name = Column(String(255))
    """

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
        nullable=False,
        comment="Unique identifier (UUID)"
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="Timestamp when record was created"
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        comment="Timestamp when record was last updated"
    )

    deleted_at = Column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        comment="Timestamp when record was soft-deleted (NULL if active)"
    )

    def soft_delete(self) -> None:
        """Mark as deleted; the caller commits. The row leaves the registry."""
        self.deleted_at = datetime.now(timezone.utc)


@event.listens_for(BaseModel, 'before_insert', propagate=True)
def receive_before_insert(mapper, connection, target):
    """Set created_at and updated_at on insert."""
    now = datetime.now(timezone.utc)
    target.created_at = now
    target.updated_at = now


@event.listens_for(BaseModel, 'before_update', propagate=True)
def receive_before_update(mapper, connection, target):
    """Update updated_at on update."""
    target.updated_at = datetime.now(timezone.utc)
