"""
Tenant model: one row per tenant, usable as the registry's source.

    config.tenant_model = Tenant
    config.tenant_identifier = 'name'

Soft-deleted tenants drop out of the registry immediately.
"""

from sqlalchemy import Column, String

from tenantscope.models.base import Base, BaseModel


class Tenant(Base, BaseModel):
    """A registered tenant, identified by its unique name."""

    __tablename__ = "tenants"

    name = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Tenant identifier (subdomain, header value, schema suffix)"
    )

    display_name = Column(
        String(255),
        nullable=True,
        comment="Human readable name"
    )
