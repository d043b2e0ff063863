"""
Database models shipped with tenantscope.

- Tenant: registry table (tenant_model = Tenant, tenant_identifier = 'name')
"""

from tenantscope.models.base import Base, BaseModel
from tenantscope.models.tenant import Tenant

__all__ = [
    "Base",
    "BaseModel",
    "Tenant",
]


def create_all(engine):
    """
    Create tenantscope's tables.

    WARNING: This should only be used for testing/development.
    Use Alembic migrations for production.

    Args:
        engine: SQLAlchemy engine instance
    """
    Base.metadata.create_all(bind=engine)
