"""
Tenant registry: the authoritative list of valid tenant ids.

The provider is either a static sequence or a zero-argument callable. A
callable is evaluated on every call, never cached, so rows added to a
tenants table (or items appended to a list) become valid immediately.
If the provider raises, the exception propagates as-is; stale data is
never served in its place.

Tenant ids are compared byte-exactly: no trimming, no case folding.
"""

import logging
from typing import Any, Callable, List, Optional, Sequence, Union

from tenantscope.exceptions import TenantNotFoundError

logger = logging.getLogger(__name__)

Provider = Union[Sequence[str], Callable[[], Sequence[str]]]


class TenantRegistry:
    """Membership checks against a static or dynamic tenant provider."""

    def __init__(self, provider: Provider = ()):
        self.provider = provider

    def all_tenants(self) -> List[str]:
        """
        Evaluate the provider and return its tenants in provider order.

        Returns:
            List of tenant ids (a fresh list on every call)
        """
        provider = self.provider
        if callable(provider):
            return list(provider())
        return list(provider)

    def exists(self, tenant: Optional[str]) -> bool:
        """Check exact membership; None and "" are never members."""
        if tenant is None or tenant == "":
            return False
        return tenant in self.all_tenants()

    def validate(self, tenant: Optional[str]) -> None:
        """
        Ensure the tenant is registered.

        Raises:
            TenantNotFoundError: If the tenant is not a registry member
        """
        if not self.exists(tenant):
            logger.debug(f"Tenant validation failed: {tenant!r}", extra={'tenant': tenant})
            raise TenantNotFoundError(tenant)


def model_provider(
    model: type,
    identifier: str = 'id',
    session_factory: Callable[[], Any] = None
) -> Callable[[], List[str]]:
    """
    Build a provider that reads tenant ids from a SQLAlchemy model.

    Every call opens a session, selects the identifier column and closes
    the session again. Soft-deleted rows (deleted_at set) are skipped when
    the model has that column. Values are converted to str.

    Args:
        model: Mapped model class backing the registry (e.g. Tenant)
        identifier: Column holding the tenant id (default: 'id')
        session_factory: Callable returning a Session
            (default: the DatabaseManager session factory)

    Returns:
        Zero-argument callable suitable for Configurator.tenant_names

    Example:
        config.tenant_names = model_provider(Organization, 'slug')
    """
    column = getattr(model, identifier)

    def provider() -> List[str]:
        if session_factory is None:
            from tenantscope.database import db_manager
            session = db_manager.get_session()
        else:
            session = session_factory()

        try:
            query = session.query(column)
            if hasattr(model, 'deleted_at'):
                query = query.filter(model.deleted_at.is_(None))
            return [str(value) for (value,) in query.order_by(column).all()]
        finally:
            session.close()

    provider.__name__ = f"{model.__name__}_{identifier}_provider"
    return provider
