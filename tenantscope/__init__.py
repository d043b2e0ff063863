"""
tenantscope: multi-tenancy for SQLAlchemy and Flask applications.

Scopes data access to a "current tenant" for the lifetime of a request or
background job, with two isolation strategies:

- column: shared tables filtered on a tenant discriminator column
- schema: one PostgreSQL schema per tenant, selected via search_path

Usage:
    import tenantscope
    from tenantscope import Configurator, tenant

    tenantscope.configure(Configurator(
        strategy="column",
        tenant_names=["acme", "globex"],
    ))

    with tenant.scoped("acme"):
        ...
"""

from typing import Union

from tenantscope.audit import AuditLogger
from tenantscope.boundary import RequestBoundary, TenantWSGIMiddleware
from tenantscope.config import Configurator, TenantConfig
from tenantscope.elevators import RequestInfo, resolve_tenant
from tenantscope.exceptions import (
    ConfigurationError,
    SchemaNotFoundError,
    TenantContextMissingError,
    TenantError,
    TenantImmutableError,
    TenantMismatchError,
    TenantNotFoundError,
)
from tenantscope.jobs import Job, TenantJobMixin
from tenantscope.registry import TenantRegistry, model_provider
from tenantscope.scoping import TenantScopedMixin, install_tenant_scoping, unscoped
from tenantscope.tenant_context import (
    TenantContext,
    TenantContextFilter,
    current_tenant_or_raise,
    get_current_tenant,
    require_tenant,
    tenant,
    tenant_context,
)

__version__ = "0.1.0"


def configure(config: Union[Configurator, TenantConfig]) -> TenantConfig:
    """Install a configuration on the global facade."""
    return tenant.configure(config)


def configuration() -> TenantConfig:
    return tenant.configuration()


def reset() -> None:
    """Forget the configuration entirely (tests, reloads)."""
    tenant.clear()


__all__ = [
    "AuditLogger",
    "ConfigurationError",
    "Configurator",
    "Job",
    "RequestBoundary",
    "RequestInfo",
    "SchemaNotFoundError",
    "TenantConfig",
    "TenantContext",
    "TenantContextFilter",
    "TenantContextMissingError",
    "TenantError",
    "TenantImmutableError",
    "TenantJobMixin",
    "TenantMismatchError",
    "TenantNotFoundError",
    "TenantRegistry",
    "TenantScopedMixin",
    "TenantWSGIMiddleware",
    "configuration",
    "configure",
    "current_tenant_or_raise",
    "get_current_tenant",
    "install_tenant_scoping",
    "model_provider",
    "require_tenant",
    "reset",
    "resolve_tenant",
    "tenant",
    "tenant_context",
    "unscoped",
]
