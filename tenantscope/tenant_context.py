"""
Tenant context facade.

TenantContext is the single entry point for tenant operations. It holds
the current configuration snapshot together with the adapter built from
it and delegates every operation to that adapter. Nothing works before
configure() has been called: there is no implicit default adapter.

State machine (per thread / asyncio task):
    Unconfigured --configure()--> Inactive
    Inactive | Active(x) --switch_permanent(t)--> Active(t)
    Active(x) | Inactive --reset()--> Inactive
    switch_scoped(t, body) returns to the preceding state, even on error

Usage:
    from tenantscope import tenant

    with tenant.scoped("acme"):
        # every query here is scoped to acme
        process_orders()

    @require_tenant()
    def nightly_report():
        ...
"""

import functools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, TypeVar, Union

from tenantscope.adapters import AbstractAdapter, build_adapter
from tenantscope.audit import AuditLogger
from tenantscope.config import Configurator, TenantConfig
from tenantscope.exceptions import ConfigurationError, TenantContextMissingError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class TenantContext:
    """Facade over the configured isolation adapter."""

    def __init__(self):
        # (config, adapter) swapped as one value so readers never see a mix
        self._state = None

    # --- configuration -----------------------------------------------------

    def configure(self, config: Union[Configurator, TenantConfig]) -> TenantConfig:
        """
        Install a configuration, replacing any previous one wholesale.

        Args:
            config: Configurator (built here) or an already built TenantConfig

        Returns:
            The installed TenantConfig snapshot
        """
        if isinstance(config, Configurator):
            config = config.build()
        if not isinstance(config, TenantConfig):
            raise ConfigurationError(
                f"configure() expects a Configurator or TenantConfig, got {type(config).__name__}"
            )

        adapter = build_adapter(config)
        self._state = (config, adapter)
        logger.info(
            f"Tenant context configured with {config.strategy} strategy",
            extra={'strategy': config.strategy}
        )
        return config

    def clear(self) -> None:
        """Drop the configuration (back to Unconfigured). Mainly for tests."""
        self._state = None

    @property
    def is_configured(self) -> bool:
        return self._state is not None

    def configuration(self) -> TenantConfig:
        return self._require_state()[0]

    @property
    def adapter(self) -> AbstractAdapter:
        return self._require_state()[1]

    @property
    def audit(self) -> AuditLogger:
        """Audit logger of the active configuration (silent when unconfigured)."""
        if self._state is None:
            return AuditLogger(None)
        return self._state[1].audit

    def _require_state(self):
        state = self._state
        if state is None:
            raise ConfigurationError(
                "tenantscope is not configured. "
                "Call tenantscope.configure() with a Configurator first."
            )
        return state

    # --- delegated operations ----------------------------------------------

    def current(self) -> Optional[str]:
        return self.adapter.current

    def switch_permanent(self, tenant: str) -> str:
        return self.adapter.switch_permanent(tenant)

    def switch_scoped(self, tenant: str, body: Callable[[], T]) -> T:
        return self.adapter.switch_scoped(tenant, body)

    def scoped(self, tenant: str):
        return self.adapter.scoped(tenant)

    def reset(self) -> None:
        self.adapter.reset()

    def create(self, tenant: str) -> None:
        self.adapter.create(tenant)

    def drop(self, tenant: str) -> None:
        self.adapter.drop(tenant)

    def exists(self, tenant: Optional[str]) -> bool:
        return self.adapter.exists(tenant)

    def all_tenants(self) -> List[str]:
        return self.adapter.all_tenants()

    def iterate_all(self, body: Callable[[str], Any]) -> List[Any]:
        return self.adapter.iterate_all(body)

    def is_excluded(self, entity_name: str) -> bool:
        """Whether an entity (model class name) is exempt from tenant scoping."""
        return entity_name in self.configuration().excluded_models


# Process-wide facade; the active tenant itself is context-local
tenant = TenantContext()


def get_current_tenant() -> Optional[str]:
    """
    Get the active tenant, or None when no tenant is active.

    Also returns None when tenantscope is not configured, which makes it
    safe to call from logging filters and other ambient code.
    """
    if not tenant.is_configured:
        return None
    return tenant.current()


def current_tenant_or_raise(operation: str = "access") -> str:
    """
    Get the active tenant, raising when there is none.

    Raises:
        TenantContextMissingError: If no tenant is active
    """
    current = tenant.current()
    if not current:
        raise TenantContextMissingError(operation=operation)
    return current


@contextmanager
def tenant_context(tenant_id: str) -> Iterator[str]:
    """
    Temporarily switch to a tenant.

    Example:
        # In a background script
        with tenant_context("acme"):
            rebuild_search_index()
        # previous tenant (or none) restored here
    """
    with tenant.scoped(tenant_id):
        yield tenant_id


def require_tenant() -> Callable:
    """
    Decorator that ensures a tenant is active before the function runs.

    Example:
        @require_tenant()
        def export_invoices():
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if not tenant.current():
                logger.error(
                    f"Function {func.__name__} requires tenant context but none is set",
                    extra={'function': func.__name__}
                )
                raise TenantContextMissingError(operation=func.__name__)
            return func(*args, **kwargs)

        return wrapper

    return decorator


def add_tenant_to_log_context(record: logging.LogRecord) -> logging.LogRecord:
    """Stamp the active tenant on a log record as record.tenant."""
    record.tenant = get_current_tenant()
    return record


class TenantContextFilter(logging.Filter):
    """
    Logging filter that adds the active tenant to all log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(TenantContextFilter())
        handler.setFormatter(logging.Formatter("%(tenant)s %(message)s"))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        add_tenant_to_log_context(record)
        return True
