"""
Abstract adapter: the tenant switching protocol shared by both strategies.

Subclasses implement the storage side only:
    _activate(tenant)     make tenant's data visible (e.g. SET search_path)
    _deactivate()         return to the shared/default view
    _provision(tenant)    create storage for a new tenant
    drop(tenant)          remove a tenant's storage

Ordering inside switch_permanent():
    validate -> before_switch(previous, tenant) -> _activate -> slot updated
    -> after_switch(previous, tenant)

A failing before_switch leaves the active tenant unchanged. A failing
after_switch propagates with the new tenant already active.

Active state:
    The current tenant lives in a TenantSlot backed by a ContextVar, so each
    thread and each asyncio task sees its own tenant. Within one flow the
    slot is a single value and nesting is handled by switch_scoped(), which
    remembers the previous tenant and restores it in a finally block.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Iterator, List, Optional, TypeVar

from tenantscope.audit import AuditLogger
from tenantscope.config import TenantConfig
from tenantscope.registry import TenantRegistry

logger = logging.getLogger(__name__)

T = TypeVar('T')


class TenantSlot:
    """Context-local holder for the active tenant id (None when inactive)."""

    def __init__(self, name: str = 'tenantscope_current_tenant'):
        self._var: ContextVar[Optional[str]] = ContextVar(name, default=None)

    def get(self) -> Optional[str]:
        return self._var.get()

    def set(self, tenant: Optional[str]) -> None:
        self._var.set(tenant)


class AbstractAdapter:
    """Base class for tenant isolation strategies."""

    strategy = None

    def __init__(self, config: TenantConfig):
        self.config = config
        self.registry = TenantRegistry(config.tenant_names)
        self.audit = AuditLogger(config)
        self.slot = TenantSlot()

    @property
    def current(self) -> Optional[str]:
        """The active tenant in this flow, or None."""
        return self.slot.get()

    # --- switching ---------------------------------------------------------

    def switch_permanent(self, tenant: str) -> str:
        """
        Switch to a tenant until the next switch or reset.

        Args:
            tenant: Tenant id (must be a registry member)

        Returns:
            The tenant id

        Raises:
            TenantNotFoundError: If the tenant is not registered
        """
        self.registry.validate(tenant)
        self._check_storage(tenant)

        previous = self.current
        self._run_callback('before_switch', previous, tenant)

        self._activate(tenant)
        self.slot.set(tenant)
        logger.debug(
            f"Tenant switched: {previous} -> {tenant}",
            extra={'from_tenant': previous, 'to_tenant': tenant}
        )
        self.audit.log_switch(previous, tenant)

        self._run_callback('after_switch', previous, tenant)
        return tenant

    @contextmanager
    def scoped(self, tenant: str) -> Iterator[str]:
        """
        Context manager form of switch_scoped().

        Example:
            with adapter.scoped("acme"):
                articles = session.query(Article).all()
        """
        self.registry.validate(tenant)

        previous = self.current
        try:
            self.switch_permanent(tenant)
            yield tenant
        finally:
            self._restore(previous)

    def switch_scoped(self, tenant: str, body: Callable[[], T]) -> T:
        """
        Run body with tenant active, then restore whatever was active before.

        The restore runs even if body raises (or is interrupted); the
        original exception is re-raised afterwards.

        Returns:
            body's return value
        """
        with self.scoped(tenant):
            return body()

    def reset(self) -> None:
        """Deactivate the current tenant (back to the shared/default view)."""
        previous = self.current
        self._run_callback('before_switch', previous, None)

        self._deactivate()
        self.slot.set(None)
        logger.debug(f"Tenant reset (was {previous})", extra={'from_tenant': previous})
        self.audit.log_switch(previous, None)

        self._run_callback('after_switch', previous, None)

    def _restore(self, previous: Optional[str]) -> None:
        if previous:
            self.switch_permanent(previous)
        else:
            self.reset()

    # --- lifecycle ---------------------------------------------------------

    def create(self, tenant: str) -> None:
        """
        Provision a registered tenant.

        Runs before_create, the strategy's provisioning step, then
        after_create.
        """
        self.registry.validate(tenant)

        self._run_callback('before_create', tenant)
        self._provision(tenant)
        logger.info(f"Tenant created: {tenant}", extra={'tenant': tenant})
        self._after_provision(tenant)

    def drop(self, tenant: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement drop()")

    def exists(self, tenant: Optional[str]) -> bool:
        """Registry membership; storage is not consulted."""
        return self.registry.exists(tenant)

    def all_tenants(self) -> List[str]:
        return self.registry.all_tenants()

    def iterate_all(self, body: Callable[[str], Any]) -> List[Any]:
        """
        Run body(tenant) inside each registered tenant, in provider order.

        Returns:
            List of body's return values
        """
        results = []
        for tenant in self.all_tenants():
            results.append(self.switch_scoped(tenant, lambda: body(tenant)))
        return results

    def schema_for(self, tenant: str) -> str:
        """Namespace name for a tenant (plain formatting, no quoting)."""
        return self.config.schema_format.format(tenant=tenant)

    # --- strategy hooks ----------------------------------------------------

    def _check_storage(self, tenant: str) -> None:
        pass

    def _activate(self, tenant: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement _activate()")

    def _deactivate(self) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement _deactivate()")

    def _provision(self, tenant: str) -> None:
        pass

    def _after_provision(self, tenant: str) -> None:
        self._run_callback('after_create', tenant)

    def _run_callback(self, name: str, *args) -> None:
        self.config.callbacks.run(name, *args)
