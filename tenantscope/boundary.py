"""
Request boundary: wraps one inbound request in a tenant scope.

Per request:
    1. Resolve the tenant id with the configured elevator
    2. Registered tenant        -> run the handler inside switch_scoped()
    3. Unknown tenant + require -> TenantNotFoundError
    4. No tenant + require      -> TenantContextMissingError
    5. Otherwise                -> run the handler with no switch

Whatever happens (resolution error, validation error, handler error,
interruption), the active tenant after the request equals the tenant
active before it. The scoped switch restores on its own; a second safety
net restores the entry state on every exit, which also covers errors
raised before a scope was opened and handlers that call
switch_permanent(). It never suppresses the error.
"""

import logging
from contextlib import ExitStack
from typing import Any, Callable, Iterable, Optional, TypeVar

from tenantscope.elevators import RequestInfo, resolve_tenant
from tenantscope.exceptions import TenantContextMissingError, TenantNotFoundError
from tenantscope.tenant_context import TenantContext, tenant as default_context

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_ELEVATOR = 'subdomain'


class RequestBoundary:
    """
    Framework-agnostic request wrapper.

    Usage:
        boundary = RequestBoundary("header")
        response = boundary(RequestInfo(request), lambda: view(request))
    """

    def __init__(self, elevator=None, context: TenantContext = None):
        """
        Args:
            elevator: Elevator name or callable; defaults to the configured
                elevator, then to 'subdomain'
            context: TenantContext to use (default: the global facade)
        """
        self.elevator = elevator
        self.context = context or default_context

    def resolve(self, request: RequestInfo) -> Optional[str]:
        config = self.context.configuration()
        return resolve_tenant(request, self._elevator_for(config), config)

    def __call__(self, request: RequestInfo, handler: Callable[[], T]) -> T:
        with self.open_scope(request):
            return handler()

    def open_scope(self, request: RequestInfo) -> ExitStack:
        """
        Resolve, validate and enter the tenant scope for a request.

        Returns an ExitStack that must be closed when the request ends
        (close() on success, __exit__(exc_type, exc, tb) on error). For
        hook-based frameworks that cannot wrap the handler in a `with`.
        """
        context = self.context
        config = context.configuration()
        previous = context.current()

        with ExitStack() as stack:
            stack.push(self._safety_net(previous, request))

            tenant_id = resolve_tenant(request, self._elevator_for(config), config)

            if tenant_id and context.exists(tenant_id):
                stack.enter_context(context.scoped(tenant_id))
                logger.debug(
                    f"Request scoped to tenant {tenant_id}",
                    extra={'tenant': tenant_id, 'path': request.path}
                )
            elif tenant_id and config.require_tenant:
                logger.warning(
                    f"Tenant not found: {tenant_id}",
                    extra={'tenant': tenant_id, 'path': request.path}
                )
                raise TenantNotFoundError(tenant_id)
            elif not tenant_id and config.require_tenant:
                logger.warning(
                    f"No tenant in request: {request.path}",
                    extra={'path': request.path}
                )
                raise TenantContextMissingError(operation="request")

            return stack.pop_all()

    def _elevator_for(self, config):
        if self.elevator is not None:
            return self.elevator
        return config.elevator if config.elevator is not None else DEFAULT_ELEVATOR

    def _safety_net(self, previous: Optional[str], request: RequestInfo):
        context = self.context

        def restore_entry_state(exc_type, exc, tb) -> bool:
            current = context.current()
            if exc_type is not None:
                context.audit.log_error(exc, tenant=current)
            if current != previous:
                logger.debug(
                    f"Restoring tenant after request: {current} -> {previous}",
                    extra={'path': request.path}
                )
                if previous:
                    context.switch_permanent(previous)
                else:
                    context.reset()
            return False

        return restore_entry_state


class TenantWSGIMiddleware:
    """
    WSGI middleware running every request through a RequestBoundary.

    Errors propagate to the WSGI server. The scope covers the call into the
    wrapped application; a streamed response body produced after it
    returns runs outside the tenant.

    Usage:
        app.wsgi_app = TenantWSGIMiddleware(app.wsgi_app, elevator="subdomain")
    """

    def __init__(self, app: Callable, elevator=None, context: TenantContext = None):
        self.app = app
        self.boundary = RequestBoundary(elevator, context)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[Any]:
        request = RequestInfo.from_environ(environ)
        return self.boundary(request, lambda: self.app(environ, start_response))
