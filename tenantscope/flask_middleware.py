"""
Flask integration for tenant scoping.

Registers before_request and teardown_request handlers that open and close
a RequestBoundary scope around each request.

Flow:
    1. Request arrives -> before_request handler
    2. Whitelisted route? skip tenant handling entirely
    3. Resolve tenant with the elevator, validate against the registry
    4. Enter the tenant scope; mirror the tenant on flask.g
    5. View executes (queries are scoped)
    6. teardown_request closes the scope, restoring the previous tenant

Whitelisted Routes:
    - /health, /metrics, /favicon.ico, /robots.txt, /_health, /_status
    - /static/*, /assets/*, /public/*

Error Responses (when register_error_handlers is on):
    - 404: TenantNotFoundError, SchemaNotFoundError
    - 400: TenantContextMissingError
    - 403: TenantMismatchError
    - 422: TenantImmutableError
"""

import logging
from typing import List, Optional, Set

from flask import Flask, g, jsonify, request

from tenantscope.boundary import RequestBoundary
from tenantscope.elevators import RequestInfo
from tenantscope.exceptions import TenantError
from tenantscope.tenant_context import TenantContext

logger = logging.getLogger(__name__)

_SCOPE_KEY = '_tenantscope_scope'


class TenantMiddleware:
    """
    Flask extension for multi-tenant request handling.

    Usage:
        app = Flask(__name__)
        TenantMiddleware(app, elevator="subdomain")

        # Or with the init_app pattern:
        middleware = TenantMiddleware(elevator="header")
        middleware.init_app(app)
    """

    def __init__(
        self,
        app: Flask = None,
        elevator=None,
        whitelist_routes: List[str] = None,
        register_error_handlers: bool = True,
        context: TenantContext = None
    ):
        """
        Args:
            app: Flask application instance (optional)
            elevator: Elevator name or callable (default: configured elevator)
            whitelist_routes: Extra routes that skip tenant handling
            register_error_handlers: Map TenantError to JSON responses
            context: TenantContext to use (default: the global facade)
        """
        self.app = app
        self.boundary = RequestBoundary(elevator, context)
        self.register_error_handlers = register_error_handlers

        self.whitelist_routes: Set[str] = {
            '/health',
            '/metrics',
            '/favicon.ico',
            '/robots.txt',
            '/_health',
            '/_status'
        }

        # Prefix matching
        self.whitelist_patterns: List[str] = [
            '/static/',
            '/assets/',
            '/public/'
        ]

        if whitelist_routes:
            self.whitelist_routes.update(whitelist_routes)

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.app = app
        self.register()

    def register(self) -> None:
        """Register request handlers (and error handlers) on the app."""
        if not self.app:
            raise RuntimeError("Flask app not initialized. Call init_app() first.")

        self.app.before_request(self.process_request)
        self.app.teardown_request(self.cleanup_request)
        if self.register_error_handlers:
            self.app.register_error_handler(TenantError, self.handle_error)

        self.app.extensions['tenantscope'] = self
        logger.info("TenantMiddleware registered with Flask app")

    def is_whitelisted(self, path: str) -> bool:
        if path in self.whitelist_routes:
            return True

        for pattern in self.whitelist_patterns:
            if path.startswith(pattern):
                return True

        return False

    def process_request(self) -> None:
        """Before request handler: open the tenant scope for this request."""
        if self.is_whitelisted(request.path):
            logger.debug(f"Whitelisted route: {request.path}")
            return None

        scope = self.boundary.open_scope(RequestInfo(request))
        setattr(g, _SCOPE_KEY, scope)
        g.tenant = self.boundary.context.current()
        return None

    def cleanup_request(self, error: Optional[BaseException] = None) -> None:
        """Teardown handler: close the scope, restoring the previous tenant."""
        scope = g.pop(_SCOPE_KEY, None)
        g.pop('tenant', None)
        if scope is None:
            return

        if error is not None:
            scope.__exit__(type(error), error, error.__traceback__)
        else:
            scope.close()

    def handle_error(self, error: TenantError):
        """JSON response for tenant errors."""
        logger.warning(
            f"Tenant error on {request.path}: {error}",
            extra={'path': request.path, 'code': error.error_code}
        )
        return jsonify({
            'error': str(error),
            'code': error.error_code
        }), error.http_status or 500

    def add_whitelist_route(self, route: str) -> None:
        self.whitelist_routes.add(route)
        logger.debug(f"Added whitelist route: {route}")

    def add_whitelist_pattern(self, pattern: str) -> None:
        """Whitelist a route prefix (e.g. '/api/public/')."""
        self.whitelist_patterns.append(pattern)
        logger.debug(f"Added whitelist pattern: {pattern}")


def get_current_tenant_from_g() -> Optional[str]:
    """
    Tenant mirrored on flask.g for the current request, or None.

    Example:
        @app.route('/api/articles')
        def list_articles():
            tenant = get_current_tenant_from_g()
            ...
    """
    return getattr(g, 'tenant', None)
