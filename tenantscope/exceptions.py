"""
Exception classes for tenant operations.

Every error raised by tenantscope derives from TenantError so callers can
catch the whole family at once. Each class carries an HTTP status and an
error code (used by the Flask extension to build JSON responses) plus
tags/context/extra mappings for error trackers.
"""

from typing import Any, Dict, Optional


class TenantError(Exception):
    """Base class for all tenant errors."""

    http_status: Optional[int] = 500
    error_code = "TENANT_ERROR"
    error_category = "tenant_error"

    @property
    def tags(self) -> Dict[str, str]:
        return {
            'error_category': self.error_category,
            'module': 'tenantscope',
        }

    @property
    def context(self) -> Dict[str, Any]:
        return {}

    @property
    def extra(self) -> Dict[str, Any]:
        return {}


class ConfigurationError(TenantError, ValueError):
    """
    Raised for invalid or missing configuration.

    Covers bad strategy/elevator values, wrong value types for flags and
    list fields, and any operation attempted before configure() was called.
    Never retried.
    """

    http_status = 500
    error_code = "CONFIGURATION_ERROR"
    error_category = "configuration"


class TenantNotFoundError(TenantError):
    """
    Raised when a tenant id is not present in the registry.

    Example:
        try:
            tenant.switch_permanent("unknown")
        except TenantNotFoundError as e:
            abort(404, e.tenant_name)
    """

    http_status = 404
    error_code = "TENANT_NOT_FOUND"
    error_category = "tenant_not_found"

    def __init__(self, tenant_name: Any, message: str = None):
        self.tenant_name = tenant_name
        self.message = message or f"Tenant '{tenant_name}' not found"
        super().__init__(self.message)

    @property
    def tags(self) -> Dict[str, str]:
        tags = super().tags
        tags['tenant'] = str(self.tenant_name)
        return tags

    @property
    def extra(self) -> Dict[str, Any]:
        return {'tenant_name': self.tenant_name}


class TenantContextMissingError(TenantError):
    """
    Raised when an operation requires an active tenant and none is set.

    This typically means a query ran outside of a request processed by the
    tenant middleware, or a request carried no tenant while require_tenant
    is enabled.
    """

    http_status = 400
    error_code = "TENANT_CONTEXT_MISSING"
    error_category = "tenant_context_missing"

    def __init__(self, operation: str = "unknown", entity: str = None):
        self.operation = operation
        self.entity = entity
        message = f"No tenant context set for {operation} operation"
        if entity:
            message += f" on {entity}"
        self.message = message
        super().__init__(message)

    @property
    def tags(self) -> Dict[str, str]:
        tags = super().tags
        tags['operation'] = str(self.operation)
        return tags

    @property
    def context(self) -> Dict[str, Any]:
        return {'entity': self.entity} if self.entity else {}

    @property
    def extra(self) -> Dict[str, Any]:
        return {'operation': self.operation, 'entity': self.entity}


class TenantImmutableError(TenantError):
    """
    Raised when a persisted record's tenant column is changed in strict mode.

    The check happens before the UPDATE is emitted, so nothing is written.
    """

    http_status = 422
    error_code = "TENANT_IMMUTABLE"
    error_category = "tenant_immutable"

    def __init__(self, tenant_column: str, entity: str, record_id: Any = None):
        self.tenant_column = tenant_column
        self.entity = entity
        self.record_id = record_id
        self.message = f"Cannot modify immutable tenant column '{tenant_column}'"
        super().__init__(self.message)

    @property
    def context(self) -> Dict[str, Any]:
        ctx = {'entity': self.entity}
        if self.record_id is not None:
            ctx['record_id'] = self.record_id
        return ctx

    @property
    def extra(self) -> Dict[str, Any]:
        return {
            'tenant_column': self.tenant_column,
            'entity': self.entity,
            'record_id': self.record_id,
        }


class TenantMismatchError(TenantError):
    """
    Raised when a record belongs to a different tenant than the active one.

    This is a security error: cross-tenant access should never happen in a
    properly isolated application.
    """

    http_status = 403
    error_code = "TENANT_MISMATCH"
    error_category = "tenant_mismatch"

    def __init__(
        self,
        expected_tenant_id: Any,
        actual_tenant_id: Any,
        operation: str,
        entity: str
    ):
        self.expected_tenant_id = expected_tenant_id
        self.actual_tenant_id = actual_tenant_id
        self.operation = operation
        self.entity = entity
        self.message = (
            f"Tenant mismatch: expected '{expected_tenant_id}', "
            f"got '{actual_tenant_id}' during {operation}"
        )
        super().__init__(self.message)

    @property
    def tags(self) -> Dict[str, str]:
        tags = super().tags
        tags['operation'] = str(self.operation)
        return tags

    @property
    def context(self) -> Dict[str, Any]:
        return {'entity': self.entity}

    @property
    def extra(self) -> Dict[str, Any]:
        return {
            'expected_tenant_id': self.expected_tenant_id,
            'actual_tenant_id': self.actual_tenant_id,
            'operation': self.operation,
        }


class SchemaNotFoundError(TenantError):
    """
    Raised when a tenant's database schema does not exist in storage.

    Distinct from TenantNotFoundError: the tenant may well be registered
    while its schema was never created (or was dropped).
    """

    http_status = 404
    error_code = "SCHEMA_NOT_FOUND"
    error_category = "schema_not_found"

    def __init__(self, schema_name: str, tenant_name: str = None):
        self.schema_name = schema_name
        self.tenant_name = tenant_name
        self.message = f"Database schema '{schema_name}' not found"
        super().__init__(self.message)

    @property
    def tags(self) -> Dict[str, str]:
        tags = super().tags
        if self.tenant_name:
            tags['tenant'] = str(self.tenant_name)
        return tags

    @property
    def extra(self) -> Dict[str, Any]:
        return {'schema_name': self.schema_name, 'tenant_name': self.tenant_name}
