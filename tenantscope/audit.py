"""
Audit logging for tenant events.

Writes to the 'tenantscope.audit' logger so applications can route audit
records to their own handler. Switch and access events are emitted only
when audit_access is enabled, violations only when audit_violations is
enabled; errors are always emitted.

Message format:
    Tenant switch: from=acme to=globex timestamp=2025-01-01T00:00:00+00:00

The same fields are passed as `extra` for structured handlers.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from tenantscope.config import TenantConfig

logger = logging.getLogger('tenantscope.audit')

# Violation types reported by the ORM integration
CROSS_TENANT_ACCESS = 'cross_tenant_access'
IMMUTABLE_TENANT = 'immutable_tenant'
MISSING_CONTEXT = 'missing_context'


class AuditLogger:
    """Observer for switch, access, violation and error events."""

    def __init__(self, config: Optional[TenantConfig] = None):
        self.config = config

    @property
    def audit_access(self) -> bool:
        return self.config is not None and self.config.audit_access

    @property
    def audit_violations(self) -> bool:
        return self.config is not None and self.config.audit_violations

    def log_switch(self, from_tenant: Optional[str], to_tenant: Optional[str]) -> None:
        if not self.audit_access:
            return
        self._log(logging.INFO, "Tenant switch", {
            'from': from_tenant or '-',
            'to': to_tenant or '-',
        })

    def log_access(self, tenant: Optional[str], entity: str, operation: str) -> None:
        if not self.audit_access:
            return
        self._log(logging.INFO, "Tenant access", {
            'tenant': tenant,
            'model': entity,
            'operation': operation,
        })

    def log_violation(
        self,
        type: str,
        tenant: Optional[str],
        entity: Optional[str],
        details: str = None
    ) -> None:
        if not self.audit_violations:
            return
        self._log(logging.WARNING, "Tenant violation", {
            'type': type,
            'tenant': tenant,
            'model': entity,
            'details': details,
        })

    def log_error(self, error: BaseException, tenant: Optional[str], entity: str = None) -> None:
        self._log(logging.ERROR, "Tenant error", {
            'error_class': type(error).__name__,
            'message': str(error),
            'tenant': tenant,
            'model': entity,
        })

    def _log(self, level: int, prefix: str, attributes: Dict[str, Any]) -> None:
        attributes = {k: v for k, v in attributes.items() if v is not None}
        attributes['timestamp'] = datetime.now(timezone.utc).isoformat()
        entry = " ".join(f"{key}={value}" for key, value in attributes.items())
        logger.log(
            level,
            f"{prefix}: {entry}",
            extra={f"audit_{key}": value for key, value in attributes.items()}
        )
