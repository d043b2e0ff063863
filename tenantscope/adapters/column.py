"""
Column adapter: shared tables, one discriminator column per row.

Switching only updates the active-tenant slot; no I/O happens here. The
actual filtering (WHERE <tenant_column> = <current>) and populating the
column on insert is done by the ORM integration in tenantscope.scoping,
which reads `current` from this adapter.
"""

import logging

from tenantscope.adapters.base import AbstractAdapter

logger = logging.getLogger(__name__)


class ColumnAdapter(AbstractAdapter):
    """Tenant isolation through a row-level discriminator column."""

    strategy = 'column'

    @property
    def tenant_column(self) -> str:
        return self.config.tenant_column

    def _activate(self, tenant: str) -> None:
        pass

    def _deactivate(self) -> None:
        pass

    def drop(self, tenant: str) -> None:
        """
        No storage to remove for the column strategy.

        Deleting the tenant's rows is application specific and left to the
        caller.
        """
        logger.info(
            f"Drop requested for column tenant {tenant}; no schema to remove",
            extra={'tenant': tenant}
        )
