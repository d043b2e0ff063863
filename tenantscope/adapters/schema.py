"""
Schema adapter: one PostgreSQL schema per tenant, selected via search_path.

Statements issued:
    CREATE SCHEMA IF NOT EXISTS "<schema>"
    DROP SCHEMA IF EXISTS "<schema>" CASCADE
    SET search_path TO "<schema>", "<persistent>"..., "public"
    SELECT EXISTS(... information_schema.schemata ...)

Schema names come from str.format on the configured template, which does
no escaping. Identifiers are therefore always quoted with the dialect's
identifier preparer before they reach SQL, and the existence check binds
the name as a parameter.

Connection:
    Statements run on config.connection() when set, otherwise on the
    DatabaseManager scoped session (one session per thread). SET is
    session-level in PostgreSQL, so the search_path sticks to that
    connection after it returns to the pool. DatabaseManager therefore
    re-applies search_path_statement() on every pool checkout, in the
    flow doing the checkout.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy import text

from tenantscope.adapters.base import AbstractAdapter
from tenantscope.exceptions import SchemaNotFoundError

logger = logging.getLogger(__name__)

SCHEMA_EXISTS_SQL = (
    "SELECT EXISTS(SELECT 1 FROM information_schema.schemata "
    "WHERE schema_name = :schema)"
)


class SchemaAdapter(AbstractAdapter):
    """Tenant isolation through database schema switching."""

    strategy = 'schema'

    # --- search path -------------------------------------------------------

    @property
    def persistent_schemas(self) -> List[str]:
        return list(self.config.persistent_schemas)

    def search_path_for(self, tenant: Optional[str]) -> List[str]:
        """Ordered schema list: tenant first, persistent schemas, default last."""
        schemas = self.persistent_schemas + [self.config.default_schema]
        if tenant:
            schemas.insert(0, self.schema_for(tenant))
        return schemas

    @property
    def default_search_path(self) -> str:
        return self._render_path(self.search_path_for(None))

    @property
    def current_search_path(self) -> str:
        return self._render_path(self.search_path_for(self.current))

    # --- strategy hooks ----------------------------------------------------

    def _check_storage(self, tenant: str) -> None:
        if not self.config.verify_schemas:
            return
        schema = self.schema_for(tenant)
        if not self.schema_exists(schema):
            logger.warning(
                f"Schema {schema} missing for tenant {tenant}",
                extra={'tenant': tenant, 'schema': schema}
            )
            raise SchemaNotFoundError(schema, tenant_name=tenant)

    def _activate(self, tenant: str) -> None:
        self._set_search_path(self.search_path_for(tenant))

    def _deactivate(self) -> None:
        self._set_search_path(self.search_path_for(None))

    def _provision(self, tenant: str) -> None:
        schema = self.schema_for(tenant)
        self._execute(f"CREATE SCHEMA IF NOT EXISTS {self._quote(schema)}")

    def _after_provision(self, tenant: str) -> None:
        # after_create runs inside the new schema so it can seed tables
        self.switch_scoped(tenant, lambda: self._run_callback('after_create', tenant))

    def drop(self, tenant: str) -> None:
        """
        Drop a tenant's schema and everything in it.

        Irreversible. Confirmation belongs to the caller (see the CLI).
        """
        schema = self.schema_for(tenant)
        self._execute(f"DROP SCHEMA IF EXISTS {self._quote(schema)} CASCADE")
        logger.warning(f"Tenant schema dropped: {schema}", extra={'tenant': tenant, 'schema': schema})

    # --- storage check -----------------------------------------------------

    def schema_exists(self, schema: str) -> bool:
        """Check whether the schema physically exists in the database."""
        result = self._execute(SCHEMA_EXISTS_SQL, {'schema': schema})
        return bool(result.scalar())

    # --- SQL ---------------------------------------------------------------

    def connection(self) -> Any:
        """Session or Connection the adapter issues statements on."""
        if self.config.connection is not None:
            return self.config.connection()
        from tenantscope.database import db_manager
        return db_manager.scoped_session()

    def search_path_statement(self, dialect=None) -> str:
        """SET statement for the calling flow's tenant (quoted with `dialect` when given)."""
        return f"SET search_path TO {self._render_path(self.search_path_for(self.current), dialect)}"

    def _set_search_path(self, schemas: List[str]) -> None:
        self._execute(f"SET search_path TO {self._render_path(schemas)}")

    def _render_path(self, schemas: List[str], dialect=None) -> str:
        return ", ".join(self._quote(schema, dialect) for schema in schemas)

    def _quote(self, identifier: str, dialect=None) -> str:
        if dialect is None:
            conn = self.connection()
            dialect = getattr(conn, 'dialect', None) or conn.get_bind().dialect
        return dialect.identifier_preparer.quote_identifier(identifier)

    def _execute(self, sql: str, params: dict = None):
        try:
            return self.connection().execute(text(sql), params or {})
        except Exception as e:
            logger.error(f"SQL error in schema adapter: {e}", extra={'sql': sql})
            raise
