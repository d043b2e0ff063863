"""
SQLAlchemy integration for the column strategy.

Models opt in with TenantScopedMixin. Once install_tenant_scoping() has
been called on a session (or sessionmaker):

- ORM SELECT / UPDATE / DELETE statements touching a scoped model get
  `WHERE <tenant_column> = <current tenant>` via with_loader_criteria
- With no active tenant and require_tenant on, those statements raise
  TenantContextMissingError instead of silently reading every tenant
- New rows get the tenant column filled from the active tenant when unset
- In strict mode, changing the tenant column of a persisted row raises
  TenantImmutableError before the UPDATE is emitted

Models listed in excluded_models are never filtered. Nothing here does
anything under the schema strategy, where the search_path isolates data.

Usage:
    class Article(Base, TenantScopedMixin):
        __tablename__ = 'articles'
        id = Column(Integer, primary_key=True)

    install_tenant_scoping(SessionFactory)

    with tenant.scoped("acme"):
        session.query(Article).all()   # only acme's articles
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from sqlalchemy import Column, String, event, inspect
from sqlalchemy.orm import ORMExecuteState, with_loader_criteria

from tenantscope.audit import IMMUTABLE_TENANT, MISSING_CONTEXT
from tenantscope.config import TenantConfig
from tenantscope.exceptions import TenantContextMissingError, TenantImmutableError
from tenantscope.tenant_context import tenant

logger = logging.getLogger(__name__)

# Execution option that bypasses tenant criteria for a single statement
SKIP_TENANT_SCOPE = 'skip_tenant_scope'

_unscoped: ContextVar[bool] = ContextVar('tenantscope_unscoped', default=False)


class TenantScopedMixin:
    """
    Adds the tenant discriminator column to a model.

    Models using a different column name declare it themselves and set
    Configurator.tenant_column accordingly.
    """

    tenant_id = Column(
        String(255),
        nullable=True,
        index=True,
        comment="Tenant discriminator"
    )


def _column_config() -> Optional[TenantConfig]:
    """Active config when the column strategy is in use, else None."""
    if not tenant.is_configured:
        return None
    config = tenant.configuration()
    if config.strategy != 'column':
        return None
    return config


def _is_scoped(model: type) -> bool:
    return issubclass(model, TenantScopedMixin) and not tenant.is_excluded(model.__name__)


def is_unscoped() -> bool:
    """True inside an unscoped() block."""
    return _unscoped.get()


@contextmanager
def unscoped() -> Iterator[None]:
    """
    Run a block without tenant scoping.

    The active tenant is reset for the duration of the block and the
    require_tenant check is suspended; the previous tenant is restored
    afterwards.

    Example:
        with unscoped():
            total = session.query(Article).count()   # all tenants
    """
    previous = tenant.current()
    token = _unscoped.set(True)
    try:
        if previous:
            tenant.reset()
        yield
    finally:
        _unscoped.reset(token)
        if previous:
            tenant.switch_permanent(previous)


def _operation(execute_state: ORMExecuteState) -> str:
    if execute_state.is_update:
        return 'update'
    if execute_state.is_delete:
        return 'delete'
    return 'query'


def _apply_tenant_criteria(execute_state: ORMExecuteState) -> None:
    """do_orm_execute listener adding tenant criteria to ORM statements."""
    if not (execute_state.is_select or execute_state.is_update or execute_state.is_delete):
        return
    if execute_state.is_column_load or execute_state.is_relationship_load:
        return
    if execute_state.execution_options.get(SKIP_TENANT_SCOPE, False) or is_unscoped():
        return

    config = _column_config()
    if config is None:
        return

    models = [
        mapper.class_ for mapper in execute_state.all_mappers
        if _is_scoped(mapper.class_)
    ]
    if not models:
        return

    operation = _operation(execute_state)
    current = tenant.current()
    if not current:
        if config.require_tenant:
            entity = models[0].__name__
            tenant.audit.log_violation(
                type=MISSING_CONTEXT,
                tenant=None,
                entity=entity,
                details=f"{operation} without tenant context"
            )
            raise TenantContextMissingError(operation=operation, entity=entity)
        return

    options = []
    for model in models:
        tenant.audit.log_access(current, model.__name__, operation)
        column = getattr(model, config.tenant_column)
        options.append(with_loader_criteria(model, column == current, include_aliases=True))

    execute_state.statement = execute_state.statement.options(*options)


def install_tenant_scoping(target) -> None:
    """
    Enable tenant criteria on a Session, sessionmaker or scoped_session.

    Safe to call more than once.
    """
    if not event.contains(target, 'do_orm_execute', _apply_tenant_criteria):
        event.listen(target, 'do_orm_execute', _apply_tenant_criteria)


@event.listens_for(TenantScopedMixin, 'before_insert', propagate=True)
def populate_tenant_column(mapper, connection, target):
    """Fill the tenant column from the active tenant when it is unset."""
    config = _column_config()
    if config is None or not _is_scoped(type(target)):
        return

    column = config.tenant_column
    if getattr(target, column, None):
        return

    current = tenant.current()
    if current:
        setattr(target, column, current)
        tenant.audit.log_access(current, type(target).__name__, 'create')


@event.listens_for(TenantScopedMixin, 'before_update', propagate=True)
def guard_tenant_column(mapper, connection, target):
    """Reject changes to the tenant column of persisted rows in strict mode."""
    config = _column_config()
    if config is None or not config.strict_mode or not _is_scoped(type(target)):
        return

    column = config.tenant_column
    history = inspect(target).attrs[column].history
    if not history.has_changes():
        return

    entity = type(target).__name__
    record_id = getattr(target, 'id', None)
    logger.error(
        f"Attempted to change {column} of {entity} {record_id}",
        extra={'entity': entity, 'record_id': str(record_id)}
    )
    tenant.audit.log_violation(
        type=IMMUTABLE_TENANT,
        tenant=tenant.current(),
        entity=entity,
        details=f"{column} changed on record {record_id}"
    )
    raise TenantImmutableError(column, entity, record_id=record_id)
