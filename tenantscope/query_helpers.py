"""
Tenant-scoped database query helpers.

Explicit counterparts to the automatic scoping in tenantscope.scoping, for
code paths that want the tenant filter spelled out (or that run on a
session without install_tenant_scoping()).

Key Functions:
- scoped_query(): Returns a query pre-filtered by current tenant
- create_scoped(): Create a new record with the tenant column populated
- verify_tenant_access(): Verify a resource belongs to current tenant
- get_scoped_by_id(): Load by primary key with tenant verification

Example - BAD (reads every tenant on an unscoped session):
    articles = db.query(Article).all()

Example - GOOD (tenant-scoped):
    articles = scoped_query(Article, db).all()
"""

import logging
from typing import Any, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

from tenantscope.audit import CROSS_TENANT_ACCESS
from tenantscope.exceptions import TenantContextMissingError, TenantMismatchError
from tenantscope.tenant_context import current_tenant_or_raise, tenant

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _tenant_column(model_class: type) -> str:
    column = tenant.configuration().tenant_column
    if not hasattr(model_class, column):
        raise AttributeError(
            f"Model {model_class.__name__} does not have a {column} column. "
            f"Cannot perform tenant-scoped operation."
        )
    return column


def scoped_query(model_class: Type[T], db_session: Session) -> Query:
    """
    Create a query pre-filtered by the current tenant.

    Args:
        model_class: SQLAlchemy model class to query
        db_session: Database session

    Returns:
        Query filtered by the tenant column (and deleted_at, when present)

    Raises:
        TenantContextMissingError: If no tenant is active
        AttributeError: If the model has no tenant column

    Example:
        recent = (
            scoped_query(Article, db)
            .filter(Article.created_at > last_week)
            .all()
        )
    """
    try:
        tenant_id = current_tenant_or_raise(operation='query')
    except TenantContextMissingError:
        logger.error(
            f"Attempted scoped query without tenant context: {model_class.__name__}",
            extra={'model': model_class.__name__}
        )
        raise

    column = _tenant_column(model_class)
    query = db_session.query(model_class).filter(getattr(model_class, column) == tenant_id)

    if hasattr(model_class, 'deleted_at'):
        query = query.filter(model_class.deleted_at.is_(None))

    logger.debug(
        f"Created scoped query for {model_class.__name__}",
        extra={'model': model_class.__name__, 'tenant': tenant_id}
    )
    return query


def create_scoped(model_class: Type[T], db_session: Session, **kwargs) -> T:
    """
    Create a new model instance with the tenant column set.

    The instance is added to the session but not committed.

    Raises:
        TenantContextMissingError: If no tenant is active
        TenantMismatchError: If kwargs name a different tenant

    Example:
        article = create_scoped(Article, db, title="Hello")
        db.commit()
    """
    try:
        tenant_id = current_tenant_or_raise(operation='create')
    except TenantContextMissingError:
        logger.error(
            f"Attempted to create record without tenant context: {model_class.__name__}",
            extra={'model': model_class.__name__}
        )
        raise

    column = _tenant_column(model_class)

    provided = kwargs.get(column)
    if provided is not None and provided != tenant_id:
        logger.error(
            f"Attempted to create record with different tenant: "
            f"current={tenant_id}, provided={provided}",
            extra={'model': model_class.__name__, 'tenant': tenant_id}
        )
        tenant.audit.log_violation(
            type=CROSS_TENANT_ACCESS,
            tenant=tenant_id,
            entity=model_class.__name__,
            details=f"create with {column}={provided}"
        )
        raise TenantMismatchError(tenant_id, provided, 'create', model_class.__name__)

    kwargs[column] = tenant_id
    instance = model_class(**kwargs)
    db_session.add(instance)

    logger.debug(
        f"Created scoped instance: {model_class.__name__}",
        extra={'model': model_class.__name__, 'tenant': tenant_id}
    )
    return instance


def verify_tenant_access(resource: Any, raise_error: bool = True) -> bool:
    """
    Verify that a loaded resource belongs to the current tenant.

    Args:
        resource: Model instance to verify
        raise_error: Raise on mismatch instead of returning False

    Returns:
        True if the resource belongs to the current tenant

    Raises:
        TenantContextMissingError: If no tenant is active (when raise_error)
        TenantMismatchError: If the resource belongs to another tenant (when raise_error)
    """
    current = tenant.current()
    if not current:
        logger.error(
            "Attempted to verify tenant access without tenant context",
            extra={'resource_type': type(resource).__name__}
        )
        if raise_error:
            raise TenantContextMissingError(operation='verify', entity=type(resource).__name__)
        return False

    column = tenant.configuration().tenant_column
    if not hasattr(resource, column):
        logger.warning(
            f"Resource {type(resource).__name__} does not have {column} column",
            extra={'resource_type': type(resource).__name__}
        )
        return True

    resource_tenant = getattr(resource, column)
    if resource_tenant == current:
        return True

    entity = type(resource).__name__
    logger.error(
        "Tenant access violation: resource belongs to different tenant",
        extra={
            'resource_type': entity,
            'resource_id': str(getattr(resource, 'id', None)),
            'tenant': current,
            'resource_tenant': str(resource_tenant)
        }
    )
    tenant.audit.log_violation(
        type=CROSS_TENANT_ACCESS,
        tenant=current,
        entity=entity,
        details=f"record belongs to {resource_tenant}"
    )

    if raise_error:
        raise TenantMismatchError(current, resource_tenant, 'read', entity)
    return False


def get_scoped_by_id(
    model_class: Type[T],
    db_session: Session,
    resource_id: Any,
    verify_access: bool = True
) -> Optional[T]:
    """
    Get a resource by ID within the current tenant.

    Returns:
        Model instance or None if not found (or owned by another tenant)
    """
    resource = scoped_query(model_class, db_session).filter(
        model_class.id == resource_id
    ).first()

    if resource is not None and verify_access:
        verify_tenant_access(resource, raise_error=True)

    return resource
