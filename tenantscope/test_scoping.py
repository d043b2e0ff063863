"""
Tests for the SQLAlchemy column-strategy integration, against SQLite.
"""

import logging
from dataclasses import replace

import pytest
from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from tenantscope.exceptions import TenantContextMissingError, TenantImmutableError
from tenantscope.scoping import SKIP_TENANT_SCOPE, install_tenant_scoping, is_unscoped, unscoped
from tenantscope.tenant_context import tenant

from conftest import Article, AuditEntry, Category


def add_articles(session, tenant_name, *titles):
    with tenant.scoped(tenant_name):
        session.add_all([Article(title=title) for title in titles])
        session.commit()


@pytest.fixture
def seeded(configure_tenants, db_session):
    configure_tenants()
    add_articles(db_session, 'acme', 'acme-1', 'acme-2')
    add_articles(db_session, 'globex', 'globex-1')
    return db_session


def titles(session):
    return sorted(article.title for article in session.query(Article).all())


def test_insert_populates_tenant_column(configure_tenants, db_session):
    configure_tenants()

    with tenant.scoped('acme'):
        article = Article(title='hello')
        db_session.add(article)
        db_session.commit()

    assert article.tenant_id == 'acme'


def test_explicit_tenant_column_is_kept(configure_tenants, db_session):
    configure_tenants(require_tenant=False)

    article = Article(title='imported', tenant_id='initech')
    db_session.add(article)
    db_session.commit()

    assert article.tenant_id == 'initech'


def test_queries_only_see_current_tenant(seeded):
    with tenant.scoped('acme'):
        assert titles(seeded) == ['acme-1', 'acme-2']

    with tenant.scoped('globex'):
        assert titles(seeded) == ['globex-1']
        rows = seeded.execute(select(Article)).scalars().all()
        assert [article.title for article in rows] == ['globex-1']

    with tenant.scoped('initech'):
        assert titles(seeded) == []


def test_missing_tenant_raises_when_required(seeded, caplog):
    caplog.set_level(logging.WARNING, logger='tenantscope.audit')
    tenant.configure(replace(tenant.configuration(), audit_violations=True))

    with pytest.raises(TenantContextMissingError) as exc_info:
        titles(seeded)

    assert exc_info.value.entity == 'Article'
    assert any('type=missing_context' in r.getMessage() for r in caplog.records)


def test_missing_tenant_allowed_when_not_required(configure_tenants, db_session):
    configure_tenants(require_tenant=False)
    db_session.add_all([
        Article(title='a', tenant_id='acme'),
        Article(title='b', tenant_id='globex'),
    ])
    db_session.commit()

    assert titles(db_session) == ['a', 'b']


def test_excluded_models_are_never_filtered(configure_tenants, db_session):
    configure_tenants(excluded_models=['AuditEntry'])
    db_session.add_all([
        AuditEntry(message='one', tenant_id='acme'),
        AuditEntry(message='two', tenant_id='globex'),
    ])
    db_session.commit()

    assert db_session.query(AuditEntry).count() == 2
    with tenant.scoped('acme'):
        assert db_session.query(AuditEntry).count() == 2


def test_models_without_mixin_are_shared(configure_tenants, db_session):
    configure_tenants()
    db_session.add(Category(name='news'))
    db_session.commit()

    assert db_session.query(Category).count() == 1
    with tenant.scoped('acme'):
        assert db_session.query(Category).count() == 1


def test_bulk_update_is_scoped(seeded):
    with tenant.scoped('acme'):
        seeded.execute(
            update(Article).values(title='renamed').execution_options(synchronize_session=False)
        )
        seeded.commit()

    seeded.expire_all()
    with tenant.scoped('globex'):
        assert titles(seeded) == ['globex-1']
    with tenant.scoped('acme'):
        assert titles(seeded) == ['renamed', 'renamed']


def test_unscoped_block(seeded):
    tenant.switch_permanent('acme')

    with unscoped():
        assert is_unscoped()
        assert tenant.current() is None
        assert titles(seeded) == ['acme-1', 'acme-2', 'globex-1']

    assert not is_unscoped()
    assert tenant.current() == 'acme'


def test_skip_execution_option(seeded):
    with tenant.scoped('acme'):
        statement = select(Article).execution_options(**{SKIP_TENANT_SCOPE: True})
        assert len(seeded.execute(statement).scalars().all()) == 3


def test_tenant_column_immutable_in_strict_mode(configure_tenants, db_session, caplog):
    configure_tenants(strict_mode=True, audit_violations=True)
    caplog.set_level(logging.WARNING, logger='tenantscope.audit')
    add_articles(db_session, 'acme', 'original')

    with tenant.scoped('acme'):
        article = db_session.query(Article).one()
        article.tenant_id = 'globex'

        with pytest.raises(TenantImmutableError) as exc_info:
            db_session.commit()
        db_session.rollback()

        assert exc_info.value.tenant_column == 'tenant_id'
        assert exc_info.value.entity == 'Article'
        assert db_session.query(Article).one().tenant_id == 'acme'

    assert any('type=immutable_tenant' in r.getMessage() for r in caplog.records)


def test_tenant_column_mutable_without_strict_mode(configure_tenants, db_session):
    configure_tenants()
    add_articles(db_session, 'acme', 'moving')

    with tenant.scoped('acme'):
        article = db_session.query(Article).one()
        article.tenant_id = 'globex'
        db_session.commit()

    with tenant.scoped('globex'):
        assert titles(db_session) == ['moving']


def test_other_columns_update_in_strict_mode(configure_tenants, db_session):
    configure_tenants(strict_mode=True)
    add_articles(db_session, 'acme', 'draft')

    with tenant.scoped('acme'):
        article = db_session.query(Article).one()
        article.title = 'published'
        db_session.commit()
        assert titles(db_session) == ['published']


def test_access_is_audited(configure_tenants, db_session, caplog):
    configure_tenants(audit_access=True)
    caplog.set_level(logging.INFO, logger='tenantscope.audit')
    add_articles(db_session, 'acme', 'logged')

    with tenant.scoped('acme'):
        titles(db_session)

    messages = [r.getMessage() for r in caplog.records if r.name == 'tenantscope.audit']
    assert any('tenant=acme model=Article operation=create' in m for m in messages)
    assert any('tenant=acme model=Article operation=query' in m for m in messages)


def test_schema_strategy_does_not_filter(schema_config, db_session):
    db_session.add_all([
        Article(title='a', tenant_id='acme'),
        Article(title='b', tenant_id=None),
    ])
    db_session.commit()

    assert titles(db_session) == ['a', 'b']


def test_install_is_idempotent(configure_tenants, db_engine):
    factory = sessionmaker(bind=db_engine)
    install_tenant_scoping(factory)
    install_tenant_scoping(factory)
    configure_tenants()

    with factory() as session:
        with tenant.scoped('acme'):
            assert session.query(Article).all() == []
