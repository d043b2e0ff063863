"""
Pytest configuration and shared fixtures.

Ensures the project root is on sys.path, resets the global tenant facade
between tests, and provides:
    configure_tenants  configure the facade with sensible test defaults
    fake_connection    records SQL and simulates schemas (PostgreSQL dialect)
    schema_config      schema strategy wired to fake_connection
    db_session         in-memory SQLite session with tenant scoping installed
    make_request       RequestInfo built from werkzeug's EnvironBuilder
"""
import os
import re
import sys

import pytest
from sqlalchemy import Column, Integer, String, create_engine
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from werkzeug.test import EnvironBuilder

REPO_ROOT = os.path.abspath(os.path.dirname(__file__))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from tenantscope.config import Configurator  # noqa: E402
from tenantscope.elevators import RequestInfo  # noqa: E402
from tenantscope.scoping import TenantScopedMixin, install_tenant_scoping  # noqa: E402
from tenantscope.tenant_context import tenant  # noqa: E402

TENANTS = ['acme', 'globex', 'initech']


# --- ORM models used by the scoping tests -----------------------------------

class ScopedBase(DeclarativeBase):
    pass


class Article(ScopedBase, TenantScopedMixin):
    __tablename__ = 'articles'

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)


class AuditEntry(ScopedBase, TenantScopedMixin):
    """Scoped model that tests list in excluded_models."""
    __tablename__ = 'audit_entries'

    id = Column(Integer, primary_key=True)
    message = Column(String(255), nullable=False)


class Category(ScopedBase):
    """Shared model without a tenant column."""
    __tablename__ = 'categories'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)


# --- fake PostgreSQL connection ----------------------------------------------

class FakeResult:
    def __init__(self, value=None):
        self.value = value

    def scalar(self):
        return self.value


class FakeConnection:
    """
    Stand-in for a SQLAlchemy Connection.

    Uses the real PostgreSQL dialect for identifier quoting, records every
    statement, and keeps a set of existing schemas so CREATE/DROP/EXISTS
    behave consistently.
    """

    _IDENTIFIER = re.compile(r'"((?:[^"]|"")*)"')

    def __init__(self, schemas=()):
        self.dialect = postgresql.dialect()
        self.schemas = set(schemas)
        self.statements = []

    def execute(self, statement, params=None):
        sql = str(statement)
        self.statements.append(sql)

        if sql.startswith('CREATE SCHEMA'):
            self.schemas.add(self._first_identifier(sql))
        elif sql.startswith('DROP SCHEMA'):
            self.schemas.discard(self._first_identifier(sql))
        elif 'information_schema.schemata' in sql:
            return FakeResult(params['schema'] in self.schemas)
        return FakeResult()

    @property
    def search_paths(self):
        return [s for s in self.statements if s.startswith('SET search_path')]

    def _first_identifier(self, sql):
        return self._IDENTIFIER.search(sql).group(1).replace('""', '"')


# --- fixtures ----------------------------------------------------------------

@pytest.fixture(autouse=True)
def clear_tenant_configuration():
    tenant.clear()
    yield
    tenant.clear()


@pytest.fixture
def configure_tenants():
    """Configure the global facade; keyword arguments override the defaults."""
    def configure(**options):
        options.setdefault('tenant_names', list(TENANTS))
        return tenant.configure(Configurator(**options))

    return configure


@pytest.fixture
def fake_connection():
    return FakeConnection(schemas={f'tenant_{name}' for name in TENANTS})


@pytest.fixture
def schema_config(configure_tenants, fake_connection):
    return configure_tenants(
        strategy='schema',
        schema_format='tenant_{tenant}',
        persistent_schemas=['shared'],
        connection=lambda: fake_connection,
    )


@pytest.fixture
def db_engine():
    engine = create_engine('sqlite://')
    ScopedBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    factory = sessionmaker(bind=db_engine, expire_on_commit=False)
    install_tenant_scoping(factory)
    session = factory()
    yield session
    session.close()


@pytest.fixture
def make_request():
    def build(path='/', host='example.com', headers=None, query_string=None):
        builder = EnvironBuilder(
            path=path,
            base_url=f'http://{host}',
            headers=headers,
            query_string=query_string,
        )
        return RequestInfo.from_environ(builder.get_environ())

    return build
