"""Tests for the tenantscope command line interface."""

import pytest

import tenantscope
from tenantscope import cli
from tenantscope.config import Configurator
from tenantscope.tenant_context import tenant

from conftest import TENANTS

seeded_tenants = []


def configure_for_cli():
    tenantscope.configure(Configurator(tenant_names=['acme', 'globex'], require_tenant=False))


def record_seed(name):
    seeded_tenants.append((name, tenant.current()))


@pytest.fixture
def column_config(configure_tenants):
    return configure_tenants(require_tenant=False, excluded_models=['User', 'Tenant'])


def test_list_schema_strategy(schema_config, fake_connection, capsys):
    fake_connection.schemas.discard('tenant_globex')

    assert cli.main(['list']) == 0

    output = capsys.readouterr().out
    assert 'Configured tenants:' in output
    assert '✓ acme' in output
    assert '✗ globex' in output
    assert '✓ initech' in output


def test_list_column_strategy(column_config, capsys):
    assert cli.main(['list']) == 0

    output = capsys.readouterr().out
    for name in TENANTS:
        assert f'✓ {name}' in output


def test_config_column_strategy(column_config, capsys):
    assert cli.main(['config']) == 0

    output = capsys.readouterr().out
    assert 'Strategy: column' in output
    assert 'Tenant column: tenant_id' in output
    assert 'Excluded models: User, Tenant' in output
    assert 'Require tenant: false' in output


def test_config_schema_strategy(schema_config, capsys):
    assert cli.main(['config']) == 0

    output = capsys.readouterr().out
    assert 'Strategy: schema' in output
    assert 'Schema format: tenant_{tenant}' in output
    assert 'Persistent schemas: shared' in output


def test_config_option_loads_configuration(capsys):
    assert cli.main(['--config', 'tenantscope.test_cli:configure_for_cli', 'list']) == 0

    output = capsys.readouterr().out
    assert '✓ acme' in output
    assert '✓ globex' in output


def test_config_from_environment(monkeypatch, capsys):
    monkeypatch.setenv('TENANT_NAMES', 'umbrella')

    assert cli.main(['list']) == 0
    assert '✓ umbrella' in capsys.readouterr().out


def test_create(schema_config, fake_connection, capsys):
    fake_connection.schemas.clear()

    assert cli.main(['create', 'acme']) == 0

    output = capsys.readouterr().out
    assert 'Creating tenant: acme' in output
    assert "Tenant 'acme' created successfully!" in output
    assert 'tenant_acme' in fake_connection.schemas


def test_create_unknown_tenant_fails(schema_config, capsys):
    assert cli.main(['create', 'umbrella']) == 1
    assert "Tenant 'umbrella' not found" in capsys.readouterr().err


def test_schema_commands_rejected_for_column_strategy(column_config, capsys):
    assert cli.main(['create', 'acme']) == 1
    assert cli.main(['drop', 'acme', '--yes']) == 1
    assert cli.main(['migrate']) == 1
    assert 'only available for the schema strategy' in capsys.readouterr().err


def test_drop_requires_confirmation(schema_config, fake_connection, monkeypatch, capsys):
    monkeypatch.setattr('builtins.input', lambda prompt: 'no')

    assert cli.main(['drop', 'acme']) == 0

    output = capsys.readouterr().out
    assert 'WARNING: This will permanently delete all data' in output
    assert 'Operation cancelled.' in output
    assert 'tenant_acme' in fake_connection.schemas


def test_drop_confirmed(schema_config, fake_connection, monkeypatch, capsys):
    monkeypatch.setattr('builtins.input', lambda prompt: 'yes')

    assert cli.main(['drop', 'acme']) == 0

    assert "Tenant 'acme' dropped successfully!" in capsys.readouterr().out
    assert 'tenant_acme' not in fake_connection.schemas


def test_drop_with_yes_flag(schema_config, fake_connection):
    assert cli.main(['drop', 'globex', '--yes']) == 0
    assert 'tenant_globex' not in fake_connection.schemas


def test_migrate_runs_in_every_tenant(schema_config, fake_connection, monkeypatch, capsys):
    calls = []

    def fake_upgrade(cfg, revision):
        calls.append((cfg.attributes['tenant'], revision, tenant.current(),
                      cfg.attributes['connection'] is fake_connection))

    monkeypatch.setattr(cli.command, 'upgrade', fake_upgrade)

    assert cli.main(['migrate']) == 0

    assert calls == [(name, 'head', name, True) for name in TENANTS]
    output = capsys.readouterr().out
    assert 'Migrating tenant: acme' in output
    assert 'All tenant migrations completed!' in output
    assert tenant.current() is None


def test_rollback(schema_config, monkeypatch, capsys):
    calls = []
    monkeypatch.setattr(cli.command, 'downgrade', lambda cfg, revision: calls.append(revision))

    assert cli.main(['rollback', '--revision', 'base']) == 0

    assert calls == ['base'] * len(TENANTS)
    output = capsys.readouterr().out
    assert 'Rolling back tenant: globex' in output
    assert 'All tenant rollbacks completed!' in output


def test_seed_calls_function_in_every_tenant(column_config, capsys):
    seeded_tenants.clear()

    assert cli.main(['seed', 'tenantscope.test_cli:record_seed']) == 0

    assert seeded_tenants == [(name, name) for name in TENANTS]
    assert 'Seeding tenant: initech' in capsys.readouterr().out


def test_each(column_config):
    seeded_tenants.clear()

    assert cli.main(['each', 'tenantscope.test_cli:record_seed']) == 0

    assert [name for name, _ in seeded_tenants] == TENANTS


def test_bad_function_path(column_config, capsys):
    assert cli.main(['each', 'no_colon_here']) == 1
    assert 'MODULE:FUNCTION' in capsys.readouterr().err
