"""
tenantscope command line interface.

Usage:
    tenantscope list
    tenantscope config
    tenantscope create acme
    tenantscope drop acme [--yes]
    tenantscope migrate [--revision head]
    tenantscope rollback [--revision -1]
    tenantscope seed myapp.seeds:seed_tenant
    tenantscope each myapp.tasks:reindex

Configuration comes from --config module:function (a callable that calls
tenantscope.configure()), else from an already configured facade, else
from TENANT_* environment variables. create, drop, migrate and rollback
need the schema strategy.
"""

import argparse
import importlib
import logging
import sys
from typing import Callable, List, Optional

from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy.orm import Session

from tenantscope.config import Configurator
from tenantscope.exceptions import ConfigurationError, TenantError
from tenantscope.tenant_context import tenant

logger = logging.getLogger(__name__)


def load_callable(path: str) -> Callable:
    """Import 'package.module:function' and return the function."""
    module_name, _, attribute = path.partition(':')
    if not module_name or not attribute:
        raise ConfigurationError(f"Expected MODULE:FUNCTION, got {path!r}")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attribute)
    except AttributeError:
        raise ConfigurationError(f"{module_name} has no attribute {attribute!r}") from None


def load_configuration(config_path: Optional[str]) -> None:
    if config_path:
        load_callable(config_path)()
    elif not tenant.is_configured:
        tenant.configure(Configurator.from_env())

    if not tenant.is_configured:
        raise ConfigurationError(f"{config_path} did not call tenantscope.configure()")


def _require_schema_strategy(action: str) -> None:
    if tenant.configuration().strategy != 'schema':
        raise ConfigurationError(f"'{action}' is only available for the schema strategy")


# --- commands ----------------------------------------------------------------

def cmd_list(args) -> int:
    config = tenant.configuration()
    adapter = tenant.adapter

    print("Configured tenants:")
    for name in tenant.all_tenants():
        if config.strategy == 'schema':
            present = adapter.schema_exists(adapter.schema_for(name))
        else:
            present = tenant.exists(name)
        print(f"  {'✓' if present else '✗'} {name}")
    return 0


def cmd_config(args) -> int:
    config = tenant.configuration()

    print(f"Strategy: {config.strategy}")
    if config.strategy == 'column':
        print(f"Tenant column: {config.tenant_column}")
    else:
        print(f"Schema format: {config.schema_format}")
        if config.persistent_schemas:
            print(f"Persistent schemas: {', '.join(config.persistent_schemas)}")
    if config.excluded_models:
        print(f"Excluded models: {', '.join(config.excluded_models)}")
    print(f"Require tenant: {str(config.require_tenant).lower()}")
    print(f"Strict mode: {str(config.strict_mode).lower()}")
    return 0


def cmd_create(args) -> int:
    _require_schema_strategy('create')

    print(f"Creating tenant: {args.name}")
    tenant.create(args.name)
    print(f"✓ Tenant '{args.name}' created successfully!")
    return 0


def cmd_drop(args) -> int:
    _require_schema_strategy('drop')

    print(f"WARNING: This will permanently delete all data for tenant '{args.name}'!")
    if not args.yes:
        answer = input("Type 'yes' to continue: ")
        if answer.strip().lower() != 'yes':
            print("Operation cancelled.")
            return 0

    tenant.drop(args.name)
    print(f"✓ Tenant '{args.name}' dropped successfully!")
    return 0


def _alembic_config(path: str) -> AlembicConfig:
    return AlembicConfig(path)


def _run_alembic(args, action: Callable, verb: str) -> None:
    cfg = _alembic_config(args.alembic_config)

    def migrate(name: str) -> None:
        print(f"{verb} tenant: {name}")
        conn = tenant.adapter.connection()
        session = conn if isinstance(conn, Session) else None
        cfg.attributes['connection'] = session.connection() if session is not None else conn
        cfg.attributes['tenant'] = name
        action(cfg, args.revision)
        if session is not None:
            session.commit()

    tenant.iterate_all(migrate)


def cmd_migrate(args) -> int:
    _require_schema_strategy('migrate')

    print("Running migrations for all tenants...")
    _run_alembic(args, command.upgrade, "Migrating")
    print("✓ All tenant migrations completed!")
    return 0


def cmd_rollback(args) -> int:
    _require_schema_strategy('rollback')

    print("Rolling back migrations for all tenants...")
    _run_alembic(args, command.downgrade, "Rolling back")
    print("✓ All tenant rollbacks completed!")
    return 0


def cmd_seed(args) -> int:
    seed = load_callable(args.function)

    def run(name: str):
        print(f"Seeding tenant: {name}")
        return seed(name)

    tenant.iterate_all(run)
    print("✓ Seeding completed!")
    return 0


def cmd_each(args) -> int:
    function = load_callable(args.function)

    def run(name: str):
        print(f"Running in tenant: {name}")
        return function(name)

    tenant.iterate_all(run)
    return 0


# --- entry point -------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tenantscope',
        description='Manage tenants configured with tenantscope'
    )
    parser.add_argument(
        '--config',
        help='MODULE:FUNCTION that calls tenantscope.configure() (default: TENANT_* env vars)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('list', help='List tenants and whether their storage exists').set_defaults(func=cmd_list)
    subparsers.add_parser('config', help='Show the active configuration').set_defaults(func=cmd_config)

    create = subparsers.add_parser('create', help='Create a tenant schema')
    create.add_argument('name')
    create.set_defaults(func=cmd_create)

    drop = subparsers.add_parser('drop', help='Drop a tenant schema (irreversible)')
    drop.add_argument('name')
    drop.add_argument('--yes', action='store_true', help='Skip the confirmation prompt')
    drop.set_defaults(func=cmd_drop)

    for name, default, func, help_text in (
        ('migrate', 'head', cmd_migrate, 'Run alembic upgrade in every tenant'),
        ('rollback', '-1', cmd_rollback, 'Run alembic downgrade in every tenant'),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--revision', default=default)
        sub.add_argument('--alembic-config', default='alembic.ini', help='Path to alembic.ini')
        sub.set_defaults(func=func)

    seed = subparsers.add_parser('seed', help='Call MODULE:FUNCTION(tenant) in every tenant')
    seed.add_argument('function')
    seed.set_defaults(func=cmd_seed)

    each = subparsers.add_parser('each', help='Call MODULE:FUNCTION(tenant) in every tenant')
    each.add_argument('function')
    each.set_defaults(func=cmd_each)

    return parser


def main(argv: List[str] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        load_configuration(args.config)
        return args.func(args)
    except TenantError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
