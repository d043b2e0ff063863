"""
Configuration for tenantscope.

A Configurator is a mutable builder whose setters validate every value as
it is assigned. build() freezes it into a TenantConfig snapshot, which is
what the adapters and the facade read from. Reconfiguring replaces the
snapshot wholesale; nothing ever mutates a built TenantConfig.

Usage:
    config = Configurator()
    config.strategy = "schema"
    config.tenant_names = lambda: load_names()
    config.schema_format = "tenant_{tenant}"

    @config.after_create
    def seed(tenant):
        ...

    tenantscope.configure(config)

Environment:
    Configurator.from_env() reads TENANT_* variables (after load_dotenv()),
    see from_env() for the full list.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Union

from dotenv import load_dotenv

from tenantscope.exceptions import ConfigurationError

VALID_STRATEGIES = ('column', 'schema')
VALID_ELEVATORS = ('subdomain', 'domain', 'header', 'generic', 'host', 'path')
CALLBACK_NAMES = ('before_create', 'after_create', 'before_switch', 'after_switch')

DEFAULT_SCHEMA = 'public'
TENANT_PLACEHOLDER = '{tenant}'

TenantNames = Union[Tuple[str, ...], Callable[[], Sequence[str]]]
Elevator = Union[str, Callable[[Any], Optional[str]], None]


@dataclass(frozen=True)
class Callbacks:
    """Lifecycle hooks; each slot holds at most one callable."""

    before_create: Optional[Callable] = None
    after_create: Optional[Callable] = None
    before_switch: Optional[Callable] = None
    after_switch: Optional[Callable] = None

    def run(self, name: str, *args) -> None:
        callback = getattr(self, name)
        if callback is not None:
            callback(*args)


@dataclass(frozen=True)
class TenantConfig:
    """Immutable configuration snapshot produced by Configurator.build()."""

    strategy: str = 'column'
    tenant_column: str = 'tenant_id'
    tenant_names: TenantNames = ()
    tenant_model: Optional[type] = None
    tenant_identifier: str = 'id'
    excluded_models: Tuple[str, ...] = ()
    persistent_schemas: Tuple[str, ...] = ()
    schema_format: str = TENANT_PLACEHOLDER
    default_schema: str = DEFAULT_SCHEMA
    elevator: Elevator = None
    excluded_subdomains: Tuple[str, ...] = ()
    excluded_paths: Tuple[str, ...] = ()
    audit_violations: bool = False
    audit_access: bool = False
    require_tenant: bool = True
    strict_mode: bool = False
    verify_schemas: bool = True
    connection: Optional[Callable[[], Any]] = None
    session_factory: Optional[Callable[[], Any]] = None
    callbacks: Callbacks = field(default_factory=Callbacks)

    def to_dict(self) -> dict:
        """Plain mapping of the snapshot, for display and debugging."""
        names = self.tenant_names
        return {
            'strategy': self.strategy,
            'tenant_column': self.tenant_column,
            'tenant_names': names if not callable(names) else '<dynamic>',
            'tenant_model': self.tenant_model.__name__ if self.tenant_model else None,
            'tenant_identifier': self.tenant_identifier,
            'excluded_models': list(self.excluded_models),
            'persistent_schemas': list(self.persistent_schemas),
            'schema_format': self.schema_format,
            'elevator': self.elevator if not callable(self.elevator) else '<custom>',
            'excluded_subdomains': list(self.excluded_subdomains),
            'excluded_paths': list(self.excluded_paths),
            'audit_violations': self.audit_violations,
            'audit_access': self.audit_access,
            'require_tenant': self.require_tenant,
            'strict_mode': self.strict_mode,
            'verify_schemas': self.verify_schemas,
        }


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


class Configurator:
    """
    Validating builder for TenantConfig.

    Every attribute can also be passed as a keyword argument:

        Configurator(strategy="column", tenant_names=["acme", "globex"])
    """

    def __init__(self, **options):
        self._strategy = 'column'
        self._tenant_column = 'tenant_id'
        self._tenant_names: Any = ()
        self._tenant_model = None
        self._tenant_identifier = 'id'
        self._excluded_models: Tuple[str, ...] = ()
        self._persistent_schemas: Tuple[str, ...] = ()
        self._schema_format = TENANT_PLACEHOLDER
        self._default_schema = DEFAULT_SCHEMA
        self._elevator: Elevator = None
        self._excluded_subdomains: Tuple[str, ...] = ()
        self._excluded_paths: Tuple[str, ...] = ()
        self._audit_violations = False
        self._audit_access = False
        self._require_tenant = True
        self._strict_mode = False
        self._verify_schemas = True
        self._connection = None
        self._session_factory = None
        self._callbacks = {name: None for name in CALLBACK_NAMES}

        for name, value in options.items():
            if name in CALLBACK_NAMES:
                self._register(name, value)
            elif not isinstance(getattr(type(self), name, None), property):
                raise ConfigurationError(f"Unknown configuration option: {name}")
            else:
                setattr(self, name, value)

    # --- strategy ----------------------------------------------------------

    @property
    def strategy(self) -> str:
        return self._strategy

    @strategy.setter
    def strategy(self, value: str) -> None:
        if value not in VALID_STRATEGIES:
            raise ConfigurationError(
                f"strategy must be one of {list(VALID_STRATEGIES)}, got {value!r}"
            )
        self._strategy = value

    @property
    def tenant_column(self) -> str:
        return self._tenant_column

    @tenant_column.setter
    def tenant_column(self, value: str) -> None:
        if not isinstance(value, str) or not value:
            raise ConfigurationError(f"tenant_column must be a non-empty string, got {value!r}")
        self._tenant_column = value

    # --- registry ----------------------------------------------------------

    @property
    def tenant_names(self):
        return self._tenant_names

    @tenant_names.setter
    def tenant_names(self, value) -> None:
        if callable(value):
            self._tenant_names = value
        elif _is_sequence(value):
            self._tenant_names = tuple(value)
        else:
            raise ConfigurationError(
                f"tenant_names must be a list or a callable, got {type(value).__name__}"
            )

    @property
    def tenant_model(self):
        return self._tenant_model

    @tenant_model.setter
    def tenant_model(self, value) -> None:
        if value is not None and not isinstance(value, type):
            raise ConfigurationError(
                f"tenant_model must be a mapped model class, got {type(value).__name__}"
            )
        self._tenant_model = value

    @property
    def tenant_identifier(self) -> str:
        return self._tenant_identifier

    @tenant_identifier.setter
    def tenant_identifier(self, value: str) -> None:
        if not isinstance(value, str) or not value:
            raise ConfigurationError(
                f"tenant_identifier must be a non-empty string, got {value!r}"
            )
        self._tenant_identifier = value

    @property
    def session_factory(self):
        return self._session_factory

    @session_factory.setter
    def session_factory(self, value) -> None:
        if value is not None and not callable(value):
            raise ConfigurationError("session_factory must be callable")
        self._session_factory = value

    @property
    def excluded_models(self) -> Tuple[str, ...]:
        return self._excluded_models

    @excluded_models.setter
    def excluded_models(self, value) -> None:
        self._excluded_models = self._string_tuple('excluded_models', value)

    # --- schema strategy ---------------------------------------------------

    @property
    def persistent_schemas(self) -> Tuple[str, ...]:
        return self._persistent_schemas

    @persistent_schemas.setter
    def persistent_schemas(self, value) -> None:
        self._persistent_schemas = self._string_tuple('persistent_schemas', value)

    @property
    def schema_format(self) -> str:
        return self._schema_format

    @schema_format.setter
    def schema_format(self, value: str) -> None:
        if not isinstance(value, str):
            raise ConfigurationError(
                f"schema_format must be a string, got {type(value).__name__}"
            )
        # A template without the slot would map every tenant to one schema
        if TENANT_PLACEHOLDER not in value:
            raise ConfigurationError(
                f"schema_format must contain the {TENANT_PLACEHOLDER} placeholder, got {value!r}"
            )
        # "tenant_%{tenant}" is accepted as an alias of "tenant_{tenant}"
        self._schema_format = value.replace('%' + TENANT_PLACEHOLDER, TENANT_PLACEHOLDER)

    @property
    def default_schema(self) -> str:
        return self._default_schema

    @default_schema.setter
    def default_schema(self, value: str) -> None:
        if not isinstance(value, str) or not value:
            raise ConfigurationError(f"default_schema must be a non-empty string, got {value!r}")
        self._default_schema = value

    @property
    def verify_schemas(self) -> bool:
        return self._verify_schemas

    @verify_schemas.setter
    def verify_schemas(self, value: bool) -> None:
        self._verify_schemas = self._boolean('verify_schemas', value)

    @property
    def connection(self):
        return self._connection

    @connection.setter
    def connection(self, value) -> None:
        if value is not None and not callable(value):
            raise ConfigurationError(
                "connection must be a callable returning a SQLAlchemy Session or Connection"
            )
        self._connection = value

    # --- request resolution ------------------------------------------------

    @property
    def elevator(self) -> Elevator:
        return self._elevator

    @elevator.setter
    def elevator(self, value: Elevator) -> None:
        if isinstance(value, str):
            if value not in VALID_ELEVATORS:
                raise ConfigurationError(
                    f"elevator must be one of {list(VALID_ELEVATORS)}, got {value!r}"
                )
        elif value is not None and not callable(value):
            raise ConfigurationError(
                f"elevator must be a name or a callable, got {type(value).__name__}"
            )
        self._elevator = value

    @property
    def excluded_subdomains(self) -> Tuple[str, ...]:
        return self._excluded_subdomains

    @excluded_subdomains.setter
    def excluded_subdomains(self, value) -> None:
        self._excluded_subdomains = self._string_tuple('excluded_subdomains', value)

    @property
    def excluded_paths(self) -> Tuple[str, ...]:
        return self._excluded_paths

    @excluded_paths.setter
    def excluded_paths(self, value) -> None:
        self._excluded_paths = self._string_tuple('excluded_paths', value)

    # --- flags -------------------------------------------------------------

    @property
    def audit_violations(self) -> bool:
        return self._audit_violations

    @audit_violations.setter
    def audit_violations(self, value: bool) -> None:
        self._audit_violations = self._boolean('audit_violations', value)

    @property
    def audit_access(self) -> bool:
        return self._audit_access

    @audit_access.setter
    def audit_access(self, value: bool) -> None:
        self._audit_access = self._boolean('audit_access', value)

    @property
    def require_tenant(self) -> bool:
        return self._require_tenant

    @require_tenant.setter
    def require_tenant(self, value: bool) -> None:
        self._require_tenant = self._boolean('require_tenant', value)

    @property
    def strict_mode(self) -> bool:
        return self._strict_mode

    @strict_mode.setter
    def strict_mode(self, value: bool) -> None:
        self._strict_mode = self._boolean('strict_mode', value)

    # --- callbacks ---------------------------------------------------------

    def before_create(self, func: Callable) -> Callable:
        """Register fn(tenant) to run before a tenant is provisioned."""
        return self._register('before_create', func)

    def after_create(self, func: Callable) -> Callable:
        """Register fn(tenant); runs inside the new tenant for schema strategy."""
        return self._register('after_create', func)

    def before_switch(self, func: Callable) -> Callable:
        """Register fn(from_tenant, to_tenant) to run before activation."""
        return self._register('before_switch', func)

    def after_switch(self, func: Callable) -> Callable:
        """Register fn(from_tenant, to_tenant) to run after activation."""
        return self._register('after_switch', func)

    def _register(self, name: str, func: Callable) -> Callable:
        if not callable(func):
            raise ConfigurationError(f"{name} requires a callable")
        # A second registration replaces the first
        self._callbacks[name] = func
        return func

    # --- build -------------------------------------------------------------

    def build(self) -> TenantConfig:
        """Freeze the current settings into a TenantConfig."""
        return TenantConfig(
            strategy=self._strategy,
            tenant_column=self._tenant_column,
            tenant_names=self._resolve_tenant_names(),
            tenant_model=self._tenant_model,
            tenant_identifier=self._tenant_identifier,
            excluded_models=self._resolve_excluded_models(),
            persistent_schemas=self._persistent_schemas,
            schema_format=self._schema_format,
            default_schema=self._default_schema,
            elevator=self._elevator,
            excluded_subdomains=self._excluded_subdomains,
            excluded_paths=self._excluded_paths,
            audit_violations=self._audit_violations,
            audit_access=self._audit_access,
            require_tenant=self._require_tenant,
            strict_mode=self._strict_mode,
            verify_schemas=self._verify_schemas,
            connection=self._connection,
            session_factory=self._session_factory,
            callbacks=Callbacks(**self._callbacks),
        )

    def _resolve_tenant_names(self):
        # An explicit list or callable always wins over tenant_model
        if self._tenant_model is None or self._tenant_names:
            return self._tenant_names

        from tenantscope.registry import model_provider
        return model_provider(
            self._tenant_model,
            self._tenant_identifier,
            session_factory=self._session_factory,
        )

    def _resolve_excluded_models(self) -> Tuple[str, ...]:
        if self._tenant_model is None:
            return self._excluded_models
        name = self._tenant_model.__name__
        if name in self._excluded_models:
            return self._excluded_models
        return self._excluded_models + (name,)

    @staticmethod
    def _boolean(name: str, value: Any) -> bool:
        if not isinstance(value, bool):
            raise ConfigurationError(f"{name} must be a boolean, got {type(value).__name__}")
        return value

    @staticmethod
    def _string_tuple(name: str, value: Any) -> Tuple[str, ...]:
        if not _is_sequence(value):
            raise ConfigurationError(f"{name} must be a list, got {type(value).__name__}")
        return tuple(value)

    # --- environment -------------------------------------------------------

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> 'Configurator':
        """
        Build a Configurator from environment variables.

        Recognised variables:
            TENANT_STRATEGY             column | schema
            TENANT_COLUMN               discriminator column name
            TENANT_NAMES                comma separated tenant ids
            TENANT_SCHEMA_FORMAT        e.g. tenant_{tenant}
            TENANT_PERSISTENT_SCHEMAS   comma separated schema names
            TENANT_ELEVATOR             subdomain | domain | header | path
            TENANT_EXCLUDED_SUBDOMAINS  comma separated
            TENANT_EXCLUDED_PATHS       comma separated
            TENANT_REQUIRE              true | false
            TENANT_STRICT_MODE          true | false
            TENANT_AUDIT_ACCESS         true | false
            TENANT_AUDIT_VIOLATIONS     true | false

        Args:
            environ: Mapping to read from (default: os.environ after load_dotenv())
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        config = cls()
        scalars = {
            'TENANT_STRATEGY': 'strategy',
            'TENANT_COLUMN': 'tenant_column',
            'TENANT_SCHEMA_FORMAT': 'schema_format',
            'TENANT_ELEVATOR': 'elevator',
        }
        lists = {
            'TENANT_NAMES': 'tenant_names',
            'TENANT_PERSISTENT_SCHEMAS': 'persistent_schemas',
            'TENANT_EXCLUDED_SUBDOMAINS': 'excluded_subdomains',
            'TENANT_EXCLUDED_PATHS': 'excluded_paths',
        }
        flags = {
            'TENANT_REQUIRE': 'require_tenant',
            'TENANT_STRICT_MODE': 'strict_mode',
            'TENANT_AUDIT_ACCESS': 'audit_access',
            'TENANT_AUDIT_VIOLATIONS': 'audit_violations',
        }

        for variable, attribute in scalars.items():
            if environ.get(variable):
                setattr(config, attribute, environ[variable])

        for variable, attribute in lists.items():
            if variable in environ:
                items = [item.strip() for item in environ[variable].split(',')]
                setattr(config, attribute, [item for item in items if item])

        for variable, attribute in flags.items():
            if variable in environ:
                raw = environ[variable].strip().lower()
                if raw not in ('true', 'false'):
                    raise ConfigurationError(
                        f"{variable} must be 'true' or 'false', got {environ[variable]!r}"
                    )
                setattr(config, attribute, raw == 'true')

        return config
