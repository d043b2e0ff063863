"""Isolation strategies: column discriminator and PostgreSQL schema switching."""

from tenantscope.adapters.base import AbstractAdapter, TenantSlot
from tenantscope.adapters.column import ColumnAdapter
from tenantscope.adapters.schema import SchemaAdapter
from tenantscope.exceptions import ConfigurationError

ADAPTERS = {
    'column': ColumnAdapter,
    'schema': SchemaAdapter,
}


def build_adapter(config) -> AbstractAdapter:
    """Instantiate the adapter for config.strategy."""
    try:
        adapter_class = ADAPTERS[config.strategy]
    except KeyError:
        raise ConfigurationError(f"Unknown strategy: {config.strategy!r}") from None
    return adapter_class(config)


__all__ = [
    "AbstractAdapter",
    "ColumnAdapter",
    "SchemaAdapter",
    "TenantSlot",
    "build_adapter",
]
