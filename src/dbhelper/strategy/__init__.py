"""
Dialect strategies, looked up by the `drivername` option.
"""
from functools import cache

from dbhelper.strategy.base import _STRATEGY_REGISTRY
from dbhelper.strategy.base import DatabaseStrategy as DatabaseStrategy
from dbhelper.strategy.base import register_strategy as register_strategy
from dbhelper.strategy.postgres import PostgresStrategy as PostgresStrategy
from dbhelper.strategy.sqlite import SQLiteStrategy as SQLiteStrategy


def get_available_dialects() -> list[str]:
    return list(_STRATEGY_REGISTRY)


def is_supported_dialect(dialect: str) -> bool:
    return dialect in _STRATEGY_REGISTRY


def get_strategy_class(dialect: str) -> type[DatabaseStrategy]:
    """Registered strategy class for `dialect`.

    Raises
        ValueError: nothing is registered under that name
    """
    try:
        return _STRATEGY_REGISTRY[dialect]
    except KeyError:
        raise ValueError(f'Unsupported dialect: {dialect}. '
                         f'Available: {get_available_dialects()}') from None


@cache
def get_strategy(dialect: str) -> DatabaseStrategy:
    """Shared strategy instance for `dialect`; strategies hold no connection state."""
    return get_strategy_class(dialect)()
