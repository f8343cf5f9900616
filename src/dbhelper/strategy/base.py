"""
Dialect strategy interface.

Statement builders emit dialect-neutral SQL. What differs between drivers
(connection URL, auto-commit switching, row shape, how a generated key comes
back, the paging clause, catalog queries) lives behind `DatabaseStrategy`.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbhelper.sql import quote_identifier

if TYPE_CHECKING:
    from dbhelper.connection import ConnectionWrapper
    from dbhelper.options import DatabaseOptions

# dialect name -> strategy class; filled by @register_strategy
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Class decorator adding a strategy to the registry under `dialect`.

        @register_strategy('sqlite')
        class SQLiteStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Driver-specific pieces used by the connection wrapper and DBHelper.
    """

    required_options: tuple[str, ...] = ()

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """'postgresql' or 'sqlite'."""

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Raise ValueError for any required option left empty.
        """
        missing = [name for name in cls.required_options if not getattr(options, name)]
        if missing:
            raise ValueError(f'Missing required options for {cls.__name__}: {", ".join(missing)}')

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        ...

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Extra keyword arguments for `sqlalchemy.create_engine`."""
        return {}

    @abstractmethod
    def configure_connection(self, raw_conn: Any) -> None:
        """Prepare a new DBAPI connection; it must end up in auto-commit mode.
        """

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        ...

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        ...

    @abstractmethod
    def create_dict_cursor(self, raw_conn: Any) -> Any:
        """Cursor whose rows can be read by column name."""

    @abstractmethod
    def returning_clause(self, column: str) -> str:
        """Text appended to an INSERT to get the generated key back.

        Empty when the driver reports the key on the cursor instead.
        """

    @abstractmethod
    def fetch_generated_key(self, cursor: Any, column: str) -> Any:
        ...

    @abstractmethod
    def get_columns(self, cn: 'ConnectionWrapper', table: str,
                    bypass_cache: bool = False) -> list[str]:
        """Column names of `table` in declared order; empty if there is no such table.
        """

    @abstractmethod
    def get_primary_keys(self, cn: 'ConnectionWrapper', table: str,
                         bypass_cache: bool = False) -> list[str]:
        ...

    def quote_identifier(self, identifier: str) -> str:
        return quote_identifier(identifier, self.dialect_name)

    def paging_clause(self, limit: int, offset: int) -> str:
        """Window clause appended to a paged SELECT."""
        return f'LIMIT {int(limit)} OFFSET {int(offset)}'

    def _select_column_raw(self, cn: 'ConnectionWrapper', sql: str, params: tuple = ()) -> list:
        """First column of every row, read on a plain driver cursor.

        Catalog queries bypass the wrapper so they stay out of its
        statement statistics and slow-statement warnings.
        """
        cursor = cn.dbapi_connection.cursor()
        try:
            cursor.execute(sql, params)
            return [row[0] for row in cursor.fetchall()]
        finally:
            cursor.close()
