"""
SQLite through the standard library driver.

Auto-commit is `isolation_level = None`; a transaction switches to
DEFERRED. Generated keys come from `cursor.lastrowid` and table layouts
from the `pragma_table_info` table-valued function.
"""
import datetime
import decimal
import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbhelper.cache import introspection_cache
from dbhelper.strategy.base import DatabaseStrategy, register_strategy
from dbhelper.types import adapt_date_iso, adapt_datetime_iso, adapt_decimal
from dbhelper.types import convert_date, convert_datetime

if TYPE_CHECKING:
    from dbhelper.connection import ConnectionWrapper
    from dbhelper.options import DatabaseOptions

logger = logging.getLogger(__name__)


def _sqlite_connection(conn: Any) -> sqlite3.Connection:
    """The sqlite3 connection behind a SQLAlchemy pool proxy."""
    return getattr(conn, 'dbapi_connection', conn)


def _register_value_adapters() -> None:
    # process-wide in sqlite3
    sqlite3.register_adapter(dict, json.dumps)
    sqlite3.register_adapter(list, json.dumps)
    sqlite3.register_adapter(datetime.date, adapt_date_iso)
    sqlite3.register_adapter(datetime.datetime, adapt_datetime_iso)
    sqlite3.register_adapter(decimal.Decimal, adapt_decimal)
    sqlite3.register_converter('date', convert_date)
    sqlite3.register_converter('datetime', convert_datetime)


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):

    required_options = ('database',)

    @property
    def dialect_name(self) -> str:
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Declared DATE/DATETIME columns are parsed by the registered converters."""
        return {'connect_args': {'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES}}

    def configure_connection(self, raw_conn: Any) -> None:
        """Register value adapters, enable foreign keys, dict rows and auto-commit.
        """
        _register_value_adapters()
        conn = _sqlite_connection(raw_conn)
        conn.execute('PRAGMA foreign_keys = ON')
        conn.row_factory = sqlite3.Row
        self.enable_autocommit(conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        _sqlite_connection(raw_conn).isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        _sqlite_connection(raw_conn).isolation_level = 'DEFERRED'

    def create_dict_cursor(self, raw_conn: Any) -> Any:
        conn = _sqlite_connection(raw_conn)
        conn.row_factory = sqlite3.Row
        return conn.cursor()

    def returning_clause(self, column: str) -> str:
        return ''

    def fetch_generated_key(self, cursor: Any, column: str) -> Any:
        return cursor.lastrowid

    @introspection_cache('columns')
    def get_columns(self, cn: 'ConnectionWrapper', table: str,
                    bypass_cache: bool = False) -> list[str]:
        return self._select_column_raw(
            cn, 'select name from pragma_table_info(?) order by cid', (table,))

    @introspection_cache('primary_keys')
    def get_primary_keys(self, cn: 'ConnectionWrapper', table: str,
                         bypass_cache: bool = False) -> list[str]:
        return self._select_column_raw(
            cn, 'select name from pragma_table_info(?) where pk <> 0 order by pk', (table,))
