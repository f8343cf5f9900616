"""
PostgreSQL through psycopg 3.

Rows come back as dicts (`dict_row`), generated keys through
`INSERT ... RETURNING`, table layouts from `pg_attribute` / `pg_index`.
"""
import logging
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa
from dbhelper.cache import introspection_cache
from dbhelper.strategy.base import DatabaseStrategy, register_strategy
from psycopg.rows import dict_row

if TYPE_CHECKING:
    from dbhelper.connection import ConnectionWrapper
    from dbhelper.options import DatabaseOptions

logger = logging.getLogger(__name__)

_COLUMNS_SQL = """
select a.attname
from pg_attribute a
where a.attrelid = to_regclass(%s) and a.attnum > 0 and not a.attisdropped
order by a.attnum
"""

_PRIMARY_KEY_SQL = """
select a.attname
from pg_index i
join pg_attribute a on a.attrelid = i.indrelid and a.attnum = any(i.indkey)
where i.indrelid = to_regclass(%s) and i.indisprimary
order by a.attnum
"""


def _psycopg_connection(conn: Any) -> psycopg.Connection:
    """The psycopg connection behind a SQLAlchemy pool proxy."""
    return getattr(conn, 'driver_connection', None) or conn


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):

    required_options = ('hostname', 'username', 'password', 'database', 'port')

    @property
    def dialect_name(self) -> str:
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        query = {}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)
        if options.appname:
            query['application_name'] = options.appname
        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query,
        )

    def configure_connection(self, raw_conn: Any) -> None:
        """Switch a fresh connection to auto-commit.

        SQLAlchemy may hand the connection over with its first-connect
        transaction still open; that one is rolled back first.
        """
        conn = _psycopg_connection(raw_conn)
        if conn.info.transaction_status != psycopg.pq.TransactionStatus.IDLE:
            conn.rollback()
        conn.autocommit = True

    def enable_autocommit(self, raw_conn: Any) -> None:
        _psycopg_connection(raw_conn).autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        _psycopg_connection(raw_conn).autocommit = False

    def create_dict_cursor(self, raw_conn: Any) -> Any:
        return _psycopg_connection(raw_conn).cursor(row_factory=dict_row)

    def returning_clause(self, column: str) -> str:
        return f' RETURNING {self.quote_identifier(column)}'

    def fetch_generated_key(self, cursor: Any, column: str) -> Any:
        """Value from the RETURNING row; None when nothing was inserted."""
        row = cursor.fetchone()
        return None if row is None else row[column]

    @introspection_cache('columns')
    def get_columns(self, cn: 'ConnectionWrapper', table: str,
                    bypass_cache: bool = False) -> list[str]:
        return self._select_column_raw(cn, _COLUMNS_SQL, (self.quote_identifier(table),))

    @introspection_cache('primary_keys')
    def get_primary_keys(self, cn: 'ConnectionWrapper', table: str,
                         bypass_cache: bool = False) -> list[str]:
        return self._select_column_raw(cn, _PRIMARY_KEY_SQL, (self.quote_identifier(table),))
