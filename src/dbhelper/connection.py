"""
Connections: SQLAlchemy engines underneath, `ConnectionWrapper` on top.

Engines are shared by every connection opened with the same connection
options and disposed when the interpreter exits. Without `use_pool` each
connection is opened and closed for real (`NullPool`).

Connections run in auto-commit mode, so each statement is committed as soon
as it completes; a `Transaction` switches that off while it is active.
Failed statements are never retried.

`ConnectionWrapper` runs `Statement`s (or SQL text plus arguments):

    cn.execute(stmt)                         # affected row count
    cn.query(stmt)                           # list of dicts
    cn.query_first(stmt)                     # dict or None
    cn.query_frame(stmt)                     # rows through the data loader
    cn.insert_returning_key(stmt, 'id')      # (row count, generated key)
"""
import atexit
import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Self

import sqlalchemy as sa
from dbhelper.cursor import Cursor, get_dict_cursor
from dbhelper.mapper import to_dict
from dbhelper.options import DatabaseOptions, load_options
from dbhelper.sql import prepare_query
from dbhelper.statement import Statement
from dbhelper.strategy import DatabaseStrategy, get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

if TYPE_CHECKING:
    from dbhelper.transaction import Transaction

__all__ = [
    'ConnectionWrapper',
    'connect',
    'configure_connection',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

_ENGINE_FIELDS = ('drivername', 'hostname', 'port', 'database', 'username', 'password', 'appname',
                  'timeout', 'use_pool', 'pool_max_connections', 'pool_max_idle_time', 'pool_wait_timeout')

_engines: dict[tuple, Engine] = {}
_engines_lock = threading.RLock()


def _pool_kwargs(options: DatabaseOptions) -> dict[str, Any]:
    if not options.use_pool:
        return {'poolclass': NullPool}
    return {
        'pool_size': options.pool_max_connections,
        'pool_recycle': options.pool_max_idle_time,
        'pool_timeout': options.pool_wait_timeout,
        'max_overflow': 10,
        'pool_pre_ping': True,
        'pool_reset_on_return': 'rollback',
    }


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Shared engine for `options`, created through `engine_factory` on first use.

    Extra keyword arguments go to the factory and override the defaults.
    """
    key = tuple(getattr(options, name) for name in _ENGINE_FIELDS)
    with _engines_lock:
        engine = _engines.get(key)
        if engine is not None:
            return engine

        strategy = get_strategy(options.drivername)
        engine_kwargs = {**strategy.get_engine_kwargs(options), **_pool_kwargs(options), **kwargs}
        engine = _engines[key] = engine_factory(strategy.build_connection_url(options), **engine_kwargs)
        logger.debug(f'New {options.drivername} engine for {options.database} '
                     f'({"pooled" if options.use_pool else "unpooled"})')
        return engine


def dispose_all_engines() -> None:
    with _engines_lock:
        while _engines:
            _, engine = _engines.popitem()
            engine.dispose()
    logger.debug('Engines disposed')


atexit.register(dispose_all_engines)


def configure_connection(sa_connection: sa.engine.Connection, strategy: DatabaseStrategy) -> None:
    """Let the strategy prepare a checked-out connection (auto-commit, adapters, row shape).
    """
    strategy.configure_connection(sa_connection.connection)


def _as_statement(stmt: Statement | str, args: tuple) -> Statement:
    if isinstance(stmt, Statement):
        if args:
            raise TypeError('Arguments must be inside the Statement')
        return stmt
    return Statement(stmt, tuple(args))


class ConnectionWrapper:
    """One open connection plus what DBHelper needs around it.

    Statements are prepared for the dialect before they reach the cursor
    (placeholder style, IN lists, NULL comparisons, value conversion). Each
    execution is counted and timed by the cursor, and statements slower than
    `timeout_warning_ms` are logged at WARNING. `transaction` is the active
    `Transaction`, if any.
    """

    def __init__(self, sa_connection: sa.engine.Connection | None = None,
                 options: 'DatabaseOptions | None' = None) -> None:
        self.sa_connection = sa_connection
        self.options = options
        self.engine = None
        self.dbapi_connection = None
        if sa_connection is not None:
            self.engine = sa_connection.engine
            self.dbapi_connection = sa_connection.connection
        self.strategy = get_strategy(options.drivername) if options else None
        self.timeout_warning_ms = options.timeout_warning_ms if options else None
        self.calls = 0
        self.time = 0.0
        self.transaction: 'Transaction | None' = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        return self.strategy.dialect_name

    @property
    def in_transaction(self) -> bool:
        return self.transaction is not None

    @property
    def closed(self) -> bool:
        return self.sa_connection is None or self.sa_connection.closed

    def cursor(self) -> Cursor:
        """Timed cursor returning rows addressable by column name."""
        return get_dict_cursor(self)

    def addcall(self, elapsed: float) -> None:
        self.calls += 1
        self.time += elapsed

    def set_timeout_warning_valve(self, ms: int | None) -> None:
        """Warn about statements slower than `ms` milliseconds; None turns it off.
        """
        if ms is not None and ms < 0:
            raise ValueError('timeout warning valve cannot be negative')
        self.timeout_warning_ms = ms

    def _prepare(self, stmt: Statement | str, args: tuple) -> tuple[str, tuple]:
        stmt = _as_statement(stmt, args)
        return prepare_query(stmt.sql, stmt.args, self.dialect)

    def execute(self, stmt: Statement | str, *args: Any) -> int:
        """Run a statement; returns the affected row count."""
        sql, params = self._prepare(stmt, args)
        with self.cursor() as cursor:
            return cursor.execute(sql, params)

    def query(self, stmt: Statement | str, *args: Any) -> list[dict[str, Any]]:
        sql, params = self._prepare(stmt, args)
        with self.cursor() as cursor:
            cursor.execute(sql, params)
            rows = [to_dict(row) for row in cursor.fetchall()]
        logger.debug(f'{len(rows)} rows')
        return rows

    def query_first(self, stmt: Statement | str, *args: Any) -> dict[str, Any] | None:
        """First row as a dict, None for an empty result; other rows are not read."""
        sql, params = self._prepare(stmt, args)
        with self.cursor() as cursor:
            cursor.execute(sql, params)
            return to_dict(cursor.fetchone())

    def query_frame(self, stmt: Statement | str, *args: Any) -> Any:
        """Rows passed through `options.data_loader` (a DataFrame by default)."""
        sql, params = self._prepare(stmt, args)
        with self.cursor() as cursor:
            cursor.execute(sql, params)
            rows = [to_dict(row) for row in cursor.fetchall()]
            columns = cursor.columns
        return self.options.data_loader(rows, columns)

    def insert_returning_key(self, stmt: Statement, column: str) -> tuple[int, Any]:
        """Run an INSERT and read back the key the database generated for `column`.

        Returns
            (row count, key); `(0, None)` when nothing was inserted
        """
        returning = Statement(stmt.sql + self.strategy.returning_clause(column), stmt.args)
        sql, params = self._prepare(returning, ())
        with self.cursor() as cursor:
            rowcount = cursor.execute(sql, params)
            if not rowcount:
                return 0, None
            key = self.strategy.fetch_generated_key(cursor.dbapi_cursor, column)
        logger.debug(f'Generated {column}={key}')
        return rowcount, key

    def rollback(self) -> None:
        """Inside a Transaction, mark it rollback-only; otherwise roll back now.
        """
        if self.transaction is not None:
            self.transaction.set_rollback_only()
            return
        logger.warning('Rolling back connection')
        self.dbapi_connection.rollback()

    def close(self) -> None:
        if self.closed:
            return
        self.sa_connection.close()
        logger.debug(f'Closed after {self.calls} statements in {self.time:.3f}s')


def connect(options: DatabaseOptions | dict[str, Any] | None = None, **kw: Any) -> ConnectionWrapper:
    """Open a connection.

    `options` is a DatabaseOptions or a dict; keyword arguments override dict
    entries (see `DatabaseOptions` for pooling and statement options).
    """
    options = load_options(options, **kw)
    sa_connection = get_engine_for_options(options).connect()
    configure_connection(sa_connection, get_strategy(options.drivername))
    return ConnectionWrapper(sa_connection, options)
