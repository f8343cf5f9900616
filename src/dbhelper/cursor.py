"""
Cursor wrapper that times, logs and annotates every statement.

Implements the parts of the Python DB-API 2.0 cursor (PEP-249) the
connection wrapper needs.
"""
import logging
import time
from collections.abc import Sequence
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Time and log a cursor `execute`.

    Every call is added to the connection statistics. A call slower than the
    connection's `timeout_warning_ms` is logged at WARNING. A failing call is
    logged at ERROR and re-raised as is, with the SQL and args added as notes.
    """
    @wraps(func)
    def wrapper(self, operation: str, args: Sequence[Any] = (), *a: Any, **kw: Any):
        start = time.perf_counter()
        logger.debug(f'Executing:\n{operation}\nargs: {args}')
        try:
            result = func(self, operation, args, *a, **kw)
            if hasattr(self.dbapi_cursor, 'statusmessage'):
                logger.debug(f'Status: {self.dbapi_cursor.statusmessage}')
            return result
        except Exception as err:
            err.add_note(f'SQL: {operation}')
            err.add_note(f'args: {args}')
            logger.error(f'Statement failed ({type(err).__name__}):\n{operation}\nargs: {args}')
            raise
        finally:
            elapsed = time.perf_counter() - start
            self.connwrapper.addcall(elapsed)
            valve = self.connwrapper.timeout_warning_ms
            if valve is not None and elapsed * 1000 > valve:
                logger.warning(f'Slow statement ({elapsed * 1000:.0f} ms > {valve} ms):\n'
                               f'{operation}\nargs: {args}')
            else:
                logger.debug(f'Took {elapsed * 1000:.1f} ms')
    return wrapper


class Cursor:
    """DB-API cursor bound to the ConnectionWrapper that owns its statistics."""

    def __init__(self, cursor: Any, connection_wrapper: Any) -> None:
        self.dbapi_cursor = cursor
        self.connwrapper = connection_wrapper

    def __getattr__(self, name: str) -> Any:
        return getattr(self.dbapi_cursor, name)

    def __enter__(self) -> 'Cursor':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def description(self) -> list[tuple] | None:
        return self.dbapi_cursor.description

    @property
    def rowcount(self) -> int:
        return self.dbapi_cursor.rowcount

    @property
    def columns(self) -> list[str]:
        """Column names of the last result set."""
        return [desc[0] for desc in self.description or []]

    def close(self) -> None:
        self.dbapi_cursor.close()

    def fetchone(self) -> Any:
        return self.dbapi_cursor.fetchone()

    def fetchall(self) -> list:
        return self.dbapi_cursor.fetchall()

    @dumpsql
    def execute(self, operation: str, args: Sequence[Any] = ()) -> int:
        """Execute an already prepared statement and return the row count."""
        if args:
            self.dbapi_cursor.execute(operation, tuple(args))
        else:
            self.dbapi_cursor.execute(operation)
        return self.dbapi_cursor.rowcount


def get_dict_cursor(cn: Any) -> Cursor:
    """Wrapped strategy cursor for `cn`; rows are addressable by column name."""
    return Cursor(cn.strategy.create_dict_cursor(cn.dbapi_connection), cn)
