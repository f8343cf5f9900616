"""
Connection options and row-set loaders.

    options = load_options({'drivername': 'sqlite'}, database='app.db')

A data loader receives the fetched rows (dicts) and the column names and
returns whatever `DBHelper.query_for_row_set` should hand back.
"""
from collections.abc import Callable, Sequence
from dataclasses import dataclass, fields
from typing import Any

import pandas as pd
import pyarrow as pa
from dbhelper.strategy import get_available_dialects, get_strategy_class
from dbhelper.strategy import is_supported_dialect

__all__ = [
    'DatabaseOptions',
    'load_options',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'iterdict_data_loader',
]


def iterdict_data_loader(data: Sequence[dict], columns: Sequence[str], **kwargs) -> list[dict]:
    """Rows as they are: a list of dicts."""
    return list(data or [])


def pandas_numpy_data_loader(data: Sequence[dict], columns: Sequence[str], **kwargs) -> pd.DataFrame:
    """NumPy-backed DataFrame; an empty result keeps its columns."""
    return pd.DataFrame.from_records(list(data or []), columns=list(columns))


def pandas_pyarrow_data_loader(data: Sequence[dict], columns: Sequence[str], **kwargs) -> pd.DataFrame:
    """DataFrame with `pd.ArrowDtype` columns built through a pyarrow Table.
    """
    names = list(columns)
    if not data:
        return pd.DataFrame(columns=names)
    table = pa.Table.from_pylist(list(data)).select(names)
    return table.to_pandas(types_mapper=pd.ArrowDtype)


@dataclass
class DatabaseOptions:
    """Options for `connect()`.

    `drivername` is `postgresql` or `sqlite`; the dialect strategy decides
    which of the other connection fields are required.

    Pooling (SQLAlchemy QueuePool, off by default):
    - use_pool
    - pool_max_connections: pool size
    - pool_max_idle_time: seconds before an idle connection is recycled
    - pool_wait_timeout: seconds to wait for a free connection

    Statements:
    - timeout_warning_ms: slower statements are logged at WARNING; None disables
    - data_loader: builds the value returned by `query_for_row_set`
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    data_loader: Callable[..., Any] | None = None
    timeout_warning_ms: int | None = 1000
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            raise ValueError(f'drivername must be one of: {get_available_dialects()}')
        get_strategy_class(self.drivername).validate_options(self)
        if self.timeout_warning_ms is not None and self.timeout_warning_ms < 0:
            raise ValueError('timeout_warning_ms cannot be negative')
        self.appname = self.appname or 'dbhelper'
        self.data_loader = self.data_loader or pandas_numpy_data_loader


def load_options(options: 'DatabaseOptions | dict[str, Any] | None' = None,
                 **kw: Any) -> DatabaseOptions:
    """DatabaseOptions from an instance, a dict and/or keyword arguments.

    Keywords override dict entries. An existing DatabaseOptions is returned
    as is and keywords are ignored.

    Raises
        ValueError: unknown option names or invalid values
    """
    if isinstance(options, DatabaseOptions):
        return options

    values = {**(options or {}), **kw}
    unknown = set(values) - {field.name for field in fields(DatabaseOptions)}
    if unknown:
        raise ValueError(f'Unknown database options: {sorted(unknown)}')
    return DatabaseOptions(**values)
