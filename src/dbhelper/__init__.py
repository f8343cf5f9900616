"""
Metadata-driven object mapping over PostgreSQL and SQLite.

Entities are dataclasses declared with `@table` and `column()`; `DBHelper`
generates the parameterized SQL for them:

    @table('t_user')
    @dataclass
    class User:
        id: int | None = column(key=True, auto_increment=True)
        name: str | None = column()

    with connect(drivername='sqlite', database='app.db') as db:
        db.insert(User(name='A'))
        page = db.get_page(User, 1, 20, 'ORDER BY id')
"""
__version__ = '0.1.0'

from dbhelper.binder import BindPolicy
from dbhelper.connection import ConnectionWrapper
from dbhelper.exceptions import DatabaseError, DbConnectionError, IntegrityError
from dbhelper.exceptions import MetadataError, NullKeyValueError, OperationalError
from dbhelper.exceptions import PreconditionError, ProgrammingError
from dbhelper.exceptions import UniqueViolation, ValidationError
from dbhelper.helper import DBHelper, connect
from dbhelper.meta import ColumnMeta, TableMeta, column, get_table_meta, register, table
from dbhelper.options import DatabaseOptions, iterdict_data_loader
from dbhelper.options import pandas_numpy_data_loader, pandas_pyarrow_data_loader
from dbhelper.paging import PageData, PageRequest
from dbhelper.statement import SqlFragment, Statement
from dbhelper.transaction import Transaction

__all__ = [
    'DBHelper',
    'connect',
    'ConnectionWrapper',
    'Transaction',
    'DatabaseOptions',
    'iterdict_data_loader',
    'pandas_numpy_data_loader',
    'pandas_pyarrow_data_loader',
    'table',
    'column',
    'register',
    'get_table_meta',
    'TableMeta',
    'ColumnMeta',
    'BindPolicy',
    'Statement',
    'SqlFragment',
    'PageRequest',
    'PageData',
    'DatabaseError',
    'MetadataError',
    'NullKeyValueError',
    'ValidationError',
    'PreconditionError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
    'UniqueViolation',
]
