"""
Object-level data access: `DBHelper`.

Every operation resolves the entity's TableMeta, builds a fresh Statement
and hands it to the ConnectionWrapper. Suffix SQL is given either as a
string followed by its positional arguments or as a `SqlFragment`:

    db.get_all(User, 'WHERE age > ? ORDER BY id', 18)
    db.get_all(User, SqlFragment('WHERE age > ? ORDER BY id', (18,)))

Lookups return None or an empty container when nothing matches; mutations
return the affected row count.
"""
import logging
from collections.abc import Sequence
from typing import Any, TypeVar

from dbhelper.binder import BindPolicy
from dbhelper.builder import build_batch_insert, build_count, build_delete
from dbhelper.builder import build_delete_by_key, build_insert
from dbhelper.builder import build_insert_where_not_exist, build_select
from dbhelper.builder import build_select_by_key, build_select_by_keys, build_update
from dbhelper.connection import ConnectionWrapper
from dbhelper.connection import connect as connect_wrapper
from dbhelper.exceptions import MetadataError, PreconditionError
from dbhelper.mapper import fill_entity, to_entity, to_keyed, to_scalar
from dbhelper.meta import TableMeta, get_table_meta, is_entity
from dbhelper.options import DatabaseOptions
from dbhelper.paging import PageData, PageRequest, count_statement, window_statement
from dbhelper.statement import SqlFragment
from dbhelper.transaction import Transaction
from dbhelper.types import coerce_value

__all__ = ['DBHelper', 'connect']

logger = logging.getLogger(__name__)

T = TypeVar('T')

_MISSING = object()


class DBHelper:
    """Maps entity instances to rows over one ConnectionWrapper.

    Examples
        with connect(drivername='sqlite', database=':memory:') as db:
            db.insert(user)
            same = db.get_by_key(User, user.id)
    """

    def __init__(self, cn: ConnectionWrapper) -> None:
        self.cn = cn

    def __enter__(self) -> 'DBHelper':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.cn.close()

    def transaction(self) -> Transaction:
        """Context manager running the enclosed operations in one transaction."""
        return Transaction(self.cn)

    def rollback(self) -> None:
        """Roll back the current transaction.

        Inside `transaction()` the block is marked rollback-only and rolls
        back when it exits.
        """
        self.cn.rollback()

    def set_timeout_warning_valve(self, ms: int | None) -> None:
        """Log statements running longer than `ms` milliseconds at WARNING."""
        self.cn.set_timeout_warning_valve(ms)

    # Lookups

    def get_by_key(self, cls: type[T], key: Any) -> T | None:
        """Load one row by key: a scalar, a mapping of key columns, or a tuple.

        Raises
            NullKeyValueError: the key is incomplete or null
        """
        meta = get_table_meta(cls)
        return to_entity(meta, self.cn.query_first(build_select_by_key(meta, key)))

    def fill_by_key(self, instance: Any) -> bool:
        """Reload `instance` in place from the row matching its key fields.

        Returns
            False when no row matches; the instance is left untouched
        """
        meta = get_table_meta(instance)
        row = self.cn.query_first(build_select_by_key(meta, instance))
        if row is None:
            return False
        fill_entity(meta, instance, row)
        return True

    def get_by_key_list(self, cls: type[T], keys: Sequence[Any]) -> dict[Any, T]:
        """Load many rows by key, keyed and ordered like `keys`.

        Keys without a row are left out. Composite keys come back as tuples
        in key column order.
        """
        if not keys:
            return {}
        meta = get_table_meta(cls)
        rows = self.cn.query(build_select_by_keys(meta, keys))
        return to_keyed(meta, rows, keys)

    def get_all(self, cls: type[T], sql: 'str | SqlFragment | None' = None, *args: Any) -> list[T]:
        meta = get_table_meta(cls)
        rows = self.cn.query(build_select(meta, SqlFragment.of(sql, args)))
        return [to_entity(meta, row) for row in rows]

    def get_one(self, cls: type[T], sql: 'str | SqlFragment | None' = None, *args: Any) -> T | None:
        """First row of `get_all`; further matches are ignored."""
        meta = get_table_meta(cls)
        return to_entity(meta, self.cn.query_first(build_select(meta, SqlFragment.of(sql, args))))

    def get_count(self, cls: type, sql: 'str | SqlFragment | None' = None, *args: Any) -> int:
        meta = get_table_meta(cls)
        return int(to_scalar(self.cn.query_first(build_count(meta, SqlFragment.of(sql, args)))))

    def get_page(self, cls: type[T], page: int, page_size: int,
                 sql: 'str | SqlFragment | None' = None, *args: Any) -> PageData[T]:
        """One 1-based page of rows plus the total count for the same suffix.

        Raises
            PreconditionError: page or page_size below 1
        """
        return self._page(cls, PageRequest(page, page_size, SqlFragment.of(sql, args)), True)

    def get_page_without_count(self, cls: type[T], page: int, page_size: int,
                               sql: 'str | SqlFragment | None' = None, *args: Any) -> PageData[T]:
        """Like `get_page` but skips the count query; `total` is None."""
        return self._page(cls, PageRequest(page, page_size, SqlFragment.of(sql, args)), False)

    def _page(self, cls: type[T], request: PageRequest, with_count: bool) -> PageData[T]:
        meta = get_table_meta(cls)
        rows = self.cn.query(window_statement(meta, request, self.cn.strategy.paging_clause))
        total = None
        if with_count:
            total = int(to_scalar(self.cn.query_first(count_statement(meta, request))))
        logger.debug(f'Page {request.page} of {meta.table}: {len(rows)} rows, total={total}')
        return PageData([to_entity(meta, row) for row in rows], total)

    # Inserts

    def insert(self, obj: Any) -> int:
        """Insert the non-null fields of `obj`; a generated key is written back."""
        return self._insert(obj, BindPolicy.NON_NULL_FIELDS)

    def insert_with_null(self, obj: Any) -> int:
        """Insert every mapped field of `obj`, writing None as NULL."""
        return self._insert(obj, BindPolicy.ALL_FIELDS)

    def insert_where_not_exist(self, obj: Any, where_sql: 'str | SqlFragment', *args: Any) -> int:
        """Insert `obj` only if no row matches the predicate.

        Checked and written by one statement; concurrent writers can still
        race it unless the caller holds a transaction with suitable isolation.

        Returns
            1 when inserted, 0 when a matching row already existed
        """
        return self._insert(obj, BindPolicy.NON_NULL_FIELDS, SqlFragment.of(where_sql, args), True)

    def insert_with_null_where_not_exist(self, obj: Any, where_sql: 'str | SqlFragment', *args: Any) -> int:
        return self._insert(obj, BindPolicy.ALL_FIELDS, SqlFragment.of(where_sql, args), True)

    def insert_with_null_in_one_sql(self, objs: Sequence[Any]) -> int:
        """Insert every field of every object with one multi-row statement.

        Generated keys are not written back.
        """
        return self.cn.execute(build_batch_insert(list(objs)))

    def _insert(self, obj: Any, policy: BindPolicy, predicate: SqlFragment | None = None,
                conditional: bool = False) -> int:
        meta = get_table_meta(obj)
        if conditional:
            stmt, generated = build_insert_where_not_exist(meta, obj, predicate, policy)
        else:
            stmt, generated = build_insert(meta, obj, policy)

        if generated is None:
            return self.cn.execute(stmt)

        rowcount, key = self.cn.insert_returning_key(stmt, generated)
        if key is not None:
            self._write_back_key(meta, obj, key)
        return rowcount

    def _write_back_key(self, meta: TableMeta, obj: Any, key: Any) -> None:
        auto = meta.auto_key
        setattr(obj, auto.field, coerce_value(key, auto.python_type))

    # Updates and deletes

    def update(self, obj: Any, sql: 'str | SqlFragment | None' = None, *args: Any) -> int:
        """Update the non-null, non-key fields of `obj` (or of each object in a list).

        A suffix is ANDed to the key predicate, so
        `update(acct, 'WHERE version = ?', 3)` affects 0 rows once the version moved on.
        """
        return self._update(obj, BindPolicy.NON_NULL_FIELDS, SqlFragment.of(sql, args))

    def update_with_null(self, obj: Any, sql: 'str | SqlFragment | None' = None, *args: Any) -> int:
        """Update every non-key field of `obj` (or of each object in a list), None included."""
        return self._update(obj, BindPolicy.ALL_FIELDS, SqlFragment.of(sql, args))

    def _update(self, obj: Any, policy: BindPolicy, suffix: SqlFragment | None) -> int:
        if isinstance(obj, list | tuple):
            return sum(self._update(each, policy, suffix) for each in obj)

        stmt = build_update(get_table_meta(obj), obj, policy, suffix)
        if stmt is None:
            return 0
        return self.cn.execute(stmt)

    def delete_by_key(self, obj_or_cls: Any, key: Any = _MISSING) -> int:
        """Delete by the key of an instance, or by `key` for an entity type.

            db.delete_by_key(user)
            db.delete_by_key(User, 42)
        """
        if isinstance(obj_or_cls, type):
            if key is _MISSING:
                raise PreconditionError(f'delete_by_key({obj_or_cls.__name__}) needs a key value')
            return self.cn.execute(build_delete_by_key(get_table_meta(obj_or_cls), key))
        if key is not _MISSING:
            raise PreconditionError('delete_by_key takes either an instance or a type and a key')
        return self.cn.execute(build_delete_by_key(get_table_meta(obj_or_cls), obj_or_cls))

    def delete(self, cls: type, where_sql: 'str | SqlFragment', *args: Any) -> int:
        """Delete the rows matching a predicate, which must include WHERE.

        Raises
            PreconditionError: the predicate has no WHERE clause
        """
        return self.cn.execute(build_delete(get_table_meta(cls), SqlFragment.of(where_sql, args)))

    # Passthrough queries

    def query_for_object(self, cls: type[T] | None, sql: str, *args: Any) -> T | None:
        """First column of the first row, coerced to `cls`."""
        return to_scalar(self.cn.query_first(sql, *args), cls)

    def query_for_map(self, sql: str, *args: Any) -> dict[str, Any] | None:
        """First row as a dict, None when there is none."""
        return self.cn.query_first(sql, *args)

    def query_for_list(self, sql: str, *args: Any, cls: type | None = None) -> list:
        """All rows as dicts, as entities when `cls` is an entity, else as scalars of `cls`.
        """
        rows = self.cn.query(sql, *args)
        if cls is None:
            return rows
        if is_entity(cls):
            meta = get_table_meta(cls)
            return [to_entity(meta, row) for row in rows]
        return [to_scalar(row, cls) for row in rows]

    def query_for_row_set(self, sql: str, *args: Any) -> Any:
        """All rows through the configured data loader (a DataFrame by default)."""
        return self.cn.query_frame(sql, *args)

    # Schema checks

    def validate_entity(self, cls: type, bypass_cache: bool = False) -> None:
        """Check an entity declaration against the live table.

        Raises
            MetadataError: the table is missing or lacks mapped columns

        Key declarations that differ from the table's primary key are
        logged as warnings only.
        """
        meta = get_table_meta(cls)
        strategy = self.cn.strategy
        table_columns = strategy.get_columns(self.cn, meta.table, bypass_cache=bypass_cache)
        if not table_columns:
            raise MetadataError(f'Table {meta.table} for {cls.__name__} does not exist')

        present = {col.lower() for col in table_columns}
        missing = [col for col in meta.column_names if col.lower() not in present]
        if missing:
            raise MetadataError(f'{cls.__name__} maps columns missing from {meta.table}: {missing}')

        primary = {col.lower() for col in strategy.get_primary_keys(self.cn, meta.table, bypass_cache=bypass_cache)}
        declared = {col.name.lower() for col in meta.key_columns}
        if primary and declared != primary:
            logger.warning(f'{cls.__name__} keys {sorted(declared)} differ from '
                           f'primary key of {meta.table} {sorted(primary)}')


def connect(options: DatabaseOptions | dict[str, Any] | None = None, **kw: Any) -> DBHelper:
    """Open a connection and wrap it in a DBHelper.

    Accepts a DatabaseOptions, a dict of options, or keyword arguments
    (which override dict entries):

        db = connect(drivername='sqlite', database='app.db')
    """
    return DBHelper(connect_wrapper(options, **kw))
