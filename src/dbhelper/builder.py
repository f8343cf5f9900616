"""
SQL statement generation from entity metadata.

Every builder returns an immutable `Statement` whose SQL uses `?`
placeholders and quoted identifiers. Arguments are ordered strictly left to
right as they appear in the text: generated-column arguments first, then
the arguments of the caller's suffix.
"""
import logging
from collections.abc import Sequence
from typing import Any

from dbhelper.binder import BindPolicy, KeySpec, bind, resolve_key
from dbhelper.exceptions import PreconditionError
from dbhelper.meta import TableMeta, get_table_meta
from dbhelper.sql import find_keyword, quote_identifier, strip_leading_keyword
from dbhelper.statement import SqlFragment, Statement

__all__ = [
    'build_insert',
    'build_insert_where_not_exist',
    'build_batch_insert',
    'build_update',
    'build_delete_by_key',
    'build_delete',
    'build_select',
    'build_select_by_key',
    'build_select_by_keys',
    'build_count',
]

logger = logging.getLogger(__name__)


def _quoted(columns: Sequence[str]) -> str:
    return ', '.join(quote_identifier(col) for col in columns)


def _placeholders(count: int) -> str:
    return ', '.join(['?'] * count)


def _select_list(meta: TableMeta) -> str:
    return f'SELECT {_quoted(meta.column_names)} FROM {quote_identifier(meta.table)}'


def _key_predicate(key: KeySpec) -> str:
    return ' AND '.join(f'{quote_identifier(col)} = ?' for col in key.columns)


def _with_suffix(sql: str, args: list, suffix: SqlFragment | None) -> Statement:
    if suffix:
        sql = f'{sql} {suffix.sql.strip()}'
        args = args + list(suffix.args)
    return Statement(sql, tuple(args))


def _insert_pairs(meta: TableMeta, instance: Any, policy: BindPolicy) -> tuple[list, str | None]:
    """Bound pairs for an insert and the auto key column to fetch back, if any.

    A None auto key is left out so the database generates it.
    """
    pairs = bind(instance, policy, meta)
    auto = meta.auto_key
    if auto is None or getattr(instance, auto.field) is not None:
        return pairs, None
    return [(col, value) for col, value in pairs if col != auto.name], auto.name


def build_insert(meta: TableMeta, instance: Any,
                 policy: BindPolicy = BindPolicy.NON_NULL_FIELDS) -> tuple[Statement, str | None]:
    """Build `INSERT INTO t (cols) VALUES (?, ...)`.

    Returns
        The statement and the name of the generated key column to read back
        (None when the table has no auto key or the instance already holds one).
    """
    pairs, generated = _insert_pairs(meta, instance, policy)
    table = quote_identifier(meta.table)
    if not pairs:
        return Statement(f'INSERT INTO {table} DEFAULT VALUES'), generated

    columns = [col for col, _ in pairs]
    sql = f'INSERT INTO {table} ({_quoted(columns)}) VALUES ({_placeholders(len(columns))})'
    return Statement(sql, tuple(value for _, value in pairs)), generated


def build_insert_where_not_exist(meta: TableMeta, instance: Any, predicate: SqlFragment | None,
                                 policy: BindPolicy = BindPolicy.NON_NULL_FIELDS) -> tuple[Statement, str | None]:
    """Build an insert guarded by a non-existence check, as one statement:

        INSERT INTO t (cols) SELECT ?, ... WHERE NOT EXISTS (SELECT 1 FROM t WHERE <predicate>)

    The predicate may start with WHERE. No isolation beyond the single
    statement is provided.
    """
    condition = strip_leading_keyword(predicate.sql, 'WHERE') if predicate else ''
    if not condition:
        raise PreconditionError('Conditional insert requires a non-empty predicate')

    pairs, generated = _insert_pairs(meta, instance, policy)
    if not pairs:
        raise PreconditionError(f'{meta.entity.__name__} has no column values to insert')

    table = quote_identifier(meta.table)
    columns = [col for col, _ in pairs]
    sql = (f'INSERT INTO {table} ({_quoted(columns)}) '
           f'SELECT {_placeholders(len(columns))} '
           f'WHERE NOT EXISTS (SELECT 1 FROM {table} WHERE {condition})')
    args = [value for _, value in pairs] + list(predicate.args)
    return Statement(sql, tuple(args)), generated


def build_batch_insert(instances: Sequence[Any]) -> Statement:
    """Build one multi-row `INSERT ... VALUES (...), (...)` writing every column.

    Raises
        PreconditionError: empty list, mixed entity types, or an auto key
        that is set on some rows and None on others
    """
    if not instances:
        raise PreconditionError('Batch insert requires at least one instance')

    entity = type(instances[0])
    mixed = {type(obj).__name__ for obj in instances if type(obj) is not entity}
    if mixed:
        raise PreconditionError(f'Batch insert of {entity.__name__} contains other types: {sorted(mixed)}')

    meta = get_table_meta(entity)
    rows = [bind(obj, BindPolicy.ALL_FIELDS, meta) for obj in instances]

    columns = meta.column_names
    auto = meta.auto_key
    if auto is not None:
        nulls = sum(getattr(obj, auto.field) is None for obj in instances)
        if nulls == len(instances):
            columns = [col for col in columns if col != auto.name]
        elif nulls:
            raise PreconditionError(f'Batch insert of {entity.__name__} mixes set and unset {auto.name} values')

    values = ', '.join(f'({_placeholders(len(columns))})' for _ in rows)
    args = [dict(row)[col] for row in rows for col in columns]
    sql = f'INSERT INTO {quote_identifier(meta.table)} ({_quoted(columns)}) VALUES {values}'
    return Statement(sql, tuple(args))


def build_update(meta: TableMeta, instance: Any, policy: BindPolicy = BindPolicy.NON_NULL_FIELDS,
                 suffix: SqlFragment | None = None) -> Statement | None:
    """Build `UPDATE t SET c = ?, ... WHERE k = ? [AND (<suffix>)]`.

    Key columns never appear in the SET list. A suffix may start with WHERE;
    it is appended to the key predicate with AND, which makes compare-and-set
    updates possible.

    Returns
        None when there is nothing to set
    """
    key = resolve_key(meta, instance)
    keys = set(key.columns)
    assignments = [(col, value) for col, value in bind(instance, policy, meta) if col not in keys]
    if not assignments:
        logger.debug(f'Nothing to update on {meta.entity.__name__} {key.values}')
        return None

    set_list = ', '.join(f'{quote_identifier(col)} = ?' for col, _ in assignments)
    sql = f'UPDATE {quote_identifier(meta.table)} SET {set_list} WHERE {_key_predicate(key)}'
    args = [value for _, value in assignments] + key.values

    condition = strip_leading_keyword(suffix.sql, 'WHERE') if suffix else ''
    if condition:
        sql = f'{sql} AND ({condition})'
        args += list(suffix.args)
    return Statement(sql, tuple(args))


def build_delete_by_key(meta: TableMeta, key: Any) -> Statement:
    """Build `DELETE FROM t WHERE k = ? AND ...` from an instance, mapping or scalar key."""
    resolved = resolve_key(meta, key)
    sql = f'DELETE FROM {quote_identifier(meta.table)} WHERE {_key_predicate(resolved)}'
    return Statement(sql, tuple(resolved.values))


def build_delete(meta: TableMeta, predicate: SqlFragment | None) -> Statement:
    """Build `DELETE FROM t <predicate>`; the predicate must carry its WHERE.
    """
    if not predicate or find_keyword(predicate.sql, 'WHERE') < 0:
        raise PreconditionError(f'Delete from {meta.table} requires a WHERE clause')
    return _with_suffix(f'DELETE FROM {quote_identifier(meta.table)}', [], predicate)


def build_select(meta: TableMeta, suffix: SqlFragment | None = None) -> Statement:
    """Build `SELECT cols FROM t [suffix]`."""
    return _with_suffix(_select_list(meta), [], suffix)


def build_select_by_key(meta: TableMeta, key: Any) -> Statement:
    resolved = resolve_key(meta, key)
    return Statement(f'{_select_list(meta)} WHERE {_key_predicate(resolved)}', tuple(resolved.values))


def build_select_by_keys(meta: TableMeta, keys: Sequence[Any]) -> Statement:
    """Select every row matching one of `keys`.

    Single keys use `k IN (?, ...)`; composite keys use
    `(k1 = ? AND k2 = ?) OR ...`.
    """
    if not keys:
        raise PreconditionError('Key list lookup requires at least one key')

    resolved_keys = [resolve_key(meta, key) for key in keys]
    if len(meta.key_columns) == 1:
        column = quote_identifier(resolved_keys[0].columns[0])
        sql = f'{_select_list(meta)} WHERE {column} IN ({_placeholders(len(resolved_keys))})'
        return Statement(sql, tuple(resolved.values[0] for resolved in resolved_keys))

    predicate = ' OR '.join(f'({_key_predicate(resolved)})' for resolved in resolved_keys)
    args = [value for resolved in resolved_keys for value in resolved.values]
    return Statement(f'{_select_list(meta)} WHERE {predicate}', tuple(args))


def build_count(meta: TableMeta, suffix: SqlFragment | None = None) -> Statement:
    """Build the COUNT statement matching `build_select(meta, suffix)`.

    With a suffix, the select is wrapped as a derived table so ORDER BY and
    GROUP BY fragments stay valid and the count matches the window query.
    """
    if not suffix:
        return Statement(f'SELECT COUNT(*) FROM {quote_identifier(meta.table)}')
    inner = build_select(meta, suffix)
    return Statement(f'SELECT COUNT(*) FROM ({inner.sql}) AS counted', inner.args)
