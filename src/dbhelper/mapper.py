"""
Row to object mapping.

Rows arrive as mappings (`sqlite3.Row` or psycopg `dict_row` dicts). Column
lookup is case-insensitive; values are coerced to the declared field type
when the driver returned a different representation.
"""
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from dbhelper.binder import key_of, lookup_key
from dbhelper.meta import TableMeta
from dbhelper.types import coerce_value, unwrap_optional

__all__ = ['to_dict', 'to_entity', 'fill_entity', 'to_scalar', 'to_keyed']

logger = logging.getLogger(__name__)


def to_dict(row: Any) -> dict[str, Any] | None:
    """Ordered column -> value dict of a row."""
    if row is None:
        return None
    if isinstance(row, Mapping):
        return dict(row)
    return {key: row[key] for key in row.keys()}


def _mapped_values(meta: TableMeta, row: Any) -> dict[str, Any]:
    """Field name -> coerced value for every mapped column present in the row."""
    values = {}
    for name, value in to_dict(row).items():
        col = meta.find_column(name)
        if col is None:
            continue
        values[col.field] = coerce_value(value, col.python_type)
    return values


def to_entity(meta: TableMeta, row: Any) -> Any:
    """Build an entity from a row. Absent columns keep the field default.
    """
    if row is None:
        return None
    return meta.entity(**_mapped_values(meta, row))


def fill_entity(meta: TableMeta, instance: Any, row: Any) -> Any:
    """Copy the mapped values of a row into an existing instance."""
    for name, value in _mapped_values(meta, row).items():
        setattr(instance, name, value)
    return instance


def to_scalar(row: Any, cls: type | None = None) -> Any:
    """First column of a row, optionally coerced to `cls`."""
    if row is None:
        return None
    value = next(iter(to_dict(row).values()), None)
    if cls is None:
        return value
    return coerce_value(value, unwrap_optional(cls))


def to_keyed(meta: TableMeta, rows: Iterable[Any], keys: Sequence[Any]) -> dict[Any, Any]:
    """Index mapped rows by key, in the order of `keys`.

    Keys without a matching row are omitted. Composite keys are tuples in
    key column order.
    """
    loaded = {}
    for row in rows:
        entity = to_entity(meta, row)
        loaded[key_of(meta, entity)] = entity

    result = {}
    for key in keys:
        wanted = lookup_key(meta, key)
        if wanted in loaded and wanted not in result:
            result[wanted] = loaded[wanted]
    return result
