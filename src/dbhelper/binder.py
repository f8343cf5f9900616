"""
Parameter binding: entity instances and key values to (column, value) pairs.

The same instance drives insert, insert-with-null, update and update-with-null
statements; only the policy passed to `bind` differs.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dbhelper.exceptions import NullKeyValueError, PreconditionError
from dbhelper.meta import ColumnMeta, TableMeta, get_table_meta
from dbhelper.types import TypeConverter, coerce_value

__all__ = ['BindPolicy', 'KeySpec', 'bind', 'resolve_key', 'key_of', 'lookup_key']

logger = logging.getLogger(__name__)


class BindPolicy(Enum):
    """Which mapped columns of an instance take part in a statement."""
    ALL_FIELDS = 'all'
    NON_NULL_FIELDS = 'non_null'
    KEYS_ONLY = 'keys'


@dataclass(frozen=True)
class KeySpec:
    """Resolved (column, value) pairs identifying exactly one row."""
    pairs: tuple[tuple[str, Any], ...]

    @property
    def columns(self) -> list[str]:
        return [col for col, _ in self.pairs]

    @property
    def values(self) -> list[Any]:
        return [value for _, value in self.pairs]


def _field_value(instance: Any, col: ColumnMeta) -> Any:
    return TypeConverter.convert_value(getattr(instance, col.field))


def bind(instance: Any, policy: BindPolicy, meta: TableMeta | None = None) -> list[tuple[str, Any]]:
    """Return the (column, value) pairs of `instance` selected by `policy`.

    Pairs come in declared column order.

    Raises
        NullKeyValueError: KEYS_ONLY and a key value is None
        PreconditionError: ALL_FIELDS and a non-nullable column is None
    """
    meta = meta or get_table_meta(instance)

    if policy is BindPolicy.KEYS_ONLY:
        return list(resolve_key(meta, instance).pairs)

    pairs = []
    for col in meta.columns:
        value = _field_value(instance, col)
        if value is None:
            if policy is BindPolicy.NON_NULL_FIELDS:
                continue
            if not col.nullable and not col.auto_increment:
                raise PreconditionError(f'{meta.entity.__name__}.{col.field} is not nullable')
        pairs.append((col.name, value))
    return pairs


def _mapping_value(key: Mapping, col: ColumnMeta) -> Any:
    for name in (col.name, col.field):
        if name in key:
            return key[name]
    lowered = {str(k).lower(): v for k, v in key.items()}
    return lowered.get(col.name.lower(), lowered.get(col.field.lower()))


def resolve_key(meta: TableMeta, key: Any) -> KeySpec:
    """Resolve a key given as an instance, a mapping, a tuple or a scalar.

    - instance of the entity: its key fields
    - mapping: entries named by column or field name
    - tuple/list: positional values, only for composite keys
    - anything else: the value of the single key column

    Raises
        MetadataError: the entity declares no key column
        NullKeyValueError: a key value is missing or None
    """
    keys = meta.require_keys()
    entity = meta.entity.__name__

    if isinstance(key, meta.entity):
        values = [_field_value(key, col) for col in keys]
    elif isinstance(key, Mapping):
        values = [TypeConverter.convert_value(_mapping_value(key, col)) for col in keys]
    elif len(keys) > 1:
        if not isinstance(key, tuple | list) or len(key) != len(keys):
            raise NullKeyValueError(
                f'{entity} has a composite key {[c.name for c in keys]}; '
                f'a single value {key!r} cannot identify a row')
        values = [TypeConverter.convert_value(v) for v in key]
    else:
        values = [TypeConverter.convert_value(key)]

    for col, value in zip(keys, values):
        if value is None:
            raise NullKeyValueError(f'{entity} key {col.name} is null')

    return KeySpec(tuple((col.name, value) for col, value in zip(keys, values)))


def key_of(meta: TableMeta, instance: Any) -> Any:
    """Key of a loaded instance: the value for single keys, a tuple for composite ones."""
    values = resolve_key(meta, instance).values
    return values[0] if len(values) == 1 else tuple(values)


def lookup_key(meta: TableMeta, key: Any) -> Any:
    """Hashable form of a caller-supplied key, comparable with `key_of`.
    """
    resolved = resolve_key(meta, key)
    values = [coerce_value(value, col.python_type) for col, value in zip(meta.key_columns, resolved.values)]
    return values[0] if len(values) == 1 else tuple(values)
