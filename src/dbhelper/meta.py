"""
Entity metadata registry.

Entities are plain dataclasses that declare their table with `@table` and
their mapped fields with `column()`:

    @table('t_user')
    @dataclass
    class User:
        id: int | None = column(key=True, auto_increment=True)
        name: str | None = column()
        age: int | None = column()

`get_table_meta(User)` turns the declaration into an immutable `TableMeta`
the first time it is asked for and returns the same object afterwards.
Fields declared without `column()` are not mapped and must have a default.
"""
import dataclasses
import logging
import threading
import typing
from dataclasses import dataclass, field
from typing import Any

import cachetools
from dbhelper.exceptions import MetadataError
from dbhelper.types import unwrap_optional

__all__ = [
    'ColumnMeta',
    'TableMeta',
    'column',
    'table',
    'register',
    'get_table_meta',
    'is_entity',
    'clear_table_meta_cache',
]

logger = logging.getLogger(__name__)

_COLUMN_KEY = 'dbhelper.column'
_TABLE_ATTR = '__dbhelper_table__'


@dataclass(frozen=True, slots=True)
class _ColumnDecl:
    name: str | None
    key: bool
    auto_increment: bool
    nullable: bool


def column(name: str | None = None, *, key: bool = False, auto_increment: bool = False,
           nullable: bool = True, default: Any = None,
           default_factory: Any = dataclasses.MISSING) -> Any:
    """Declare a dataclass field as a mapped column.

    Args:
        name: Column name, defaults to the field name
        key: Column is (part of) the row key
        auto_increment: Key value is generated by the database on insert
        nullable: False makes with-null writes reject a None value
        default: Field default (None unless given)
        default_factory: Field default factory, overrides default
    """
    decl = _ColumnDecl(name=name, key=key, auto_increment=auto_increment, nullable=nullable)
    metadata = {_COLUMN_KEY: decl}
    if default_factory is not dataclasses.MISSING:
        return field(default_factory=default_factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def table(name: str):
    """Class decorator registering the table an entity maps to.

    Usage:
        @table('t_user')
        @dataclass
        class User:
            ...
    """
    def decorator(cls: type) -> type:
        setattr(cls, _TABLE_ATTR, name)
        return cls
    return decorator


def register(cls: type, name: str) -> type:
    """Functional form of `@table` for classes declared elsewhere."""
    return table(name)(cls)


@dataclass(frozen=True)
class ColumnMeta:
    """One mapped column and the dataclass field behind it."""
    name: str
    field: str
    python_type: Any
    nullable: bool = True
    key: bool = False
    auto_increment: bool = False


@dataclass(frozen=True)
class TableMeta:
    """Immutable description of an entity's table, built once per type.
    """
    entity: type
    table: str
    columns: tuple[ColumnMeta, ...]
    _by_name: dict[str, ColumnMeta] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        by_name = {}
        for col in self.columns:
            by_name[col.name.lower()] = col
            by_name.setdefault(col.field.lower(), col)
        object.__setattr__(self, '_by_name', by_name)

    @property
    def key_columns(self) -> tuple[ColumnMeta, ...]:
        return tuple(col for col in self.columns if col.key)

    @property
    def non_key_columns(self) -> tuple[ColumnMeta, ...]:
        return tuple(col for col in self.columns if not col.key)

    @property
    def auto_key(self) -> ColumnMeta | None:
        """The single auto-generated key column, if any."""
        return next((col for col in self.columns if col.auto_increment), None)

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    def find_column(self, name: str) -> ColumnMeta | None:
        """Look up a column by column name or field name, case-insensitively."""
        return self._by_name.get(name.lower())

    def require_keys(self) -> tuple[ColumnMeta, ...]:
        """Return the key columns, failing when the entity declares none.
        """
        keys = self.key_columns
        if not keys:
            raise MetadataError(f'{self.entity.__name__} declares no key column; '
                                'key-based operations are not available')
        return keys


_registry: dict[Any, TableMeta] = {}
_registry_lock = threading.RLock()


def _field_types(cls: type) -> dict[str, Any]:
    """Resolve field annotations, falling back to the raw dataclass types."""
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError) as err:
        logger.debug(f'Could not resolve annotations of {cls.__name__}: {err}')
        return {f.name: f.type for f in dataclasses.fields(cls)}


@cachetools.cached(_registry, lock=_registry_lock)
def _build_table_meta(cls: type) -> TableMeta:
    if not dataclasses.is_dataclass(cls):
        raise MetadataError(f'{cls.__name__} is not a dataclass')

    table_name = getattr(cls, _TABLE_ATTR, None)
    if not table_name:
        raise MetadataError(f'{cls.__name__} is missing a @table declaration')

    hints = _field_types(cls)
    columns = []
    for f in dataclasses.fields(cls):
        decl = f.metadata.get(_COLUMN_KEY)
        if decl is None:
            if f.init and f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                raise MetadataError(f'{cls.__name__}.{f.name} is not a column() and has no default')
            continue
        columns.append(ColumnMeta(
            name=decl.name or f.name,
            field=f.name,
            python_type=unwrap_optional(hints.get(f.name, f.type)),
            nullable=decl.nullable,
            key=decl.key,
            auto_increment=decl.auto_increment,
        ))

    if not columns:
        raise MetadataError(f'{cls.__name__} declares no column() fields')

    names = [col.name.lower() for col in columns]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise MetadataError(f'{cls.__name__} maps columns more than once: {duplicates}')

    auto = [col for col in columns if col.auto_increment]
    if len(auto) > 1:
        raise MetadataError(f'{cls.__name__} declares more than one auto_increment column')
    if auto and not auto[0].key:
        raise MetadataError(f'{cls.__name__}.{auto[0].field} is auto_increment but not a key')

    meta = TableMeta(entity=cls, table=table_name, columns=tuple(columns))
    logger.debug(f'Built metadata for {cls.__name__}: table={table_name} '
                 f'columns={meta.column_names} keys={[c.name for c in meta.key_columns]}')
    return meta


def get_table_meta(entity: Any) -> TableMeta:
    """Resolve the TableMeta of an entity type or instance.

    Raises
        MetadataError: the type is not a mapped entity
    """
    cls = entity if isinstance(entity, type) else type(entity)
    return _build_table_meta(cls)


def is_entity(cls: Any) -> bool:
    """True for a dataclass type carrying a @table declaration."""
    return isinstance(cls, type) and dataclasses.is_dataclass(cls) and bool(getattr(cls, _TABLE_ATTR, None))


def clear_table_meta_cache() -> None:
    """Forget every resolved entity (used for test isolation)."""
    with _registry_lock:
        _registry.clear()
