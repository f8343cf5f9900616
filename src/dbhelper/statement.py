"""
Immutable SQL values passed between the builders and the execution adapter.
"""
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from dbhelper.exceptions import PreconditionError
from dbhelper.sql import count_placeholders


@dataclass(frozen=True, slots=True)
class Statement:
    """SQL text with `?` placeholders and its ordered arguments.
    """
    sql: str
    args: tuple[Any, ...] = ()

    def __str__(self) -> str:
        return self.sql


@dataclass(frozen=True, slots=True)
class SqlFragment:
    """Caller-supplied SQL piece (suffix or predicate) with its own arguments.

    The number of positional placeholders outside string literals must
    match the number of arguments. A list argument bound to `IN (?)` counts
    as one argument.
    """
    sql: str
    args: tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'args', tuple(self.args))
        expected = count_placeholders(self.sql)
        if expected != len(self.args):
            raise PreconditionError(
                f'Parameter count mismatch: SQL needs {expected} '
                f'but {len(self.args)} were provided: {self.sql!r}')

    def __bool__(self) -> bool:
        return bool(self.sql and self.sql.strip())

    @classmethod
    def of(cls, sql: 'str | SqlFragment | None', args: Sequence[Any] = ()) -> 'SqlFragment | None':
        """Normalize the `(sql, *args)` convention of the public operations.

        A SqlFragment passes through unchanged (extra args are rejected);
        None or blank SQL without arguments yields None.
        """
        if isinstance(sql, SqlFragment):
            if args:
                raise PreconditionError('Arguments must be inside the SqlFragment')
            return sql if sql else None
        if sql is None or not sql.strip():
            if args:
                raise PreconditionError(f'{len(args)} arguments given without SQL')
            return None
        return cls(sql, tuple(args))
