"""
Paged selects: a LIMIT/OFFSET window and the matching COUNT statement.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from dbhelper.builder import build_count, build_select
from dbhelper.exceptions import PreconditionError
from dbhelper.meta import TableMeta
from dbhelper.statement import SqlFragment, Statement

__all__ = ['PageRequest', 'PageData', 'window_statement', 'count_statement']

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _page_number(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise PreconditionError(f'{name} must be an integer, got {value!r}')
    if value < 1:
        raise PreconditionError(f'{name} must be >= 1, got {value}')
    return value


@dataclass(frozen=True)
class PageRequest:
    """1-based page, page size and optional filter suffix.

    Page numbers below 1 are rejected, never clamped.
    """
    page: int
    page_size: int
    suffix: SqlFragment | None = None

    def __post_init__(self):
        _page_number(self.page, 'page')
        _page_number(self.page_size, 'page_size')

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class PageData(Generic[T]):
    """One page of mapped rows and the total row count.

    `total` is None when the count query was skipped.
    """
    data: list[T] = field(default_factory=list)
    total: int | None = None

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self):
        return iter(self.data)


def window_statement(meta: TableMeta, request: PageRequest, paging_clause=None) -> Statement:
    """Select of one page: `SELECT cols FROM t [suffix] LIMIT n OFFSET m`.

    `paging_clause(limit, offset)` renders the window; defaults to LIMIT/OFFSET.
    """
    select = build_select(meta, request.suffix)
    if paging_clause is None:
        clause = f'LIMIT {request.page_size} OFFSET {request.offset}'
    else:
        clause = paging_clause(request.page_size, request.offset)
    return Statement(f'{select.sql} {clause}', select.args)


def count_statement(meta: TableMeta, request: PageRequest) -> Statement:
    """COUNT over the same suffix and arguments as the window."""
    return build_count(meta, request.suffix)
