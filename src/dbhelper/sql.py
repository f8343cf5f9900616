"""
Placeholder handling for generated statements and caller fragments.

Statements are written with `?` positional placeholders (`%s` is accepted
as well). Right before execution `prepare_query` rewrites them for the
driver in one walk over the scanned SQL:

- placeholders become `?` (sqlite3) or `%s` (psycopg)
- a sequence bound after `IN` expands to one placeholder per element
- `IS ?` / `IS NOT ?` bound to None become `IS NULL` / `IS NOT NULL`
- `%` inside string literals is doubled for psycopg
- values go through `TypeConverter`

Anything inside quotes is never treated as a placeholder or keyword.
"""
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any


class Kind(Enum):
    TEXT = auto()
    LITERAL = auto()
    PARAM = auto()
    IN = auto()
    IS = auto()
    IS_NOT = auto()
    LPAREN = auto()
    RPAREN = auto()


@dataclass(slots=True)
class Chunk:
    kind: Kind
    text: str
    offset: int


_SCANNER = re.compile(r"""
    (?P<LITERAL>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<PARAM>%s|\?)
    |(?P<IS_NOT>\bIS\s+NOT\b)
    |(?P<IS>\bIS\b)
    |(?P<IN>\bIN\b)
    |(?P<LPAREN>\()
    |(?P<RPAREN>\))
""", re.IGNORECASE | re.VERBOSE)

_ANY_PARAM = re.compile(r'%s|\?')


def scan(sql: str) -> list[Chunk]:
    """Split SQL into chunks; joining their text gives back the input."""
    chunks = []
    pos = 0
    for match in _SCANNER.finditer(sql):
        if match.start() > pos:
            chunks.append(Chunk(Kind.TEXT, sql[pos:match.start()], pos))
        chunks.append(Chunk(Kind[match.lastgroup], match.group(0), match.start()))
        pos = match.end()
    if pos < len(sql):
        chunks.append(Chunk(Kind.TEXT, sql[pos:], pos))
    return chunks


def _marker(dialect: str) -> str:
    return '?' if dialect == 'sqlite' else '%s'


def _is_list_value(value: Any) -> bool:
    return isinstance(value, Sequence | set | frozenset) and not isinstance(value, str | bytes)


def _in_list(value: Any, marker: str, parenthesized: bool) -> tuple[str, list]:
    if _is_list_value(value):
        items = list(value)
        if len(items) == 1 and _is_list_value(items[0]):
            items = list(items[0])
    else:
        items = [value]

    # IN (NULL) matches nothing
    inner = ', '.join([marker] * len(items)) if items else 'NULL'
    return (inner if parenthesized else f'({inner})'), items


def bind_params(sql: str, args: Sequence[Any], dialect: str = 'postgresql') -> tuple[str, tuple]:
    """Rewrite placeholders for `dialect` and flatten `args` to match.

    >>> bind_params('a IN (?) AND b IS ?', ([1, 2], None), 'sqlite')
    ('a IN (?, ?) AND b IS NULL', (1, 2))
    """
    if not sql or not args or not has_placeholders(sql):
        return sql, ()

    marker = _marker(dialect)
    out: list[str] = []
    values: list[Any] = []
    position = 0
    keyword: Kind | None = None
    in_parens = False

    for chunk in scan(sql):
        kind = chunk.kind
        if kind is Kind.LITERAL:
            if dialect == 'postgresql' and chunk.text.startswith("'"):
                out.append(chunk.text.replace('%', '%%'))
            else:
                out.append(chunk.text)
            continue

        if kind is Kind.PARAM:
            if position >= len(args):
                out.append(marker)
            else:
                value = args[position]
                if keyword is Kind.IN:
                    text, items = _in_list(value, marker, in_parens)
                    out.append(text)
                    values.extend(items)
                elif keyword in {Kind.IS, Kind.IS_NOT} and value is None:
                    out.append('NULL')
                else:
                    out.append(marker)
                    values.append(value)
            position += 1
            keyword, in_parens = None, False
            continue

        if kind in {Kind.IN, Kind.IS, Kind.IS_NOT}:
            keyword, in_parens = kind, False
        elif kind is Kind.LPAREN:
            in_parens = keyword is Kind.IN
        elif kind is Kind.RPAREN or (kind is Kind.TEXT and chunk.text.strip()):
            keyword, in_parens = None, False
        out.append(chunk.text)

    return ''.join(out), tuple(values)


def prepare_query(sql: str, args: Sequence[Any], dialect: str) -> tuple[str, tuple]:
    """Ready a statement for the driver: placeholders, IN lists, NULLs, values.
    """
    if not args:
        return standardize_placeholders(sql, dialect), ()

    sql, params = bind_params(sql, args, dialect)

    from dbhelper.types import TypeConverter
    return sql, TypeConverter.convert_params(params)


def has_placeholders(sql: str | None) -> bool:
    """Quick check for `?` or `%s` anywhere in the text, literals included.
    """
    return bool(sql) and _ANY_PARAM.search(sql) is not None


def count_placeholders(sql: str | None) -> int:
    """Count positional placeholders outside string literals.

    >>> count_placeholders("name = ? and note <> '?' and age in (?)")
    2
    """
    if not has_placeholders(sql):
        return 0
    return sum(1 for chunk in scan(sql) if chunk.kind is Kind.PARAM)


def standardize_placeholders(sql: str, dialect: str = 'postgresql') -> str:
    """Rewrite `?` and `%s` placeholders to the dialect's marker, literals aside.
    """
    if not has_placeholders(sql):
        return sql
    marker = _marker(dialect)
    return ''.join(marker if chunk.kind is Kind.PARAM else chunk.text for chunk in scan(sql))


def find_keyword(sql: str, keyword: str) -> int:
    """Offset of `keyword` as a whole word outside string literals, or -1.
    """
    pattern = re.compile(rf'\b{re.escape(keyword)}\b', re.IGNORECASE)
    for chunk in scan(sql or ''):
        if chunk.kind is Kind.LITERAL:
            continue
        match = pattern.search(chunk.text)
        if match:
            return chunk.offset + match.start()
    return -1


def strip_leading_keyword(sql: str, keyword: str) -> str:
    """Drop a leading `keyword` (any case) and the surrounding whitespace.

    >>> strip_leading_keyword('  WHERE a = ?', 'where')
    'a = ?'
    """
    text = (sql or '').strip()
    match = re.match(rf'{re.escape(keyword)}\b\s*', text, re.IGNORECASE)
    return text[match.end():] if match else text


def quote_identifier(identifier: str, dialect: str = 'postgresql') -> str:
    """Double-quote a table or column name, doubling embedded quotes.

    Raises
        ValueError: unsupported dialect
    """
    if dialect not in {'postgresql', 'sqlite'}:
        raise ValueError(f'Unknown dialect: {dialect}')
    return '"{}"'.format(identifier.replace('"', '""'))
