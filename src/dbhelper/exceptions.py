"""
Exception classes raised by the object mapping layer.

Driver errors are never translated: the tuples at the bottom group the
sqlite3 and psycopg classes so callers can catch them in one clause.
"""
import sqlite3

import psycopg


class DatabaseError(Exception):
    """Base class for all dbhelper errors.
    """


class MetadataError(DatabaseError):
    """Entity declaration cannot be turned into table metadata.

    Raised on first resolution of an entity type, never per call.
    """


class NullKeyValueError(DatabaseError):
    """A key-based operation could not resolve a complete, non-null key.
    """


class ValidationError(DatabaseError, ValueError):
    """Error in input validation.
    """


class PreconditionError(ValidationError):
    """Malformed caller input detected before any statement is sent.

    Examples: empty batch, delete predicate without WHERE, placeholder and
    argument counts that do not match, page numbers below 1.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    )

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    )

ProgrammingError = (
    psycopg.ProgrammingError,
    psycopg.DatabaseError,
    sqlite3.ProgrammingError,
    sqlite3.DatabaseError,
    )

OperationalError = (
    psycopg.OperationalError,
    sqlite3.OperationalError,
    )

UniqueViolation = (
    psycopg.errors.UniqueViolation,
    sqlite3.IntegrityError,
    )
