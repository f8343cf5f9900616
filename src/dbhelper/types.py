"""
Value conversion in both directions.

- `TypeConverter` turns bound field values into plain Python values the
  drivers accept (NumPy, pandas and PyArrow scalars, NaN and NaT to None).
- `coerce_value` turns a fetched column value into the declared field type.
- adapters and converters for SQLite, which has no native date or decimal type.
"""
import datetime
import decimal
import logging
import math
import types
import typing
from typing import Any

import dateutil.parser
import numpy as np
import pandas as pd
import pyarrow as pa

logger = logging.getLogger(__name__)


def _from_numpy(value: np.generic) -> Any:
    if isinstance(value, np.datetime64):
        return None if np.isnat(value) else pd.Timestamp(value).to_pydatetime()
    if isinstance(value, np.floating) and not np.isfinite(value):
        return None
    return value.item()


class TypeConverter:
    """Parameter conversion applied by `prepare_query` to every bound value.

    Entities filled from DataFrames tend to carry NumPy or pandas scalars;
    drivers only accept builtin types.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        if value is None or value is pd.NaT or value is pd.NA:
            return None
        if isinstance(value, np.generic):
            return _from_numpy(value)
        if isinstance(value, float):
            return None if math.isnan(value) or math.isinf(value) else value
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        if isinstance(value, pa.Scalar):
            return value.as_py() if value.is_valid else None
        return value

    @staticmethod
    def convert_params(params: Any) -> Any:
        """Convert each value of a tuple, list or dict (or a single value)."""
        if isinstance(params, dict):
            return {name: TypeConverter.convert_value(value) for name, value in params.items()}
        if isinstance(params, list | tuple):
            return type(params)(TypeConverter.convert_value(value) for value in params)
        return TypeConverter.convert_value(params)


def unwrap_optional(annotation: Any) -> Any:
    """Return `X` for `X | None` / `Optional[X]`, else the annotation unchanged.

    >>> unwrap_optional(int | None)
    <class 'int'>
    """
    origin = typing.get_origin(annotation)
    if origin in {typing.Union, types.UnionType}:
        members = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(members) == 1:
            return members[0]
    return annotation


def coerce_value(value: Any, target: Any) -> Any:
    """Convert a fetched value or a caller-supplied key to the declared field type.

    Only conversions needed to undo driver representations are applied
    (SQLite stores dates as text and booleans as integers, PostgreSQL
    returns Decimal for numeric), plus numeric text such as the key `'1'`
    for an int column. Anything else is returned unchanged.
    """
    if value is None or not isinstance(target, type) or isinstance(value, target):
        return value

    try:
        if target is bool and isinstance(value, int | str):
            return bool(int(value))
        if target is datetime.datetime:
            if isinstance(value, str):
                return dateutil.parser.isoparse(value)
            if isinstance(value, datetime.date):
                return datetime.datetime.combine(value, datetime.time())
        if target is datetime.date:
            if isinstance(value, str):
                return dateutil.parser.isoparse(value).date()
            if isinstance(value, datetime.datetime):
                return value.date()
        if target is datetime.time and isinstance(value, str):
            return datetime.time.fromisoformat(value)
        if target is decimal.Decimal and isinstance(value, int | float | str):
            return decimal.Decimal(str(value))
        if target is int and isinstance(value, float | decimal.Decimal) and value == int(value):
            return int(value)
        if target is int and isinstance(value, str):
            return int(value.strip())
        if target is float and isinstance(value, int | decimal.Decimal | str):
            return float(value)
        if target is str and isinstance(value, int | float | decimal.Decimal):
            return str(value)
    except (ValueError, TypeError, OverflowError) as err:
        logger.debug(f'Could not coerce {value!r} to {target.__name__}: {err}')

    return value


# sqlite3 adapters (bind) and converters (DATE/DATETIME columns)

def convert_date(val: bytes) -> datetime.date:
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes) -> datetime.datetime:
    return dateutil.parser.isoparse(val.decode())


def adapt_date_iso(val: datetime.date) -> str:
    return val.isoformat()


def adapt_datetime_iso(val: datetime.datetime) -> str:
    return val.isoformat()


def adapt_decimal(val: decimal.Decimal) -> str:
    """Store Decimal as text; NUMERIC affinity turns it into a number."""
    return str(val)
