"""Storage classes and engine-style value coercions.

The sqlite3 driver hands back one Python object per column value, and the object's type IS the
storage class (None, int, float, str, bytes) as long as no type detection is configured. The
helpers below reproduce what SQLite's own sqlite3_column_int/int64/double/text do when a value
of one storage class is read as another, so a Query behaves the same whatever the column holds.
"""
import math
import re
from enum import Enum

import numpy as np


# Leading integer prefix (sqlite3Atoi64) and leading real prefix (sqlite3AtoF)
_INT_PREFIX:re.Pattern = re.compile(r"^\s*([+-]?\d+)")
_REAL_PREFIX:re.Pattern = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_INT64:np.iinfo = np.iinfo(np.int64)


class StorageClass(Enum):
    """Enum of SQLite storage classes (runtime type tag of a single value)."""
    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


def storage_class_of(value:object) -> StorageClass:
    """Returns the StorageClass for a raw value as returned by the sqlite3 driver."""
    if value is None: return StorageClass.NULL
    if isinstance(value, int): return StorageClass.INTEGER
    if isinstance(value, float): return StorageClass.FLOAT
    if isinstance(value, str): return StorageClass.TEXT
    if isinstance(value, (bytes, bytearray, memoryview)): return StorageClass.BLOB

    # Anything else only shows up with custom converters registered on the connection
    return StorageClass.TEXT


def wrap_int(value:int, dtype:type[np.integer]) -> int:
    """Reinterprets [value] as the given fixed-width numpy integer type, wrapping two's-complement like a C cast."""
    info:np.iinfo = np.iinfo(dtype)
    span:int = 1 << info.bits
    wrapped:int = int(value) & (span - 1)
    if info.min < 0 and wrapped > info.max:
        wrapped -= span
    return wrapped


def _clamp_int64(value:int) -> int:
    """Clamps a Python int into the int64 range (SQLite saturates on overflow)."""
    return max(int(_INT64.min), min(int(_INT64.max), value))


def _as_str(value:object) -> str:
    """Decodes BLOBs as UTF-8 and stringifies everything else."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode('utf-8', errors='replace')
    return str(value)


def to_int64(value:object) -> int:
    """Converts a raw value to a signed 64-bit integer the way sqlite3_column_int64() does."""
    match storage_class_of(value):
        case StorageClass.NULL:
            return 0
        case StorageClass.INTEGER:
            return _clamp_int64(int(value))
        case StorageClass.FLOAT:
            # NaN has no integer value
            if math.isnan(value): return 0
            if value <= _INT64.min: return int(_INT64.min)
            if value >= _INT64.max: return int(_INT64.max)
            return int(value)
        case _:
            prefix = _INT_PREFIX.match(_as_str(value))
            if prefix is None: return 0
            return _clamp_int64(int(prefix.group(1)))


def to_int32(value:object) -> int:
    """Converts a raw value to a signed 32-bit integer the way sqlite3_column_int() does (low 32 bits of the int64 value)."""
    return wrap_int(to_int64(value), np.int32)


def to_double(value:object) -> float:
    """Converts a raw value to a double the way sqlite3_column_double() does."""
    match storage_class_of(value):
        case StorageClass.NULL:
            return 0.0
        case StorageClass.INTEGER | StorageClass.FLOAT:
            return float(value)
        case _:
            prefix = _REAL_PREFIX.match(_as_str(value))
            if prefix is None: return 0.0
            return float(prefix.group(0))


def format_real(value:float) -> str:
    """Renders a float as SQLite renders REAL values as text ("%!.15g": always keeps a decimal point)."""
    if math.isnan(value): return ''
    if math.isinf(value): return 'Inf' if value > 0 else '-Inf'

    # Negative zero prints unsigned
    if value == 0: return '0.0'

    text:str = format(value, '.15g')
    if 'e' in text:
        mantissa, exponent = text.split('e')
        if '.' not in mantissa:
            mantissa += '.0'
        return f'{mantissa}e{exponent}'
    if '.' not in text:
        text += '.0'
    return text


def to_text(value:object) -> str|None:
    """Converts a raw value to text the way sqlite3_column_text() does. NULL stays None."""
    match storage_class_of(value):
        case StorageClass.NULL:
            return None
        case StorageClass.INTEGER:
            return str(int(value))
        case StorageClass.FLOAT:
            return format_real(value)
        case _:
            return _as_str(value)


def to_blob(value:object) -> bytes|None:
    """Converts a raw value to bytes the way sqlite3_column_blob() does. NULL stays None."""
    if value is None: return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return to_text(value).encode('utf-8')
