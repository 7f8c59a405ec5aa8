from enum import Enum

import numpy as np

from ..exceptions import FieldTypeNotSupported


class FieldType(Enum):
    """Enum of the value types a column can be read as, for standardization and type checking."""
    INT = 'int'                 # signed 32-bit (C int)
    LONG = 'long'               # signed long (64-bit on LP64)
    ULONG = 'ulong'             # unsigned long (64-bit on LP64)
    LONGLONG = 'longlong'       # signed 64-bit
    ULONGLONG = 'ulonglong'     # unsigned 64-bit
    DOUBLE = 'double'
    FLOAT = 'float'             # single precision
    LONG_DOUBLE = 'longdouble'
    TEXT = 'text'
    CHAR = 'char'               # first character of the text value
    BLOB = 'blob'
    BOOL = 'bool'

    @property
    def dtype(self) -> type|None:
        """The numpy scalar type that fixes this field type's width, or None for non-numeric types."""
        return _DTYPES.get(self)

    @property
    def null_default(self) -> object:
        """The zero-ish value the defaulting getters return for a NULL column."""
        match self:
            case FieldType.TEXT | FieldType.CHAR: return ''
            case FieldType.BLOB: return b''
            case FieldType.BOOL: return False
            case FieldType.DOUBLE | FieldType.FLOAT: return 0.0
            case FieldType.LONG_DOUBLE: return np.longdouble(0)
            case _: return 0

    @classmethod
    def for_value(cls, value:object) -> 'FieldType':
        """Selects the FieldType matching the runtime type of [value] (e.g. a caller supplied default).

        NOTE:
            - bool is checked before int, since bool is a subclass of int
            - numpy scalars are mapped by kind and width, so np.int32 reads as INT, np.uint64 as ULONGLONG,
              np.float32 as FLOAT and np.longdouble as LONG_DOUBLE (where it is wider than a double)
        """
        if isinstance(value, FieldType): return value
        if isinstance(value, (bool, np.bool_)): return cls.BOOL

        # numpy numeric scalars
        if isinstance(value, np.signedinteger):
            return cls.INT if value.itemsize <= 4 else cls.LONGLONG
        if isinstance(value, np.unsignedinteger):
            return cls.ULONGLONG
        if isinstance(value, np.floating):
            if value.itemsize <= 4: return cls.FLOAT
            if value.itemsize == 8: return cls.DOUBLE
            return cls.LONG_DOUBLE

        # Builtins (np.str_ and np.bytes_ subclass str and bytes)
        if isinstance(value, int): return cls.LONG
        if isinstance(value, float): return cls.DOUBLE
        if isinstance(value, str): return cls.TEXT
        if isinstance(value, (bytes, bytearray, memoryview)): return cls.BLOB

        raise FieldTypeNotSupported(type(value))


_DTYPES:dict[FieldType, type] = {
    FieldType.INT: np.int32,
    FieldType.LONG: np.int64,
    FieldType.ULONG: np.uint64,
    FieldType.LONGLONG: np.int64,
    FieldType.ULONGLONG: np.uint64,
    FieldType.DOUBLE: np.float64,
    FieldType.FLOAT: np.float32,
    FieldType.LONG_DOUBLE: np.longdouble,
}
