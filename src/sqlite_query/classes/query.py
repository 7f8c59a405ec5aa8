"""Query: a typed result cursor over one prepared statement.

Typical use:

    q = Query(db)
    if q.get_result('SELECT id, name FROM t') is not None:
        while q.fetch_row():
            q.getval('id'), q.getstr('name')
    q.free_result()

A Query holds at most one open result. Column values of the current row are read by name, by
index, or sequentially (no argument: the next column after the previous sequential read) and are
converted from whatever storage class the engine holds to the requested type. The defaulting
getters (getstr, getval, ...) turn NULL into '' / 0 / 0.0; get_field() returns None instead.

NOTE: a Query is not thread-safe. Each thread needs its own Query (and connection), or the caller
has to serialize access.
"""
# Standard imports
import sys
from typing import Callable, Iterator, TextIO

import pandas as pd

# Custom utils and objs
from ..utils.conversions import StorageClass, wrap_int
from ..exceptions import UnknownColumn, ColumnOutOfRange, NoActiveResult, NoRowFetched, ResultAlreadyOpen, FieldTypeNotSupported
from .database import Database
from .statement import Statement, StepStatus, Row
from .field_type import FieldType


# Column reference accepted by the getters: name, index, or None for the next sequential column
Column = str|int|None


def _wrapped(field_type:FieldType) -> Callable[[Database, Statement, int], int]:
    """Reader for an integer field type: the int64 value reinterpreted at the type's numpy width."""
    return lambda db, stmt, i: wrap_int(db.column_as_int64(stmt, i), field_type.dtype)


def _narrowed(field_type:FieldType) -> Callable[[Database, Statement, int], object]:
    """Reader for a floating point field type: the double value converted to the type's numpy width."""
    return lambda db, stmt, i: field_type.dtype(db.column_as_double(stmt, i))


# How each FieldType is read from the current row of a statement
_READERS:dict[FieldType, Callable[[Database, Statement, int], object]] = {
    FieldType.INT: lambda db, stmt, i: db.column_as_int32(stmt, i),
    FieldType.LONG: _wrapped(FieldType.LONG),
    FieldType.ULONG: _wrapped(FieldType.ULONG),
    FieldType.LONGLONG: _wrapped(FieldType.LONGLONG),
    FieldType.ULONGLONG: _wrapped(FieldType.ULONGLONG),
    FieldType.DOUBLE: lambda db, stmt, i: db.column_as_double(stmt, i),
    FieldType.FLOAT: lambda db, stmt, i: float(FieldType.FLOAT.dtype(db.column_as_double(stmt, i))),
    FieldType.LONG_DOUBLE: _narrowed(FieldType.LONG_DOUBLE),
    FieldType.TEXT: lambda db, stmt, i: db.column_as_text(stmt, i),
    FieldType.CHAR: lambda db, stmt, i: (db.column_as_text(stmt, i) or '')[:1],
    FieldType.BLOB: lambda db, stmt, i: db.column_as_blob(stmt, i),
    FieldType.BOOL: lambda db, stmt, i: db.column_as_int32(stmt, i) == 1,
}


# Query class definition
class Query(object):
    """SQL statement execute / result cursor bound to a Database."""

    db:Database                     # The database this query runs against
    res:Statement|None              # The open result (None when idle)
    row:bool                        # True if the last fetch_row() produced a row
    rowcount:int                    # Sequential column read pointer (see the no-argument getters)
    _last_query:str                 # Last SQL text executed
    _cache_rc:StepStatus|None       # Outcome of the first step, taken by get_result()
    _cache_rc_valid:bool            # True until fetch_row() consumes _cache_rc
    _row_count:int                  # 0 if get_result() produced no rows
    _num_rows:int|None              # Total rows of the open result, once counted
    _nmap:dict[str, int]            # Column name -> index for the open result
    _num_cols:int                   # Number of columns in the open result


    def __init__(self, db:Database, sql:str|None=None):
        """Binds to [db]; if [sql] is given it is run right away with execute()."""
        self.db = db
        self.res = None
        self._last_query = ''
        self._reset()

        if sql:
            self.execute(sql)


    def _reset(self) -> None:
        """Clears every piece of per-result state."""
        self.row = False
        self.rowcount = 0
        self._cache_rc = None
        self._cache_rc_valid = False
        self._row_count = 0
        self._num_rows = None
        self._nmap = {}
        self._num_cols = 0


    # ---- Ownership ---- #
    def __copy__(self):
        raise TypeError(f'{type(self).__name__} owns its statement handle and cannot be copied.')


    def __deepcopy__(self, memo):
        raise TypeError(f'{type(self).__name__} owns its statement handle and cannot be copied.')


    def __enter__(self) -> 'Query':
        return self


    def __exit__(self, exc_type, exc, tb) -> None:
        self.free_result()


    def __iter__(self) -> Iterator[Row]:
        """Fetches the remaining rows of the open result, yielding each row's raw values."""
        while self.fetch_row():
            yield self.res.row


    def close(self) -> None:
        """Same as free_result()."""
        self.free_result()


    # ---- Database passthrough ---- #
    def is_connected(self) -> bool:
        return self.db.is_connected()


    def get_database(self) -> Database:
        return self.db


    def get_last_query(self) -> str:
        return self._last_query


    def get_error(self) -> str:
        """Last error text reported by the database."""
        return self.db.last_error_message()


    def get_errno(self) -> int:
        """Last error code reported by the database."""
        return self.db.last_error_code()


    def query_error(self, message:str) -> None:
        """Routes [message] to the database's error sink (never raises on its own)."""
        self.db.report_error(f'{message} (last query: "{self._last_query}")', self.get_errno())


    # ---- Statements ---- #
    def execute(self, sql:str) -> bool:
        """Runs a statement that produces no row set (DDL/DML) and does not keep a result.
        Returns False if the engine rejected it; see get_error()/get_errno()."""
        self._last_query = sql

        stmt, rc = self.db.prepare_and_step(sql)
        self.db.finalize(stmt)

        if rc is StepStatus.ERROR:
            return False

        self.db.log_debug('execute()', sql)
        return True


    def get_result(self, sql:str) -> Statement|None:
        """Executes [sql] and keeps its result open for fetch_row() and the getters.

        Returns the statement handle, or None if the engine rejected the statement (see
        get_error()/get_errno()). The previous result must have been released with free_result()
        first; calling get_result() with a result still open raises ResultAlreadyOpen.
        """
        if self.res is not None:
            self.db.log_error('get_result()', ResultAlreadyOpen(self._last_query))
            raise ResultAlreadyOpen(self._last_query)

        self._reset()
        self._last_query = sql

        stmt, rc = self.db.prepare_and_step(sql)
        if stmt is None:
            return None

        # A failing first step leaves nothing to read
        if rc is StepStatus.ERROR:
            self.db.finalize(stmt)
            return None

        self.res = stmt
        self._cache_rc = rc
        self._cache_rc_valid = True
        self._row_count = 1 if rc is StepStatus.ROW else 0

        # Column layout is fixed for the life of the result, so map names once here
        # NOTE: with duplicate column names the first occurrence wins
        self._num_cols = self.db.column_count(stmt)
        for index in range(self._num_cols):
            self._nmap.setdefault(self.db.column_name(stmt, index), index)

        return stmt


    def free_result(self) -> None:
        """Releases the open result, if any. Safe to call when idle."""
        stmt, self.res = self.res, None
        self.db.finalize(stmt)
        self._reset()


    def fetch_row(self) -> bool:
        """Moves to the next row of the open result.
        Returns False (and leaves no current row) once the rows are exhausted, or when no result is open."""
        if self.res is None:
            self.row = False
            return False

        # The first row was already stepped by get_result()
        if self._cache_rc_valid:
            self._cache_rc_valid = False
            rc = self._cache_rc
        else:
            rc = self.db.step(self.res)

        self.row = rc is StepStatus.ROW
        if self.row:
            self.rowcount = 0
        return self.row


    # ---- Result metadata ---- #
    def get_insert_id(self) -> int:
        """Rowid of the last INSERT on the database connection."""
        return self.db.last_insert_row_id()


    def get_num_rows(self) -> int:
        """Total number of rows in the open result; 0 if it has none (or no result is open).

        NOTE: the engine streams rows, so the first call reads the rest of the result ahead. fetch_row()
        still returns the rows in order afterwards.
        """
        if self.res is None or self._row_count == 0:
            return 0
        if self._num_rows is None:
            self._num_rows = self.db.remaining_row_count(self.res)
        return self._num_rows


    def get_num_cols(self) -> int:
        """Number of columns in the open result (0 when idle)."""
        return self._num_cols


    def get_column_names(self) -> list[str]:
        """Column names of the open result, in order."""
        if self.res is None: return []
        return self.res.column_names


    def is_null(self, column:str|int) -> bool:
        """Returns True if the column (index or name) of the current row holds NULL."""
        self._require_row()
        index:int = self._index_of(column)
        return self.db.column_storage_class(self.res, index) is StorageClass.NULL


    # ---- Column resolution ---- #
    def _require_row(self) -> None:
        """Raises unless a result is open and positioned on a row."""
        if self.res is None:
            raise NoActiveResult()
        if not self.row:
            raise NoRowFetched()


    def _index_of(self, column:str|int) -> int:
        """Resolves a column name or explicit index to a checked index."""
        if isinstance(column, str):
            try:
                return self._nmap[column]
            except KeyError:
                self.db.log_error('_index_of()', UnknownColumn(column))
                raise UnknownColumn(column) from None

        if not 0 <= column < self._num_cols:
            raise ColumnOutOfRange(column, self._num_cols)
        return column


    def _resolve(self, column:Column) -> int:
        """Like _index_of(), plus None meaning "next column": reads the sequential pointer and advances it."""
        if column is not None:
            return self._index_of(column)

        index:int = self.rowcount
        if index >= self._num_cols:
            raise ColumnOutOfRange(index, self._num_cols)
        self.rowcount += 1
        return index


    # ---- Typed getters ---- #
    def get_field(self, column:Column, field_type:FieldType) -> object|None:
        """Reads a column of the current row as [field_type]. Returns None if the stored value is NULL.

        [column] is a name, an explicit index, or None for the next sequential column.
        """
        if not isinstance(field_type, FieldType):
            raise FieldTypeNotSupported(field_type)

        self._require_row()
        index:int = self._resolve(column)

        if self.db.column_storage_class(self.res, index) is StorageClass.NULL:
            return None
        return _READERS[field_type](self.db, self.res, index)


    def get_field_by_name(self, name:str, default:object, *, field_type:FieldType|None=None) -> object:
        """Reads column [name] of the current row, or returns [default] if the stored value is NULL.

        The type to read is picked from the runtime type of [default] (see FieldType.for_value), so
        get_field_by_name('age', 0) reads a signed long and get_field_by_name('ratio', np.float32(0))
        a single precision float. Pass [field_type] to choose explicitly.
        """
        if field_type is None:
            field_type = FieldType.for_value(default)

        value = self.get_field(name, field_type)
        return default if value is None else value


    def _get(self, column:Column, field_type:FieldType):
        value = self.get_field(column, field_type)
        return field_type.null_default if value is None else value


    def getstr(self, column:Column=None) -> str:
        """Column as a string ('' for NULL)."""
        return self._get(column, FieldType.TEXT)


    def getval(self, column:Column=None) -> int:
        """Column as a signed long (0 for NULL)."""
        return self._get(column, FieldType.LONG)


    def getuval(self, column:Column=None) -> int:
        """Column as an unsigned long (0 for NULL)."""
        return self._get(column, FieldType.ULONG)


    def getbigint(self, column:Column=None) -> int:
        """Column as a signed 64-bit integer (0 for NULL)."""
        return self._get(column, FieldType.LONGLONG)


    def getubigint(self, column:Column=None) -> int:
        """Column as an unsigned 64-bit integer (0 for NULL)."""
        return self._get(column, FieldType.ULONGLONG)


    def getnum(self, column:Column=None) -> float:
        """Column as a double (0.0 for NULL)."""
        return self._get(column, FieldType.DOUBLE)


    # ---- One-shot scalar queries ---- #
    def _exe_get(self, sql:str, field_type:FieldType):
        """Runs [sql], reads column 0 of its first row as [field_type] and frees the result again.
        Returns the type's NULL default if the query fails or produces no row."""
        if self.res is not None:
            self.db.log_error('_exe_get()', ResultAlreadyOpen(self._last_query))
            raise ResultAlreadyOpen(self._last_query)

        try:
            if self.get_result(sql) is None or not self.fetch_row() or self._num_cols == 0:
                return field_type.null_default
            return self._get(0, field_type)

        # Always release the statement, whatever happened above
        finally:
            self.free_result()


    def exe_get_char_string(self, sql:str) -> str:
        """Executes [sql] and returns the first column of the first row as a string."""
        return self._exe_get(sql, FieldType.TEXT)


    def exe_get_result_long(self, sql:str) -> int:
        """Executes [sql] and returns the first column of the first row as a long integer."""
        return self._exe_get(sql, FieldType.LONG)


    def exe_get_result_double(self, sql:str) -> float:
        """Executes [sql] and returns the first column of the first row as a double."""
        return self._exe_get(sql, FieldType.DOUBLE)


    # ---- Result export ---- #
    def to_df(self) -> pd.DataFrame:
        """Fetches the remaining rows of the open result into a DataFrame named after the result's columns."""
        if self.res is None:
            raise NoActiveResult()

        columns:list[str] = self.get_column_names()
        rows:list[Row] = list(self)

        return pd.DataFrame(rows, columns=columns)


    def print_results(self, stream:TextIO|None=None) -> None:
        """Writes the remaining rows of the open result to [stream] (stdout by default) as a text table."""
        out:TextIO = sys.stdout if stream is None else stream
        out.write(self.to_df().to_string(index=False))
        out.write('\n')
