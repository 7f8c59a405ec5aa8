from __future__ import annotations
from collections import deque
from enum import Enum
from typing import Protocol, Any, Mapping, Sequence, runtime_checkable

# NOTE: rows are tuples (the sqlite3 default row factory)
Row = tuple[Any, ...]


@runtime_checkable
class DBCursor(Protocol):
    """The subset of the DB-API cursor that a Statement drives."""

    # Common DB-API attributes
    description: Any | None
    lastrowid: int | None

    # Core execution method
    def execute(
        self,
        operation: str,
        params: Sequence[Any] | Mapping[str, Any] = ...,
    ) -> Any: ...

    # Fetch methods
    def fetchone(self) -> Row | None: ...
    def fetchall(self) -> list[Row]: ...

    # Lifecycle
    def close(self) -> None: ...


class StepStatus(Enum):
    """Outcome of stepping a statement (values follow the SQLite result codes)."""
    ERROR = 1       # SQLITE_ERROR
    ROW = 100       # SQLITE_ROW
    DONE = 101      # SQLITE_DONE


class Statement(object):
    """Engine-side handle for one prepared, possibly-executing SQL statement.

    A Statement is owned by exactly one Query at a time and is only advanced through the Database
    that prepared it (Database.step(), Database.finalize()).
    """

    sql:str                     # The SQL text this statement was prepared from
    cursor:DBCursor|None        # The driver cursor holding the pending rows (None once finalized)
    row:Row|None                # Values of the row the last successful step produced
    rows_stepped:int            # Number of rows produced by step() so far
    _buffer:deque[Row]          # Rows read ahead of step() (see Database.remaining_row_count())


    def __init__(self, sql:str, cursor:DBCursor):
        self.sql = sql
        self.cursor = cursor
        self.row = None
        self.rows_stepped = 0
        self._buffer = deque()


    def __repr__(self) -> str:
        state:str = 'finalized' if self.finalized else f'rows_stepped={self.rows_stepped}'
        return f'<Statement {self.sql!r} {state}>'


    @property
    def finalized(self) -> bool:
        return self.cursor is None


    @property
    def column_names(self) -> list[str]:
        """Names of the result columns, in order (empty for statements that produce no row set)."""
        if self.cursor is None or not self.cursor.description:
            return []
        return [d[0] for d in self.cursor.description]


    def read_next(self) -> Row|None:
        """Returns the next pending row (read-ahead buffer first), or None when the result is exhausted."""
        if self._buffer:
            return self._buffer.popleft()
        return self.cursor.fetchone()


    def read_ahead(self) -> int:
        """Moves every remaining row of the result into the read-ahead buffer and returns the buffer size."""
        self._buffer.extend(self.cursor.fetchall())
        return len(self._buffer)


    def release(self) -> None:
        """Drops the driver cursor and any buffered rows."""
        cursor, self.cursor = self.cursor, None
        self.row = None
        self._buffer.clear()
        if cursor is not None:
            cursor.close()
