
class DatabaseNotConnected(ConnectionError):
    """Raised when a Database (or a Query bound to it) attempts a statement but does not have an active [cxn] attribute."""

    def __init__(self):
        super().__init__('The database is not connected or the connection is not healthy.')


class UnknownColumn(LookupError):
    """Raised when a Query is asked for a column name that is not part of the active result."""

    def __init__(self, given_column_name:str):
        self.given_column_name = given_column_name or ""
        super().__init__(f'The column "{self.given_column_name}" does not exist in the current result.')


class ColumnOutOfRange(IndexError):
    """Raised when a column index (explicit, or the sequential read pointer) falls outside the active result's columns."""

    def __init__(self, index:int, num_cols:int):
        self.index = index
        self.num_cols = num_cols
        super().__init__(f'Column index {index} is out of range for a result with {num_cols} column(s).')


class NoActiveResult(RuntimeError):
    """Raised when a row/column operation is attempted on a Query that has no open result."""

    def __init__(self):
        super().__init__('The query has no open result - call get_result() first.')


class NoRowFetched(RuntimeError):
    """Raised when a column is read before fetch_row() succeeded (or after it returned False)."""

    def __init__(self):
        super().__init__('No row is currently fetched - call fetch_row() and check that it returned True.')


class ResultAlreadyOpen(RuntimeError):
    """Raised when get_result() is called while the previous result has not been freed with free_result()."""

    def __init__(self, last_query:str|None=None):
        self.last_query = last_query or ""
        pretty_query = f' ("{self.last_query}")' if self.last_query else ""
        super().__init__(f'A result is already open{pretty_query} - call free_result() before opening another.')


class FieldTypeNotSupported(ValueError):
    """Raised when a requested field type cannot be resolved (see the FieldType enum class)."""

    def __init__(self, field_type:object):
        self.field_type = field_type
        super().__init__(f'The requested field type "{field_type!r}" is not supported. See the FieldType enum class for supported types.')
