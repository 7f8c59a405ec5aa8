# Standard imports
import logging
import sqlite3 as sqlite
from sqlite3 import Connection as SQLiteConnection
from typing import Callable

# Custom utils and objs
from ..utils.general import setup_logger
from ..utils.conversions import StorageClass, storage_class_of, to_int32, to_int64, to_double, to_text, to_blob
from ..exceptions import DatabaseNotConnected
from .statement import Statement, StepStatus


# Fallback result code when the driver does not expose one (SQLITE_ERROR)
SQLITE_ERROR:int = 1

# Signature of the optional error sink: (message, code) -> None
ErrorHandler = Callable[[str, int], None]


# Database class definition
class Database(object):
    """The embedded SQLite database a Query runs against.

    Exposes the statement primitives a Query consumes (prepare/step/column access/finalize) and keeps
    the last engine error, which is recorded and logged but never raised.
    """

    database:str                        # Path to the database file (or ':memory:')
    cxn:SQLiteConnection|None           # The database connection object
    enable_logging:bool                 # Optional - specify whether to enable logging for this instance; defaults to True
    logger:logging.Logger               # Logger for debug/info/etc
    error_handler:ErrorHandler|None     # Optional - called with (message, code) for every engine error


    def __init__(
            self,
            database:str,
            *,
            enable_logging:bool=True,
            log_file_path:str='./sqlite_query.log',
            logger_name:str='sqlite_query_logger',
            logger_min_level:int=logging.DEBUG,
            logger_format:str="%(asctime)s - %(levelname)s: %(message)s",
            error_handler:ErrorHandler|None=None,
            timeout:float=5.0,
        ):

        # Set the base attributes
        self.database = database
        self.enable_logging = enable_logging
        self.error_handler = error_handler
        self._errmsg:str = ''
        self._errno:int = 0

        # Setup logging if configured
        if enable_logging:

            # Init a logger
            self.logger = setup_logger(
                log_file_path=log_file_path,
                logger_name=logger_name,
                min_level=logger_min_level,
                log_format=logger_format,
            )

        # Connect
        try:
            if database is None or not database:
                raise ValueError("'database' must be a file path or ':memory:'.")

            # NOTE: isolation_level=None puts the driver in autocommit mode, so every statement
            # commits on its own exactly as it would through the C API
            self.cxn = sqlite.connect(database, timeout=timeout, isolation_level=None)

        # Handle exceptions
        except Exception as e:
            self.log_error('__init__()', e)
            self.cxn = None


    # ---- Helper functions for standardizing logging ---- #
    def _log(
        self,
        level:int,
        fmt:str,
        *args,
        exc:BaseException|None=None,
        stacklevel:int=2,
    ) -> None:
        """Helper func to standardize logging format (or do nothing if not [self.enable_logging] or not self.logger).
        Log format is: "[calling_function]: [message|Exception]" """

        # Check if enable logging is True
        if not getattr(self, "enable_logging", False): return

        # Make sure self.logger is not None
        logger:logging.Logger = getattr(self, "logger", None)
        if logger is None: return

        # Write to the log
        logger.log(level, fmt, *args, exc_info=exc, stacklevel=stacklevel)


    def log_debug(self, calling_func:str, message:str, stacklevel:int=2) -> None:
        """Logs a DEBUG message."""
        self._log(logging.DEBUG, "%s: %s", calling_func, message, stacklevel=stacklevel)


    def log_warning(self, calling_func:str, message:str, stacklevel:int=2) -> None:
        """Logs a WARNING message."""
        self._log(logging.WARNING, "%s error (non-critical): %s", calling_func, message, stacklevel=stacklevel)


    def log_error(self, calling_func:str, exception:Exception, stacklevel:int=2) -> None:
        """Logs an ERROR message."""
        self._log(logging.ERROR, "%s failed: %s - %s", calling_func, type(exception).__name__, exception, exc=exception, stacklevel=stacklevel)


    def report_error(self, message:str, code:int=SQLITE_ERROR) -> None:
        """Error sink: logs [message] at ERROR level and hands it to [self.error_handler] if one is set."""
        self._log(logging.ERROR, "%s (errno %s)", message, code, stacklevel=3)
        if self.error_handler is not None:
            self.error_handler(message, code)


    # ---- Functions for checking if the database connection is running and healthy ---- #
    def _ensure_cxn(self) -> None:
        """Raises a DatabaseNotConnected exception if the DB is not connected."""
        if not self._check_connection():
            self.log_error('_ensure_cxn()', DatabaseNotConnected())
            raise DatabaseNotConnected()


    def _check_connection(self) -> bool:
        """Returns True if the connection is running and is healthy, False otherwise."""

        # Base case: self.cxn is None
        if self.cxn is None: return False

        try:
            self.cxn.execute('SELECT 1;')
            return True
        except sqlite.ProgrammingError:
            return False


    def is_connected(self) -> bool:
        """Public method for checking if the DB is connected and the connection is healthy (does not raise Exceptions)."""
        return self._check_connection()


    def close(self) -> None:
        """Closes the connection (safe to call more than once)."""
        if self.cxn is None: return
        try:
            self.cxn.close()
        except sqlite.Error as e:
            self.log_warning('close()', f'Error when closing the connection: {e.__class__.__name__} - {e}')
        finally:
            self.cxn = None


    # ---- Last error state ---- #
    def _record_error(self, calling_func:str, exception:Exception) -> None:
        """Stores [exception] as the last engine error and routes it to the error sink."""
        self._errmsg = str(exception)
        self._errno = getattr(exception, 'sqlite_errorcode', SQLITE_ERROR)
        self.report_error(f'{calling_func}: {self._errmsg}', self._errno)


    def _clear_error(self) -> None:
        self._errmsg = ''
        self._errno = 0


    def last_error_message(self) -> str:
        """Text of the last engine error ('' if the last statement succeeded)."""
        return self._errmsg


    def last_error_code(self) -> int:
        """SQLite result code of the last engine error (0 if the last statement succeeded)."""
        return self._errno


    def last_insert_row_id(self) -> int:
        """Rowid of the most recent successful INSERT on this connection (0 if there was none)."""
        self._ensure_cxn()
        return self.cxn.execute('SELECT last_insert_rowid()').fetchone()[0]


    # ---- Statement primitives ---- #
    def prepare_and_step(self, sql:str) -> tuple[Statement|None, StepStatus]:
        """Prepares and executes [sql], then steps it once.

        Returns (statement, status of the first step), or (None, StepStatus.ERROR) if the engine
        rejected the statement. The caller owns the returned statement and must finalize() it.
        """

        # Check if the cxn is active
        self._ensure_cxn()

        cursor:sqlite.Cursor|None = None
        try:
            cursor = self.cxn.cursor()
            cursor.execute(sql)

        # NOTE: older drivers raise sqlite3.Warning (not an Error) for multi-statement strings
        except (sqlite.Error, sqlite.Warning) as e:
            if cursor is not None:
                cursor.close()
            self._record_error('prepare_and_step()', e)
            return None, StepStatus.ERROR

        self._clear_error()
        stmt = Statement(sql, cursor)
        return stmt, self.step(stmt)


    def step(self, stmt:Statement) -> StepStatus:
        """Advances [stmt] to its next row. The row's values become available through the column_* methods."""
        if stmt.finalized:
            return StepStatus.DONE

        try:
            row = stmt.read_next()
        except sqlite.Error as e:
            stmt.row = None
            self._record_error('step()', e)
            return StepStatus.ERROR

        # End of rows
        if row is None:
            stmt.row = None
            return StepStatus.DONE

        stmt.row = row
        stmt.rows_stepped += 1
        return StepStatus.ROW


    def remaining_row_count(self, stmt:Statement) -> int:
        """Reads the rest of [stmt]'s result ahead and returns the total number of rows the result has."""
        if stmt.finalized:
            return stmt.rows_stepped

        try:
            buffered:int = stmt.read_ahead()
        except sqlite.Error as e:
            self._record_error('remaining_row_count()', e)
            buffered = 0
        return stmt.rows_stepped + buffered


    def finalize(self, stmt:Statement|None) -> None:
        """Releases [stmt] (no-op for None or an already finalized statement)."""
        if stmt is None or stmt.finalized: return
        try:
            stmt.release()
        except sqlite.Error as e:
            self.log_warning('finalize()', f'Error when releasing statement: {e.__class__.__name__} - {e}')


    def column_count(self, stmt:Statement) -> int:
        return len(stmt.column_names)


    def column_name(self, stmt:Statement, index:int) -> str:
        return stmt.column_names[index]


    def _column_value(self, stmt:Statement, index:int) -> object:
        """Raw driver value of column [index] in [stmt]'s current row (None when no row is current)."""
        if stmt.row is None: return None
        return stmt.row[index]


    def column_storage_class(self, stmt:Statement, index:int) -> StorageClass:
        return storage_class_of(self._column_value(stmt, index))


    def column_as_int32(self, stmt:Statement, index:int) -> int:
        return to_int32(self._column_value(stmt, index))


    def column_as_int64(self, stmt:Statement, index:int) -> int:
        return to_int64(self._column_value(stmt, index))


    def column_as_double(self, stmt:Statement, index:int) -> float:
        return to_double(self._column_value(stmt, index))


    def column_as_text(self, stmt:Statement, index:int) -> str|None:
        return to_text(self._column_value(stmt, index))


    def column_as_blob(self, stmt:Statement, index:int) -> bytes|None:
        return to_blob(self._column_value(stmt, index))
