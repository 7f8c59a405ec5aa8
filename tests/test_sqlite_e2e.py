import copy
import io

import numpy as np
import pandas as pd
import pytest

from sqlite_query.classes.database import Database
from sqlite_query.classes.field_type import FieldType
from sqlite_query.classes.query import Query
from sqlite_query.exceptions import (
    UnknownColumn,
    ColumnOutOfRange,
    NoActiveResult,
    NoRowFetched,
    ResultAlreadyOpen,
    DatabaseNotConnected,
)


@pytest.fixture
def sqlite_db():
    """A fresh in-memory SQLite Database for each test."""
    db = Database(":memory:", enable_logging=False)
    assert db.is_connected()
    yield db
    db.close()


@pytest.fixture
def query(sqlite_db):
    """A Query on the in-memory DB, freed after the test."""
    q = Query(sqlite_db)
    yield q
    q.free_result()


@pytest.fixture
def people(query):
    """A Query whose DB holds a small 'people' table."""
    assert query.execute("CREATE TABLE people (id INTEGER, name TEXT, age INTEGER, score REAL)")
    assert query.execute("INSERT INTO people VALUES (1, 'Ada', 36, 9.5)")
    assert query.execute("INSERT INTO people VALUES (2, 'Linus', NULL, 7.25)")
    assert query.execute("INSERT INTO people VALUES (3, 'Grace', 0, NULL)")
    return query


def test_create_insert_select_scenario(query):
    """Testing Query.execute(), *.get_insert_id(), *.get_result(), *.fetch_row() AND the by-name getters."""

    assert query.execute("CREATE TABLE t(id INTEGER, name TEXT)") is True
    assert query.execute("INSERT INTO t VALUES (1,'a')") is True
    assert query.get_insert_id() == 1

    assert query.get_result("SELECT id,name FROM t") is not None
    assert query.fetch_row() is True
    assert query.getval("id") == 1
    assert query.getstr("name") == "a"
    assert query.fetch_row() is False
    query.free_result()

    assert query.res is None
    assert query.get_num_cols() == 0


def test_null_scenario(query):
    """Testing NULL reads through every typed getter."""

    assert query.get_result("SELECT NULL AS x") is not None
    assert query.fetch_row()

    assert query.is_null(0)
    assert query.is_null("x")
    assert query.getval(0) == 0
    assert query.getuval(0) == 0
    assert query.getbigint(0) == 0
    assert query.getubigint(0) == 0
    assert query.getnum(0) == 0.0
    assert query.getstr(0) == ""

    # The optional-returning getter keeps NULL distinguishable
    assert query.get_field(0, FieldType.LONG) is None
    assert query.get_field("x", FieldType.TEXT) is None


def test_num_cols_matches_statement_shape(query):
    """Testing Query.get_num_cols() for results with and without rows."""

    assert query.get_result("SELECT 1, 2, 3")
    assert query.get_num_cols() == 3
    query.free_result()

    query.execute("CREATE TABLE empty (a INTEGER, b TEXT)")
    assert query.get_result("SELECT a, b FROM empty")
    assert query.get_num_cols() == 2
    assert query.get_column_names() == ["a", "b"]
    assert query.get_num_rows() == 0
    assert query.fetch_row() is False


def test_num_rows_equals_rows_visited(query):
    """Testing that fetching until fetch_row() is False visits exactly get_num_rows() rows."""

    query.execute("CREATE TABLE n (v INTEGER)")
    for v in range(5):
        query.execute(f"INSERT INTO n VALUES ({v})")

    assert query.get_result("SELECT v FROM n ORDER BY v")
    assert query.get_num_rows() == 5

    visited = []
    while query.fetch_row():
        visited.append(query.getval())
    assert visited == [0, 1, 2, 3, 4]

    # Counting again after the walk gives the same answer
    assert query.get_num_rows() == 5


def test_name_lookup_stable_across_rows(people):
    """Testing that a column name resolves to the same index on every row of a result."""

    assert people.get_result("SELECT name, id FROM people ORDER BY id")

    ids = []
    while people.fetch_row():
        ids.append(people.getval("id"))
        assert people.getval("id") == people.getval(1)
    assert ids == [1, 2, 3]


def test_duplicate_column_names_use_first(query):
    """Testing that with duplicate column names the first one wins."""

    assert query.get_result("SELECT 1 AS a, 2 AS a")
    assert query.fetch_row()
    assert query.getval("a") == 1
    assert query.get_field_by_name("a", 0) == 1
    assert query.getval(1) == 2


def test_get_field_by_name_default_iff_null(people):
    """Testing that get_field_by_name() returns the default if and only if the stored value is NULL."""

    assert people.get_result("SELECT id, age, score, name FROM people ORDER BY id")

    # Row 1: nothing NULL
    assert people.fetch_row()
    assert people.get_field_by_name("age", -1) == 36
    assert people.get_field_by_name("score", -1.0) == 9.5
    assert people.get_field_by_name("name", "?") == "Ada"

    # Row 2: age is NULL
    assert people.fetch_row()
    assert people.get_field_by_name("age", -1) == -1
    assert people.get_field_by_name("score", -1.0) == 7.25

    # Row 3: a stored 0 is not NULL, score is NULL
    assert people.fetch_row()
    assert people.get_field_by_name("age", -1) == 0
    assert people.get_field_by_name("score", -1.0) == -1.0


def test_get_field_by_name_dispatches_on_default_type(query):
    """Testing that the type of the default selects the type the value is read as."""

    assert query.get_result("SELECT 1 AS flag, 0.1 AS ratio, 42 AS n, 'xyz' AS s")
    assert query.fetch_row()

    assert query.get_field_by_name("flag", False) is True
    assert query.get_field_by_name("ratio", np.float32(0)) == float(np.float32(0.1))
    assert query.get_field_by_name("ratio", 0.0) == 0.1
    assert query.get_field_by_name("n", "") == "42"
    assert query.get_field_by_name("n", 0.0) == 42.0
    assert query.get_field_by_name("s", "", field_type=FieldType.CHAR) == "x"


def test_free_then_get_result_discards_prior_state(people):
    """Testing that a new result after free_result() only reflects the new query."""

    assert people.get_result("SELECT id, name FROM people")
    assert people.fetch_row()
    people.free_result()
    people.free_result()                # IDEMPOTENT

    assert people.get_result("SELECT COUNT(*) AS total FROM people")
    assert people.get_num_cols() == 1
    assert people.fetch_row()
    assert people.getval("total") == 3

    # Names from the previous result are gone
    with pytest.raises(UnknownColumn):
        people.getval("name")


def test_get_result_while_open_raises(query):
    """Testing that opening a second result without free_result() is refused."""

    assert query.get_result("SELECT 1")
    with pytest.raises(ResultAlreadyOpen):
        query.get_result("SELECT 2")

    # The first result is untouched
    assert query.fetch_row()
    assert query.getval(0) == 1


def test_unknown_column_is_not_null(query):
    """Testing that an unknown column name is signaled distinctly from a NULL value."""

    assert query.get_result("SELECT NULL AS present")
    assert query.fetch_row()

    assert query.getstr("present") == ""
    with pytest.raises(UnknownColumn):
        query.getstr("absent")
    with pytest.raises(LookupError):
        query.get_field_by_name("absent", 0)


def test_sequential_getters(query):
    """Testing the no-argument getters walk a row left to right and reset on every fetch."""

    assert query.get_result("SELECT 1, 'two', 3.5 UNION ALL SELECT 4, 'five', 6.5")

    assert query.fetch_row()
    assert query.getval() == 1
    assert query.getstr() == "two"
    assert query.getnum() == 3.5
    with pytest.raises(ColumnOutOfRange):
        query.getval()

    # Pointer resets on the next row
    assert query.fetch_row()
    assert query.getval() == 4
    assert query.getstr() == "five"


def test_explicit_index_out_of_range(query):
    """Testing that an explicit index outside the result's columns raises."""

    assert query.get_result("SELECT 1, 2")
    assert query.fetch_row()
    with pytest.raises(ColumnOutOfRange):
        query.getval(2)
    with pytest.raises(IndexError):
        query.is_null(-1)


def test_reads_without_row_raise(query):
    """Testing column reads with no open result, before the first fetch and past the last row."""

    with pytest.raises(NoActiveResult):
        query.getval(0)
    assert query.fetch_row() is False

    assert query.get_result("SELECT 1")
    with pytest.raises(NoRowFetched):
        query.getval(0)

    assert query.fetch_row()
    assert query.fetch_row() is False
    with pytest.raises(NoRowFetched):
        query.getval(0)


@pytest.mark.parametrize(
    "sql,getter,expected",
    [
        ("SELECT -1", "getval", -1),
        ("SELECT -1", "getbigint", -1),
        ("SELECT -1", "getuval", 2**64 - 1),
        ("SELECT -1", "getubigint", 2**64 - 1),
        ("SELECT '12abc'", "getval", 12),
        ("SELECT 2.75", "getval", 2),
        ("SELECT 2.75", "getstr", "2.75"),
        ("SELECT -0.0", "getstr", "0.0"),
        ("SELECT 3", "getstr", "3"),
        ("SELECT 3", "getnum", 3.0),
        ("SELECT '4.5'", "getnum", 4.5),
        ("SELECT X'6869'", "getstr", "hi"),
        ("SELECT 9223372036854775807", "getbigint", 2**63 - 1),
    ],
)
def test_storage_class_conversions(query, sql, getter, expected):
    """Testing that each getter converts from the engine's storage class to its own type."""

    assert query.get_result(sql)
    assert query.fetch_row()
    assert getattr(query, getter)(0) == expected


def test_get_field_widths(query):
    """Testing get_field() for the fixed width and non-numeric field types."""

    assert query.get_result("SELECT 4294967297 AS big, X'0001' AS raw, 'xyz' AS s, 0.1 AS r")
    assert query.fetch_row()

    assert query.get_field("big", FieldType.INT) == 1
    assert query.get_field("big", FieldType.LONG) == 4294967297
    assert query.get_field("raw", FieldType.BLOB) == b"\x00\x01"
    assert query.get_field("s", FieldType.CHAR) == "x"
    assert query.get_field("s", FieldType.BOOL) is False
    assert query.get_field("r", FieldType.FLOAT) == float(np.float32(0.1))
    assert query.get_field("r", FieldType.LONG_DOUBLE) == np.longdouble(0.1)

    # Readers follow the numpy width carried by each FieldType
    assert isinstance(query.get_field("r", FieldType.LONG_DOUBLE), FieldType.LONG_DOUBLE.dtype)
    assert query.get_field("big", FieldType.ULONG) == 4294967297
    query.free_result()

    assert query.get_result("SELECT -2 AS neg")
    assert query.fetch_row()
    assert query.get_field("neg", FieldType.ULONGLONG) == 2**64 - 2
    assert query.get_field("neg", FieldType.LONGLONG) == -2


def test_engine_errors_are_polled(query):
    """Testing that rejected SQL is reported through get_error()/get_errno() instead of raising."""

    assert query.execute("NOT SQL AT ALL") is False
    assert "syntax error" in query.get_error()
    assert query.get_errno() == 1

    assert query.get_result("SELECT * FROM missing") is None
    assert "no such table" in query.get_error()
    assert query.res is None

    # The cursor is still usable
    assert query.get_result("SELECT 1")
    assert query.get_error() == ""


def test_step_error_is_polled(query):
    """Testing that an engine error raised while stepping (not preparing) is recorded instead of raised."""

    assert query.execute("CREATE TABLE o (a INTEGER)")
    assert query.execute("INSERT INTO o VALUES (0)")
    assert query.execute("INSERT INTO o VALUES (1)")

    # Prepares fine, overflows on the second row
    assert query.get_result("SELECT abs(-9223372036854775807 - a) FROM o") is None
    assert "overflow" in query.get_error()
    assert query.res is None

    # The cursor is still usable
    assert query.get_result("SELECT 1")
    assert query.fetch_row()
    assert query.getval(0) == 1


def test_error_handler_and_query_error():
    """Testing that engine errors and query_error() reach the error handler."""
    seen = []
    db = Database(":memory:", enable_logging=False, error_handler=lambda msg, code: seen.append((msg, code)))
    q = Query(db)

    assert q.execute("DROP TABLE nope") is False
    assert len(seen) == 1
    assert "no such table" in seen[0][0]

    q.query_error("custom failure")
    assert "custom failure" in seen[1][0]
    assert "DROP TABLE nope" in seen[1][0]
    db.close()


def test_one_shot_helpers(people):
    """Testing exe_get_char_string(), exe_get_result_long() AND exe_get_result_double()."""

    assert people.exe_get_result_long("SELECT COUNT(*) FROM people") == 3
    assert people.res is None
    assert people.exe_get_char_string("SELECT name FROM people WHERE id = 2") == "Linus"
    assert people.exe_get_result_double("SELECT score FROM people WHERE id = 1") == 9.5
    assert people.exe_get_char_string("SELECT 42") == "42"

    # NULL, no rows and failures all give the default and leave the cursor idle
    assert people.exe_get_result_double("SELECT score FROM people WHERE id = 3") == 0.0
    assert people.exe_get_result_long("SELECT id FROM people WHERE id = 99") == 0
    assert people.exe_get_char_string("SELECT * FROM missing") == ""
    assert people.res is None

    # A result opened by the caller is never freed by a one-shot helper
    assert people.get_result("SELECT id FROM people")
    with pytest.raises(ResultAlreadyOpen):
        people.exe_get_result_long("SELECT 1")
    assert people.res is not None


def test_constructor_with_sql_and_last_query(sqlite_db):
    """Testing Query(db, sql) runs the statement and get_last_query() remembers it."""
    q = Query(sqlite_db, "CREATE TABLE c (x INTEGER)")

    assert q.get_last_query() == "CREATE TABLE c (x INTEGER)"
    assert q.exe_get_result_long("SELECT COUNT(*) FROM c") == 0
    assert q.is_connected()
    assert q.get_database() is sqlite_db


def test_context_manager_and_iteration(people):
    """Testing that a Query frees its result on leaving a with block, and iterates over rows."""

    with people as q:
        assert q.get_result("SELECT id, name FROM people ORDER BY id")
        rows = list(q)
        assert rows == [(1, "Ada"), (2, "Linus"), (3, "Grace")]
    assert people.res is None


def test_query_is_not_copyable(query):
    """Testing that a Query refuses to be copied."""
    with pytest.raises(TypeError):
        copy.copy(query)
    with pytest.raises(TypeError):
        copy.deepcopy(query)


def test_to_df_and_print_results(people):
    """Testing Query.to_df() AND *.print_results()."""

    assert people.get_result("SELECT id, name FROM people ORDER BY id")
    df = people.to_df()
    assert isinstance(df, pd.DataFrame)
    assert list(df.columns) == ["id", "name"]
    assert df.shape == (3, 2)
    assert list(df["name"]) == ["Ada", "Linus", "Grace"]
    people.free_result()

    # Rows already fetched are not repeated
    assert people.get_result("SELECT id FROM people ORDER BY id")
    assert people.fetch_row()
    out = io.StringIO()
    people.print_results(out)
    text = out.getvalue()
    assert "2" in text and "3" in text
    assert " 1\n" not in text

    with pytest.raises(NoActiveResult):
        Query(people.db).to_df()


def test_closed_database_raises(sqlite_db):
    """Testing that statements on a closed database raise DatabaseNotConnected."""
    q = Query(sqlite_db)
    sqlite_db.close()

    assert not q.is_connected()
    with pytest.raises(DatabaseNotConnected):
        q.execute("SELECT 1")
