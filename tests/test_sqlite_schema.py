import sqlite3

import pytest

from magnetico.models import OrderingCriteria
from magnetico.sqlite_schema import build_query_sql, order_on, setup_database


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    setup_database(connection)
    yield connection
    connection.close()


def _tables(connection):
    rows = connection.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {row[0] for row in rows}


def test_setup_creates_tables(conn):
    tables = _tables(conn)
    assert {"torrents", "files", "torrents_idx"} <= tables


def test_setup_reaches_latest_version(conn):
    assert conn.execute("PRAGMA user_version;").fetchone()[0] == 3


def test_setup_enables_foreign_keys(conn):
    assert conn.execute("PRAGMA foreign_keys;").fetchone()[0] == 1


def test_setup_is_idempotent(conn):
    setup_database(conn)
    assert conn.execute("PRAGMA user_version;").fetchone()[0] == 3
    assert "torrents" in _tables(conn)


def test_modified_on_defaults_to_year_3000(conn):
    conn.execute(
        "INSERT INTO torrents (info_hash, name, total_size, discovered_on) VALUES (?, ?, ?, ?)",
        (b"\x01" * 20, "name", 1, 100),
    )
    row = conn.execute("SELECT modified_on FROM torrents").fetchone()
    assert row[0] == 32503680000


def test_total_size_must_be_positive(conn):
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO torrents (info_hash, name, total_size, discovered_on, modified_on)"
            " VALUES (?, ?, ?, ?, ?)",
            (b"\x02" * 20, "name", 0, 100, 100),
        )


def test_info_hash_is_unique(conn):
    insert = (
        "INSERT INTO torrents (info_hash, name, total_size, discovered_on, modified_on)"
        " VALUES (?, ?, ?, ?, ?)"
    )
    conn.execute(insert, (b"\x03" * 20, "a", 1, 100, 100))
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(insert, (b"\x03" * 20, "b", 1, 100, 100))


def test_insert_trigger_feeds_full_text_index(conn):
    conn.execute(
        "INSERT INTO torrents (info_hash, name, total_size, discovered_on, modified_on)"
        " VALUES (?, ?, ?, ?, ?)",
        (b"\x04" * 20, "Ubuntu.Desktop-image", 1, 100, 100),
    )
    rows = conn.execute(
        "SELECT rowid FROM torrents_idx WHERE torrents_idx MATCH ?", ("desktop",)
    ).fetchall()
    torrent_id = conn.execute("SELECT id FROM torrents").fetchone()[0]
    assert rows == [(torrent_id,)]


@pytest.mark.parametrize(
    "criterion, column",
    [
        (OrderingCriteria.BY_RELEVANCE, "idx.rank"),
        (OrderingCriteria.BY_TOTAL_SIZE, "total_size"),
        (OrderingCriteria.BY_DISCOVERED_ON, "discovered_on"),
        (OrderingCriteria.BY_N_FILES, "n_files"),
    ],
)
def test_order_on(criterion, column):
    assert order_on(criterion) == column


@pytest.mark.parametrize(
    "criterion",
    [
        OrderingCriteria.BY_N_SEEDERS,
        OrderingCriteria.BY_N_LEECHERS,
        OrderingCriteria.BY_UPDATED_ON,
    ],
)
def test_order_on_unknown(criterion):
    with pytest.raises(ValueError, match="unknown orderBy"):
        order_on(criterion)


def test_build_query_with_join_uses_rank():
    sql = build_query_sql(True, True, "idx.rank", False)
    assert "MATCH ?" in sql
    assert "idx.rank" in sql
    assert "ORDER BY idx.rank DESC, id DESC" in sql


def test_build_query_without_join_first_page():
    sql = build_query_sql(False, True, "total_size", True)
    assert "MATCH" not in sql
    assert "(?, ?)" not in sql
    assert "ORDER BY total_size ASC, id ASC" in sql


def test_build_query_next_page_compares_row_values():
    ascending = build_query_sql(False, False, "total_size", True)
    descending = build_query_sql(False, False, "total_size", False)
    assert "( total_size, id ) > (?, ?)" in ascending
    assert "( total_size, id ) < (?, ?)" in descending


def test_placeholder_count_grows_with_join_and_paging():
    first = build_query_sql(False, True, "n_files", True).count("?")
    joined = build_query_sql(True, True, "n_files", True).count("?")
    paged = build_query_sql(True, False, "n_files", True).count("?")
    assert joined == first + 1
    assert paged == joined + 2


def test_built_query_runs_against_schema(conn):
    conn.execute(
        "INSERT INTO torrents (info_hash, name, total_size, discovered_on, modified_on)"
        " VALUES (?, ?, ?, ?, ?)",
        (b"\x05" * 20, "sample", 42, 100, 100),
    )
    sql = build_query_sql(False, True, "total_size", True)
    rows = conn.execute(sql, (200, 10)).fetchall()
    assert len(rows) == 1
    assert rows[0][2] == "sample"
    assert rows[0][3] == 42