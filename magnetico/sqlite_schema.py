"""Schema creation, migrations and query building for the SQLite backend."""

from __future__ import annotations

import logging
import sqlite3

from magnetico.models import DatabaseError, OrderingCriteria

logger = logging.getLogger(__name__)

_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA temp_store=2;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA encoding='UTF-8';",
)

_V0 = (
    """
    CREATE TABLE IF NOT EXISTS torrents (
        id             INTEGER PRIMARY KEY,
        info_hash      BLOB NOT NULL UNIQUE,
        name           TEXT NOT NULL,
        total_size     INTEGER NOT NULL CHECK(total_size > 0),
        discovered_on  INTEGER NOT NULL CHECK(discovered_on > 0)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS files (
        id          INTEGER PRIMARY KEY,
        torrent_id  INTEGER REFERENCES torrents ON DELETE CASCADE ON UPDATE RESTRICT,
        size        INTEGER NOT NULL,
        path        TEXT NOT NULL
    );
    """,
)

_V0_TO_V1 = (
    "DROP INDEX IF EXISTS info_hash_index;",
    "CREATE UNIQUE INDEX info_hash_index ON torrents (info_hash);",
    "PRAGMA user_version = 1;",
)

_V1_TO_V2 = (
    "ALTER TABLE torrents ADD COLUMN updated_on INTEGER CHECK (updated_on > 0) DEFAULT NULL;",
    "ALTER TABLE torrents ADD COLUMN n_seeders  INTEGER CHECK ((updated_on IS NOT NULL AND "
    "n_seeders >= 0) OR (updated_on IS NULL AND n_seeders IS NULL)) DEFAULT NULL;",
    "ALTER TABLE torrents ADD COLUMN n_leechers INTEGER CHECK ((updated_on IS NOT NULL AND "
    "n_leechers >= 0) OR (updated_on IS NULL AND n_leechers IS NULL)) DEFAULT NULL;",
    "ALTER TABLE files ADD COLUMN is_readme INTEGER CHECK (is_readme IS NULL OR is_readme=1) "
    "DEFAULT NULL;",
    "ALTER TABLE files ADD COLUMN content   TEXT    CHECK ((content IS NULL AND is_readme IS NULL) "
    "OR (content IS NOT NULL AND is_readme=1)) DEFAULT NULL;",
    "CREATE UNIQUE INDEX readme_index ON files (torrent_id, is_readme);",
    "PRAGMA user_version = 2;",
)

_V2_TO_V3 = (
    r'''CREATE VIRTUAL TABLE torrents_idx USING fts5(name, content='torrents', content_rowid='id', tokenize="porter unicode61 separators ' !""#$%&''()*+,-./:;<=>?@[\]^_`{|}~'");''',
    "INSERT INTO torrents_idx(rowid, name) SELECT id, name FROM torrents;",
    """
    CREATE TRIGGER torrents_idx_ai_t AFTER INSERT ON torrents BEGIN
      INSERT INTO torrents_idx(rowid, name) VALUES (new.id, new.name);
    END;
    """,
    """
    CREATE TRIGGER torrents_idx_ad_t AFTER DELETE ON torrents BEGIN
      INSERT INTO torrents_idx(torrents_idx, rowid, name) VALUES('delete', old.id, old.name);
    END;
    """,
    """
    CREATE TRIGGER torrents_idx_au_t AFTER UPDATE ON torrents BEGIN
      INSERT INTO torrents_idx(torrents_idx, rowid, name) VALUES('delete', old.id, old.name);
      INSERT INTO torrents_idx(rowid, name) VALUES (new.id, new.name);
    END;
    """,
    # Code needs to be updated before January 1, 3000 (32503680000).
    """
    ALTER TABLE torrents ADD COLUMN modified_on INTEGER NOT NULL
        CHECK (modified_on >= discovered_on AND (updated_on IS NOT NULL OR modified_on >= updated_on))
        DEFAULT 32503680000;
    """,
    "UPDATE torrents SET modified_on = (SELECT MAX(discovered_on, IFNULL(updated_on, 0)));",
    "CREATE INDEX modified_on_index ON torrents (modified_on);",
    "PRAGMA user_version = 3;",
)

_MIGRATIONS = (
    (0, 1, _V0_TO_V1),
    (1, 2, _V1_TO_V2),
    (2, 3, _V2_TO_V3),
)


def _run(conn: sqlite3.Connection, statements: tuple[str, ...], stage: str) -> None:
    try:
        for statement in statements:
            conn.execute(statement)
    except sqlite3.Error as exc:
        raise DatabaseError(f"schema {stage}: {exc}") from exc


def setup_database(conn: sqlite3.Connection) -> None:
    """Apply connection pragmas, create the schema and migrate it to the latest version."""
    try:
        for pragma in _PRAGMAS:
            conn.execute(pragma)
    except sqlite3.Error as exc:
        raise DatabaseError(f"pragmas: {exc}") from exc

    if conn.in_transaction:
        conn.commit()
    try:
        conn.execute("BEGIN")
    except sqlite3.Error as exc:
        raise DatabaseError(f"begin: {exc}") from exc

    try:
        _run(conn, _V0, "v0")
        row = conn.execute("PRAGMA user_version;").fetchone()
        if row is None:
            raise DatabaseError("user_version: PRAGMA user_version did not return any rows")
        user_version = row[0]

        for source, target, statements in _MIGRATIONS:
            if user_version <= source:
                logger.info(
                    "Updating database schema from %d to %d... (this might take a while)",
                    source,
                    target,
                )
                _run(conn, statements, f"v{source} -> v{target}")

        conn.commit()
    except BaseException:
        conn.rollback()
        raise


def order_on(order_by: OrderingCriteria) -> str:
    """Return the column a query is ordered on for the given criterion."""
    columns = {
        OrderingCriteria.BY_RELEVANCE: "idx.rank",
        OrderingCriteria.BY_TOTAL_SIZE: "total_size",
        OrderingCriteria.BY_DISCOVERED_ON: "discovered_on",
        OrderingCriteria.BY_N_FILES: "n_files",
    }
    try:
        return columns[order_by]
    except KeyError:
        raise ValueError(f"unknown orderBy: {order_by!r}") from None


def build_query_sql(do_join: bool, first_page: bool, order_column: str, ascending: bool) -> str:
    """Build the torrent search SQL; user input is bound through placeholders only."""
    comparison = ">" if ascending else "<"
    direction = "ASC" if ascending else "DESC"

    parts = [
        "SELECT id",
        "     , info_hash",
        "     , name",
        "     , total_size",
        "     , discovered_on",
        "     , (SELECT COUNT(*) FROM files WHERE torrents.id = files.torrent_id) AS n_files",
        "     , idx.rank" if do_join else "     , 0",
        "FROM torrents",
    ]
    if do_join:
        parts += [
            "INNER JOIN (",
            "    SELECT rowid AS id",
            "         , bm25(torrents_idx) AS rank",
            "    FROM torrents_idx",
            "    WHERE torrents_idx MATCH ?",
            ") AS idx USING(id)",
        ]
    parts.append("WHERE     modified_on <= ?")
    if not first_page:
        parts.append(f"      AND ( {order_column}, id ) {comparison} (?, ?)")
    parts += [
        f"ORDER BY {order_column} {direction}, id {direction}",
        "LIMIT ?;",
    ]
    return "\n".join(parts)