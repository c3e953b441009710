"""Torrent storage backed by a PostgreSQL (or CockroachDB) database."""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Sequence

from magnetico.iso8601 import Granularity, parse_iso8601
from magnetico.models import (
    Database,
    DatabaseEngine,
    DatabaseError,
    File,
    OrderingCriteria,
    Statistics,
    TorrentMetadata,
)
from magnetico.stats import get_instance

logger = logging.getLogger(__name__)

# Python formats matching the period keys reported for each granularity.
_TIME_FORMATS = {
    Granularity.YEAR: "%Y",
    Granularity.MONTH: "%Y-%m",
    Granularity.WEEK: "%Y-%m-%d",
    Granularity.DAY: "%Y-%m-%d",
    Granularity.HOUR: "%Y-%m-%d %H:%M",
}

_SCHEMA_V0 = """
    -- Torrents ID sequence generator
    CREATE SEQUENCE IF NOT EXISTS seq_torrents_id;
    -- Files ID sequence generator
    CREATE SEQUENCE IF NOT EXISTS seq_files_id;

    CREATE TABLE IF NOT EXISTS torrents (
        id             INTEGER PRIMARY KEY DEFAULT nextval('seq_torrents_id'),
        info_hash      bytea NOT NULL UNIQUE,
        name           TEXT NOT NULL,
        total_size     BIGINT NOT NULL CHECK(total_size > 0),
        discovered_on  INTEGER NOT NULL CHECK(discovered_on > 0)
    );

    -- Indexes for search sorting options
    CREATE INDEX IF NOT EXISTS idx_torrents_total_size ON torrents (total_size);
    CREATE INDEX IF NOT EXISTS idx_torrents_discovered_on ON torrents (discovered_on);

    -- The pg_trgm GIN index speeds up ILIKE queries; it needs the pg_trgm extension.
    -- Queries shorter than 3 characters still cause a full table scan.
    CREATE INDEX IF NOT EXISTS idx_torrents_name_gin_trgm ON torrents USING GIN (name gin_trgm_ops);

    CREATE TABLE IF NOT EXISTS files (
        id          INTEGER PRIMARY KEY DEFAULT nextval('seq_files_id'),
        torrent_id  INTEGER REFERENCES torrents ON DELETE CASCADE ON UPDATE RESTRICT,
        size        BIGINT NOT NULL,
        path        TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_files_torrent_id ON files (torrent_id);

    CREATE TABLE IF NOT EXISTS migrations (
        schema_version      SMALLINT NOT NULL UNIQUE
    );

    INSERT INTO migrations (schema_version) VALUES (0) ON CONFLICT DO NOTHING;
"""


def _is_valid_utf8(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _add_date(moment: datetime, years: int = 0, months: int = 0, days: int = 0) -> datetime:
    """Add calendar units, carrying an overflowing day into the following month."""
    carried_year, month_index = divmod(
        (moment.year + years) * 12 + moment.month - 1 + months, 12
    )
    base = moment.replace(year=carried_year, month=month_index + 1, day=1)
    return base + timedelta(days=moment.day - 1 + days)


def _period_end(start: datetime, granularity: Granularity, n: int) -> datetime:
    if granularity is Granularity.YEAR:
        return _add_date(start, years=n)
    if granularity is Granularity.MONTH:
        return _add_date(start, months=n)
    if granularity is Granularity.WEEK:
        return _add_date(start, days=n * 7)
    if granularity is Granularity.DAY:
        return _add_date(start, days=n)
    return start + timedelta(hours=n)


def order_on(order_by: OrderingCriteria) -> str:
    """Return the column a query is ordered on for the given criterion."""
    columns = {
        OrderingCriteria.BY_RELEVANCE: "discovered_on",
        OrderingCriteria.BY_TOTAL_SIZE: "total_size",
        OrderingCriteria.BY_DISCOVERED_ON: "discovered_on",
        OrderingCriteria.BY_N_FILES: "n_files",
    }
    try:
        return columns[order_by]
    except KeyError:
        raise ValueError(f"unknown orderBy: {order_by!r}") from None


def render_query(order_column: str, ascending: bool) -> str:
    """Build the torrent search SQL; user input is bound through placeholders only."""
    comparison = ">" if ascending else "<"
    direction = "ASC" if ascending else "DESC"
    return f"""
        SELECT
            id,
            info_hash,
            name,
            total_size,
            discovered_on,
            (SELECT COUNT(*) FROM files WHERE torrents.id = files.torrent_id) AS n_files,
            0
        FROM torrents
        WHERE
            name ILIKE CONCAT('%%', %s::text, '%%') AND
            discovered_on <= %s AND
            {order_column} {comparison} %s AND
            id {comparison} %s
        ORDER BY {order_column} {direction}, id {direction}
        LIMIT %s;
    """


@contextmanager
def _wrapped(stage: str) -> Iterator[None]:
    try:
        yield
    except DatabaseError:
        raise
    except Exception as exc:
        raise DatabaseError(f"{stage}: {exc}") from exc


class PostgresDatabase(Database):
    """A torrent database on a DB-API 2 PostgreSQL connection (``format`` paramstyle)."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._lock = threading.RLock()

    def _fetch(
        self, sql: str, params: Sequence[Any] | None = None, stage: str = "query error"
    ) -> list[tuple]:
        with self._lock, _wrapped(stage):
            cursor = self._conn.cursor()
            try:
                if params is None:
                    cursor.execute(sql)
                else:
                    cursor.execute(sql, tuple(params))
                return list(cursor.fetchall())
            finally:
                cursor.close()

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        with self._lock:
            cursor = self._conn.cursor()
            try:
                yield cursor
            except BaseException:
                self._conn.rollback()
                raise
            finally:
                cursor.close()
            with _wrapped("commit"):
                self._conn.commit()

    def setup_database(self) -> None:
        """Create the schema if needed and check the current schema version."""
        rows = self._fetch("SELECT 1 FROM pg_extension WHERE extname = 'pg_trgm';")
        if not rows:
            logger.warning(
                "pg_trgm extension is not enabled. You need to execute "
                "'CREATE EXTENSION pg_trgm' on this database"
            )

        with self._transaction() as cursor:
            with _wrapped("schema v0"):
                cursor.execute(_SCHEMA_V0)
            with _wrapped("SELECT MAX(schema_version) FROM migrations"):
                cursor.execute("SELECT MAX(schema_version) FROM migrations;")
                row = cursor.fetchone()
            if row is None:
                raise DatabaseError(
                    "SELECT MAX(schema_version) FROM migrations: query did not return any rows"
                )

    def engine(self) -> DatabaseEngine:
        return DatabaseEngine.POSTGRES

    def does_torrent_exist(self, info_hash: bytes) -> bool:
        rows = self._fetch(
            "SELECT 1 FROM torrents WHERE info_hash = %s;", (bytes(info_hash),)
        )
        return bool(rows)

    def add_new_torrent(self, info_hash: bytes, name: str, files: list[File] | None) -> None:
        if not _is_valid_utf8(name):
            get_instance().inc_non_utf8()
            return
        name = name.replace("\x00", "")

        files = files or []
        total_size = sum(f.size for f in files)
        # The schema refuses a total size of zero.
        if total_size == 0:
            return

        info_hash = bytes(info_hash)
        with self._transaction() as cursor:
            if self.does_torrent_exist(info_hash):
                return

            with _wrapped("insert into torrents"):
                cursor.execute(
                    """
                    INSERT INTO torrents (
                        info_hash,
                        name,
                        total_size,
                        discovered_on
                    ) VALUES (%s, %s, %s, %s)
                    RETURNING id;
                    """,
                    (info_hash, name, total_size, int(time.time())),
                )
                row = cursor.fetchone()
            if row is None:
                raise DatabaseError("insert into torrents: no id returned")
            torrent_id = row[0]

            for file in files:
                if not _is_valid_utf8(file.path):
                    get_instance().inc_non_utf8()
                    self._conn.rollback()
                    return
                with _wrapped("insert into files"):
                    cursor.execute(
                        "INSERT INTO files (torrent_id, size, path) VALUES (%s, %s, %s);",
                        (torrent_id, file.size, file.path),
                    )

    def close(self) -> None:
        with self._lock, _wrapped("close"):
            self._conn.close()

    def get_number_of_torrents(self) -> int:
        sql = "SELECT COUNT(*)::BIGINT AS exact_count FROM torrents;"
        rows = self._fetch(sql)
        if not rows:
            raise DatabaseError(f"no rows returned from `{sql}`")
        count = rows[0][0]
        return 0 if count is None else int(count)

    def query_torrents(
        self,
        query: str,
        epoch: int,
        order_by: OrderingCriteria,
        ascending: bool,
        limit: int,
        last_ordered_value: float | None,
        last_id: int | None,
    ) -> list[TorrentMetadata]:
        if (last_ordered_value is None) != (last_id is None):
            raise DatabaseError(
                "lastOrderedValue and lastID should be supplied together, if supplied"
            )
        safe_last_value = 0.0 if last_ordered_value is None else last_ordered_value
        safe_last_id = 0 if last_id is None else last_id

        sql = render_query(order_on(order_by), ascending)
        rows = self._fetch(sql, (query, epoch, safe_last_value, safe_last_id, limit))
        return [
            TorrentMetadata(
                id=int(row[0]),
                info_hash=bytes(row[1]),
                name=row[2],
                size=int(row[3]),
                discovered_on=int(row[4]),
                n_files=int(row[5]),
                relevance=float(row[6]),
            )
            for row in rows
        ]

    def get_torrent(self, info_hash: bytes) -> TorrentMetadata | None:
        rows = self._fetch(
            """
            SELECT
                t.info_hash,
                t.name,
                t.total_size,
                t.discovered_on,
                (SELECT COUNT(*) FROM files f WHERE f.torrent_id = t.id) AS n_files
            FROM torrents t
            WHERE t.info_hash = %s;
            """,
            (bytes(info_hash),),
        )
        if not rows:
            return None
        stored_hash, name, size, discovered_on, n_files = rows[0]
        return TorrentMetadata(
            info_hash=bytes(stored_hash),
            name=name,
            size=int(size),
            discovered_on=int(discovered_on),
            n_files=int(n_files),
        )

    def get_files(self, info_hash: bytes) -> list[File] | None:
        rows = self._fetch(
            """
            SELECT
                f.size,
                f.path
            FROM
                files f,
                torrents t
            WHERE
                f.torrent_id = t.id AND
                t.info_hash = %s;
            """,
            (bytes(info_hash),),
        )
        if not rows:
            return None
        return [File(size=int(size), path=path) for size, path in rows]

    def get_statistics(self, from_: str, n: int) -> Statistics:
        try:
            start, granularity = parse_iso8601(from_)
        except ValueError as exc:
            raise DatabaseError(f"parsing ISO8601 error: {exc}") from exc
        end = _period_end(start, granularity, n)
        time_format = _TIME_FORMATS[granularity]

        rows = self._fetch(
            """
            SELECT
                discovered_on AS dT,
                sum(files.size) AS tS,
                count(DISTINCT torrents.id) AS nD,
                count(DISTINCT files.id) AS nF
            FROM
                torrents,
                files
            WHERE
                torrents.id = files.torrent_id AND
                discovered_on >= %s AND
                discovered_on <= %s
            GROUP BY dt;
            """,
            (int(start.timestamp()), int(end.timestamp())),
        )

        stats = Statistics()
        for moment, total_size, n_discovered, n_files in rows:
            try:
                epoch = int(moment)
            except (TypeError, ValueError):
                epoch = 0
            period = datetime.fromtimestamp(epoch, timezone.utc).strftime(time_format)
            stats.n_discovered[period] = int(n_discovered)
            stats.total_size[period] = int(total_size)
            stats.n_files[period] = int(n_files)
        return stats