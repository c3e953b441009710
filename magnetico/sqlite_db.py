"""Torrent storage backed by an SQLite database with FTS5 full-text search."""

from __future__ import annotations

import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator

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
from magnetico.sqlite_schema import build_query_sql, order_on, setup_database

# SQLite strftime formats for each granularity of the statistics API.
_TIME_FORMATS = {
    Granularity.YEAR: "%Y",
    Granularity.MONTH: "%Y-%m",
    Granularity.WEEK: "%Y-%W",
    Granularity.DAY: "%Y-%m-%d",
    Granularity.HOUR: "%Y-%m-%dT%H",
}


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


class SqliteDatabase(Database):
    """A torrent database kept in a single SQLite file (or in memory)."""

    def __init__(self, path: str) -> None:
        try:
            self._conn = sqlite3.connect(
                path,
                uri=path.startswith("file:"),
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise DatabaseError(f"open: {exc}") from exc
        self._lock = threading.RLock()
        try:
            setup_database(self._conn)
        except Exception:
            self._conn.close()
            raise

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._conn.execute("BEGIN")
            except sqlite3.Error as exc:
                raise DatabaseError(f"begin: {exc}") from exc
            try:
                yield self._conn
            except BaseException:
                self._conn.rollback()
                raise
            try:
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise DatabaseError(f"commit: {exc}") from exc

    def _fetchall(self, sql: str, params: tuple | list = ()) -> list[tuple]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise DatabaseError(f"query error: {exc}") from exc

    def engine(self) -> DatabaseEngine:
        return DatabaseEngine.SQLITE3

    def does_torrent_exist(self, info_hash: bytes) -> bool:
        rows = self._fetchall(
            "SELECT 1 FROM torrents WHERE info_hash = ? LIMIT 1;", (bytes(info_hash),)
        )
        return bool(rows)

    def add_new_torrent(self, info_hash: bytes, name: str, files: list[File] | None) -> None:
        files = files or []
        total_size = sum(f.size for f in files)
        # The schema refuses a total size of zero.
        if total_size == 0:
            return

        info_hash = bytes(info_hash)
        with self._transaction() as conn:
            if self.does_torrent_exist(info_hash):
                return
            now = int(time.time())
            try:
                cursor = conn.execute(
                    "INSERT INTO torrents (info_hash, name, total_size, discovered_on, modified_on)"
                    " VALUES (?, ?, ?, ?, ?);",
                    (info_hash, name, total_size, now, now),
                )
            except sqlite3.Error as exc:
                raise DatabaseError(f"insert into torrents: {exc}") from exc

            torrent_id = cursor.lastrowid
            if torrent_id is None or torrent_id <= 0:
                raise RuntimeError("last_insert_rowid() <= 0")

            try:
                conn.executemany(
                    "INSERT INTO files (torrent_id, size, path) VALUES (?, ?, ?);",
                    ((torrent_id, f.size, f.path) for f in files),
                )
            except sqlite3.Error as exc:
                raise DatabaseError(f"insert into files: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get_number_of_torrents(self) -> int:
        # MAX(ROWID) avoids a full scan; the result may be an approximation.
        rows = self._fetchall("SELECT MAX(ROWID) FROM torrents;")
        if not rows:
            raise DatabaseError("no rows returned from `SELECT MAX(ROWID)`")
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
        if query == "" and order_by == OrderingCriteria.BY_RELEVANCE:
            raise DatabaseError("torrents cannot be ordered by relevance when the query is empty")
        if (last_ordered_value is None) != (last_id is None):
            raise DatabaseError(
                "lastOrderedValue and lastID should be supplied together, if supplied"
            )

        do_join = query != ""
        first_page = last_id is None
        sql = build_query_sql(do_join, first_page, order_on(order_by), ascending)

        params: list = []
        if do_join:
            params.append(query)
        params.append(epoch)
        if not first_page:
            params += [last_ordered_value, last_id]
        params.append(limit)

        return [
            TorrentMetadata(
                id=row[0],
                info_hash=bytes(row[1]),
                name=row[2],
                size=row[3],
                discovered_on=row[4],
                n_files=row[5],
                relevance=float(row[6]),
            )
            for row in self._fetchall(sql, params)
        ]

    def get_torrent(self, info_hash: bytes) -> TorrentMetadata | None:
        rows = self._fetchall(
            """
            SELECT info_hash
                 , name
                 , total_size
                 , discovered_on
                 , (SELECT COUNT(*) FROM files WHERE torrent_id = torrents.id) AS n_files
            FROM torrents
            WHERE info_hash = ?;
            """,
            (bytes(info_hash),),
        )
        if not rows:
            return None
        stored_hash, name, size, discovered_on, n_files = rows[0]
        return TorrentMetadata(
            info_hash=bytes(stored_hash),
            name=name,
            size=size,
            discovered_on=discovered_on,
            n_files=n_files,
        )

    def get_files(self, info_hash: bytes) -> list[File] | None:
        rows = self._fetchall(
            "SELECT size, path FROM files, torrents"
            " WHERE files.torrent_id = torrents.id AND torrents.info_hash = ?;",
            (bytes(info_hash),),
        )
        if not rows:
            return None
        return [File(size=size, path=path) for size, path in rows]

    def get_statistics(self, from_: str, n: int) -> Statistics:
        try:
            start, granularity = parse_iso8601(from_)
        except ValueError as exc:
            raise DatabaseError(f"parsing ISO8601 error: {exc}") from exc
        end = _period_end(start, granularity, n)
        if end.tzinfo is None:
            end = end.replace(tzinfo=timezone.utc)

        rows = self._fetchall(
            """
            SELECT strftime(?, discovered_on, 'unixepoch') AS dT
                 , sum(files.size) AS tS
                 , count(DISTINCT torrents.id) AS nD
                 , count(DISTINCT files.id) AS nF
            FROM torrents, files
            WHERE     torrents.id = files.torrent_id
                  AND discovered_on >= ?
                  AND discovered_on <= ?
            GROUP BY dT;
            """,
            (_TIME_FORMATS[granularity], int(start.timestamp()), int(end.timestamp())),
        )

        stats = Statistics()
        for period, total_size, n_discovered, n_files in rows:
            stats.n_discovered[period] = n_discovered
            stats.total_size[period] = total_size
            stats.n_files[period] = n_files
        return stats