"""Opening a storage backend from a database URL."""

from __future__ import annotations

from urllib.parse import SplitResult, quote, unquote, urlsplit, urlunsplit

from magnetico.models import Database, DatabaseError
from magnetico.sqlite_db import SqliteDatabase
from magnetico.zeromq_db import ZeroMQDatabase


def _open_sqlite(url: SplitResult) -> Database:
    # A file: URI lets the driver handle escaped paths (spaces and the like) and options.
    target = "file:" + quote(unquote(url.path), safe="/:")
    if url.query:
        target += "?" + url.query
    return SqliteDatabase(target)


def _open_postgres(url: SplitResult) -> Database:
    raise DatabaseError(
        f"no PostgreSQL driver is available for `{url.scheme}` URLs; "
        "create a PostgresDatabase from an open DB-API connection instead"
    )


def _open_zeromq(url: SplitResult) -> Database:
    import zmq

    endpoint = urlunsplit(("tcp", url.netloc, url.path, url.query, url.fragment))
    socket = zmq.Context.instance().socket(zmq.PUB)
    try:
        socket.bind(endpoint)
    except zmq.ZMQError as exc:
        socket.close()
        raise DatabaseError(f"zmq bind {endpoint}: {exc}") from exc
    database = ZeroMQDatabase(socket)
    database._start_janitor()
    return database


_OPENERS = {
    "sqlite": _open_sqlite,
    "sqlite3": _open_sqlite,
    "postgres": _open_postgres,
    "cockroach": _open_postgres,
    "zeromq": _open_zeromq,
    "zmq": _open_zeromq,
}


def make_database(raw_url: str) -> Database:
    """Open the backend named by the scheme of ``raw_url``."""
    try:
        url = urlsplit(raw_url)
    except ValueError as exc:
        raise DatabaseError(f"url.Parse {exc}") from exc

    opener = _OPENERS.get(url.scheme)
    if opener is None:
        raise DatabaseError(f"unknown URI scheme: `{url.scheme}`")
    return opener(url)