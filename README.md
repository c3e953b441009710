# magnetico

Storage and a web front end for a self-hosted BitTorrent DHT search engine.
The package keeps the metadata of discovered torrents (name, info hash, file
list) and serves HTML pages, a JSON API, an RSS feed and metrics for searching
and browsing them.

## Storage back ends

All back ends implement the abstract `Database` class from `magnetico.models`
(`engine`, `does_torrent_exist`, `add_new_torrent`, `close`,
`get_number_of_torrents`, `query_torrents`, `get_torrent`, `get_files`,
`get_statistics`) and can be used as context managers. Failures raise
`magnetico.models.DatabaseError`.

- `magnetico.sqlite_db.SqliteDatabase(path)` — SQLite with an FTS5 full-text
  index. The schema is created and migrated automatically when it is opened.
  Torrents whose files add up to a total size of zero are not stored, and a
  torrent already present is silently skipped.
- `magnetico.postgres_db.PostgresDatabase(conn)` — PostgreSQL, searched with
  `ILIKE`. It wraps an already open DB-API 2 connection that uses the `format`
  paramstyle; call `setup_database()` once to create the schema.
- `magnetico.zeromq_db.ZeroMQDatabase(socket)` — stores nothing. Each new
  torrent is published as a JSON message (`infoHash`, `name`, `files`) on the
  socket, and its info hash is remembered for ten minutes so that a repeat
  raises `DatabaseError("torrent already exists")`. Query, fetch and statistics
  calls raise `DatabaseError`.

`magnetico.database.make_database(raw_url)` opens a back end by URL scheme:

| Scheme | Result |
| --- | --- |
| `sqlite://`, `sqlite3://` | `SqliteDatabase` on a `file:` URI built from the path; the query string is passed on (e.g. `?mode=memory&cache=shared`) |
| `zeromq://`, `zmq://` | `ZeroMQDatabase` on a PUB socket bound to the same address over `tcp://`, with a background thread dropping expired info hashes |
| `postgres://`, `cockroach://` | raises `DatabaseError`: build a `PostgresDatabase` from your own connection instead |

Any other scheme raises `DatabaseError`.

```python
from magnetico.database import make_database
from magnetico.models import File, OrderingCriteria

with make_database("sqlite3:///tmp/torrents.db") as db:
    db.add_new_torrent(bytes(20), "Example", [File(size=1024, path="example.bin")])
    for torrent in db.query_torrents(
        "example", 2**31, OrderingCriteria.BY_RELEVANCE, True, 20, None, None
    ):
        print(torrent.to_json())
```

With SQLite, ordering by relevance needs a non-empty query; the last ordered
value and last id for keyset pagination must be given together or not at all.

## Web interface

`magnetico.webapp.WebApp(database, credentials)` is a WSGI application, and
`magnetico.webapp.serve(address, credentials, database)` runs it with
Werkzeug's development server on a `host:port` address.

```python
import bcrypt

from magnetico.database import make_database
from magnetico.webapp import serve

database = make_database("sqlite3:///var/lib/magnetico/database.sqlite3")

password = b"password"
credentials = {"user": bcrypt.hashpw(password, bcrypt.gensalt())}

serve("127.0.0.1:8080", credentials, database)
```

When `credentials` is empty every path is open; otherwise each request needs
HTTP basic authentication matching one of the bcrypt hashes, or it gets a 401
with `WWW-Authenticate: Basic realm="magneticow"`. Credentials may also be a
`magnetico.credentials.CredentialStore`, whose `update` replaces them at run
time.

Paths served:

- `/` — home page with the number of stored torrents
- `/torrents`, `/torrents/<anything>`, `/statistics` — pages filled in by
  client-side scripts
- `/feed` — RSS feed of up to 20 torrents, optionally filtered by `query`
- `/metrics` — counters in the Prometheus text format
- `/static/...` — files from a `static` directory next to the `webapp` module

### JSON API

| Path | Parameters | Result |
| --- | --- | --- |
| `/api/v0.1/torrents` | `query`, `epoch`, `orderBy`, `ascending`, `limit` (default 20), `lastOrderedValue` + `lastID` | list of torrents |
| `/api/v0.1/torrents/<infohash>` | — | one torrent, or 404 |
| `/api/v0.1/torrents/<infohash>/filelist` | — | its files, or 404 |
| `/api/v0.1/statistics` | `from` (ISO 8601), `n` (positive) | `nDiscovered`, `nFiles`, `totalSize` per period |

`<infohash>` is 40 (v1) or 64 (v2) hex digits; anything else gets a 400.
`orderBy` is one of `RELEVANCE`, `TOTAL_SIZE`, `DISCOVERED_ON`, `N_FILES`,
`UPDATED_ON`, `N_SEEDERS`, `N_LEECHERS` (see `parse_order_by`); without it
results are ordered by relevance when a query is given and by discovery time
otherwise. The storage back ends order only by relevance, total size,
discovery time and number of files.

## Info hashes

```python
from magnetico.infohash import hash_bytes, parse_infohash
from magnetico.infohash_v2 import base58_encode, parse_infohash_v2

h1 = parse_infohash("0102030405060708090a0b0c0d0e0f1011121314")
print(h1.hex(), h1.is_zero())
print(hash_bytes(b"test").hex())

h2 = parse_infohash_v2("12" * 32)
print(h2.to_short().hex())
print(base58_encode(h2.to_multihash()))
```

`parse_infohash` and `parse_infohash_v2` raise `ValueError` on bad input; the
`from_hex_string` functions of both modules return the all-zero hash instead.

## Dates and metrics

`magnetico.iso8601.parse_iso8601` accepts a year (`2018`), month (`2018-04`),
week (`2018-W16`), day (`2018-04-20`) or hour (`2018-04-20T15`) and returns the
end of that period in UTC together with its `Granularity`.

`magnetico.stats.get_instance()` returns the process-wide `Stats` object:
counters for bootstrap runs, UDP read and write errors, routing-table
clearings, non-UTF-8 names, database errors and MSE-encrypted connections per
extension set, rendered by `Stats.render()`.

## What this package does not do

- It does not crawl the DHT or fetch metadata from peers; the `Stats` counters
  for that are only there to be incremented by such a crawler.
- It ships no static files (style sheets, scripts, images). The HTML pages
  refer to them under `/static/`, which answers 404 until a `static` directory
  is placed next to `magnetico/webapp.py`; without them the search, torrent and
  statistics pages stay empty.
- It has no command-line program; start the server from Python with `serve`.
- It opens no PostgreSQL connections itself.

## Tests

```
pip install -e ".[test]"
pytest
```