"""A write-only backend that publishes discovered torrents on a ZeroMQ PUB socket."""

from __future__ import annotations

import threading
import time
from typing import Any

from magnetico.models import (
    Database,
    DatabaseEngine,
    DatabaseError,
    File,
    OrderingCriteria,
    Statistics,
    SimpleTorrentSummary,
    TorrentMetadata,
)

# How long a published info hash is remembered, and how often expired ones are dropped.
CACHE_TTL = 10 * 60.0


class ZeroMQDatabase(Database):
    """Publishes each new torrent as a JSON message and remembers recent info hashes.

    ``socket`` is anything with ``send_multipart`` and ``close``, such as a pyzmq PUB socket.
    """

    def __init__(self, socket: Any) -> None:
        self._socket = socket
        self.cache: dict[bytes, float] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._janitor: threading.Thread | None = None

    def _start_janitor(self, interval: float = CACHE_TTL) -> None:
        """Drop expired cache entries every ``interval`` seconds in a background thread."""
        if self._janitor is not None:
            return

        def run() -> None:
            while not self._stop.wait(interval):
                self.cleanup()

        self._janitor = threading.Thread(target=run, name="zeromq-cache-cleanup", daemon=True)
        self._janitor.start()

    def cleanup(self) -> None:
        """Remove every cached info hash whose expiry time has passed."""
        now = time.monotonic()
        with self._lock:
            expired = [key for key, expiry in self.cache.items() if now > expiry]
            for key in expired:
                del self.cache[key]

    def engine(self) -> DatabaseEngine:
        return DatabaseEngine.ZEROMQ

    def does_torrent_exist(self, info_hash: bytes) -> bool:
        with self._lock:
            return bytes(info_hash) in self.cache

    def add_new_torrent(self, info_hash: bytes, name: str, files: list[File] | None) -> None:
        key = bytes(info_hash)
        summary = SimpleTorrentSummary(
            info_hash=key.hex(),
            name=name,
            files=None if files is None else list(files),
        )
        try:
            data = summary.to_json().encode("utf-8", errors="replace")
        except (TypeError, ValueError) as exc:
            raise DatabaseError(f"failed to encode metadata {exc}") from exc

        with self._lock:
            if key in self.cache:
                raise DatabaseError("torrent already exists")
            self.cache[key] = time.monotonic() + CACHE_TTL
            try:
                self._socket.send_multipart([data])
            except Exception as exc:
                raise DatabaseError(f"failed to publish metadata {exc}") from exc

    def close(self) -> None:
        self._stop.set()
        self._socket.close()

    def get_number_of_torrents(self) -> int:
        return 0

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
        raise DatabaseError("query not supported")

    def get_torrent(self, info_hash: bytes) -> TorrentMetadata | None:
        raise DatabaseError("fetch not supported")

    def get_files(self, info_hash: bytes) -> list[File] | None:
        raise DatabaseError("file fetch not supported")

    def get_statistics(self, from_: str, n: int) -> Statistics:
        raise DatabaseError("statistics not supported")