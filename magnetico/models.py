"""Records, enumerations and the abstract interface shared by all storage backends."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import IntEnum
from typing import Any


class DatabaseError(Exception):
    """Raised when a storage backend fails to carry out an operation."""


class OrderingCriteria(IntEnum):
    BY_RELEVANCE = 0
    BY_TOTAL_SIZE = 1
    BY_DISCOVERED_ON = 2
    BY_N_FILES = 3
    BY_N_SEEDERS = 4
    BY_N_LEECHERS = 5
    BY_UPDATED_ON = 6


class DatabaseEngine(IntEnum):
    SQLITE3 = 1
    POSTGRES = 2
    ZEROMQ = 3


_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _encode_string(text: str) -> str:
    encoded = json.dumps(text, ensure_ascii=False)
    return "".join(_HTML_ESCAPES.get(char, char) for char in encoded)


def _encode_float(value: float) -> str:
    if value != value or value in (float("inf"), float("-inf")):
        raise ValueError(f"unsupported float value: {value}")
    magnitude = abs(value)
    if value.is_integer() and magnitude < 1e21:
        return str(int(value))
    if 1e-6 <= magnitude < 1e21:
        return f"{Decimal(repr(value)):f}"
    return repr(value)


def _encode(value: Any) -> str:
    """Encode a value as compact JSON with HTML-safe string escaping."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _encode_float(value)
    if isinstance(value, str):
        return _encode_string(value)
    if isinstance(value, dict):
        members = (f"{_encode_string(str(k))}:{_encode(v)}" for k, v in value.items())
        return "{" + ",".join(members) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_encode(item) for item in value) + "]"
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


@dataclass
class Statistics:
    """Per-period counts of discovered torrents, files and total size."""

    n_discovered: dict[str, int] = field(default_factory=dict)
    n_files: dict[str, int] = field(default_factory=dict)
    total_size: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, dict[str, int]]:
        return {
            "nDiscovered": dict(sorted(self.n_discovered.items())),
            "nFiles": dict(sorted(self.n_files.items())),
            "totalSize": dict(sorted(self.total_size.items())),
        }


@dataclass
class File:
    """A single file inside a torrent."""

    size: int
    path: str

    def to_dict(self) -> dict[str, Any]:
        return {"size": self.size, "path": self.path}


@dataclass
class TorrentMetadata:
    """The stored description of a torrent."""

    id: int = 0
    info_hash: bytes = b""
    name: str = ""
    size: int = 0
    discovered_on: int = 0
    n_files: int = 0
    relevance: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "infoHash": self.info_hash.hex(),
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "discoveredOn": self.discovered_on,
            "nFiles": self.n_files,
            "relevance": float(self.relevance),
        }

    def to_json(self) -> str:
        """Return the compact JSON form, with the info hash in hexadecimal."""
        return _encode(self.to_dict())


@dataclass
class SimpleTorrentSummary:
    """The message published for each newly discovered torrent."""

    info_hash: str
    name: str
    files: list[File] | None = field(default_factory=list)

    def to_json(self) -> str:
        files = None if self.files is None else [f.to_dict() for f in self.files]
        return _encode({"infoHash": self.info_hash, "name": self.name, "files": files})


class Database(ABC):
    """The operations every storage backend provides."""

    @abstractmethod
    def engine(self) -> DatabaseEngine:
        """Return which engine backs this database."""

    @abstractmethod
    def does_torrent_exist(self, info_hash: bytes) -> bool:
        """Return True if a torrent with this info hash is stored."""

    @abstractmethod
    def add_new_torrent(self, info_hash: bytes, name: str, files: list[File] | None) -> None:
        """Store a newly discovered torrent and its files."""

    @abstractmethod
    def close(self) -> None:
        """Release the resources held by the backend."""

    @abstractmethod
    def get_number_of_torrents(self) -> int:
        """Return the number of stored torrents; may be an approximation."""

    @abstractmethod
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
        """Return up to ``limit`` torrents discovered no later than ``epoch``."""

    @abstractmethod
    def get_torrent(self, info_hash: bytes) -> TorrentMetadata | None:
        """Return the torrent with this info hash, or None if it is unknown."""

    @abstractmethod
    def get_files(self, info_hash: bytes) -> list[File] | None:
        """Return the files of the torrent with this info hash."""

    @abstractmethod
    def get_statistics(self, from_: str, n: int) -> Statistics:
        """Return statistics for ``n`` periods starting at the ISO 8601 ``from_``."""

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, traceback) -> None:
        self.close()