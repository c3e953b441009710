"""Process-wide counters exposed in the Prometheus text format."""

from __future__ import annotations

import functools
import re
import threading
from dataclasses import dataclass, field
from typing import Iterable

NAMESPACE = "magnetico"
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8; escaping=underscores"

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


@dataclass(eq=False)
class Counter:
    """A monotonically increasing, thread-safe counter."""

    name: str
    description: str
    value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def inc(self) -> None:
        with self._lock:
            self.value += 1


def _counter(name: str, description: str) -> Counter:
    return Counter(f"{NAMESPACE}_{name}", description)


class Stats:
    """The metrics kept for each particular operation."""

    def __init__(self) -> None:
        self.bootstrap = _counter(
            "bootstrap", "Number of times the bootstrap process has been triggered"
        )
        self.write_error = _counter(
            "write_error",
            "Number of times there was an error writing a message to the UDP socket",
        )
        self.read_error = _counter(
            "read_error",
            "Number of times there was an error reading a message from the UDP socket",
        )
        self.rt_clearing = _counter(
            "rt_clearing", "Number of times the routing table has been cleared"
        )
        self.non_utf8 = _counter(
            "non_utf8",
            "Number of times a torrent has been ignored due to its name not being UTF-8 compliant",
        )
        self.check_error = _counter(
            "check_error",
            "Number of times there was an error checking whether a torrent exists",
        )
        self.add_error = _counter(
            "add_error",
            "Number of times there was an error adding a torrent to the database",
        )
        self.mse_encryption = _counter(
            "mse_encryption",
            "Number of times a peer connection has been obfuscated with MSE",
        )
        self.extensions: dict[str, Counter] = {}
        self._lock = threading.Lock()

    def inc_bootstrap(self) -> None:
        self.bootstrap.inc()

    def inc_udp_error(self, write: bool) -> None:
        """Count a UDP write error if ``write`` is true, else a read error."""
        (self.write_error if write else self.read_error).inc()

    def inc_rt_clearing(self) -> None:
        self.rt_clearing.inc()

    def inc_non_utf8(self) -> None:
        self.non_utf8.inc()

    def inc_db_error(self, add: bool) -> None:
        """Count an insertion error if ``add`` is true, else an existence-check error."""
        (self.add_error if add else self.check_error).inc()

    def inc_leech(self, peer_extensions: bytes | Iterable[int]) -> None:
        """Count a leech with the given 8-byte extension set."""
        extensions = bytes(peer_extensions)
        if len(extensions) != 8:
            raise ValueError(f"peer extensions must be 8 bytes, got {len(extensions)}")
        self.mse_encryption.inc()

        text = "[" + " ".join(str(b) for b in extensions) + "]"
        extension_set = _INVALID_NAME_CHARS.sub("_", text)
        with self._lock:
            counter = self.extensions.get(extension_set)
            if counter is None:
                counter = _counter(
                    "extension" + extension_set,
                    "Number of times a peer connection has been negotiated with a given extension set",
                )
                self.extensions[extension_set] = counter
        counter.inc()

    def collect(self) -> list[Counter]:
        """Return every counter currently kept."""
        counters = [
            self.bootstrap,
            self.write_error,
            self.read_error,
            self.rt_clearing,
            self.non_utf8,
            self.check_error,
            self.add_error,
            self.mse_encryption,
        ]
        with self._lock:
            counters.extend(self.extensions.values())
        return counters

    def render(self) -> str:
        """Render all counters in the Prometheus text exposition format."""
        lines = []
        for counter in self.collect():
            lines.append(f"# HELP {counter.name} {counter.description}")
            lines.append(f"# TYPE {counter.name} counter")
            lines.append(f"{counter.name} {counter.value}")
        return "\n".join(lines) + "\n"


@functools.lru_cache(maxsize=None)
def get_instance() -> Stats:
    """Return the process-wide Stats instance."""
    return Stats()