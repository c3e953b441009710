"""HTTP basic authentication against bcrypt-hashed passwords."""

from __future__ import annotations

import base64
import binascii
import threading
from typing import Mapping

import bcrypt

REALM_HEADER = 'Basic realm="magneticow"'
UNAUTHORISED_BODY = b"Unauthorised.\n"


class CredentialStore:
    """A thread-safe map from user names to bcrypt password hashes."""

    def __init__(self, credentials: Mapping[str, bytes] | None = None) -> None:
        self._lock = threading.Lock()
        self._credentials: dict[str, bytes] = {}
        if credentials:
            self.update(credentials)

    def update(self, credentials: Mapping[str, bytes | str]) -> None:
        """Replace every stored credential with ``credentials``."""
        replacement = {
            user: hashed.encode() if isinstance(hashed, str) else bytes(hashed)
            for user, hashed in credentials.items()
        }
        with self._lock:
            self._credentials = replacement

    def is_empty(self) -> bool:
        """Return True when no credentials are set, so no authentication is required."""
        with self._lock:
            return not self._credentials

    def check(self, username: str, password: str) -> bool:
        """Return True if ``password`` matches the hash stored for ``username``."""
        with self._lock:
            hashed = self._credentials.get(username)
        if hashed is None:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8", errors="surrogateescape"), hashed)
        except ValueError:
            return False


def parse_basic_auth(header: str | None) -> tuple[str, str] | None:
    """Return the user name and password of a Basic Authorization header, or None."""
    prefix = "Basic "
    if not header or header[: len(prefix)].lower() != prefix.lower():
        return None
    try:
        raw = base64.b64decode(header[len(prefix):], validate=True)
    except (binascii.Error, ValueError):
        return None
    decoded = raw.decode("utf-8", errors="surrogateescape")
    username, separator, supplied = decoded.partition(":")
    if not separator:
        return None
    return username, supplied