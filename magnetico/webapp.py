"""The HTTP interface: HTML pages, the JSON API, the RSS feed and the metrics endpoint."""

from __future__ import annotations

import json
import logging
import mimetypes
import re
import time
from pathlib import Path
from typing import Any, Callable, Mapping

from werkzeug.security import safe_join
from werkzeug.serving import run_simple
from werkzeug.wrappers import Request, Response

from magnetico import infohash, infohash_v2
from magnetico.credentials import (
    REALM_HEADER,
    UNAUTHORISED_BODY,
    CredentialStore,
    parse_basic_auth,
)
from magnetico.models import Database, DatabaseError, OrderingCriteria, TorrentMetadata
from magnetico.pages import homepage, statistics_page, torrent_page, torrents_page
from magnetico.stats import get_instance

logger = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json; charset=utf-8"
CONTENT_TYPE_HTML = "text/html; charset=utf-8"
CONTENT_TYPE_TEXT = "text/plain; charset=utf-8"
CONTENT_TYPE_XML = "text/xml; charset=utf-8"
CONTENT_TYPE_METRICS = "text/plain; version=0.0.4; charset=utf-8; escaping=underscores"

STATIC_DIR = Path(__file__).parent / "static"

_FEED_LIMIT = 20
_DEFAULT_LIMIT = 20
_PAIRING_ERROR = "`lastOrderedValue`, `lastID` must be supplied altogether, if supplied."

_ORDER_NAMES = {
    "RELEVANCE": OrderingCriteria.BY_RELEVANCE,
    "TOTAL_SIZE": OrderingCriteria.BY_TOTAL_SIZE,
    "DISCOVERED_ON": OrderingCriteria.BY_DISCOVERED_ON,
    "N_FILES": OrderingCriteria.BY_N_FILES,
    "UPDATED_ON": OrderingCriteria.BY_UPDATED_ON,
    "N_SEEDERS": OrderingCriteria.BY_N_SEEDERS,
    "N_LEECHERS": OrderingCriteria.BY_N_LEECHERS,
}

_TORRENT_API = re.compile(r"/api/v0\.1/torrents/([^/]+)(/filelist)?")

_JSON_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}

_XML_ESCAPES = {
    '"': "&#34;",
    "'": "&#39;",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\t": "&#x9;",
    "\n": "&#xA;",
    "\r": "&#xD;",
}

_INT_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)
_UINT_RE = re.compile(r"[0-9]+", re.ASCII)
_DECIMAL_FLOAT_RE = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?)|nan",
    re.ASCII | re.IGNORECASE,
)
_HEX_FLOAT_RE = re.compile(
    r"[+-]?0x(?:[0-9a-f]+\.?[0-9a-f]*|\.[0-9a-f]+)p[+-]?[0-9]+",
    re.ASCII | re.IGNORECASE,
)
_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class _NumberError(ValueError):
    """A malformed or out-of-range number in a query parameter."""

    def __init__(self, function: str, text: str, reason: str) -> None:
        quoted = json.dumps(text, ensure_ascii=False)
        super().__init__(f"strconv.{function}: parsing {quoted}: {reason}")


def _parse_int(text: str, bits: int) -> int:
    if not _INT_RE.fullmatch(text):
        raise _NumberError("ParseInt", text, "invalid syntax")
    value = int(text)
    if not -(1 << (bits - 1)) <= value < (1 << (bits - 1)):
        raise _NumberError("ParseInt", text, "value out of range")
    return value


def _parse_uint(text: str) -> int:
    if not _UINT_RE.fullmatch(text):
        raise _NumberError("ParseUint", text, "invalid syntax")
    value = int(text)
    if value >= 1 << 64:
        raise _NumberError("ParseUint", text, "value out of range")
    return value


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise _NumberError("ParseBool", text, "invalid syntax")


def _parse_float(text: str) -> float:
    if _HEX_FLOAT_RE.fullmatch(text):
        sign = -1.0 if text.startswith("-") else 1.0
        value = sign * float.fromhex(text.lstrip("+-"))
    elif _DECIMAL_FLOAT_RE.fullmatch(text):
        value = float(text)
    else:
        raise _NumberError("ParseFloat", text, "invalid syntax")
    if value in (float("inf"), float("-inf")) and "inf" not in text.lower():
        raise _NumberError("ParseFloat", text, "value out of range")
    return value


def parse_order_by(text: str) -> OrderingCriteria:
    """Map an ``orderBy`` query value to an ordering criterion, raising ValueError if unknown."""
    try:
        return _ORDER_NAMES[text]
    except KeyError:
        raise ValueError(f"unknown orderBy string: {text}") from None


def decode_infohash(text: str) -> bytes:
    """Decode a v1 (40 hex digits) or v2 (64 hex digits) info hash, raising ValueError."""
    short = infohash.from_hex_string(text)
    if not short.is_zero():
        return bytes(short)
    long = infohash_v2.from_hex_string(text)
    if not long.is_zero():
        return bytes(long)
    raise ValueError("Couldn't decode infohash")


def _json_body(value: Any) -> bytes:
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    for char, replacement in _JSON_ESCAPES.items():
        text = text.replace(char, replacement)
    return (text + "\n").encode("utf-8", errors="replace")


def _json_response(body: str | bytes) -> Response:
    if isinstance(body, str):
        body = body.encode("utf-8", errors="replace")
    return Response(body, status=200, content_type=CONTENT_TYPE_JSON)


def _error(message: str, status: int) -> Response:
    return Response(
        (message + "\n").encode("utf-8", errors="replace"),
        status=status,
        content_type=CONTENT_TYPE_TEXT,
        headers={"X-Content-Type-Options": "nosniff"},
    )


def _html(document: str) -> Response:
    return Response(document.encode("utf-8"), status=200, content_type=CONTENT_TYPE_HTML)


def _is_xml_char(char: str) -> bool:
    code = ord(char)
    return (
        code in (0x9, 0xA, 0xD)
        or 0x20 <= code <= 0xD7FF
        or 0xE000 <= code <= 0xFFFD
        or 0x10000 <= code <= 0x10FFFF
    )


def _xml_escape(text: str) -> str:
    return "".join(
        _XML_ESCAPES.get(char) or (char if _is_xml_char(char) else "\ufffd") for char in text
    )


def _render_feed(title: str, torrents: list[TorrentMetadata]) -> str:
    items = []
    for torrent in torrents:
        hex_hash = torrent.info_hash.hex()
        url = f"magnet:?xt=urn:btih:{hex_hash}&amp;dn={torrent.name}"
        items.append(
            f"<item><title>{_xml_escape(torrent.name)}</title>"
            f"<guid>{_xml_escape(hex_hash)}</guid>"
            f'<enclosure url="{_xml_escape(url)}" type="application/x-bittorrent"></enclosure>'
            "</item>"
        )
    return (
        '<rss version="2.0"><Channel><item>'
        f"<title>{_xml_escape(title)}</title>{''.join(items)}"
        "</item></Channel></rss>"
    )


_Handler = Callable[[Request], Response]


class WebApp:
    """The WSGI application serving the search engine's web interface and API."""

    def __init__(
        self,
        database: Database,
        credentials: CredentialStore | Mapping[str, bytes] | None,
    ) -> None:
        self.database = database
        if isinstance(credentials, CredentialStore):
            self.credentials = credentials
        else:
            self.credentials = CredentialStore(credentials)
        self._exact: dict[str, _Handler] = {
            "/metrics": self._metrics,
            "/api/v0.1/statistics": self._api_statistics,
            "/api/v0.1/torrents": self._api_torrents,
            "/feed": self._feed,
            "/statistics": self._statistics_page,
            "/torrents": self._torrents_page,
        }

    def __call__(self, environ, start_response):
        request = Request(environ)
        response = self._dispatch(request)
        return response(environ, start_response)

    def _dispatch(self, request: Request) -> Response:
        if not self._authorised(request):
            return Response(
                UNAUTHORISED_BODY,
                status=401,
                content_type=CONTENT_TYPE_TEXT,
                headers={"WWW-Authenticate": REALM_HEADER},
            )
        return self._route(request.path)(request)

    def _authorised(self, request: Request) -> bool:
        if self.credentials.is_empty():
            return True
        supplied = parse_basic_auth(request.headers.get("Authorization"))
        if supplied is None:
            return False
        return self.credentials.check(*supplied)

    def _route(self, path: str) -> _Handler:
        handler = self._exact.get(path)
        if handler is not None:
            return handler
        match = _TORRENT_API.fullmatch(path)
        if match:
            target = self._api_file_list if match[2] else self._api_torrent
            return lambda request: self._with_infohash(match[1], target)
        if path.startswith("/static/"):
            return self._static
        if path.startswith("/torrents/"):
            return self._torrent_page
        return self._root

    @staticmethod
    def _with_infohash(text: str, target: Callable[[bytes], Response]) -> Response:
        try:
            info_hash = decode_infohash(text)
        except ValueError as exc:
            return _error(str(exc), 400)
        return target(info_hash)

    def _root(self, request: Request) -> Response:
        try:
            n_torrents = self.database.get_number_of_torrents()
        except DatabaseError as exc:
            return _error(f"GetNumberOfTorrents {exc}", 500)
        return _html(homepage(n_torrents))

    def _statistics_page(self, request: Request) -> Response:
        return _html(statistics_page())

    def _torrent_page(self, request: Request) -> Response:
        return _html(torrent_page())

    def _torrents_page(self, request: Request) -> Response:
        return _html(torrents_page())

    def _static(self, request: Request) -> Response:
        relative = request.path[len("/static/"):]
        target = safe_join(str(STATIC_DIR), relative) if relative else None
        if target is None or not Path(target).is_file():
            return _error("404 page not found", 404)
        mimetype = mimetypes.guess_type(target)[0] or "application/octet-stream"
        return Response(Path(target).read_bytes(), status=200, mimetype=mimetype)

    def _metrics(self, request: Request) -> Response:
        body = get_instance().render()
        if isinstance(body, str):
            body = body.encode("utf-8")
        return Response(body, status=200, content_type=CONTENT_TYPE_METRICS)

    def _feed(self, request: Request) -> Response:
        queries = request.args.getlist("query")
        if len(queries) > 1:
            return _error("query supplied multiple times!", 400)
        query = queries[0] if queries else ""
        title = "Most recent torrents - magnetico" if query == "" else f"{query} - magnetico"

        try:
            torrents = self.database.query_torrents(
                query,
                int(time.time()),
                OrderingCriteria.BY_DISCOVERED_ON,
                True,
                _FEED_LIMIT,
                None,
                None,
            )
        except (DatabaseError, ValueError) as exc:
            return _error(f"query torrent {exc}", 500)

        document = (
            '<?xml version="1.0" encoding="utf-8" standalone="yes"?>\n'
            + _render_feed(title, torrents)
        )
        return Response(document.encode("utf-8"), status=200, content_type=CONTENT_TYPE_XML)

    def _api_statistics(self, request: Request) -> Response:
        from_ = request.args.get("from", "")
        n_text = request.args.get("n", "")
        n = 0
        if n_text:
            try:
                n = _parse_int(n_text, 32)
            except ValueError as exc:
                return _error(f"Couldn't parse n: {exc}", 400)
            if n <= 0:
                return _error("n must be a positive number", 400)

        try:
            stats = self.database.get_statistics(from_, n)
        except (DatabaseError, ValueError) as exc:
            return _error(f"GetStatistics {exc}", 500)
        return _json_response(_json_body(stats.to_dict()))

    def _api_torrents(self, request: Request) -> Response:
        args = request.args
        if bool(args.get("lastOrderedValue", "")) != bool(args.get("lastID", "")):
            return _error(_PAIRING_ERROR, 400)

        try:
            epoch = _parse_int(args["epoch"], 64) if "epoch" in args else int(time.time())
            query = args.get("query", "")
            order_text = args.get("orderBy", "")
            if order_text:
                order_by = parse_order_by(order_text)
            elif query == "":
                order_by = OrderingCriteria.BY_DISCOVERED_ON
            else:
                order_by = OrderingCriteria.BY_RELEVANCE
            ascending = _parse_bool(args["ascending"]) if "ascending" in args else True
            last_value = (
                _parse_float(args["lastOrderedValue"]) if "lastOrderedValue" in args else None
            )
            last_id = _parse_uint(args["lastID"]) if "lastID" in args else None
            limit = _parse_uint(args["limit"]) if "limit" in args else _DEFAULT_LIMIT
        except ValueError as exc:
            return _error(f"error while parsing the URL: {exc}", 400)

        try:
            torrents = self.database.query_torrents(
                query, epoch, order_by, ascending, limit, last_value, last_id
            )
        except (DatabaseError, ValueError) as exc:
            return _error(f"QueryTorrents: {exc}", 500)
        return _json_response("[" + ",".join(t.to_json() for t in torrents) + "]\n")

    def _api_torrent(self, info_hash: bytes) -> Response:
        try:
            torrent = self.database.get_torrent(info_hash)
        except DatabaseError as exc:
            return _error(f"GetTorrent {exc}", 500)
        if torrent is None:
            return _error("Not found", 404)
        return _json_response(torrent.to_json() + "\n")

    def _api_file_list(self, info_hash: bytes) -> Response:
        try:
            files = self.database.get_files(info_hash)
        except DatabaseError as exc:
            return _error(f"Couldn't get files: {exc}", 500)
        if files is None:
            return _error("Not found", 404)
        return _json_response(_json_body([f.to_dict() for f in files]))


def serve(
    address: str,
    credentials: CredentialStore | Mapping[str, bytes] | None,
    database: Database,
) -> None:
    """Serve the web interface on ``address`` (``host:port``) until interrupted."""
    host, separator, port = address.rpartition(":")
    if not separator or not port.isdigit():
        raise ValueError(f"invalid listen address: {address!r}")
    app = WebApp(database, credentials)
    logger.info("magnetico is ready to serve on %s!", address)
    run_simple(host.strip("[]") or "0.0.0.0", int(port), app, threaded=True)