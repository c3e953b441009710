"""The HTML pages of the web interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

_DESCRIPTION = "A self-hosted BitTorrent DHT search engine"
_VOID_ELEMENTS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source",
     "track", "wbr"}
)
_ESCAPES = {"&": "&amp;", "'": "&#39;", "<": "&lt;", ">": "&gt;", '"': "&#34;", "\x00": "\ufffd"}


def _escape(text: str) -> str:
    return "".join(_ESCAPES.get(char, char) for char in text)


@dataclass(frozen=True)
class _Attr:
    name: str
    value: str | None = None

    def render(self) -> str:
        if self.value is None:
            return f" {self.name}"
        return f' {self.name}="{_escape(self.value)}"'


@dataclass(frozen=True)
class _Element:
    tag: str
    parts: tuple

    def render(self) -> str:
        attrs = "".join(part.render() for part in self.parts if isinstance(part, _Attr))
        if self.tag in _VOID_ELEMENTS:
            return f"<{self.tag}{attrs}>"
        children = "".join(
            _render(part) for part in self.parts if not isinstance(part, _Attr)
        )
        return f"<{self.tag}{attrs}>{children}</{self.tag}>"


_Node = Union[_Attr, _Element, str]


def _render(node: _Node) -> str:
    return _escape(node) if isinstance(node, str) else node.render()


def _tag(name: str) -> Callable[..., _Element]:
    return lambda *parts: _Element(name, parts)


_a, _b, _body, _button, _div = map(_tag, ("a", "b", "body", "button", "div"))
_footer, _form, _h2, _h3, _head = map(_tag, ("footer", "form", "h2", "h3", "head"))
_header, _html, _img, _input, _li = map(_tag, ("header", "html", "img", "input", "li"))
_link, _main, _meta, _option, _p = map(_tag, ("link", "main", "meta", "option", "p"))
_script, _select, _small, _table = map(_tag, ("script", "select", "small", "table"))
_td, _th, _title, _tr, _ul = map(_tag, ("td", "th", "title", "tr", "ul"))


def _attr(name: str, value: str | None = None) -> _Attr:
    return _Attr(name, value)


def _stylesheet(href: str) -> _Element:
    return _link(_attr("rel", "stylesheet"), _attr("href", href))


def _html5(title: str, head: list[_Node], body: list[_Node]) -> str:
    document = _html(
        _attr("lang", "en"),
        _head(
            _meta(_attr("charset", "utf-8")),
            _meta(_attr("name", "viewport"), _attr("content", "width=device-width, initial-scale=1")),
            _title(title),
            _meta(_attr("name", "description"), _attr("content", _DESCRIPTION)),
            *head,
        ),
        _body(*body),
    )
    return "<!doctype html>" + document.render()


def _common_head(*extra: _Node) -> list[_Node]:
    return [
        _meta(_attr("charset", "utf-8")),
        _meta(_attr("name", "viewport"), _attr("content", "width=device-width, initial-scale=1")),
        *extra,
    ]


def _search_form(*input_extra: _Node) -> _Element:
    return _form(
        _attr("action", "/torrents"),
        _attr("method", "get"),
        _attr("autocomplete", "off"),
        _attr("role", "search"),
        _input(
            _attr("type", "search"),
            _attr("name", "query"),
            _attr("placeholder", "Search the BitTorrent DHT"),
            *input_extra,
        ),
    )


def _home_link() -> _Element:
    return _div(_a(_attr("href", "/"), _b("magnetico")))


def homepage(n_torrents: int) -> str:
    """Render the landing page showing how many torrents are available."""
    if n_torrents < 0:
        raise ValueError("the number of torrents cannot be negative")
    head = _common_head(
        _stylesheet("/static/styles/reset.css"),
        _stylesheet("/static/styles/essential.css"),
        _stylesheet("/static/styles/homepage.css"),
    )
    body = [
        _main(
            _div(_b("magnetico"), " is a self-hosted BitTorrent DHT search engine."),
            _form(
                _attr("action", "/torrents"),
                _attr("method", "GET"),
                _attr("autocomplete", "off"),
                _attr("role", "search"),
                _input(
                    _attr("type", "search"),
                    _attr("name", "query"),
                    _attr("placeholder", "Search the BitTorrent DHT"),
                    _attr("autofocus"),
                ),
            ),
        ),
        _footer(
            f"{n_torrents} torrents available (see the ",
            _a(_attr("href", "/statistics"), "statistics"),
            ")",
        ),
    ]
    return _html5("magnetico", head, body)


def statistics_page() -> str:
    """Render the statistics page; the graphs are drawn client-side."""
    head = _common_head(
        _stylesheet("/static/styles/reset.css"),
        _stylesheet("/static/styles/essential.css"),
        _stylesheet("/static/styles/statistics.css"),
        _script(_attr("defer"), _attr("src", "/static/scripts/plotly-v1.26.1.min.js")),
        _script(_attr("defer"), _attr("src", "/static/scripts/common.js")),
        _script(_attr("defer"), _attr("src", "/static/scripts/statistics.js")),
    )
    units = [("hours", "Hours"), ("days", "Days"), ("weeks", "Weeks"),
             ("months", "Months"), ("years", "Years")]
    options = [
        _option(_attr("value", value), *((_attr("selected"),) if value == "hours" else ()), label)
        for value, label in units
    ]
    body = [
        _header(_home_link()),
        _main(
            _div(
                _attr("id", "options"),
                _p(
                    "Show statistics for the past ...",
                    _input(
                        _attr("id", "n"),
                        _attr("title", "maximum number of time units from now backwards"),
                        _attr("type", "number"),
                        _attr("value", "24"),
                        _attr("min", "5"),
                        _attr("max", "365"),
                    ),
                    _select(
                        _attr("id", "unit"),
                        _attr("title", "time unit to be used"),
                        _attr("required"),
                        *options,
                        ".",
                    ),
                ),
            ),
            _div(_attr("class", "graph"), _attr("id", "nDiscovered")),
            _div(_attr("class", "graph"), _attr("id", "nFiles")),
            _div(_attr("class", "graph"), _attr("id", "totalSize")),
        ),
    ]
    return _html5("Statistics - magnetico", head, body)


def torrent_page() -> str:
    """Render the single-torrent page; its content is filled in client-side."""
    row_header = _attr("scope", "row")
    template = _script(
        _attr("id", "main-template"),
        _attr("type", "text/x-handlebars-template"),
        _div(
            _attr("id", "title"),
            _h2("{{ name }}"),
            _a(
                _attr("href", "magnet:?xt=urn:btih:{{ infoHash }}&amp;dn={{ name }}"),
                _img(
                    _attr("src", "/static/assets/magnet.gif"),
                    _attr("alt", "Magnet link"),
                    _attr("title", "Download this torrent using magnet"),
                ),
                _small("{{ infoHash }}"),
            ),
        ),
        _table(
            _tr(_th(row_header, "Size"), _td("{{ sizeHumanised }}")),
            _tr(_th(row_header, "Discovered on"), _td("{{ discoveredOn }}")),
            _tr(_th(row_header, "Files"), _td("{{ nFiles }}")),
        ),
        _h3("Files"),
        _div(_attr("id", "fileTree")),
    )
    head = _common_head(
        _stylesheet("/static/styles/vanillatree-v0.0.3.css"),
        _stylesheet("/static/styles/reset.css"),
        _stylesheet("/static/styles/essential.css"),
        _stylesheet("/static/styles/torrent.css"),
        _script(_attr("src", "/static/scripts/naturalSort-v0.8.1.js")),
        _script(_attr("src", "/static/scripts/mustache-v2.3.0.min.js")),
        _script(_attr("src", "/static/scripts/vanillatree-v0.0.3.js")),
        _script(_attr("defer"), _attr("src", "/static/scripts/common.js")),
        _script(_attr("defer"), _attr("src", "/static/scripts/torrent.js")),
        template,
    )
    body = [_header(_home_link(), _search_form()), _main()]
    return _html5("Loading ... - magnetico", head, body)


def torrents_page() -> str:
    """Render the search results page; results are loaded client-side."""
    template = _script(
        _attr("id", "item-template"),
        _attr("type", "text/x-handlebars-template"),
        _li(
            _div(
                _h3(_a(_attr("href", "/torrents/{{ infoHash }}"), "{{ name }}")),
                _a(
                    _attr("href", "magnet:?xt=urn:btih:{{ infoHash }}&dn={{ name }}"),
                    _img(_attr("src", "/static/assets/magnet.gif"), _attr("alt", "Magnet link")),
                    _attr("title", "Download this torrent using magnet"),
                ),
                _small("{{ infoHash }}"),
            ),
            "{{ size }}, {{ discoveredOn }}",
        ),
    )
    head = _common_head(
        _stylesheet("/static/styles/reset.css"),
        _stylesheet("/static/styles/essential.css"),
        _stylesheet("/static/styles/torrents.css"),
        _script(_attr("src", "/static/scripts/mustache-v2.3.0.min.js")),
        _script(_attr("src", "/static/scripts/common.js")),
        _script(_attr("src", "/static/scripts/torrents.js")),
        template,
    )
    body = [
        _header(
            _home_link(),
            _search_form(),
            _div(
                _a(
                    _attr("href", "/feed"),
                    _attr("id", "feed-anchor"),
                    _img(
                        _attr("src", "/static/assets/feed.png"),
                        _attr("alt", "RSS feed icon"),
                        _attr("title", "subscribe to the RSS feed"),
                    ),
                    "subscribe",
                ),
            ),
        ),
        _main(_ul()),
        _footer(_button(_attr("onclick", "load();"), "Load More Results")),
    ]
    return _html5("Search - magnetico", head, body)