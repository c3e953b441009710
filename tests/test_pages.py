from html.parser import HTMLParser

import pytest

from magnetico.pages import homepage, statistics_page, torrent_page, torrents_page

VOID = {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta", "source",
        "track", "wbr"}


class _Checker(HTMLParser):
    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.stack = []
        self.errors = []
        self.ids = []

    def handle_starttag(self, tag, attrs):
        for name, value in attrs:
            if name == "id":
                self.ids.append(value)
        if tag not in VOID:
            self.stack.append(tag)

    def handle_endtag(self, tag):
        if not self.stack or self.stack[-1] != tag:
            self.errors.append(tag)
        else:
            self.stack.pop()


def _check(document):
    checker = _Checker()
    checker.feed(document)
    checker.close()
    return checker


@pytest.mark.parametrize("n", [0, 2**64 - 1, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 123456789])
def test_homepage(n):
    document = homepage(n)
    assert document.startswith("<!doctype html>")
    assert f"{n} torrents available (see the " in document
    checker = _check(document)
    assert checker.errors == []
    assert checker.stack == []


def test_homepage_zero_torrents():
    assert "0 torrents available" in homepage(0)


def test_homepage_title_and_search():
    document = homepage(3)
    assert "<title>magnetico</title>" in document
    assert 'name="query"' in document
    assert " autofocus>" in document


def test_homepage_rejects_negative():
    with pytest.raises(ValueError):
        homepage(-1)


def test_statistics_page():
    document = statistics_page()
    assert "<title>Statistics - magnetico</title>" in document
    checker = _check(document)
    assert checker.errors == []
    assert {"options", "n", "unit", "nDiscovered", "nFiles", "totalSize"} <= set(checker.ids)
    assert '<option value="hours" selected>Hours</option>' in document


def test_torrent_page():
    document = torrent_page()
    assert "<title>Loading ... - magnetico</title>" in document
    assert "{{ infoHash }}" in document
    assert "&amp;amp;dn={{ name }}" in document
    checker = _check(document)
    assert checker.errors == []
    assert "fileTree" in checker.ids


def test_torrents_page():
    document = torrents_page()
    assert "<title>Search - magnetico</title>" in document
    assert 'onclick="load();"' in document
    assert "Load More Results" in document
    checker = _check(document)
    assert checker.errors == []
    assert "feed-anchor" in checker.ids


def test_pages_carry_description():
    for document in (homepage(0), statistics_page(), torrent_page(), torrents_page()):
        assert (
            '<meta name="description" content="A self-hosted BitTorrent DHT search engine">'
            in document
        )
        assert '<html lang="en">' in document