import json

import pytest

from magnetico.models import (
    Database,
    File,
    SimpleTorrentSummary,
    Statistics,
    TorrentMetadata,
)


def test_torrent_metadata_to_json_matches_source():
    tm = TorrentMetadata(info_hash=bytes([1, 2, 3, 4, 5, 6]))
    expected = (
        '{"infoHash":"010203040506","id":0,"name":"","size":0,'
        '"discoveredOn":0,"nFiles":0,"relevance":0}'
    )
    assert tm.to_json() == expected


def test_torrent_metadata_to_json_is_valid_json():
    tm = TorrentMetadata(
        id=7, info_hash=b"\xab\xcd", name="x", size=10, discovered_on=5, n_files=2, relevance=0.5
    )
    decoded = json.loads(tm.to_json())
    assert decoded == {
        "infoHash": "abcd",
        "id": 7,
        "name": "x",
        "size": 10,
        "discoveredOn": 5,
        "nFiles": 2,
        "relevance": 0.5,
    }


def test_torrent_metadata_escapes_html_characters():
    tm = TorrentMetadata(name="<a&b>")
    text = tm.to_json()
    assert "<" not in text and ">" not in text and "&" not in text
    assert json.loads(text)["name"] == "<a&b>"


def test_new_statistics_has_empty_maps():
    s = Statistics()
    assert s.n_discovered == {}
    assert s.n_files == {}
    assert s.total_size == {}
    assert s.to_dict() == {"nDiscovered": {}, "nFiles": {}, "totalSize": {}}


def test_statistics_instances_do_not_share_maps():
    first = Statistics()
    second = Statistics()
    first.n_files["2022"] = 1
    assert second.n_files == {}


def test_statistics_to_dict_sorts_keys():
    s = Statistics(n_discovered={"2022-01-02": 20, "2022-01-01": 10})
    assert list(s.to_dict()["nDiscovered"]) == ["2022-01-01", "2022-01-02"]


def test_file_to_dict():
    assert File(size=1024, path="/path/to/file1").to_dict() == {
        "size": 1024,
        "path": "/path/to/file1",
    }


def test_simple_torrent_summary_to_json():
    summary = SimpleTorrentSummary(
        info_hash="abcd", name="n", files=[File(size=1, path="p")]
    )
    assert json.loads(summary.to_json()) == {
        "infoHash": "abcd",
        "name": "n",
        "files": [{"size": 1, "path": "p"}],
    }


def test_simple_torrent_summary_without_files_is_null():
    summary = SimpleTorrentSummary(info_hash="abcd", name="n", files=None)
    assert json.loads(summary.to_json())["files"] is None


def test_database_is_abstract():
    with pytest.raises(TypeError):
        Database()