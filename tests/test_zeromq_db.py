import json
import time

import pytest

from magnetico.models import DatabaseEngine, DatabaseError, File, OrderingCriteria
from magnetico.zeromq_db import ZeroMQDatabase


class FakeSocket:
    def __init__(self):
        self.messages = []
        self.closed = False

    def send_multipart(self, frames):
        self.messages.append(list(frames))

    def close(self):
        self.closed = True


@pytest.fixture
def socket():
    return FakeSocket()


@pytest.fixture
def db(socket):
    return ZeroMQDatabase(socket)


def test_does_torrent_exist_after_add(db, socket):
    info_hash = b"exampleInfoHash"
    db.add_new_torrent(info_hash, "exampleName", [])
    assert db.does_torrent_exist(info_hash) is True
    db.close()
    assert socket.closed is True


def test_does_torrent_exist_unknown(db):
    assert db.does_torrent_exist(b"unknown") is False


def test_published_message(db, socket):
    info_hash = b"exampleInfoHash"
    db.add_new_torrent(info_hash, "exampleName", [File(size=7, path="a/b")])
    assert db.does_torrent_exist(info_hash) is True
    assert len(socket.messages) == 1
    frames = socket.messages[0]
    assert len(frames) == 1
    payload = json.loads(frames[0])
    assert payload == {
        "infoHash": info_hash.hex(),
        "name": "exampleName",
        "files": [{"size": 7, "path": "a/b"}],
    }


def test_empty_files_published_as_list(db, socket):
    db.add_new_torrent(b"h", "n", [])
    assert db.does_torrent_exist(b"h") is True
    assert json.loads(socket.messages[0][0])["files"] == []


def test_nil_files_published_as_null(db, socket):
    db.add_new_torrent(b"h", "n", None)
    assert db.does_torrent_exist(b"h") is True
    assert json.loads(socket.messages[0][0])["files"] is None


def test_duplicate_add_raises(db, socket):
    db.add_new_torrent(b"dup", "n", [])
    with pytest.raises(DatabaseError, match="torrent already exists"):
        db.add_new_torrent(b"dup", "n", [])
    assert len(socket.messages) == 1


def test_get_number_of_torrents(db):
    assert db.get_number_of_torrents() == 0


def test_query_torrents_not_supported(db):
    with pytest.raises(DatabaseError, match="query not supported"):
        db.query_torrents(
            "example query", 1234567890, OrderingCriteria.BY_RELEVANCE, True, 10, None, None
        )


def test_get_torrent_not_supported(db):
    with pytest.raises(DatabaseError, match="fetch not supported"):
        db.get_torrent(b"infoHash")


def test_get_files_not_supported(db):
    with pytest.raises(DatabaseError, match="file fetch not supported"):
        db.get_files(b"infoHash")


def test_get_statistics_not_supported(db):
    with pytest.raises(DatabaseError, match="statistics not supported"):
        db.get_statistics("", 0)


def test_engine(db):
    assert db.engine() == DatabaseEngine.ZEROMQ


def test_cleanup(db):
    db.cache[b"expiredInfoHash"] = time.monotonic() - 60
    db.cache[b"validInfoHash"] = time.monotonic() + 600
    db.cleanup()
    assert b"expiredInfoHash" not in db.cache
    assert b"validInfoHash" in db.cache


def test_cleanup_allows_republishing(db, socket):
    db.add_new_torrent(b"again", "n", [])
    db.cache[b"again"] = time.monotonic() - 1
    db.cleanup()
    assert db.does_torrent_exist(b"again") is False
    db.add_new_torrent(b"again", "n", [])
    assert len(socket.messages) == 2