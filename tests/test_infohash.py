import pytest

from magnetico.infohash import (
    InfoHash,
    from_hex_string,
    hash_bytes,
    hash_bytes_v2,
    parse_infohash,
)

SEQUENTIAL = InfoHash(bytes(range(1, 21)))
SEQUENTIAL_HEX = "0102030405060708090a0b0c0d0e0f1011121314"


@pytest.mark.parametrize(
    "value, expected",
    [
        (InfoHash(), "0000000000000000000000000000000000000000"),
        (SEQUENTIAL, SEQUENTIAL_HEX),
    ],
)
def test_format(value, expected):
    assert f"{value}" == expected
    assert str(value) == expected
    assert value.hex() == expected


@pytest.mark.parametrize("value", [InfoHash(), SEQUENTIAL])
def test_string_round_trip(value):
    assert parse_infohash(str(value)) == value


@pytest.mark.parametrize("value, expected", [(InfoHash(), True), (SEQUENTIAL, False)])
def test_is_zero(value, expected):
    assert value.is_zero() is expected


def test_parse_empty_is_error():
    with pytest.raises(ValueError):
        parse_infohash("")


def test_parse_valid():
    assert parse_infohash(SEQUENTIAL_HEX) == SEQUENTIAL


def test_parse_accepts_upper_case():
    assert parse_infohash(SEQUENTIAL_HEX.upper()) == SEQUENTIAL


def test_parse_rejects_non_hex_of_right_length():
    with pytest.raises(ValueError):
        parse_infohash("zz" * 20)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("", InfoHash()),
        (SEQUENTIAL_HEX, SEQUENTIAL),
        ("nothex", InfoHash()),
    ],
)
def test_from_hex_string(text, expected):
    assert from_hex_string(text) == expected


def test_bytes_conversion():
    assert bytes(SEQUENTIAL) == bytes(range(1, 21))


def test_wrong_length_rejected():
    with pytest.raises(ValueError):
        InfoHash(b"\x01\x02")


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"", "da39a3ee5e6b4b0d3255bfef95601890afd80709"),
        (b"test", "a94a8fe5ccb19ba61c4c0873d391e987982fbbd3"),
    ],
)
def test_hash_bytes(data, expected):
    assert hash_bytes(data).hex() == expected


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"", "e3b0c44298fc1c149afbf4c8996fb92427ae41e4"),
        (b"test", "9f86d081884c7d659a2feaa0c55ad015a3bf4f1b"),
    ],
)
def test_hash_bytes_v2(data, expected):
    assert hash_bytes_v2(data).hex() == expected