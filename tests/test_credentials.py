import base64

import bcrypt
import pytest

from magnetico.credentials import CredentialStore, parse_basic_auth


@pytest.fixture(scope="module")
def hashed():
    return bcrypt.hashpw(b"password", bcrypt.gensalt(rounds=4))


def _basic(text):
    return "Basic " + base64.b64encode(text.encode()).decode()


def test_new_store_is_empty():
    assert CredentialStore().is_empty() is True


def test_update_makes_store_non_empty(hashed):
    store = CredentialStore()
    store.update({"user": hashed})
    assert store.is_empty() is False


def test_update_replaces_credentials(hashed):
    store = CredentialStore({"user": hashed})
    store.update({})
    assert store.is_empty() is True
    assert store.check("user", "password") is False


def test_check_correct_password(hashed):
    store = CredentialStore({"user": hashed})
    assert store.check("user", "password") is True


def test_check_wrong_password(hashed):
    store = CredentialStore({"user": hashed})
    assert store.check("user", "secret") is False


def test_check_unknown_user(hashed):
    store = CredentialStore({"user": hashed})
    assert store.check("other", "password") is False


def test_check_malformed_hash():
    store = CredentialStore({"user": b"not a bcrypt hash"})
    assert store.check("user", "password") is False


def test_check_accepts_str_hash(hashed):
    store = CredentialStore({"user": hashed.decode()})
    assert store.check("user", "password") is True


def test_parse_basic_auth_round_trip():
    assert parse_basic_auth(_basic("user:password")) == ("user", "password")


def test_parse_basic_auth_password_with_colon():
    assert parse_basic_auth(_basic("user:pass:word")) == ("user", "pass:word")


def test_parse_basic_auth_case_insensitive_scheme():
    header = "basic " + base64.b64encode(b"user:password").decode()
    assert parse_basic_auth(header) == ("user", "password")


@pytest.mark.parametrize(
    "header",
    [None, "", "Bearer token", "Basic !!!notbase64!!!", _basic("nocolon")],
)
def test_parse_basic_auth_rejects(header):
    assert parse_basic_auth(header) is None