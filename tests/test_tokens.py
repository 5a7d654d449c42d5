"""Tests for encrypted token storage."""

import json
import os
import stat

import pytest
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from devark.fs import FileSystem
from devark.storage.tokens import (
    FileTokenStorage,
    SecretTokenStorage,
    decrypt_token,
    encrypt_token,
)

KEY = bytes(range(32))


class TestEncryption:
    """Tests for the iv:tag:ciphertext format."""

    def test_round_trip(self):
        data = encrypt_token("abcdefghijk", KEY)
        iv, tag, ciphertext = data.split(":")
        assert len(bytes.fromhex(iv)) == 16
        assert len(bytes.fromhex(tag)) == 16
        assert len(bytes.fromhex(ciphertext)) == len("abcdefghijk")
        assert decrypt_token(data, KEY) == "abcdefghijk"

    def test_round_trip_random_key(self):
        key = AESGCM.generate_key(bit_length=256)
        assert decrypt_token(encrypt_token("hello-world-token", key), key) == "hello-world-token"

    def test_fresh_iv_each_time(self):
        assert encrypt_token("abcdefghijk", KEY) != encrypt_token("abcdefghijk", KEY)

    def test_wrong_key(self):
        data = encrypt_token("abcdefghijk", KEY)
        with pytest.raises(InvalidTag):
            decrypt_token(data, bytes(32))

    @pytest.mark.parametrize("data", ["abc", "aa:bb", "00:00:00", "zz:zz:zz"])
    def test_malformed(self, data):
        with pytest.raises(ValueError):
            decrypt_token(data, KEY)


class TestFileTokenStorage:
    """Tests for FileTokenStorage."""

    @pytest.fixture
    def storage(self, tmp_path):
        return FileTokenStorage(fs=FileSystem(home=tmp_path))

    def test_store_and_get(self, storage, tmp_path):
        storage.store_token("abcdefghijk")
        assert storage.get_token() == "abcdefghijk"
        assert storage.has_token()

        config = json.loads((tmp_path / ".devark" / "config.json").read_text())
        assert config["token"] != "abcdefghijk"
        assert len(config["token"].split(":")) == 3

    def test_key_file_private(self, storage, tmp_path):
        storage.store_token("abcdefghijk")
        key_path = tmp_path / ".devark" / ".key"
        assert len(bytes.fromhex(key_path.read_text())) == 32
        if os.name == "posix":
            assert stat.S_IMODE(key_path.stat().st_mode) == 0o600

    def test_new_instance_reads_token(self, storage, tmp_path):
        storage.store_token("abcdefghijk")
        assert FileTokenStorage(fs=FileSystem(home=tmp_path)).get_token() == "abcdefghijk"

    def test_keeps_other_config_keys(self, storage, tmp_path):
        config_path = tmp_path / ".devark" / "config.json"
        config_path.parent.mkdir()
        config_path.write_text(json.dumps({"apiUrl": "https://x.test"}))
        storage.store_token("abcdefghijk")
        assert json.loads(config_path.read_text())["apiUrl"] == "https://x.test"

    def test_short_token_rejected(self, storage):
        with pytest.raises(ValueError):
            storage.store_token("short")
        assert not storage.has_token()

    def test_clear(self, storage):
        storage.store_token("abcdefghijk")
        storage.clear_token()
        assert storage.get_token() is None
        assert not storage.has_token()

    def test_missing_config(self, storage):
        assert storage.get_token() is None
        assert not storage.has_token()

    def test_undecryptable_token_reads_none(self, storage, tmp_path):
        storage.store_token("abcdefghijk")
        (tmp_path / ".devark" / ".key").write_text(bytes(32).hex())
        assert FileTokenStorage(fs=FileSystem(home=tmp_path)).get_token() is None

    @pytest.mark.parametrize("value", [123, ["a", "b"], {"iv": "x"}])
    def test_non_string_token_reads_none(self, storage, tmp_path, value):
        config_path = tmp_path / ".devark" / "config.json"
        config_path.parent.mkdir()
        config_path.write_text(json.dumps({"token": value}))
        assert storage.get_token() is None
        assert not storage.has_token()


class FakeSecrets:
    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def store(self, key, value):
        self.values[key] = value

    def delete(self, key):
        self.values.pop(key, None)


class TestSecretTokenStorage:
    """Tests for SecretTokenStorage."""

    def test_lifecycle(self):
        secrets = FakeSecrets()
        storage = SecretTokenStorage(secrets)
        assert not storage.has_token()
        storage.store_token("abcdefghijk")
        assert secrets.values == {"devark.auth.token": "abcdefghijk"}
        assert storage.get_token() == "abcdefghijk"
        storage.clear_token()
        assert storage.get_token() is None
