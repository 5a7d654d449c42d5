"""Auth token storage.

``FileTokenStorage`` keeps the token AES-256-GCM encrypted in
``~/.devark/config.json`` with the key in a sibling ``.key`` file; the
serialised form is ``iv:tag:ciphertext`` in hex, which the DevArk CLI reads
too. ``SecretTokenStorage`` hands the token to a host-provided secret store.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..fs import FileSystem

logger = logging.getLogger(__name__)

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_LENGTH = 32
MIN_TOKEN_LENGTH = 10
SECRET_KEY = "devark.auth.token"


class TokenStorage(Protocol):
    def get_token(self) -> Optional[str]: ...

    def store_token(self, token: str) -> None: ...

    def clear_token(self) -> None: ...

    def has_token(self) -> bool: ...


def encrypt_token(token: str, key: bytes) -> str:
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, token.encode("utf-8"), None)
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt_token(data: str, key: bytes) -> str:
    """Raises ValueError on malformed input and InvalidTag on a wrong key."""
    parts = data.split(":")
    if len(parts) != 3:
        raise ValueError("Invalid encrypted data format")
    iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
    if len(iv) != IV_LENGTH or len(tag) != AUTH_TAG_LENGTH:
        raise ValueError("Invalid encrypted data format")
    return AESGCM(key).decrypt(iv, ciphertext + tag, None).decode("utf-8")


class FileTokenStorage:
    def __init__(self, fs: Optional[FileSystem] = None, config_dir: Optional[Path] = None):
        self.fs = fs or FileSystem()
        self.config_dir = Path(config_dir) if config_dir else self.fs.homedir() / ".devark"
        self.config_path = self.config_dir / "config.json"
        self.key_path = self.config_dir / ".key"
        self._key: Optional[bytes] = None

    def _read_config(self) -> dict:
        data = json.loads(self.fs.read_text(self.config_path))
        if not isinstance(data, dict):
            raise ValueError("config.json is not an object")
        return data

    def _read_config_safe(self) -> dict:
        try:
            return self._read_config()
        except (OSError, ValueError):
            return {}

    def _write_config(self, data: dict) -> None:
        self.fs.mkdir(self.config_dir)
        self.fs.write_text(self.config_path, json.dumps(data, indent=2))

    def _get_or_create_key(self) -> bytes:
        if self._key is not None:
            return self._key
        try:
            self._key = bytes.fromhex(self.fs.read_text(self.key_path).strip())
        except (OSError, ValueError):
            key = AESGCM.generate_key(bit_length=KEY_LENGTH * 8)
            self.fs.mkdir(self.config_dir)
            self.fs.write_text(self.key_path, key.hex())
            self.fs.chmod(self.key_path, 0o600)
            self._key = key
        return self._key

    def get_token(self) -> Optional[str]:
        try:
            encrypted = self._read_config().get("token")
            if not encrypted or not isinstance(encrypted, str):
                return None
            return decrypt_token(encrypted, self._get_or_create_key())
        except (OSError, ValueError, InvalidTag) as e:
            logger.debug(f"Could not read stored token: {e}")
            return None

    def store_token(self, token: str) -> None:
        if not isinstance(token, str) or len(token) < MIN_TOKEN_LENGTH:
            raise ValueError(f"Token must be at least {MIN_TOKEN_LENGTH} characters")
        encrypted = encrypt_token(token, self._get_or_create_key())
        data = self._read_config_safe()
        data["token"] = encrypted
        self._write_config(data)

    def clear_token(self) -> None:
        try:
            data = self._read_config_safe()
            data.pop("token", None)
            self._write_config(data)
        except OSError as e:
            logger.debug(f"Ignoring failure clearing token: {e}")

    def has_token(self) -> bool:
        try:
            return isinstance(self._read_config().get("token"), str)
        except (OSError, ValueError):
            return False


class SecretStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def store(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class SecretTokenStorage:
    """Token storage backed by a host secret store."""

    def __init__(self, secrets: SecretStore):
        self.secrets = secrets

    def get_token(self) -> Optional[str]:
        return self.secrets.get(SECRET_KEY) or None

    def store_token(self, token: str) -> None:
        self.secrets.store(SECRET_KEY, token)

    def clear_token(self) -> None:
        self.secrets.delete(SECRET_KEY)

    def has_token(self) -> bool:
        return bool(self.secrets.get(SECRET_KEY))
