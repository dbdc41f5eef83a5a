from __future__ import annotations

import base64
import hashlib
import os
import secrets
from dataclasses import dataclass, field
from typing import Optional, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from foundry.core.errors import EncryptionError, FilesystemError, NotFoundError
from foundry.core.fsops import atomic_output, atomic_write_bytes

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
_CHUNK = 1024 * 1024


def key_id_from_key_bytes(key: bytes) -> str:
    return hashlib.sha256(key).hexdigest()[:16]


def generate_key() -> bytes:
    # AES-256 key
    return secrets.token_bytes(KEY_SIZE)


def best_effort_restrict_permissions(path: str) -> None:
    """
    Best-effort permissions tightening.
    On Windows this is limited; on POSIX it sets 0o600.
    """
    try:
        if os.name != "nt":
            os.chmod(path, 0o600)
    except OSError:
        return


def write_key_file(path: str, key: bytes) -> None:
    _check_key(key)
    atomic_write_bytes(path, key, mode=0o600)
    best_effort_restrict_permissions(path)


def read_key_file(path: str) -> bytes:
    if not os.path.exists(path):
        raise NotFoundError("Encryption key file not found.", path=path)
    try:
        with open(path, "rb") as f:
            b = f.read()
    except OSError as e:
        raise FilesystemError("Unable to read encryption key.", path=path, error=str(e)) from e
    _check_key(b, path=path)
    return b


def _check_key(key: bytes, **ctx: str) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
        raise EncryptionError("Invalid key length: must be 32 bytes for AES-256.", **ctx)


# ---- AES-256-GCM ----
def encrypt_bytes(key: bytes, plaintext: bytes) -> bytes:
    """Returns nonce || ciphertext+tag."""
    _check_key(key)
    nonce = secrets.token_bytes(NONCE_SIZE)
    return nonce + AESGCM(bytes(key)).encrypt(nonce, plaintext, None)


def decrypt_bytes(key: bytes, blob: bytes) -> bytes:
    _check_key(key)
    if len(blob) < NONCE_SIZE:
        raise EncryptionError("Ciphertext too short.")
    nonce, ct = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        return AESGCM(bytes(key)).decrypt(nonce, ct, None)
    except InvalidTag as e:
        raise EncryptionError("Decryption failed: authentication tag mismatch (wrong key or corrupt data).") from e


def encrypt_file(src: str, dst: str, key: bytes) -> None:
    """
    Streams src into dst as nonce || ciphertext || tag, the layout
    encrypt_bytes produces, without holding the file in memory.
    """
    _check_key(key, path=src)
    nonce = secrets.token_bytes(NONCE_SIZE)
    encryptor = Cipher(algorithms.AES(bytes(key)), modes.GCM(nonce)).encryptor()
    try:
        fin = open(src, "rb")
    except OSError as e:
        raise FilesystemError("Unable to read file for encryption.", path=src, error=str(e)) from e
    with fin, atomic_output(dst, mode=0o600) as fout:
        fout.write(nonce)
        for chunk in iter(lambda: fin.read(_CHUNK), b""):
            fout.write(encryptor.update(chunk))
        fout.write(encryptor.finalize())
        fout.write(encryptor.tag)


def decrypt_file(src: str, dst: str, key: bytes) -> None:
    """
    Streaming counterpart of decrypt_bytes. Plaintext goes to a temp file
    that replaces dst only after the tag verifies, so nothing is written to
    dst unless authentication succeeds.
    """
    _check_key(key, path=src)
    try:
        size = os.path.getsize(src)
        fin = open(src, "rb")
    except OSError as e:
        raise FilesystemError("Unable to read encrypted file.", path=src, error=str(e)) from e
    with fin:
        if size < NONCE_SIZE + TAG_SIZE:
            raise EncryptionError("Ciphertext too short.", path=src)
        nonce = fin.read(NONCE_SIZE)
        fin.seek(size - TAG_SIZE)
        tag = fin.read(TAG_SIZE)
        fin.seek(NONCE_SIZE)
        decryptor = Cipher(algorithms.AES(bytes(key)), modes.GCM(nonce, tag)).decryptor()
        remaining = size - NONCE_SIZE - TAG_SIZE
        with atomic_output(dst, mode=0o600) as fout:
            while remaining:
                chunk = fin.read(min(_CHUNK, remaining))
                if not chunk:
                    raise EncryptionError("Ciphertext truncated while reading.", path=src)
                remaining -= len(chunk)
                fout.write(decryptor.update(chunk))
            try:
                decryptor.finalize()
            except InvalidTag as e:
                raise EncryptionError(
                    "Decryption failed: authentication tag mismatch (wrong key or corrupt data).", path=src
                ) from e


# ---- key providers ----
class KeyProvider(Protocol):
    def get_key(self) -> bytes: ...


@dataclass
class FileKeyProvider:
    """32 raw key bytes stored in a file (0600)."""

    path: str
    create_if_missing: bool = False

    def get_key(self) -> bytes:
        if self.create_if_missing and not os.path.exists(self.path):
            write_key_file(self.path, generate_key())
        return read_key_file(self.path)


@dataclass
class SystemKeyringProvider:
    """
    Key stored base64-encoded in the OS keyring (Keychain, Secret Service, ...).
    """

    service: str = "nix-foundry"
    username: str = "backup-key"
    create_if_missing: bool = False

    def get_key(self) -> bytes:
        import keyring
        from keyring.errors import KeyringError

        try:
            stored = keyring.get_password(self.service, self.username)
            if stored is None and self.create_if_missing:
                stored = base64.b64encode(generate_key()).decode("ascii")
                keyring.set_password(self.service, self.username, stored)
        except KeyringError as e:
            raise EncryptionError("System keyring unavailable.", service=self.service, error=str(e)) from e
        if stored is None:
            raise NotFoundError("No backup key in system keyring.", service=self.service, username=self.username)
        try:
            key = base64.b64decode(stored.encode("ascii"), validate=True)
        except ValueError as e:
            raise EncryptionError("Keyring entry is not valid base64.", service=self.service) from e
        _check_key(key, service=self.service)
        return key


@dataclass
class EphemeralKeyProvider:
    """In-memory key for one process; backups made with it die with the process."""

    key: Optional[bytes] = None
    _key: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._key = bytes(self.key) if self.key is not None else generate_key()
        _check_key(self._key)

    def get_key(self) -> bytes:
        return self._key
