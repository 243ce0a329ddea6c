"""
Field-level encryption
AES-256-GCM with a PBKDF2-SHA256 key derived from the access code
"""
import base64
import binascii
import os
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import settings
from .exceptions import DecryptFailure


KEY_LENGTH = 32
GCM_TAG_SIZE = 16


@dataclass(frozen=True)
class Plain:
    """A stored value that is not ciphertext"""
    text: object


@dataclass(frozen=True)
class Encrypted:
    """A stored value that is a ciphertext blob"""
    blob: str


TaggedValue = Union[Plain, Encrypted]


class FieldCipher:
    """
    Encrypts and decrypts single text values.

    Blob layout is base64(salt || nonce || ciphertext+tag). A fresh salt and
    nonce are generated on every call, so encrypting the same value twice
    yields different blobs. New blobs carry a version tag in front of the
    base64 body; untagged blobs written by older releases still decrypt.
    """

    def __init__(
        self,
        iterations: Optional[int] = None,
        salt_size: Optional[int] = None,
        nonce_size: Optional[int] = None,
        tag: Optional[str] = None,
    ):
        self.iterations = iterations or settings.KDF_ITERATIONS
        self.salt_size = salt_size or settings.SALT_SIZE
        self.nonce_size = nonce_size or settings.NONCE_SIZE
        self.tag = settings.CIPHERTEXT_TAG if tag is None else tag

    @staticmethod
    def key_material(passphrase: str) -> bytes:
        """Right-pad the access code to the key material length; longer codes are kept whole"""
        return passphrase.ljust(settings.KEY_MATERIAL_LENGTH, settings.KEY_PAD_CHAR).encode("utf-8")

    def derive_key(self, passphrase: str, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(self.key_material(passphrase))

    def encrypt(self, plaintext: str, passphrase: str) -> str:
        """
        Encrypt a text value.

        Returns:
            Tagged printable blob
        """
        salt = os.urandom(self.salt_size)
        nonce = os.urandom(self.nonce_size)
        key = self.derive_key(passphrase, salt)
        ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        body = base64.b64encode(salt + nonce + ciphertext).decode("ascii")
        return f"{self.tag}{body}"

    def decrypt(self, blob: str, passphrase: str) -> str:
        """
        Decrypt a blob produced by encrypt (tagged or legacy untagged).

        Raises:
            DecryptFailure: malformed blob, wrong passphrase or tampering
        """
        if not isinstance(blob, str):
            raise DecryptFailure("Ciphertext must be a string")

        body = self.strip_tag(blob)
        try:
            raw = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptFailure(f"Ciphertext is not valid base64: {e}") from e

        header = self.salt_size + self.nonce_size
        if len(raw) < header + GCM_TAG_SIZE:
            raise DecryptFailure("Ciphertext is too short")

        salt = raw[:self.salt_size]
        nonce = raw[self.salt_size:header]
        key = self.derive_key(passphrase, salt)
        try:
            plaintext = AESGCM(key).decrypt(nonce, raw[header:], None)
        except InvalidTag as e:
            raise DecryptFailure("Authentication failed: wrong access code or corrupted value") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptFailure("Decrypted value is not valid UTF-8") from e

    def is_tagged(self, value) -> bool:
        return bool(self.tag) and isinstance(value, str) and value.startswith(self.tag)

    def strip_tag(self, value: str) -> str:
        if self.is_tagged(value):
            return value[len(self.tag):]
        return value
