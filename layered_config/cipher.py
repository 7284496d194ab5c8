"""
Secret Cipher for sensitive configuration values
AES-256-GCM encryption of individual strings with a single process-held key
"""

import os
import secrets
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .contracts import DecryptionError, KeyMaterialError
from .utils.logging import get_safe_logger

logger = get_safe_logger("layered_config.cipher")

KEY_BYTES = 32
IV_BYTES = 12


def generate_secure_key(length: int = 64) -> str:
    """Generate a random key of ``length`` bytes, hex encoded"""
    return secrets.token_hex(length)


def _parse_key(material: str) -> bytes:
    material = material.strip()
    try:
        key = bytes.fromhex(material)
    except ValueError:
        raise KeyMaterialError("Key material must be hex encoded")
    if len(key) != KEY_BYTES:
        raise KeyMaterialError(f"Key material must decode to {KEY_BYTES} bytes, got {len(key)}")
    return key


class KeyMaterialProvider:
    """
    Resolves the symmetric key for this process.

    Precedence: injected material, then the key file, then a freshly generated
    key. Generated keys are persisted (mode 0600) only outside production.
    """

    def __init__(self,
                 key_file: Path,
                 injected_key: Optional[str] = None,
                 production: bool = False):
        self.key_file = Path(key_file)
        self.injected_key = injected_key
        self.production = production
        self.origin: Optional[str] = None

    def load(self) -> bytes:
        """
        Establish the key.

        Raises:
            KeyMaterialError: If injected material is malformed
        """
        if self.injected_key:
            key = _parse_key(self.injected_key)
            self.origin = "injected"
            logger.info("encryption_key_loaded", origin=self.origin)
            return key

        try:
            if self.key_file.exists():
                key = _parse_key(self.key_file.read_text(encoding="utf-8"))
                self.origin = "file"
                logger.info("encryption_key_loaded", origin=self.origin, key_file=str(self.key_file))
                return key

            key = secrets.token_bytes(KEY_BYTES)
            if self.production:
                self.origin = "ephemeral"
            else:
                self._persist(key)
                self.origin = "generated"
            logger.info("encryption_key_generated", origin=self.origin, persisted=not self.production)
            return key

        except (OSError, KeyMaterialError) as e:
            logger.warning(
                "encryption_key_unavailable",
                key_file=str(self.key_file),
                error=str(e)
            )
            self.origin = "ephemeral"
            return secrets.token_bytes(KEY_BYTES)

    def _persist(self, key: bytes) -> None:
        self.key_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.key_file), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(key.hex())


class SecretCipher:
    """Encrypts strings into ``iv-hex:ciphertext-hex`` envelopes"""

    def __init__(self, key: bytes):
        if len(key) != KEY_BYTES:
            raise KeyMaterialError(f"Cipher key must be {KEY_BYTES} bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_provider(cls, provider: KeyMaterialProvider) -> 'SecretCipher':
        return cls(provider.load())

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_BYTES)
        ciphertext = self._aead.encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str) -> str:
        """
        Decrypt an envelope.

        Anything that does not split into exactly two colon-delimited fields
        is returned unchanged.

        Raises:
            DecryptionError: Malformed hex, wrong key or tampered ciphertext
        """
        parts = envelope.split(":")
        if len(parts) != 2:
            return envelope

        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
            return self._aead.decrypt(iv, ciphertext, None).decode("utf-8")
        except (ValueError, InvalidTag) as e:
            raise DecryptionError(f"Could not decrypt value: {type(e).__name__}") from e
