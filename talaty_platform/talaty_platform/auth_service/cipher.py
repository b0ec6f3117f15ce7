"""
Encryption of sensitive fields at rest.

AES-256-CBC with PKCS7 padding and a fresh random IV per call. The stored
form is a pair of hex strings (ciphertext, iv). CBC carries no MAC, so a
stored value is not tamper-evident.
"""
from dataclasses import dataclass
import hashlib
import logging
import os
import secrets

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import ConfigurationError, CryptoError

logger = logging.getLogger(__name__)

KEY_BYTES = 32
IV_BYTES = 16


@dataclass(frozen=True)
class EncryptedValue:
    ciphertext: str
    iv: str


class SensitiveDataCipher:
    def __init__(self, key_hex: str):
        if not key_hex:
            raise ConfigurationError("ENCRYPTION_KEY is not set")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as exc:
            raise ConfigurationError("ENCRYPTION_KEY must be hex encoded") from exc
        if len(key) != KEY_BYTES:
            raise ConfigurationError("ENCRYPTION_KEY must be a 256-bit key (64 hex characters)")
        self._key = key

    def encrypt(self, plaintext: str) -> EncryptedValue:
        iv = os.urandom(IV_BYTES)
        try:
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (TypeError, ValueError, AttributeError) as exc:
            logger.error("Encryption failed: %s", type(exc).__name__)
            raise CryptoError("Failed to encrypt data") from exc
        return EncryptedValue(ciphertext=ciphertext.hex(), iv=iv.hex())

    def decrypt(self, ciphertext_hex: str, iv_hex: str) -> str:
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except (TypeError, ValueError, AttributeError) as exc:
            # Never log the payload itself
            logger.error("Decryption failed: %s", type(exc).__name__)
            raise CryptoError("Failed to decrypt data") from exc


def generate_secure_token(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def generate_hash(data: str, algorithm: str = "sha256") -> str:
    return hashlib.new(algorithm, data.encode("utf-8")).hexdigest()
