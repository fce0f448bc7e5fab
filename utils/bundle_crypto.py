"""
Password encryption for export bundles.

AES-256-GCM with a PBKDF2-HMAC-SHA256 derived key. The envelope keeps the
ciphertext and the 16-byte tag separately, all base64:

    {"encrypted": true, "algorithm": "AES-GCM-256", "keyDerivation": "PBKDF2-100000",
     "salt": ..., "iv": ..., "authTag": ..., "encryptedData": ...}
"""

import base64
import json
import os
from typing import Any, Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import settings
from exceptions import (
    BundleDecryptionError,
    BundleEncryptionError,
    BundlePasswordRequiredError,
)
from models.bundle import EncryptedBundleFile

logger = structlog.get_logger(__name__)

KEY_LENGTH = 32  # 256 bits
IV_LENGTH = 12
SALT_LENGTH = 16
TAG_LENGTH = 16
ALGORITHM = "AES-GCM-256"


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def _iterations_from(key_derivation: str) -> int:
    """'PBKDF2-100000' -> 100000; falls back to the configured default."""
    try:
        return int(key_derivation.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return settings.bundle_kdf_iterations


def is_encrypted_file(payload: Any) -> bool:
    """True when payload carries the encryption sentinel."""
    return isinstance(payload, dict) and payload.get("encrypted") is True


def encrypt_bundle(bundle: dict[str, Any], password: Optional[str]) -> EncryptedBundleFile:
    """
    Encrypt a serialized bundle.

    Args:
        bundle: Bundle as written to disk (camelCase dict)
        password: At least bundle_min_password_length characters

    Raises:
        BundleEncryptionError: If the password is missing or too short
    """
    min_length = settings.bundle_min_password_length
    if not password or len(password) < min_length:
        raise BundleEncryptionError(f"Password must be at least {min_length} characters")

    iterations = settings.bundle_kdf_iterations
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(password, salt, iterations)

    plaintext = json.dumps(bundle, ensure_ascii=False).encode("utf-8")
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    logger.info("bundle_encrypted", size_bytes=len(plaintext))

    return EncryptedBundleFile(
        algorithm=ALGORITHM,
        key_derivation=f"PBKDF2-{iterations}",
        salt=_b64encode(salt),
        iv=_b64encode(iv),
        auth_tag=_b64encode(tag),
        encrypted_data=_b64encode(ciphertext),
    )


def decrypt_bundle(envelope: dict[str, Any], password: Optional[str]) -> dict[str, Any]:
    """
    Decrypt an encryption envelope back to the bundle dict.

    Raises:
        BundlePasswordRequiredError: If no password was given
        BundleDecryptionError: Wrong password, tampered data or bad envelope
    """
    if not password:
        raise BundlePasswordRequiredError()

    try:
        encrypted = EncryptedBundleFile.model_validate(envelope)
        salt = base64.b64decode(encrypted.salt)
        iv = base64.b64decode(encrypted.iv)
        tag = base64.b64decode(encrypted.auth_tag)
        ciphertext = base64.b64decode(encrypted.encrypted_data)
    except Exception as e:
        logger.warning("bundle_envelope_invalid", error=str(e))
        raise BundleDecryptionError("Encrypted file is malformed")

    key = _derive_key(password, salt, _iterations_from(encrypted.key_derivation))

    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag:
        logger.warning("bundle_decryption_failed")
        raise BundleDecryptionError()

    try:
        bundle = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise BundleDecryptionError("Decrypted content is not valid JSON")

    logger.info("bundle_decrypted")
    return bundle
