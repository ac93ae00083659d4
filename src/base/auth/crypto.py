"""
Credential primitives: password hashing, token hashing and random identifiers.

Password records are self-describing (``pbkdf2:<iterations>:<salt>:<hash>``)
so records written with older parameters keep verifying after the defaults
change.
"""

import base64
import hashlib
import hmac
import logging
import secrets
import uuid

from src.base.utils.text_utils import well_formed

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000
PBKDF2_HASH = "sha256"
SALT_BYTES = 16
KEY_BYTES = 32


def random_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4()}"


def generate_token(size: int = 32) -> str:
    """Hex encoded token made of ``size`` cryptographically random bytes."""
    return secrets.token_hex(size)


def hash_token(token: str) -> str:
    """Deterministic one-way digest used to store session and invite tokens."""
    digest = hashlib.sha256(well_formed(token).encode("utf-8")).digest()
    return base64.b64encode(digest).decode("ascii")


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = secrets.token_bytes(SALT_BYTES)
    derived = hashlib.pbkdf2_hmac(
        PBKDF2_HASH,
        well_formed(password).encode("utf-8"),
        salt,
        iterations,
        dklen=KEY_BYTES,
    )
    return "pbkdf2:{}:{}:{}".format(
        iterations,
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(derived).decode("ascii"),
    )


def verify_password(password: str, stored: str | None) -> bool:
    """
    Check a password against a stored record.

    Re-derives the key with the record's own iteration count and salt and
    compares in constant time. Malformed records yield False, never an error.
    """
    if not stored:
        return False
    parts = stored.split(":")
    if len(parts) != 4 or parts[0] != "pbkdf2":
        return False
    _, iterations_raw, salt_raw, hash_raw = parts
    try:
        iterations = int(iterations_raw)
        salt = base64.b64decode(salt_raw, validate=True)
        expected = base64.b64decode(hash_raw, validate=True)
    except ValueError:
        logger.warning("Malformed password record encountered")
        return False
    if iterations <= 0 or not expected:
        return False
    derived = hashlib.pbkdf2_hmac(
        PBKDF2_HASH,
        well_formed(password).encode("utf-8"),
        salt,
        iterations,
        dklen=len(expected),
    )
    return hmac.compare_digest(derived, expected)
