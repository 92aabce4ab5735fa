"""Password hashing with PBKDF2-HMAC-SHA512.

Pure functions: no I/O, no shared state. Derivation is CPU-bound, so async
callers should run these through ``starlette.concurrency.run_in_threadpool``.
"""

import os
from typing import Optional

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

SALT_LENGTH = 32
CREDENTIAL_LENGTH = 64  # SHA-512 output size
PBKDF2_ITERATIONS = 600_000


def _kdf(salt: bytes) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=CREDENTIAL_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )


def derive(password: str, salt: Optional[bytes] = None) -> tuple[bytes, bytes]:
    """Derive a password hash.

    Args:
        password: Plain-text password, hashed as-is (policy is the caller's job)
        salt: Existing salt to reuse; a fresh random one is generated if None

    Returns:
        Tuple of (salt, hash)
    """
    if salt is None:
        salt = os.urandom(SALT_LENGTH)
    return salt, _kdf(salt).derive(password.encode("utf-8"))


def verify(password: str, salt: bytes, expected_hash: bytes) -> bool:
    """Check a password against a stored salt and hash in constant time.

    Args:
        password: Plain-text password to check
        salt: Salt stored with the hash
        expected_hash: Stored derived key

    Returns:
        True if the password matches, False otherwise
    """
    try:
        _kdf(salt).verify(password.encode("utf-8"), expected_hash)
    except InvalidKey:
        return False
    return True
