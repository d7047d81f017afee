"""
Utility functions for the chat API.
"""

import hashlib
import hmac
import logging
import threading
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_id_lock = threading.Lock()
_last_id = 0


def hash_password(password: str) -> str:
    """
    Hash a password with SHA-256.

    Args:
        password: Plain-text password

    Returns:
        Hex-encoded digest (64 characters)
    """
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def verify_password(password: str, digest: str) -> bool:
    """
    Check a plain-text password against a stored digest.

    Args:
        password: Plain-text password supplied by the client
        digest: Hex digest from the user record

    Returns:
        True if the password matches, False otherwise
    """
    # Use constant-time comparison to prevent timing attacks
    is_valid = hmac.compare_digest(hash_password(password), digest or "")
    logger.debug(f"Password verification: {'valid' if is_valid else 'invalid'}")
    return is_valid


def new_id() -> str:
    """Millisecond timestamp id, strictly increasing within the process."""
    global _last_id
    with _id_lock:
        candidate = int(time.time() * 1000)
        if candidate <= _last_id:
            candidate = _last_id + 1
        _last_id = candidate
    return str(candidate)


def now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
