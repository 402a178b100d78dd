"""Utility functions for pytheme."""

import hashlib
import mimetypes
from datetime import datetime
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Header carrying the per-store call budget as "current/total"
CALL_LIMIT_HEADER: str = "X-Shopify-Shop-Api-Call-Limit"

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

TIMEFORMAT: str = "%H:%M:%S"

# Extensions the store treats as text even when mimetypes does not know them
TEXT_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".liquid",
        ".json",
        ".map",
        ".css",
        ".scss",
        ".js",
        ".html",
        ".txt",
    }
)


# =============================================================================
# Digest utilities
# =============================================================================


def sha256_digest(content: bytes) -> str:
    """Return the hex SHA-256 digest of raw content."""
    return hashlib.sha256(content).hexdigest()


def normalize_text(value: str) -> str:
    """Strip carriage returns so CRLF content matches the local copy."""
    return value.replace("\r", "")


# =============================================================================
# Timestamp utilities
# =============================================================================


def timestamp(time: Optional[datetime] = None) -> str:
    """Format a time for per-asset status lines (defaults to now)."""
    return (time or datetime.now()).strftime(TIMEFORMAT)


# =============================================================================
# Binary detection
# =============================================================================


def is_binary_data(data: bytes) -> bool:
    """Check whether content has to be sent as a base64 attachment.

    Args:
        data: Raw file content

    Returns:
        True if the content is not valid UTF-8 text or contains NUL bytes
    """
    if not data:
        return False
    if b"\x00" in data:
        return True
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return False


def is_binary_path(key: str) -> bool:
    """Guess from the file name whether an asset is binary.

    Unknown file types are treated as binary.
    """
    lowered = key.lower()
    for extension in TEXT_EXTENSIONS:
        if lowered.endswith(extension):
            return False
    mime_type, _ = mimetypes.guess_type(key)
    if mime_type is None:
        return True
    return not mime_type.startswith("text/")


def is_binary_asset(key: str, data: bytes) -> bool:
    """Decide whether a local file is uploaded as attachment or value."""
    return is_binary_path(key) or is_binary_data(data)
