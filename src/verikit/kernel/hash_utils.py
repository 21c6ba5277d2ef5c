"""Content hashing utilities used as the sole key for source matching.

Key rules:
- Digest is keccak256 (the original 0x01 padding variant, not SHA3-256)
- Text is hashed as its UTF-8 encoding, bytes are hashed as-is
- Output is lowercase hex prefixed with "0x"
- Comparison is case-insensitive and tolerant of a missing "0x" prefix
"""

from typing import Optional, Union

from Crypto.Hash import keccak


class HashFormatError(ValueError):
    """Raised when a declared hash is not a 32-byte hex string."""
    pass


def keccak256(content: Union[str, bytes]) -> str:
    """Compute keccak256 of content.

    Args:
        content: Text (hashed as UTF-8) or raw bytes

    Returns:
        Hex digest prefixed with "0x"
    """
    if isinstance(content, str):
        content_bytes = content.encode('utf-8')
    else:
        content_bytes = content

    hasher = keccak.new(digest_bits=256)
    hasher.update(content_bytes)
    return "0x" + hasher.hexdigest()


def normalize_hash(value: str) -> str:
    """Normalize a declared hash to "0x" + 64 lowercase hex characters.

    Raises:
        HashFormatError: If value is not a 32-byte hex string
    """
    if not isinstance(value, str):
        raise HashFormatError(f"Hash must be a string, got {type(value).__name__}")

    raw = value.strip().lower()
    if raw.startswith("0x"):
        raw = raw[2:]

    if len(raw) != 64:
        raise HashFormatError(f"Hash must be 32 bytes (64 hex chars), got {len(raw)} chars: {value!r}")
    try:
        int(raw, 16)
    except ValueError:
        raise HashFormatError(f"Hash contains non-hex characters: {value!r}")

    return "0x" + raw


def hashes_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Compare two hashes ignoring case and "0x" prefix.

    Malformed or missing values never compare equal.
    """
    if not left or not right:
        return False
    try:
        return normalize_hash(left) == normalize_hash(right)
    except HashFormatError:
        return False
