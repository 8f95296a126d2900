"""
Deterministic hashing for privacy-preserving identifiers.

Page visits and events never carry a raw IP address or user agent. Instead
they carry stable SHA-256 digests that let the server group a session or a
device without being able to recover the original value.

Examples:
    >>> h1 = compute_hash("203.0.113.7", "Mozilla/5.0", "2026-01-02")
    >>> h1 == compute_hash("203.0.113.7", "Mozilla/5.0", "2026-01-02")
    True
    >>> len(h1)
    64

Tags:
    hashing, privacy, sorane
"""

import hashlib


def compute_hash(*values, length: int = 64) -> str:
    """
    Compute a deterministic SHA-256 hash from values joined with ``|``.

    Args:
        *values: Values to hash (converted to strings, ``None`` becomes "")
        length: Hex digest length (default 64, the full digest)

    Returns:
        Hex string of specified length
    """
    content = "|".join("" if v is None else str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]
