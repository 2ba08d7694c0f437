"""Content hashing for cache keys."""

import hashlib

HASH_LENGTH = 16


def compute_content_hash(content: str) -> str:
    """Short SHA-256 hex digest of string content.

    Line endings are normalized so a checkout on another platform still hits.
    """
    content_bytes = content.encode("utf-8")
    normalized_bytes = content_bytes.replace(b"\r\n", b"\n").replace(b"\r", b"\n")
    return hashlib.sha256(normalized_bytes).hexdigest()[:HASH_LENGTH]
