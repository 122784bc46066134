# src/content_guard/utils/hash.py
"""Hashing helpers built on BLAKE3."""

from __future__ import annotations

from blake3 import blake3


def blake3_hexdigest(data: bytes) -> str:
    """Return the hexadecimal digest of the supplied data."""
    return blake3(data).hexdigest()


def dedup_key(content_id: str, fingerprint: str) -> str:
    """Join a content id and a verdict fingerprint into an idempotency key."""
    return f"{content_id}:{fingerprint}"
