"""Hashing utilities for content-derived blob identity.

Checksums are the identity of a blob: they deduplicate re-selected files
and correlate gateway results with their record. They must therefore be
deterministic and stable across sessions.
"""

from pathlib import Path
import hashlib


def compute_checksum(data: bytes) -> str:
    """Compute SHA256 checksum of in-memory bytes.

    Args:
        data: Raw file contents

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def compute_file_checksum(path: Path) -> str:
    """Compute SHA256 checksum of file contents.

    Reads in chunks so large files are never held in memory twice.
    Produces the same value as ``compute_checksum(path.read_bytes())``.

    Args:
        path: Path to file to hash

    Returns:
        SHA256 digest in format "sha256:xxxx"
    """
    sha256 = hashlib.sha256()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return f"sha256:{sha256.hexdigest()}"


class Sha256ChecksumService:
    """Default ChecksumService backed by SHA256."""

    def hash(self, data: bytes) -> str:
        return compute_checksum(data)


def strip_algorithm(checksum: str) -> str:
    """Drop the "sha256:" prefix, leaving the hex digest."""
    return checksum.split(":", 1)[-1]


__all__ = [
    "Sha256ChecksumService",
    "compute_checksum",
    "compute_file_checksum",
    "strip_algorithm",
]
