"""Utility functions for blobflow."""

from typing import Optional


def humanize_size(size: Optional[float]) -> str:
    """Convert bytes to human-readable format."""
    if size is None:
        return "-"
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def short_checksum(checksum: str, length: int = 12) -> str:
    """Shorten "sha256:abcdef..." to its first hex characters."""
    return checksum.split(":", 1)[-1][:length]
