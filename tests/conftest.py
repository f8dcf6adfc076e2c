"""Shared test fixtures and utilities."""

from typing import Optional

import pytest

from blobflow.collection import BlobCollection
from blobflow.core import CollectionConfig, SelectedFile
from blobflow.hashing import compute_checksum
from blobflow.service import BlobDeps, BlobService

from tests.fixtures.gateways import RecordingGateway


@pytest.fixture
def make_file():
    """Factory fixture for in-memory selected files."""
    def _make(name: str = "photo.jpg", content: bytes = b"jpeg bytes",
              mime_type: str = "image/jpeg") -> SelectedFile:
        return SelectedFile(name=name, mime_type=mime_type, data=content)
    return _make


@pytest.fixture
def checksum_of():
    """Checksum helper matching the default checksum service."""
    return lambda file: compute_checksum(file.data)


@pytest.fixture
def gateway():
    """Succeeding gateway with full upload path."""
    return RecordingGateway()


@pytest.fixture
def make_service(gateway):
    """Factory fixture building a service around a gateway."""
    def _make(gw: Optional[RecordingGateway] = None, **config) -> BlobService:
        config.setdefault("owner_id", 7)
        return BlobService(CollectionConfig(**config), deps=BlobDeps(gateway=gw or gateway))
    return _make


@pytest.fixture
def collection():
    """Empty collection with default limits."""
    return BlobCollection(max_items=3, max_retries=3, auto_link=True)
