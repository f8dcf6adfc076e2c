"""Test the filesystem gateway on its own and behind the service."""

import asyncio
import json

import pytest

from blobflow.core import BlobState, CollectionConfig, GatewayPolicy
from blobflow.hashing import compute_checksum, strip_algorithm
from blobflow.service import BlobDeps, BlobService
from blobflow.storage import FilesystemGateway, make_gateway


@pytest.fixture
def fs_gateway(tmp_path):
    return FilesystemGateway(tmp_path / "store")


def run(coro):
    return asyncio.run(coro)


class TestFilesystemGateway:
    """Test individual gateway operations."""

    def test_slot_for_new_blob_has_upload_url(self, fs_gateway):
        checksum = compute_checksum(b"data")
        result = run(fs_gateway.request_upload_slot(checksum, "a.bin", "application/octet-stream", 4))
        assert result.ok
        assert result.upload_url.startswith("fs://")
        digest = strip_algorithm(checksum)
        assert result.storage_key == f"objects/{digest[:2]}/{digest[2:4]}/{digest}"

    def test_transfer_rejects_wrong_bytes(self, fs_gateway, make_file):
        file = make_file(content=b"actual")
        checksum = compute_checksum(b"expected")
        slot = run(fs_gateway.request_upload_slot(checksum, file.name, file.mime_type, file.size))
        result = run(fs_gateway.transfer_file(checksum, slot.upload_url, file))
        assert not result.ok
        assert "Checksum mismatch" in result.error

    def test_register_without_upload_fails(self, fs_gateway):
        checksum = compute_checksum(b"never sent")
        result = run(fs_gateway.register_blob(checksum, "objects/xx", "a", "text/plain", 1))
        assert not result.ok
        assert "No uploaded bytes" in result.error

    def test_link_unknown_blob_fails(self, fs_gateway):
        result = run(fs_gateway.link_attachment("sha256:x", 999, 1, "Offer"))
        assert not result.ok

    def test_unlink_unknown_attachment_fails(self, fs_gateway):
        result = run(fs_gateway.unlink_attachment("sha256:x", 12))
        assert not result.ok
        assert result.error == "Attachment 12 not found"

    def test_preview_for_missing_object_fails(self, fs_gateway):
        result = run(fs_gateway.fetch_preview_url("sha256:x", "objects/none"))
        assert not result.ok


class TestFilesystemPipeline:
    """Test the full pipeline against a real directory."""

    def _service(self, root, **config):
        config.setdefault("owner_id", 5)
        config.setdefault("auto_link", True)
        return BlobService(
            CollectionConfig(**config),
            deps=BlobDeps(gateway=FilesystemGateway(root)),
        )

    def test_upload_register_link(self, tmp_path, make_file):
        root = tmp_path / "store"
        service = self._service(root)
        (rec,) = service.add_files([make_file(content=b"image data")])

        service.run()

        final = service.collection.get(rec.checksum)
        assert final.state is BlobState.LINKED
        assert final.blob_id == 1
        assert final.attachment_id == 1
        assert (root / final.storage_key).read_bytes() == b"image data"
        index = json.loads((root / "index.json").read_text())
        assert index["attachments"]["1"]["owner_id"] == 5
        assert not any((root / "uploads").iterdir())

    def test_concurrent_blobs_get_distinct_ids(self, tmp_path, make_file):
        root = tmp_path / "store"
        service = self._service(root)
        files = [make_file(name=f"{i}.bin", content=bytes([i]) * 1000) for i in range(5)]
        service.add_files(files)

        service.run()

        records = list(service.collection)
        assert {r.state for r in records} == {BlobState.LINKED}
        assert sorted(r.blob_id for r in records) == [1, 2, 3, 4, 5]
        assert sorted(r.attachment_id for r in records) == [1, 2, 3, 4, 5]
        for file, r in zip(files, records):
            assert (root / r.storage_key).read_bytes() == file.data

    def test_second_session_takes_shortcut(self, tmp_path, make_file):
        root = tmp_path / "store"
        first = self._service(root)
        first.add_files([make_file(content=b"image data")])
        first.run()

        second = self._service(root, owner_id=6)
        (rec,) = second.add_files([make_file(content=b"image data")])
        reports = second.run()

        assert [r.step.value for r in reports] == ["request_slot", "link"]
        final = second.collection.get(rec.checksum)
        assert final.state is BlobState.LINKED
        assert final.blob_id == 1
        assert final.attachment_id == 2

    def test_remove_unlinks_attachment(self, tmp_path, make_file):
        root = tmp_path / "store"
        gateway = FilesystemGateway(root)
        service = BlobService(
            CollectionConfig(auto_link=True, owner_id=5), deps=BlobDeps(gateway=gateway)
        )
        (rec,) = service.add_files([make_file()])
        service.run()
        assert gateway.attachments()

        run(service.remove(rec.checksum))

        assert gateway.attachments() == {}
        assert len(service.collection) == 0


class TestMakeGateway:
    """Test gateway factory."""

    def test_fs_provider(self, tmp_path):
        gateway = make_gateway(GatewayPolicy(provider="fs", root=str(tmp_path)))
        assert isinstance(gateway, FilesystemGateway)

    def test_fs_requires_root(self):
        with pytest.raises(ValueError):
            make_gateway(GatewayPolicy(provider="fs"))

    def test_unknown_provider(self):
        with pytest.raises(NotImplementedError):
            make_gateway(GatewayPolicy(provider="s3", root="bucket"))
