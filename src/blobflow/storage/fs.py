"""Filesystem gateway implementation for local use and testing."""

import asyncio
import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict

from ..core import SelectedFile
from ..gateway_types import (
    LinkResult,
    PreviewResult,
    RegisterResult,
    SlotResult,
    TransferResult,
    UnlinkResult,
)
from ..hashing import compute_checksum, strip_algorithm

logger = logging.getLogger(__name__)

INDEX_FILE = "index.json"


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class FilesystemGateway:
    """
    Local directory standing in for the upload service and object store.

    Layout under ``root``:
        uploads/<sha256>          bytes transferred to an upload slot
        objects/ab/cd/<sha256>    bytes of registered blobs
        index.json                registered blobs and attachments

    File payloads are written in a worker thread. Index reads and writes
    are small and stay on the event loop.
    """

    def __init__(self, root: Path):
        """
        Initialize filesystem gateway.

        Args:
            root: Base directory for uploads, objects and the index
        """
        self.root = Path(root)
        (self.root / "uploads").mkdir(parents=True, exist_ok=True)
        (self.root / "objects").mkdir(parents=True, exist_ok=True)

    async def request_upload_slot(
        self, checksum: str, name: str, mime_type: str, size: int
    ) -> SlotResult:
        """
        Issue an upload slot, short-circuiting bytes the store already has.

        Returns key + blob id for registered blobs, key only for stored but
        unregistered bytes, and an upload URL + key otherwise.
        """
        key = self._storage_key(checksum)
        index = self._load_index()
        blob = index["blobs"].get(checksum)
        if blob is not None:
            logger.debug("Slot for %s: already registered as %s", name, blob["id"])
            url = self._uri(self.root / blob["key"])
            return SlotResult(
                checksum=checksum, storage_key=blob["key"], blob_id=blob["id"],
                url=url, preview_url=url,
            )
        if (self.root / key).exists():
            return SlotResult(checksum=checksum, storage_key=key)

        upload_path = self.root / "uploads" / strip_algorithm(checksum)
        return SlotResult(checksum=checksum, upload_url=self._uri(upload_path), storage_key=key)

    async def transfer_file(
        self, checksum: str, upload_url: str, file: SelectedFile
    ) -> TransferResult:
        """
        Write file bytes to the upload slot after verifying their checksum.
        """
        actual = compute_checksum(file.data)
        if actual != checksum:
            return TransferResult.failed(
                checksum, f"Checksum mismatch: expected {checksum[:19]}, got {actual[:19]}"
            )
        dest = self._parse_uri(upload_url)
        await asyncio.to_thread(_write_bytes, dest, file.data)
        return TransferResult(checksum=checksum)

    async def register_blob(
        self, checksum: str, storage_key: str, name: str, mime_type: str, size: int
    ) -> RegisterResult:
        """
        Promote uploaded bytes into the object store and record the blob.
        """
        dest = self.root / storage_key
        upload = self.root / "uploads" / strip_algorithm(checksum)
        if not dest.exists():
            if not upload.exists():
                return RegisterResult.failed(checksum, f"No uploaded bytes for {storage_key}")
            dest.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.move, str(upload), dest)

        index = self._load_index()
        blob = index["blobs"].get(checksum)
        if blob is None:
            blob = {
                "id": index["next_blob_id"],
                "key": storage_key,
                "name": name,
                "mime_type": mime_type,
                "size": size,
            }
            index["blobs"][checksum] = blob
            index["next_blob_id"] += 1
            self._save_index(index)

        url = self._uri(dest)
        return RegisterResult(checksum=checksum, blob_id=blob["id"], storage_key=storage_key, url=url)

    async def link_attachment(
        self, checksum: str, blob_id: int, owner_id: int, owner_type: str
    ) -> LinkResult:
        """
        Record an attachment of a registered blob to an owner.
        """
        index = self._load_index()
        if not any(b["id"] == blob_id for b in index["blobs"].values()):
            return LinkResult.failed(checksum, f"Blob {blob_id} not found")

        attachment_id = index["next_attachment_id"]
        index["attachments"][str(attachment_id)] = {
            "blob_id": blob_id,
            "owner_id": owner_id,
            "owner_type": owner_type,
        }
        index["next_attachment_id"] += 1
        self._save_index(index)
        return LinkResult(checksum=checksum, attachment_id=attachment_id)

    async def unlink_attachment(self, checksum: str, attachment_id: int) -> UnlinkResult:
        """
        Delete an attachment record. The blob itself is kept.
        """
        index = self._load_index()
        if index["attachments"].pop(str(attachment_id), None) is None:
            return UnlinkResult.failed(checksum, f"Attachment {attachment_id} not found")
        self._save_index(index)
        return UnlinkResult(checksum=checksum)

    async def fetch_preview_url(self, checksum: str, storage_key: str) -> PreviewResult:
        """
        Return a fs:// URI for stored bytes.
        """
        path = self.root / storage_key
        if not path.exists():
            return PreviewResult.failed(checksum, f"Object not found: {storage_key}")
        return PreviewResult(checksum=checksum, preview_url=self._uri(path))

    def attachments(self) -> Dict[int, Dict[str, Any]]:
        """Current attachments keyed by attachment id."""
        return {int(k): v for k, v in self._load_index()["attachments"].items()}

    def _storage_key(self, checksum: str) -> str:
        # Shard: objects/ab/cd/full_sha256
        digest = strip_algorithm(checksum)
        return f"objects/{digest[:2]}/{digest[2:4]}/{digest}"

    def _load_index(self) -> Dict[str, Any]:
        path = self.root / INDEX_FILE
        if not path.exists():
            return {"next_blob_id": 1, "next_attachment_id": 1, "blobs": {}, "attachments": {}}
        return json.loads(path.read_text())

    def _save_index(self, index: Dict[str, Any]) -> None:
        path = self.root / INDEX_FILE
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(index, sort_keys=True, indent=2))
        os.replace(tmp, path)

    def _uri(self, path: Path) -> str:
        return f"fs://{path.absolute()}"

    def _parse_uri(self, uri: str) -> Path:
        """
        Parse fs:// URI to get file path.

        Raises:
            ValueError: If not a fs:// URI
        """
        if not uri.startswith("fs://"):
            raise ValueError(f"Expected fs:// URI, got {uri}")
        return Path(uri[5:])
