"""Stub gateways for tests."""

import asyncio
from typing import List, Optional, Set, Tuple

from blobflow.gateway_types import (
    LinkResult,
    PreviewResult,
    RegisterResult,
    SlotResult,
    TransferResult,
    UnlinkResult,
)


class RecordingGateway:
    """In-memory gateway that records every call.

    Args:
        slot_mode: "url" (full path), "blob" (server already finalized) or
            "key" (bytes already stored)
        fail: Method names that return failure results
        raise_on: Method names that raise instead of returning
    """

    def __init__(self, slot_mode: str = "url", fail: Optional[Set[str]] = None,
                 raise_on: Optional[Set[str]] = None):
        self.slot_mode = slot_mode
        self.fail = set(fail or ())
        self.raise_on = set(raise_on or ())
        self.calls: List[Tuple[str, str]] = []
        self.gate: Optional[asyncio.Event] = None
        self._next_id = 100

    def count(self, method: Optional[str] = None) -> int:
        return sum(1 for name, _ in self.calls if method is None or name == method)

    async def _enter(self, method: str, checksum: str) -> bool:
        self.calls.append((method, checksum))
        if self.gate is not None:
            await self.gate.wait()
        if method in self.raise_on:
            raise RuntimeError(f"{method} exploded")
        return method not in self.fail

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def request_upload_slot(self, checksum, name, mime_type, size):
        if not await self._enter("request_upload_slot", checksum):
            return SlotResult.failed(checksum, "slot denied")
        key = f"uploads/{checksum[7:19]}"
        if self.slot_mode == "blob":
            return SlotResult(checksum=checksum, storage_key=key, blob_id=self._new_id(),
                              url=f"https://cdn/{key}")
        if self.slot_mode == "key":
            return SlotResult(checksum=checksum, storage_key=key)
        return SlotResult(checksum=checksum, upload_url=f"https://s3/{key}?sig=1", storage_key=key)

    async def transfer_file(self, checksum, upload_url, file):
        if not await self._enter("transfer_file", checksum):
            return TransferResult.failed(checksum, "transfer refused")
        return TransferResult(checksum=checksum)

    async def register_blob(self, checksum, storage_key, name, mime_type, size):
        if not await self._enter("register_blob", checksum):
            return RegisterResult.failed(checksum, "registration refused")
        return RegisterResult(checksum=checksum, blob_id=self._new_id(), storage_key=storage_key,
                              url=f"https://cdn/{storage_key}")

    async def link_attachment(self, checksum, blob_id, owner_id, owner_type):
        if not await self._enter("link_attachment", checksum):
            return LinkResult.failed(checksum, "link refused")
        return LinkResult(checksum=checksum, attachment_id=self._new_id())

    async def unlink_attachment(self, checksum, attachment_id):
        if not await self._enter("unlink_attachment", checksum):
            return UnlinkResult.failed(checksum, "unlink refused")
        return UnlinkResult(checksum=checksum)

    async def fetch_preview_url(self, checksum, storage_key):
        if not await self._enter("fetch_preview_url", checksum):
            return PreviewResult.failed(checksum, "no preview")
        return PreviewResult(checksum=checksum, preview_url=f"https://cdn/preview/{storage_key}")



MUTATING_METHODS = {
    "request_upload_slot",
    "transfer_file",
    "register_blob",
    "link_attachment",
    "unlink_attachment",
}
