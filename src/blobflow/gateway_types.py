"""Gateway contracts for blobflow.

Every gateway call returns a flat result that echoes the checksum it was
issued for, so results can be correlated with their record even when calls
complete out of order.
"""

from typing import Optional, Protocol

from pydantic import BaseModel, model_validator

from .core import SelectedFile


class GatewayResult(BaseModel):
    """Common shape of all gateway results."""
    checksum: str
    ok: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(cls, checksum: str, error: Optional[str] = None):
        """Build a failure result for ``checksum``."""
        return cls(checksum=checksum, ok=False, error=error)

    def _require(self, *names: str) -> None:
        if not self.ok:
            return
        missing = [n for n in names if getattr(self, n) is None]
        if missing:
            raise ValueError(
                f"{type(self).__name__} success requires: {', '.join(missing)}"
            )


class SlotResult(GatewayResult):
    """Result of requesting an upload slot.

    The shape of a success decides the next state:
    - upload_url + storage_key: transfer the bytes
    - storage_key + blob_id: the server already finalized the blob
    - storage_key only: bytes already stored, register them
    """
    upload_url: Optional[str] = None
    storage_key: Optional[str] = None
    blob_id: Optional[int] = None
    preview_url: Optional[str] = None
    url: Optional[str] = None


class TransferResult(GatewayResult):
    """Result of transferring file bytes to the upload slot."""


class RegisterResult(GatewayResult):
    """Result of registering a transferred blob."""
    blob_id: Optional[int] = None
    storage_key: Optional[str] = None
    url: Optional[str] = None
    preview_url: Optional[str] = None

    @model_validator(mode='after')
    def validate_success_fields(self):
        self._require("blob_id", "storage_key", "url")
        return self


class LinkResult(GatewayResult):
    """Result of linking a blob to its owner."""
    attachment_id: Optional[int] = None

    @model_validator(mode='after')
    def validate_success_fields(self):
        self._require("attachment_id")
        return self


class UnlinkResult(GatewayResult):
    """Result of removing an attachment."""


class PreviewResult(GatewayResult):
    """Result of fetching a preview URL."""
    preview_url: Optional[str] = None

    @model_validator(mode='after')
    def validate_success_fields(self):
        self._require("preview_url")
        return self


class MutationGateway(Protocol):
    """Remote operations behind the pipeline.

    Implementations may return failure results or raise; the lifecycle
    normalizes both into the step's failure type.
    """

    async def request_upload_slot(
        self, checksum: str, name: str, mime_type: str, size: int
    ) -> SlotResult:
        """Ask for a destination to upload the bytes to."""
        ...

    async def transfer_file(
        self, checksum: str, upload_url: str, file: SelectedFile
    ) -> TransferResult:
        """Send file bytes directly to the object store."""
        ...

    async def register_blob(
        self, checksum: str, storage_key: str, name: str, mime_type: str, size: int
    ) -> RegisterResult:
        """Create the durable blob record for stored bytes."""
        ...

    async def link_attachment(
        self, checksum: str, blob_id: int, owner_id: int, owner_type: str
    ) -> LinkResult:
        """Attach a registered blob to its owning entity."""
        ...

    async def unlink_attachment(self, checksum: str, attachment_id: int) -> UnlinkResult:
        """Remove an attachment."""
        ...

    async def fetch_preview_url(self, checksum: str, storage_key: str) -> PreviewResult:
        """Look up a displayable URL for stored bytes."""
        ...


class ChecksumService(Protocol):
    """Content identity for deduplication and correlation."""

    def hash(self, data: bytes) -> str:
        """Return a deterministic, session-stable identity string."""
        ...


class BlobUpdater(Protocol):
    """Single mutation capability used by the lifecycle driver.

    The host decides how records are stored; the driver only merges
    partial field updates into the record identified by checksum.
    """

    def apply_update(self, checksum: str, /, **fields) -> None:
        ...
