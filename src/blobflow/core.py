"""Core data models for blobflow.

Blob Lifecycle:
---------------
Every blob moves forward through a fixed pipeline of remote steps:

    SELECTED_FOR_UPLOAD -> REQUESTING_SLOT -> SLOT_READY -> TRANSFERRING
    -> TRANSFERRED -> REGISTERING -> REGISTERED -> LINKING -> LINKED

and, when removed after being linked:

    MARKED_FOR_UNLINK -> UNLINKING -> UNLINKED

The "-ING" states are pending substates entered right before a gateway call
is issued. A failed call returns the record to the stable state it came
from, with an error message and one retry fewer.
"""

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator


# ============= States =============

class BlobState(str, Enum):
    """Position of a blob in the upload pipeline."""

    SELECTED_FOR_UPLOAD = "SELECTED_FOR_UPLOAD"
    REQUESTING_SLOT = "REQUESTING_SLOT"
    SLOT_READY = "SLOT_READY"
    TRANSFERRING = "TRANSFERRING"
    TRANSFERRED = "TRANSFERRED"
    REGISTERING = "REGISTERING"
    REGISTERED = "REGISTERED"
    LINKING = "LINKING"
    LINKED = "LINKED"
    MARKED_FOR_UNLINK = "MARKED_FOR_UNLINK"
    UNLINKING = "UNLINKING"
    UNLINKED = "UNLINKED"

    @property
    def is_pending(self) -> bool:
        """Check if a gateway call is in flight for this state."""
        return self in PENDING_STATES

    @property
    def is_removing(self) -> bool:
        """Check if the state belongs to the removal branch."""
        return self in REMOVAL_STATES


PENDING_STATES = frozenset({
    BlobState.REQUESTING_SLOT,
    BlobState.TRANSFERRING,
    BlobState.REGISTERING,
    BlobState.LINKING,
    BlobState.UNLINKING,
})

REMOVAL_STATES = frozenset({
    BlobState.MARKED_FOR_UNLINK,
    BlobState.UNLINKING,
    BlobState.UNLINKED,
})

# States in which the raw file bytes are no longer needed
TRANSFER_COMPLETE_STATES = frozenset({
    BlobState.TRANSFERRED,
    BlobState.REGISTERING,
    BlobState.REGISTERED,
    BlobState.LINKING,
    BlobState.LINKED,
})

# States a blob may be in to become the primary one
PRIMARY_ELIGIBLE_STATES = frozenset({BlobState.LINKED, BlobState.REGISTERED})


# ============= Records =============

class BlobRecord(BaseModel):
    """A tracked blob and everything the pipeline learned about it.

    Records are immutable; every change produces a new record through
    ``BlobCollection.apply_update``.
    """

    model_config = {"frozen": True}

    checksum: str
    name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    state: BlobState = BlobState.SELECTED_FOR_UPLOAD
    upload_url: Optional[str] = None
    storage_key: Optional[str] = None
    preview_url: Optional[str] = None
    url: Optional[str] = None
    blob_id: Optional[int] = None
    attachment_id: Optional[int] = None
    error_message: Optional[str] = None
    retry_count: int = Field(default=0, ge=0)

    @property
    def has_error(self) -> bool:
        """Check if the record is parked with an error."""
        return self.error_message is not None

    @property
    def can_retry(self) -> bool:
        """Check if a manual retry still has budget left."""
        return self.has_error and self.retry_count > 0

    @property
    def is_pending(self) -> bool:
        return self.state.is_pending

    @property
    def is_attached(self) -> bool:
        return self.attachment_id is not None

    @property
    def is_visible(self) -> bool:
        """Removal-branch records are hidden from presentation."""
        return not self.state.is_removing

    @property
    def has_file_metadata(self) -> bool:
        """Check if name, MIME type and a non-zero size are known."""
        return bool(self.name and self.mime_type and self.size)


@dataclass(frozen=True)
class SelectedFile:
    """Raw file chosen by the user, borrowed by the transfer step."""

    name: str
    mime_type: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Path) -> "SelectedFile":
        """Read a local file into memory.

        Args:
            path: File to read

        Returns:
            SelectedFile with guessed MIME type (application/octet-stream
            when unknown)
        """
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            mime_type=mime_type or "application/octet-stream",
            data=path.read_bytes(),
        )


# ============= Configuration =============

class GatewayPolicy(BaseModel):
    """Which gateway backs the pipeline and where it keeps its data."""

    provider: str = "fs"            # "fs"
    root: str = ""                  # Directory for the fs provider


class CollectionConfig(BaseModel):
    """Caller-facing configuration (stored in .blobflow/config.yaml)."""

    max_items: int = Field(default=10, ge=1)
    auto_upload: bool = True
    auto_link: bool = False         # Also governs unlink on removal
    auto_retry: bool = False
    max_retries: int = Field(default=3, ge=1)   # Budget must allow a first attempt
    owner_id: Optional[int] = None
    owner_type: str = "Offer"
    primary_checksum: Optional[str] = None
    gateway: GatewayPolicy = Field(default_factory=GatewayPolicy)

    @model_validator(mode='after')
    def validate_owner_type(self):
        """Linking needs an owner type to address the owning entity."""
        if self.auto_link and not self.owner_type:
            raise ValueError("owner_type is required when auto_link is enabled")
        return self
