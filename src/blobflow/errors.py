"""Custom exceptions for blobflow.

This module defines typed exceptions for the upload pipeline and the
collection that owns the records. Pipeline step failures are recoverable:
the driver folds them into the record instead of raising them.
"""


class BlobflowError(RuntimeError):
    """Base class for all blobflow errors."""
    pass


# Pipeline Step Errors
class PipelineStepError(BlobflowError):
    """Base class for failed gateway calls.

    Carries the checksum of the record the call was made for and the
    message reported by the gateway.
    """

    default_message = "Pipeline step failed"

    def __init__(self, checksum: str, message: str | None = None):
        self.checksum = checksum
        self.message = message or self.default_message
        super().__init__(self.message)


class SlotRequestFailed(PipelineStepError):
    """Upload slot could not be issued."""
    default_message = "Failed to get upload URL"


class TransferFailed(PipelineStepError):
    """Direct transfer of file bytes to the object store failed."""
    default_message = "Failed to upload file"


class RegistrationFailed(PipelineStepError):
    """Blob record could not be registered after transfer."""
    default_message = "Failed to create blob"


class LinkFailed(PipelineStepError):
    """Attachment linking the blob to its owner could not be created."""
    default_message = "Failed to attach blob"


class UnlinkFailed(PipelineStepError):
    """Attachment could not be removed."""
    default_message = "Failed to unlink blob"


class PreviewFetchFailed(PipelineStepError):
    """Preview URL could not be fetched."""
    default_message = "Failed to fetch preview URL"


# Collection Errors
class CollectionError(BlobflowError):
    """Base class for invalid collection operations."""
    pass


class UnknownBlobError(CollectionError):
    """Checksum is not a member of the collection."""

    def __init__(self, checksum: str):
        self.checksum = checksum
        super().__init__(f"No blob with checksum {checksum[:19]} in collection")


class PrimarySelectionError(CollectionError):
    """Blob cannot be made primary in its current state."""

    def __init__(self, checksum: str, reason: str):
        self.checksum = checksum
        self.reason = reason
        super().__init__(f"Cannot set {checksum[:19]} as primary: {reason}")


class CollectionLockedError(CollectionError):
    """Collection is locked while the host is processing."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation} while the collection is locked")


class InvalidTransitionError(CollectionError):
    """Manual operation is not legal in the record's current state."""

    def __init__(self, checksum: str, state: str, operation: str):
        self.checksum = checksum
        self.state = state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} blob {checksum[:19]} in state {state}"
        )


# Configuration Errors
class ConfigError(BlobflowError):
    """Invalid or unreadable configuration."""
    pass
