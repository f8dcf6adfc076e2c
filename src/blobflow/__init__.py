"""Upload pipeline state machine and blob collection orchestration."""

from .collection import BlobCollection
from .core import (
    BlobRecord,
    BlobState,
    CollectionConfig,
    GatewayPolicy,
    SelectedFile,
)
from .errors import (
    BlobflowError,
    CollectionLockedError,
    ConfigError,
    InvalidTransitionError,
    LinkFailed,
    PipelineStepError,
    PreviewFetchFailed,
    PrimarySelectionError,
    RegistrationFailed,
    SlotRequestFailed,
    TransferFailed,
    UnknownBlobError,
    UnlinkFailed,
)
from .gateway_types import (
    BlobUpdater,
    ChecksumService,
    LinkResult,
    MutationGateway,
    PreviewResult,
    RegisterResult,
    SlotResult,
    TransferResult,
    UnlinkResult,
)
from .hashing import Sha256ChecksumService
from .lifecycle import BlobLifecycle, Effect, LifecycleInputs, Step, StepReport, advance
from .service import BlobDeps, BlobService

__version__ = "0.1.0"

__all__ = [
    "BlobCollection",
    "BlobDeps",
    "BlobLifecycle",
    "BlobRecord",
    "BlobService",
    "BlobState",
    "BlobUpdater",
    "BlobflowError",
    "ChecksumService",
    "CollectionConfig",
    "CollectionLockedError",
    "ConfigError",
    "Effect",
    "GatewayPolicy",
    "InvalidTransitionError",
    "LifecycleInputs",
    "LinkFailed",
    "LinkResult",
    "MutationGateway",
    "PipelineStepError",
    "PreviewFetchFailed",
    "PreviewResult",
    "PrimarySelectionError",
    "RegisterResult",
    "RegistrationFailed",
    "SelectedFile",
    "Sha256ChecksumService",
    "SlotRequestFailed",
    "SlotResult",
    "Step",
    "StepReport",
    "TransferFailed",
    "TransferResult",
    "UnknownBlobError",
    "UnlinkFailed",
    "UnlinkResult",
    "advance",
]
