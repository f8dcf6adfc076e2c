"""Per-blob state machine.

Policy and scheduling are separate:

1. ``advance`` looks at a record and the caller's inputs and proposes at
   most one ``Effect``. It is pure and never touches the gateway.
2. ``BlobLifecycle.run_effect`` issues the single gateway call behind an
   effect and folds the result into a partial field update.

The driver (``BlobService``) moves the record into the effect's pending
substate before awaiting the call. Pending substates have no rule of their
own, so evaluating a record twice while its call is in flight proposes
nothing the second time.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

from .core import BlobRecord, BlobState, SelectedFile
from .errors import (
    LinkFailed,
    PipelineStepError,
    PreviewFetchFailed,
    RegistrationFailed,
    SlotRequestFailed,
    TransferFailed,
    UnlinkFailed,
)
from .gateway_types import GatewayResult, MutationGateway

logger = logging.getLogger(__name__)


class Step(str, Enum):
    """Unit of work the lifecycle can ask the driver to perform."""

    REQUEST_SLOT = "request_slot"
    TRANSFER = "transfer"
    REGISTER = "register"
    LINK = "link"
    UNLINK = "unlink"
    PURGE = "purge"                  # Local only, no gateway call
    FETCH_PREVIEW = "fetch_preview"  # Manual only, never proposed by advance


@dataclass(frozen=True)
class StepSpec:
    """Static description of a mutating step."""
    pending: BlobState
    stable: BlobState                # State to fall back to on failure
    failure: Type[PipelineStepError]


STEPS: Dict[Step, StepSpec] = {
    Step.REQUEST_SLOT: StepSpec(BlobState.REQUESTING_SLOT, BlobState.SELECTED_FOR_UPLOAD, SlotRequestFailed),
    Step.TRANSFER: StepSpec(BlobState.TRANSFERRING, BlobState.SLOT_READY, TransferFailed),
    Step.REGISTER: StepSpec(BlobState.REGISTERING, BlobState.TRANSFERRED, RegistrationFailed),
    Step.LINK: StepSpec(BlobState.LINKING, BlobState.REGISTERED, LinkFailed),
    Step.UNLINK: StepSpec(BlobState.UNLINKING, BlobState.MARKED_FOR_UNLINK, UnlinkFailed),
}


@dataclass(frozen=True)
class Effect:
    """A proposed transition for one record."""
    step: Step

    @property
    def is_remote(self) -> bool:
        return self.step in STEPS

    @property
    def pending_state(self) -> Optional[BlobState]:
        step_spec = STEPS.get(self.step)
        return step_spec.pending if step_spec else None


@dataclass(frozen=True)
class LifecycleInputs:
    """Everything outside the record that ``advance`` depends on."""
    auto_upload: bool = True
    auto_link: bool = False
    owner_id: Optional[int] = None
    owner_type: str = "Offer"
    file: Optional[SelectedFile] = None


@dataclass
class StepReport:
    """Outcome of one evaluated step."""
    checksum: str
    step: Step
    ok: bool
    state: BlobState
    error: Optional[PipelineStepError] = None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


# ============= Policy =============

def advance(record: BlobRecord, inputs: LifecycleInputs) -> Optional[Effect]:
    """Decide the next effect for a record, if any.

    Args:
        record: Current record
        inputs: Flags, owner and borrowed file for this evaluation

    Returns:
        Effect to perform, or None when the record must wait
    """
    state = record.state

    if state is BlobState.UNLINKED:
        return Effect(Step.PURGE)

    # Pending states are guarded by having no rule; LINKED is terminal.
    if state.is_pending or state is BlobState.LINKED:
        return None

    # Parked records wait until their error is cleared.
    if record.has_error:
        return None

    if state is BlobState.SELECTED_FOR_UPLOAD:
        if inputs.auto_upload and record.has_file_metadata:
            return Effect(Step.REQUEST_SLOT)

    elif state is BlobState.SLOT_READY:
        if inputs.file is not None and record.upload_url:
            return Effect(Step.TRANSFER)

    elif state is BlobState.TRANSFERRED:
        if record.storage_key and record.has_file_metadata:
            return Effect(Step.REGISTER)

    elif state is BlobState.REGISTERED:
        if inputs.auto_link and inputs.owner_id is not None and record.blob_id is not None:
            return Effect(Step.LINK)

    elif state is BlobState.MARKED_FOR_UNLINK:
        if inputs.auto_link and record.attachment_id is not None:
            return Effect(Step.UNLINK)

    return None


def removal_state(record: BlobRecord, auto_link: bool) -> Optional[BlobState]:
    """State a record moves to when the user removes it.

    A linked blob is only unlinked remotely while link sync is on; anything
    without an attachment is dropped straight away. Records already on the
    removal branch stay where they are.
    """
    if record.state.is_removing:
        return None
    if record.state is BlobState.LINKED and auto_link and record.is_attached:
        return BlobState.MARKED_FOR_UNLINK
    return BlobState.UNLINKED


# ============= Folding =============

def fold_success(record: BlobRecord, step: Step, result: Any) -> Dict[str, Any]:
    """Translate a successful result into field updates.

    Raises:
        SlotRequestFailed: If a slot response carries no storage key
    """
    if step is Step.REQUEST_SLOT:
        if not result.storage_key:
            raise SlotRequestFailed(record.checksum, "Upload slot response carried no storage key")
        if result.upload_url:
            return {
                "upload_url": result.upload_url,
                "storage_key": result.storage_key,
                "error_message": None,
                "state": BlobState.SLOT_READY,
            }
        fields = {
            "storage_key": result.storage_key,
            "preview_url": result.preview_url or record.preview_url,
            "url": result.url or record.url,
            "error_message": None,
        }
        if result.blob_id is not None:
            # Server already finalized the blob: skip transfer and registration
            fields.update(blob_id=result.blob_id, state=BlobState.REGISTERED)
        else:
            fields["state"] = BlobState.TRANSFERRED
        return fields

    if step is Step.TRANSFER:
        return {"error_message": None, "state": BlobState.TRANSFERRED}

    if step is Step.REGISTER:
        return {
            "blob_id": result.blob_id,
            "storage_key": result.storage_key,
            "preview_url": result.preview_url or result.url,
            "url": result.url,
            "error_message": None,
            "state": BlobState.REGISTERED,
        }

    if step is Step.LINK:
        return {
            "attachment_id": result.attachment_id,
            "error_message": None,
            "state": BlobState.LINKED,
        }

    if step is Step.UNLINK:
        return {
            "attachment_id": None,
            "error_message": None,
            "state": BlobState.UNLINKED,
        }

    raise ValueError(f"No success folding for step {step.value}")


def fold_failure(record: BlobRecord, step: Step, error: PipelineStepError) -> Dict[str, Any]:
    """Park the record at the step's stable state with one retry fewer."""
    return {
        "state": STEPS[step].stable,
        "error_message": error.message,
        "retry_count": max(record.retry_count - 1, 0),
    }


def normalize_error(
    exc: Exception,
    failure: Type[PipelineStepError],
    checksum: str,
) -> PipelineStepError:
    """Coerce anything raised during a step into the step's failure type."""
    if isinstance(exc, failure):
        return exc
    if isinstance(exc, PipelineStepError):
        return failure(checksum, exc.message)
    return failure(checksum, str(exc) or None)


def _check_result(result: GatewayResult, checksum: str, failure: Type[PipelineStepError]) -> None:
    if result.checksum != checksum:
        raise failure(checksum, f"Response for {result.checksum[:19]} does not match this blob")
    if not result.ok:
        raise failure(checksum, result.error)


# ============= Execution =============

class BlobLifecycle:
    """Issues gateway calls for effects and folds their results.

    Never raises for gateway failures: every error is normalized into the
    step's failure type and returned as a failed ``StepReport``.
    """

    def __init__(self, gateway: MutationGateway):
        self.gateway = gateway

    async def run_effect(
        self,
        record: BlobRecord,
        effect: Effect,
        inputs: LifecycleInputs,
    ) -> Tuple[Dict[str, Any], StepReport]:
        """Perform one remote effect.

        Args:
            record: Record as it was when the effect was proposed
            effect: Remote effect from ``advance``
            inputs: Inputs the effect was proposed with

        Returns:
            Tuple of (field updates, report)
        """
        step_spec = STEPS[effect.step]
        checksum = record.checksum
        try:
            result = await self._call(effect.step, record, inputs)
            _check_result(result, checksum, step_spec.failure)
            fields = fold_success(record, effect.step, result)
        except Exception as exc:
            error = normalize_error(exc, step_spec.failure, checksum)
            if isinstance(exc, PipelineStepError):
                logger.warning("%s failed for %s: %s", effect.step.value, checksum[:19], error.message)
            else:
                logger.warning(
                    "%s raised for %s: %r", effect.step.value, checksum[:19], exc, exc_info=True
                )
            fields = fold_failure(record, effect.step, error)
            return fields, StepReport(checksum, effect.step, ok=False, state=fields["state"], error=error)

        logger.info("%s succeeded for %s -> %s", effect.step.value, checksum[:19], fields["state"].value)
        return fields, StepReport(checksum, effect.step, ok=True, state=fields["state"])

    async def fetch_preview(self, record: BlobRecord) -> Tuple[Dict[str, Any], StepReport]:
        """Fetch a preview URL for a record that already has a storage key.

        Failures leave the record untouched and are only reported.
        """
        checksum = record.checksum
        try:
            result = await self.gateway.fetch_preview_url(checksum, record.storage_key)
            _check_result(result, checksum, PreviewFetchFailed)
        except Exception as exc:
            error = normalize_error(exc, PreviewFetchFailed, checksum)
            logger.warning("Preview fetch failed for %s: %s", checksum[:19], error.message)
            return {}, StepReport(checksum, Step.FETCH_PREVIEW, ok=False, state=record.state, error=error)
        return (
            {"preview_url": result.preview_url},
            StepReport(checksum, Step.FETCH_PREVIEW, ok=True, state=record.state),
        )

    async def _call(self, step: Step, record: BlobRecord, inputs: LifecycleInputs) -> GatewayResult:
        gw = self.gateway
        if step is Step.REQUEST_SLOT:
            return await gw.request_upload_slot(
                record.checksum, record.name, record.mime_type, record.size
            )
        if step is Step.TRANSFER:
            return await gw.transfer_file(record.checksum, record.upload_url, inputs.file)
        if step is Step.REGISTER:
            return await gw.register_blob(
                record.checksum, record.storage_key, record.name, record.mime_type, record.size
            )
        if step is Step.LINK:
            return await gw.link_attachment(
                record.checksum, record.blob_id, inputs.owner_id, inputs.owner_type
            )
        if step is Step.UNLINK:
            return await gw.unlink_attachment(record.checksum, record.attachment_id)
        raise ValueError(f"Step {step.value} has no gateway call")
