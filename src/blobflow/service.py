"""High-level service driving blobs through the pipeline."""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, List, Optional

from .collection import BlobCollection
from .core import BlobRecord, BlobState, CollectionConfig, SelectedFile
from .errors import ConfigError, InvalidTransitionError
from .gateway_types import ChecksumService, MutationGateway
from .hashing import Sha256ChecksumService
from .lifecycle import (
    BlobLifecycle,
    Effect,
    LifecycleInputs,
    Step,
    StepReport,
    advance,
)
from .storage import make_gateway

logger = logging.getLogger(__name__)


@dataclass
class BlobDeps:
    """Dependency injection container for testability."""
    gateway: MutationGateway
    checksums: ChecksumService = field(default_factory=Sha256ChecksumService)


class BlobService:
    """Drives a collection of blobs through the remote pipeline.

    The service provides:
    - an explicit evaluate/apply loop with at most one call in flight per blob
    - manual recovery (retry, removal, manual link, preview refresh)
    - dependency injection for testability

    Gateway failures never escape: they are folded into the records and
    returned as failed ``StepReport`` entries.
    """

    def __init__(
        self,
        config: Optional[CollectionConfig] = None,
        deps: Optional[BlobDeps] = None,
        collection: Optional[BlobCollection] = None,
    ):
        """Initialize with config and optional injected dependencies.

        Args:
            config: Caller-facing configuration (defaults if None)
            deps: Gateway and checksum service; built from config if None
            collection: Existing collection; built from config if None

        Raises:
            ConfigError: If the collection and config disagree on auto_link
        """
        self.config = config or CollectionConfig()
        if deps is None:
            deps = BlobDeps(gateway=make_gateway(self.config.gateway))
        self.deps = deps
        if collection is None:
            collection = BlobCollection.from_config(self.config)
        elif collection.auto_link != self.config.auto_link:
            raise ConfigError(
                f"Collection auto_link={collection.auto_link} does not match "
                f"config auto_link={self.config.auto_link}"
            )
        self.collection = collection
        self.lifecycle = BlobLifecycle(deps.gateway)

    # === Adding files ===

    def add_files(self, files: Iterable[SelectedFile]) -> List[BlobRecord]:
        """Hash and add files; duplicates and overflow are skipped.

        Returns:
            Records that were actually added
        """
        added = []
        for file in files:
            if self.collection.is_full:
                logger.info("Collection full, skipping remaining files")
                break
            checksum = self.deps.checksums.hash(file.data)
            record = self.collection.add_from_file(file, checksum)
            if record is not None:
                added.append(record)
        return added

    def add_paths(self, paths: Iterable[Path]) -> List[BlobRecord]:
        """Read local files and add them."""
        return self.add_files(SelectedFile.from_path(p) for p in paths)

    def set_owner(self, owner_id: Optional[int], owner_type: Optional[str] = None) -> None:
        """Change the entity blobs are linked to (e.g. once it was created)."""
        update = {"owner_id": owner_id}
        if owner_type is not None:
            update["owner_type"] = owner_type
        self.config = self.config.model_copy(update=update)

    # === Driving ===

    async def evaluate(self, checksum: str) -> Optional[StepReport]:
        """Evaluate one blob and perform at most one effect.

        Args:
            checksum: Blob to evaluate

        Returns:
            Report of the performed step, or None if nothing was due
        """
        record = self.collection.get(checksum)
        if record is None:
            return None
        inputs = self._inputs_for(checksum)
        effect = advance(record, inputs)
        if effect is None:
            return None
        return await self._perform(record, effect, inputs)

    async def run_pass(self) -> List[StepReport]:
        """Evaluate every blob once, concurrently."""
        reports = await asyncio.gather(
            *(self.evaluate(checksum) for checksum in self.collection.checksums)
        )
        return [r for r in reports if r is not None]

    async def drive(self, max_passes: Optional[int] = None) -> List[StepReport]:
        """Run passes until nothing is left to do.

        With ``auto_retry`` enabled, errors of blobs with retry budget left
        are cleared before each pass.

        Args:
            max_passes: Stop after this many passes (None = until idle)

        Returns:
            Reports of all performed steps, in completion order per pass
        """
        reports: List[StepReport] = []
        passes = 0
        while max_passes is None or passes < max_passes:
            if self.config.auto_retry:
                self._clear_retryable_errors()
            step_reports = await self.run_pass()
            passes += 1
            if not step_reports:
                break
            reports.extend(step_reports)
        logger.debug("Drive finished after %d passes, %d steps", passes, len(reports))
        return reports

    def run(self, max_passes: Optional[int] = None) -> List[StepReport]:
        """Synchronous wrapper around ``drive``."""
        return asyncio.run(self.drive(max_passes=max_passes))

    # === Manual operations ===

    async def retry(self, checksum: str) -> List[StepReport]:
        """Clear a blob's error and drive it again.

        Honored even when the retry budget is exhausted.
        """
        if not self.collection.retry(checksum):
            return []
        return await self._drive_one(checksum)

    async def remove(self, checksum: str) -> List[StepReport]:
        """Remove a blob, unlinking it remotely when it is linked."""
        target = self.collection.remove(checksum)
        if target is BlobState.MARKED_FOR_UNLINK:
            return await self._drive_one(checksum)
        return []

    async def link(self, checksum: str) -> StepReport:
        """Link a registered blob outside the automatic loop.

        Raises:
            InvalidTransitionError: If the blob is not REGISTERED or is
                parked with an error
            ConfigError: If no owner id is configured
        """
        record = self.collection.require(checksum)
        if record.state is not BlobState.REGISTERED or record.has_error:
            raise InvalidTransitionError(checksum, record.state.value, "link")
        if self.config.owner_id is None:
            raise ConfigError("owner_id is required to link blobs")

        inputs = replace(self._inputs_for(checksum), auto_link=True)
        effect = advance(record, inputs)
        if effect is None:
            raise InvalidTransitionError(checksum, record.state.value, "link")
        return await self._perform(record, effect, inputs)

    async def link_all(self) -> List[StepReport]:
        """Link every registered blob without an error."""
        pending = [
            r.checksum for r in self.collection.records_by_state(BlobState.REGISTERED)
            if not r.has_error
        ]
        return list(await asyncio.gather(*(self.link(c) for c in pending)))

    async def refresh_preview(self, checksum: str) -> StepReport:
        """Fetch and store a fresh preview URL for a stored blob.

        Raises:
            InvalidTransitionError: If the blob has no storage key yet
        """
        record = self.collection.require(checksum)
        if not record.storage_key:
            raise InvalidTransitionError(checksum, record.state.value, "fetch a preview for")
        fields, report = await self.lifecycle.fetch_preview(record)
        if fields:
            self.collection.apply_update(checksum, **fields)
        return report

    # === Internals ===

    async def _perform(
        self, record: BlobRecord, effect: Effect, inputs: LifecycleInputs
    ) -> StepReport:
        checksum = record.checksum
        if effect.step is Step.PURGE:
            self.collection.purge(checksum)
            return StepReport(checksum, Step.PURGE, ok=True, state=BlobState.UNLINKED)

        # Entering the pending state before awaiting is the re-entrancy guard
        self.collection.apply_update(checksum, state=effect.pending_state)
        logger.debug("%s: %s -> %s", checksum[:19], record.state.value, effect.pending_state.value)

        fields, report = await self.lifecycle.run_effect(record, effect, inputs)

        current = self.collection.get(checksum)
        if current is None or current.state is not effect.pending_state:
            logger.info("Discarding %s result for %s: blob was removed", effect.step.value, checksum[:19])
            return report
        self.collection.apply_update(checksum, **fields)
        if report.state is BlobState.UNLINKED:
            self.collection.purge(checksum)
        return report

    async def _drive_one(self, checksum: str) -> List[StepReport]:
        reports = []
        while True:
            report = await self.evaluate(checksum)
            if report is None:
                break
            reports.append(report)
            if not report.ok:
                break
        return reports

    def _inputs_for(self, checksum: str) -> LifecycleInputs:
        return LifecycleInputs(
            auto_upload=self.config.auto_upload,
            auto_link=self.config.auto_link,
            owner_id=self.config.owner_id,
            owner_type=self.config.owner_type,
            file=self.collection.file_for(checksum),
        )

    def _clear_retryable_errors(self) -> None:
        for record in self.collection.records_needing_attention():
            if record.retry_count > 0 and not record.is_pending:
                logger.debug("Auto-retrying %s (%d left)", record.checksum[:19], record.retry_count)
                self.collection.apply_update(record.checksum, error_message=None)
