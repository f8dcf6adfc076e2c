"""Ordered, bounded collection of blob records.

The collection owns every record and is the only place records change.
Lifecycle results come back through ``apply_update``, which silently drops
updates for checksums that are no longer members. A blob removed while its
gateway call is in flight is therefore never re-inserted when the call
completes.
"""

import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .core import (
    PRIMARY_ELIGIBLE_STATES,
    TRANSFER_COMPLETE_STATES,
    BlobRecord,
    BlobState,
    CollectionConfig,
    SelectedFile,
)
from .errors import (
    CollectionLockedError,
    PrimarySelectionError,
    UnknownBlobError,
)
from .lifecycle import removal_state

logger = logging.getLogger(__name__)

ChangeHook = Callable[[Tuple[BlobRecord, ...]], None]
PrimaryHook = Callable[[Optional[str]], None]


class BlobCollection:
    """Records in display order plus an optional primary pointer.

    Invariants:
    - at most one record per checksum
    - never more than ``max_items`` records added through ``add_from_file``
    - the primary pointer references a member or is None
    """

    def __init__(
        self,
        *,
        max_items: int = 10,
        max_retries: int = 3,
        auto_link: bool = False,
        records: Optional[Iterable[BlobRecord]] = None,
        primary_checksum: Optional[str] = None,
        on_change: Optional[ChangeHook] = None,
        on_primary_change: Optional[PrimaryHook] = None,
    ):
        """Initialize, optionally from records of an existing entity.

        Args:
            max_items: Capacity enforced when adding files
            max_retries: Retry budget given to new records
            auto_link: Whether removal of linked blobs unlinks them remotely
            records: Initial records (duplicates are dropped; records without
                an explicit retry count get ``max_retries``)
            primary_checksum: Initial primary; ignored unless a member
            on_change: Called with all records after every mutation
            on_primary_change: Called with the new primary checksum
        """
        self.max_items = max_items
        self.max_retries = max_retries
        self.auto_link = auto_link
        self.on_change = on_change
        self.on_primary_change = on_primary_change
        self.locked = False

        self._records: List[BlobRecord] = []
        self._files: Dict[str, SelectedFile] = {}
        for record in records or ():
            if self._index_of(record.checksum) is not None:
                logger.warning("Dropping duplicate initial blob %s", record.checksum[:19])
                continue
            if "retry_count" not in record.model_fields_set:
                record = record.model_copy(update={"retry_count": max_retries})
            self._records.append(record)

        self._primary: Optional[str] = None
        if primary_checksum is not None:
            if self._index_of(primary_checksum) is None:
                logger.warning("Ignoring primary %s: not in collection", primary_checksum[:19])
            else:
                self._primary = primary_checksum

    @classmethod
    def from_config(
        cls,
        config: CollectionConfig,
        records: Optional[Iterable[BlobRecord]] = None,
        on_change: Optional[ChangeHook] = None,
        on_primary_change: Optional[PrimaryHook] = None,
    ) -> "BlobCollection":
        """Build a collection from caller-facing configuration."""
        return cls(
            max_items=config.max_items,
            max_retries=config.max_retries,
            auto_link=config.auto_link,
            records=records,
            primary_checksum=config.primary_checksum,
            on_change=on_change,
            on_primary_change=on_primary_change,
        )

    # ============= Reading =============

    @property
    def records(self) -> Tuple[BlobRecord, ...]:
        return tuple(self._records)

    @property
    def checksums(self) -> List[str]:
        return [r.checksum for r in self._records]

    @property
    def primary(self) -> Optional[str]:
        return self._primary

    @property
    def is_full(self) -> bool:
        return len(self._records) >= self.max_items

    @property
    def is_settled(self) -> bool:
        """Check if every visible blob reached its final state.

        Final means LINKED, or REGISTERED while link sync is off (the
        host links those later).
        """
        for record in self.visible_records():
            if record.state is BlobState.LINKED:
                continue
            if record.state is BlobState.REGISTERED and not self.auto_link:
                continue
            return False
        return True

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, checksum: object) -> bool:
        return isinstance(checksum, str) and self._index_of(checksum) is not None

    def __iter__(self) -> Iterator[BlobRecord]:
        return iter(tuple(self._records))

    def get(self, checksum: str) -> Optional[BlobRecord]:
        index = self._index_of(checksum)
        return self._records[index] if index is not None else None

    def require(self, checksum: str) -> BlobRecord:
        """Get a record or raise UnknownBlobError."""
        record = self.get(checksum)
        if record is None:
            raise UnknownBlobError(checksum)
        return record

    def file_for(self, checksum: str) -> Optional[SelectedFile]:
        """Raw file still held for a record, if any."""
        return self._files.get(checksum)

    def visible_records(self) -> List[BlobRecord]:
        return [r for r in self._records if r.is_visible]

    def records_by_state(self, state: BlobState) -> List[BlobRecord]:
        return [r for r in self._records if r.state is state]

    def records_needing_attention(self) -> List[BlobRecord]:
        """Get records parked with an error."""
        return [r for r in self._records if r.has_error]

    # ============= Mutation =============

    def add_from_file(self, file: SelectedFile, checksum: str) -> Optional[BlobRecord]:
        """Start tracking a selected file.

        Args:
            file: Raw file; held until its bytes are transferred
            checksum: Content identity of the file

        Returns:
            The new record, or None if the checksum is already tracked or
            the collection is full
        """
        self._ensure_unlocked("add blobs")
        if self._index_of(checksum) is not None:
            logger.debug("Skipping %s: already in collection", file.name)
            return None
        if self.is_full:
            logger.debug("Skipping %s: collection full (%d)", file.name, self.max_items)
            return None

        record = BlobRecord(
            checksum=checksum,
            name=file.name,
            mime_type=file.mime_type,
            size=file.size,
            state=BlobState.SELECTED_FOR_UPLOAD,
            retry_count=self.max_retries,
        )
        self._records.append(record)
        self._files[checksum] = file
        self._notify()
        return record

    def remove(self, checksum: str) -> Optional[BlobState]:
        """Route a record onto the removal branch.

        Linked blobs are marked for unlink while link sync is on; anything
        else is dropped immediately. Removal ignores error state.

        Returns:
            The state the record moved to, or None if it was already being
            removed

        Raises:
            UnknownBlobError: If checksum is not a member
        """
        self._ensure_unlocked("remove blobs")
        record = self.require(checksum)
        target = removal_state(record, self.auto_link)
        if self._primary == checksum:
            self._set_primary(None)
        if target is None:
            return None

        logger.debug("Removing %s from %s -> %s", checksum[:19], record.state.value, target.value)
        if target is BlobState.UNLINKED:
            self.purge(checksum)
        else:
            self.apply_update(checksum, state=target, error_message=None)
        return target

    def purge(self, checksum: str) -> None:
        """Permanently drop a record and release its raw file."""
        index = self._index_of(checksum)
        self._files.pop(checksum, None)
        if index is None:
            return
        del self._records[index]
        if self._primary == checksum:
            self._set_primary(None)
        logger.debug("Purged %s", checksum[:19])
        self._notify()

    def reorder(self, from_checksum: str, to_checksum: str) -> None:
        """Move one record to another record's position.

        All other records keep their relative order.
        """
        self._ensure_unlocked("reorder blobs")
        old_index = self._index_of(from_checksum)
        new_index = self._index_of(to_checksum)
        if old_index is None:
            raise UnknownBlobError(from_checksum)
        if new_index is None:
            raise UnknownBlobError(to_checksum)
        if old_index == new_index:
            return
        record = self._records.pop(old_index)
        self._records.insert(new_index, record)
        self._notify()

    def apply_update(self, checksum: str, /, **fields) -> None:
        """Merge partial fields into a record.

        This is the only path the lifecycle uses to change records. The
        merge is validated as a whole and either replaces the record or
        leaves it untouched.

        Args:
            checksum: Record to update; silently ignored if not a member
            **fields: BlobRecord fields to overwrite

        Raises:
            ValueError: On unknown fields, a checksum change, a retry count
                increase or values that fail validation
        """
        unknown = set(fields) - set(BlobRecord.model_fields)
        if unknown:
            raise ValueError(f"Unknown blob fields: {', '.join(sorted(unknown))}")
        if fields.get("checksum", checksum) != checksum:
            raise ValueError("Blob checksum cannot change")

        index = self._index_of(checksum)
        if index is None:
            logger.debug("Dropping update for %s: no longer in collection", checksum[:19])
            return

        current = self._records[index]
        if fields.get("retry_count", current.retry_count) > current.retry_count:
            raise ValueError("Blob retry count cannot increase")

        merged = BlobRecord.model_validate({**current.model_dump(), **fields})
        self._records[index] = merged
        if merged.state in TRANSFER_COMPLETE_STATES:
            self._files.pop(checksum, None)
        self._notify()

    def retry(self, checksum: str) -> bool:
        """Clear a record's error so it can be evaluated again.

        The record already sits at the stable state the failed step started
        from; the retry budget is not touched.

        Returns:
            True if an error was cleared
        """
        self._ensure_unlocked("retry blobs")
        record = self.require(checksum)
        if not record.has_error:
            return False
        self.apply_update(checksum, error_message=None)
        return True

    def set_primary(self, checksum: str) -> None:
        """Mark a registered or linked blob as the primary one.

        Raises:
            PrimarySelectionError: If the checksum is not a member or the
                blob is not registered yet; nothing changes
        """
        self._ensure_unlocked("change the primary blob")
        record = self.get(checksum)
        if record is None:
            raise PrimarySelectionError(checksum, "not in collection")
        if record.state not in PRIMARY_ELIGIBLE_STATES:
            raise PrimarySelectionError(checksum, f"state is {record.state.value}")
        self._set_primary(checksum)

    def clear_primary(self) -> None:
        self._ensure_unlocked("change the primary blob")
        self._set_primary(None)

    # ============= Internals =============

    def _index_of(self, checksum: str) -> Optional[int]:
        for i, record in enumerate(self._records):
            if record.checksum == checksum:
                return i
        return None

    def _ensure_unlocked(self, operation: str) -> None:
        if self.locked:
            raise CollectionLockedError(operation)

    def _set_primary(self, checksum: Optional[str]) -> None:
        if self._primary == checksum:
            return
        self._primary = checksum
        if self.on_primary_change is not None:
            self.on_primary_change(checksum)

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.records)
