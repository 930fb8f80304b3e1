from contextlib import nullcontext
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import asyncio
import logging

from filedrop.exceptions import TransientUploadFailure, UploadCancelled
from filedrop.models import Item, ItemStatus, RawItem, UploadConfig, new_id
from filedrop.orchestrator.models import UploadBatchResult
from filedrop.orchestrator.validation import ItemValidator, RawInput
from filedrop.protocols import IItemRepository, ITransport, ProgressReporter
from filedrop.services.session_store import UploadSessionStore
from filedrop.services.transport import SimulatedTransport
from filedrop.utils.events import EventEmitter, ItemProgress
from filedrop.utils.formatting import format_file_size
logger = logging.getLogger(__name__)


class UploadPipeline:
    """
    Validates a batch of raw items, uploads the valid ones concurrently and
    stores the successful ones.

    Every valid item runs as its own task and reports progress against its
    own upload_id, so concurrent items never touch each other's record.
    Failed records stay visible through `failed` until dismissed.

    Usage:
        pipeline = UploadPipeline(item_store, UploadConfig())
        pipeline.on_item_progress(lambda p: print(f"{p.name}: {p.progress}%"))
        pipeline.on_item_fail(lambda p: print(f"Failed: {p.name} ({p.error})"))

        result = await pipeline.upload_batch(raw_items, folder_id)
    """

    def __init__(
        self,
        item_store: IItemRepository,
        config: Optional[UploadConfig] = None,
        transport: Optional[ITransport] = None,
        session_store: Optional[UploadSessionStore] = None,
    ):
        self._item_store = item_store
        self._config = config or UploadConfig()
        self._transport = transport or SimulatedTransport(
            step=self._config.progress_step,
            delay=self._config.step_delay,
        )
        self._sessions = session_store
        self._validator = ItemValidator(self._config)
        self._events = EventEmitter()
        self._tracked: Dict[str, ItemProgress] = {}
        self._cancel_tokens: Dict[str, asyncio.Event] = {}
        self._lock = asyncio.Lock()

    @property
    def config(self) -> UploadConfig:
        return self._config

    # Event subscription methods
    def on_item_start(self, callback: Callable[[ItemProgress], Any]):
        """Called when an item starts uploading. Receives ItemProgress."""
        self._events.on("item_start", callback)

    def on_item_progress(self, callback: Callable[[ItemProgress], Any]):
        """Called on every accepted progress step. Receives ItemProgress."""
        self._events.on("item_progress", callback)

    def on_item_complete(self, callback: Callable[[Item, ItemProgress], Any]):
        """Called when an item is stored. Receives the stored Item and its final ItemProgress."""
        self._events.on("item_complete", callback)

    def on_item_fail(self, callback: Callable[[ItemProgress], Any]):
        """Called when an item fails after validation. Receives ItemProgress."""
        self._events.on("item_fail", callback)

    def on_batch_finish(self, callback: Callable[[UploadBatchResult], Any]):
        """Called once every item of a batch reached a terminal state."""
        self._events.on("batch_finish", callback)

    # Inspection
    @property
    def in_flight(self) -> List[ItemProgress]:
        """Records still uploading (copies)."""
        return [r.copy() for r in list(self._tracked.values()) if r.status is ItemStatus.UPLOADING]

    @property
    def failed(self) -> List[ItemProgress]:
        """Failed records retained for inspection (copies)."""
        return [r.copy() for r in list(self._tracked.values()) if r.status is ItemStatus.FAILED]

    def get_progress(self, upload_id: str) -> Optional[ItemProgress]:
        record = self._tracked.get(upload_id)
        return record.copy() if record else None

    def dismiss(self, upload_id: str) -> bool:
        """Forget a failed record. In-flight records cannot be dismissed."""
        record = self._tracked.get(upload_id)
        if record is None or record.status is not ItemStatus.FAILED:
            return False
        del self._tracked[upload_id]
        return True

    def clear_failed(self) -> int:
        failed_ids = [uid for uid, r in self._tracked.items() if r.status is ItemStatus.FAILED]
        for upload_id in failed_ids:
            del self._tracked[upload_id]
        return len(failed_ids)

    def cancel(self, upload_id: str) -> bool:
        """
        Request cancellation of an in-flight item.

        The item fails with UploadCancelled at its next progress step.
        Returns False if the item is not in flight.
        """
        token = self._cancel_tokens.get(upload_id)
        if token is None:
            return False
        token.set()
        return True

    def validate(self, raw_items: Iterable[RawInput]) -> Tuple[List[RawItem], List[str]]:
        """Split raw items into valid ones and "<name>: <reason>" errors."""
        return self._validator.partition(raw_items)

    async def upload_batch(
        self,
        raw_items: Iterable[RawInput],
        folder_id: Optional[str] = None,
    ) -> UploadBatchResult:
        """
        Upload a batch into folder_id.

        Invalid items are reported and skipped; valid items are uploaded
        concurrently. Returns once every valid item is stored or failed.
        """
        candidates = list(raw_items)
        valid, errors = self.validate(candidates)
        for error in errors:
            logger.warning(f"Rejected: {error}")

        result = UploadBatchResult(validation_errors=errors)

        session = None
        if self._sessions is not None:
            session = await self._sessions.create(folder_id=folder_id, total_items=len(candidates))
            result.session_id = session.id

        if valid:
            logger.info(
                f"Starting upload: {len(valid)} item(s) into {folder_id or 'root'} "
                f"({len(errors)} rejected)"
            )
            semaphore = asyncio.Semaphore(self._config.max_parallel) if self._config.max_parallel else None

            tasks = [
                asyncio.create_task(
                    self._upload_single_item(
                        raw=raw,
                        folder_id=folder_id,
                        index=idx,
                        total_items=len(valid),
                        semaphore=semaphore,
                    )
                )
                for idx, raw in enumerate(valid, 1)
            ]

            # Collect items as they complete
            try:
                for task in asyncio.as_completed(tasks):
                    raw, item = await task
                    if item is not None:
                        result.stored.append(item)
                    else:
                        result.transient_failures += 1
                        result.failed_items.append(raw.name)
            except asyncio.CancelledError:
                await self._cancel_remaining_tasks(tasks)
                raise

        if session is not None:
            await self._sessions.finish(
                session.id,
                stored=len(result.stored),
                failed=result.transient_failures,
                rejected=len(errors),
            )

        logger.info(
            f"Upload complete: {len(result.stored)} stored, "
            f"{result.transient_failures} failed, {len(errors)} rejected"
        )
        await self._events.emit("batch_finish", result)
        return result

    async def _upload_single_item(
        self,
        raw: RawItem,
        folder_id: Optional[str],
        index: int,
        total_items: int,
        semaphore: Optional[asyncio.Semaphore],
    ) -> Tuple[RawItem, Optional[Item]]:
        """
        Upload and store a single item.

        Never raises for item-level problems: failures are recorded on the
        item's progress record and reported as (raw, None).
        """
        upload_id = new_id()
        record = ItemProgress(
            upload_id=upload_id,
            name=raw.name,
            size=raw.size,
            type=raw.type,
            folder_id=folder_id,
        )
        token = asyncio.Event()

        async with self._lock:
            self._tracked[upload_id] = record
            self._cancel_tokens[upload_id] = token
            snapshot = record.copy()
        await self._events.emit("item_start", snapshot)

        try:
            async with semaphore or nullcontext():
                logger.info(f"[{index}/{total_items}] Uploading: {raw.name} ({format_file_size(raw.size)})")
                url = await self._transport.transfer(
                    raw,
                    upload_id,
                    self._create_progress_tracker(upload_id, raw.name, token),
                )

            if token.is_set():
                raise UploadCancelled(raw.name)
            if record.progress != 100:
                raise TransientUploadFailure(raw.name, f"transfer stopped at {record.progress}%")

            item = await self._item_store.create({
                "name": raw.name,
                "size": raw.size,
                "type": raw.type,
                "status": ItemStatus.COMPLETED,
                "progress": record.progress,
                "folder_id": folder_id,
                "url": url,
            })

        except Exception as e:
            error_msg = str(e) or f"{type(e).__name__}"
            logger.error(f"[{index}/{total_items}] Failed to upload {raw.name}: {error_msg}")

            async with self._lock:
                record.status = ItemStatus.FAILED
                record.error = error_msg
                self._cancel_tokens.pop(upload_id, None)
                snapshot = record.copy()
            await self._events.emit("item_fail", snapshot)
            return raw, None

        async with self._lock:
            self._tracked.pop(upload_id, None)
            self._cancel_tokens.pop(upload_id, None)
            snapshot = record.copy()

        logger.info(f"[{index}/{total_items}] ✓ Stored: {raw.name}")
        await self._events.emit("item_complete", item, snapshot)
        return raw, item

    def _create_progress_tracker(
        self,
        upload_id: str,
        name: str,
        token: asyncio.Event,
    ) -> ProgressReporter:
        """Create the progress callback bound to one item's upload_id."""

        async def report(percent: int) -> None:
            if token.is_set():
                raise UploadCancelled(name)
            percent = max(0, min(100, int(percent)))

            async with self._lock:
                record = self._tracked.get(upload_id)
                if record is None or record.status is not ItemStatus.UPLOADING:
                    return
                if percent < record.progress:
                    logger.warning(f"Ignoring progress regression for {name}: {record.progress}% -> {percent}%")
                    return
                record.progress = percent
                snapshot = record.copy()

            logger.debug(f"{name}: {percent}%")
            await self._events.emit("item_progress", snapshot)

        return report

    async def _cancel_remaining_tasks(self, tasks: List[asyncio.Task]) -> None:
        """Cancel all remaining tasks gracefully."""
        for task in tasks:
            if not task.done():
                task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)
