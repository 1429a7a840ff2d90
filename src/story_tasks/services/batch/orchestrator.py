"""Batch orchestration over per-record contract calls.

Features:
- Per-record failure isolation (one bad record never aborts the run)
- Resumption: records already succeeded are skipped
- Records with an unconfirmed transaction are held back until confirmed
- Progress is handed to on_chunk even when a chunk aborts
- Chunked submission pacing with optional in-chunk concurrency
- Results reported in input index order
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from story_tasks.core.exceptions import StoryTasksError, UnconfirmedTransaction
from story_tasks.infrastructure.blockchain.events import DecodedEvent
from story_tasks.services.batch.schemas import BatchRecord, BatchReport, RecordStatus

logger = logging.getLogger(__name__)

RecordAction = Callable[[BatchRecord], Awaitable[DecodedEvent]]
ChunkCallback = Callable[[list[BatchRecord]], Awaitable[None] | None]


def merge_previous(
    records: list[BatchRecord], previous: list[BatchRecord]
) -> list[BatchRecord]:
    """Carry prior outcomes over to freshly loaded records.

    A previous outcome is reused only when both the index and the payload
    hash match; edited records start again as pending.
    """
    by_index = {record.index: record for record in previous}
    merged = []
    for record in records:
        prior = by_index.get(record.index)
        if prior is not None and prior.payload_hash == record.payload_hash:
            merged.append(prior)
        else:
            if prior is not None:
                logger.info(f"Record {record.index} payload changed; resetting to pending")
            merged.append(record)
    return merged


class BatchOrchestrator:
    """Drives a record action across a batch with per-record outcomes."""

    def __init__(
        self,
        batch_size: int = 100,
        concurrency: int = 1,
        on_chunk: ChunkCallback | None = None,
    ):
        """Initialize orchestrator.

        Args:
            batch_size: Records per chunk
            concurrency: Actions run concurrently within a chunk
            on_chunk: Called with all records after each chunk (e.g. to persist)
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.on_chunk = on_chunk
        self.last_report: BatchReport | None = None

    def chunks(self, records: list[BatchRecord]) -> list[list[BatchRecord]]:
        """Split records into submission chunks."""
        return [
            records[start : start + self.batch_size]
            for start in range(0, len(records), self.batch_size)
        ]

    async def run(
        self, records: list[BatchRecord], action: RecordAction
    ) -> list[BatchRecord]:
        """Process every non-succeeded record.

        Failed records from an earlier run are reopened and retried, except
        those awaiting confirmation of a sent transaction, which stay failed
        until their receipt is re-queried.
        StoryTasksError raised by the action marks the record failed;
        any other exception propagates once the chunk has settled and
        on_chunk has seen its progress.

        Args:
            records: Records to process (any order)
            action: Async callable producing the decoded event for a record

        Returns:
            All records in index order with their outcomes
        """
        ordered = sorted(records, key=lambda r: r.index)
        skipped = sum(1 for r in ordered if r.status == RecordStatus.SUCCEEDED)
        processed = 0
        semaphore = asyncio.Semaphore(self.concurrency)

        logger.info(
            f"Starting batch: {len(ordered)} records, {skipped} already succeeded, "
            f"chunk size {self.batch_size}, concurrency {self.concurrency}"
        )

        for number, chunk in enumerate(self.chunks(ordered), start=1):
            todo = []
            for record in chunk:
                if record.status == RecordStatus.SUCCEEDED:
                    continue
                if record.awaiting_confirmation:
                    logger.warning(
                        f"Record {record.index} has unconfirmed tx {record.tx_hash}; "
                        "not resubmitting"
                    )
                    continue
                if record.status == RecordStatus.FAILED:
                    record.reopen()
                todo.append(record)

            try:
                outcomes = await asyncio.gather(
                    *(self._process(record, action, semaphore) for record in todo),
                    return_exceptions=True,
                )
            finally:
                await self._notify(ordered)

            processed += len(todo)
            logger.info(
                f"Chunk {number}: {len(todo)} processed, "
                f"{sum(1 for r in todo if r.status == RecordStatus.FAILED)} failed"
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    logger.error(f"Chunk {number} aborted: {outcome}")
                    raise outcome

        self.last_report = BatchReport.from_records(ordered, skipped=skipped, processed=processed)
        logger.info(f"Batch finished: {self.last_report.model_dump()}")
        return ordered

    async def _notify(self, records: list[BatchRecord]) -> None:
        if self.on_chunk is None:
            return
        result = self.on_chunk(records)
        if inspect.isawaitable(result):
            await result

    async def _process(
        self, record: BatchRecord, action: RecordAction, semaphore: asyncio.Semaphore
    ) -> None:
        async with semaphore:
            try:
                event = await action(record)
            except StoryTasksError as e:
                tx_hash: Any = getattr(e, "tx_hash", None)
                logger.error(f"Record {record.index} failed: {e}")
                record.mark_failed(
                    str(e),
                    type(e).__name__,
                    tx_hash,
                    unconfirmed=isinstance(e, UnconfirmedTransaction),
                )
                return

        record.mark_succeeded(event)
        logger.debug(f"Record {record.index} succeeded in {event.tx_hash}")
