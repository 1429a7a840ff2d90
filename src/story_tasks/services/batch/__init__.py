"""Batch processing service module."""

from story_tasks.services.batch.orchestrator import (
    BatchOrchestrator,
    RecordAction,
    merge_previous,
)
from story_tasks.services.batch.schemas import (
    BatchRecord,
    BatchReport,
    RecordStatus,
    payload_hash,
)
from story_tasks.services.batch.store import (
    BatchResults,
    BatchResultStore,
    load_input_records,
    results_path_for,
)

__all__ = [
    # Orchestrator
    "BatchOrchestrator",
    "RecordAction",
    "merge_previous",
    # Schemas
    "BatchRecord",
    "BatchReport",
    "RecordStatus",
    "payload_hash",
    # Store
    "BatchResults",
    "BatchResultStore",
    "load_input_records",
    "results_path_for",
]
