"""Bulk input loading and batch result persistence for resumption."""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from story_tasks.core.exceptions import InputFileError
from story_tasks.services.batch.schemas import BatchRecord

logger = logging.getLogger(__name__)

RESULTS_SUFFIX = ".results.json"


def results_path_for(input_path: str | Path) -> Path:
    """Results file that sits next to an input file."""
    input_path = Path(input_path)
    return input_path.with_name(input_path.name + RESULTS_SUFFIX)


def load_input_records(path: str | Path) -> list[BatchRecord]:
    """Read a bulk input file into pending records.

    The file holds a JSON array of objects, or an object with the array
    under "data".

    Raises:
        InputFileError: If the file is missing, not JSON, or not a list of objects
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        raise InputFileError(path, "file not found") from None
    except json.JSONDecodeError as e:
        raise InputFileError(path, f"invalid JSON: {e}") from e

    items = raw.get("data") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise InputFileError(path, "expected a list of records or {\"data\": [...]}")

    records = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InputFileError(path, f"record {index} is not an object")
        records.append(BatchRecord.from_payload(index, item))

    logger.info(f"Loaded {len(records)} records from {path}")
    return records


class BatchResults(BaseModel):
    """Persisted batch state."""

    chain_id: int | None = None
    source: str = ""
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: dict[str, Any] = Field(default_factory=dict)
    records: list[BatchRecord] = Field(default_factory=list)


class BatchResultStore:
    """File-based storage of batch outcomes."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> BatchResults | None:
        """Load saved results, or None when no run has been saved.

        Raises:
            InputFileError: If the results file exists but is unreadable
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return BatchResults.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            raise InputFileError(self.path, f"unreadable batch results: {e}") from e

    def save(self, results: BatchResults) -> None:
        """Write results atomically (temp file + replace)."""
        results.updated_at = datetime.now(timezone.utc)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(results.model_dump_json(indent=2))
        os.replace(tmp_path, self.path)
        logger.debug(f"Saved {len(results.records)} batch records to {self.path}")
