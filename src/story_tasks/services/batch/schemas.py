"""Batch processing schemas."""

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from story_tasks.infrastructure.blockchain.events import DecodedEvent


class RecordStatus(str, Enum):
    """Outcome of a batch record."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def payload_hash(payload: dict[str, Any]) -> str:
    """Stable sha256 of a record payload (canonical JSON)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class BatchRecord(BaseModel):
    """One unit of work in a bulk operation."""

    index: int = Field(..., ge=0, description="Position in the input file")
    source_payload: dict[str, Any] = Field(..., description="Record as read from input")
    payload_hash: str = Field(..., description="sha256 of the canonical payload")
    status: RecordStatus = Field(default=RecordStatus.PENDING)
    tx_hash: str | None = Field(None, description="Submitted transaction hash")
    event: dict[str, Any] | None = Field(None, description="Decoded event on success")
    error: str | None = Field(None, description="Failure reason")
    error_kind: str | None = Field(None, description="Failure type name")
    unconfirmed: bool = Field(
        False, description="Sent but never confirmed; re-query tx_hash before resubmitting"
    )
    previous_errors: list[str] = Field(
        default_factory=list, description="Failures from earlier attempts"
    )
    updated_at: datetime | None = None

    @classmethod
    def from_payload(cls, index: int, payload: dict[str, Any]) -> "BatchRecord":
        return cls(index=index, source_payload=payload, payload_hash=payload_hash(payload))

    @property
    def is_terminal(self) -> bool:
        return self.status != RecordStatus.PENDING

    @property
    def awaiting_confirmation(self) -> bool:
        """Failed with a transaction whose outcome is still unknown."""
        return self.status == RecordStatus.FAILED and self.unconfirmed and bool(self.tx_hash)

    def _require_pending(self) -> None:
        if self.status != RecordStatus.PENDING:
            raise ValueError(
                f"Record {self.index} already {self.status.value}; "
                "reopen() a failed record before retrying it"
            )

    def mark_succeeded(self, event: DecodedEvent) -> None:
        """Transition pending -> succeeded."""
        self._require_pending()
        self.status = RecordStatus.SUCCEEDED
        self.tx_hash = event.tx_hash
        self.event = event.to_dict()
        self.error = None
        self.error_kind = None
        self.unconfirmed = False
        self.updated_at = datetime.now(timezone.utc)

    def mark_failed(
        self,
        reason: str,
        kind: str,
        tx_hash: str | None = None,
        unconfirmed: bool = False,
    ) -> None:
        """Transition pending -> failed.

        ``unconfirmed`` flags a sent transaction whose outcome is unknown.
        """
        self._require_pending()
        self.status = RecordStatus.FAILED
        self.error = reason
        self.error_kind = kind
        self.unconfirmed = unconfirmed
        if tx_hash:
            self.tx_hash = tx_hash
        self.updated_at = datetime.now(timezone.utc)

    def reopen(self) -> None:
        """Move a failed record back to pending for a retry, keeping its history."""
        if self.status != RecordStatus.FAILED:
            raise ValueError(f"Only failed records can be reopened, record {self.index} is {self.status.value}")
        entry = f"{self.error_kind}: {self.error}"
        if self.tx_hash:
            entry += f" (tx {self.tx_hash})"
        self.previous_errors.append(entry)
        self.status = RecordStatus.PENDING
        self.error = None
        self.error_kind = None
        self.tx_hash = None
        self.unconfirmed = False


class BatchReport(BaseModel):
    """Summary of a batch run."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    unconfirmed: int = Field(default=0, description="Failed with an outcome still unknown")
    skipped: int = Field(default=0, description="Already succeeded before this run")
    processed: int = Field(default=0, description="Records attempted in this run")

    @classmethod
    def from_records(
        cls, records: list[BatchRecord], skipped: int = 0, processed: int = 0
    ) -> "BatchReport":
        counts = {status: 0 for status in RecordStatus}
        for record in records:
            counts[record.status] += 1
        return cls(
            total=len(records),
            succeeded=counts[RecordStatus.SUCCEEDED],
            failed=counts[RecordStatus.FAILED],
            pending=counts[RecordStatus.PENDING],
            unconfirmed=sum(1 for r in records if r.awaiting_confirmation),
            skipped=skipped,
            processed=processed,
        )

    @property
    def has_failures(self) -> bool:
        return self.failed > 0
