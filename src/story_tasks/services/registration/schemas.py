"""Registration command schemas."""

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

from story_tasks.infrastructure.blockchain.events import DecodedEvent, to_jsonable
from story_tasks.infrastructure.blockchain.transaction import TransactionReceipt
from story_tasks.services.batch.schemas import BatchRecord, BatchReport


class IPAssetType(IntEnum):
    """IP asset categories understood by the registration module."""

    STORY = 1
    CHARACTER = 2
    ART = 3
    GROUP = 4
    LOCATION = 5
    ITEM = 6

    @classmethod
    def parse(cls, value: "str | int | IPAssetType") -> "IPAssetType":
        """Accept a name (any case) or the numeric value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        key = str(value).strip().upper()
        if key.isdigit():
            return cls(int(key))
        try:
            return cls[key]
        except KeyError:
            allowed = ", ".join(member.name for member in cls)
            raise ValueError(f"Unknown IP asset type '{value}', expected one of {allowed}") from None


def checksum_address(value: str) -> str:
    if not Web3.is_address(value):
        raise ValueError(f"'{value}' is not a valid address")
    return Web3.to_checksum_address(value)


class IpAssetInput(BaseModel):
    """One IP asset to register, as written in bulk input files."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(..., min_length=1, description="IP asset name")
    description: str = Field(default="", description="IP asset description")
    media_url: str = Field(default="", alias="mediaUrl", description="Media URL")
    ip_asset_type: IPAssetType = Field(..., alias="ipAssetType", description="Asset category")

    @field_validator("ip_asset_type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> IPAssetType:
        return IPAssetType.parse(value)

    def call_params(self, owner: str) -> tuple[str, str, int, str, str]:
        """Positional struct for StoryProtocol.registerIPAsset."""
        return (
            checksum_address(owner),
            self.name,
            int(self.ip_asset_type),
            self.description,
            self.media_url,
        )


class OperationResult(BaseModel):
    """Result of a single-call command."""

    tx_hash: str
    block_number: int | None = None
    gas_used: int | None = None
    event: dict[str, Any]
    logs: list[dict[str, Any]] | None = None

    @classmethod
    def from_event(
        cls, event: DecodedEvent, receipt: TransactionReceipt, include_logs: bool = False
    ) -> "OperationResult":
        return cls(
            tx_hash=receipt.tx_hash,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
            event=event.to_dict(),
            logs=to_jsonable(receipt.logs) if include_logs else None,
        )


class UploadResult(BaseModel):
    """Result of a bulk upload or reconciliation."""

    report: BatchReport
    results_path: str
    records: list[BatchRecord] = Field(default_factory=list)
