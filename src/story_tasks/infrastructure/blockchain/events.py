"""Event decoding from transaction receipts."""

import logging
from dataclasses import dataclass, field
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import event_abi_to_log_topic, to_bytes, to_hex
from eth_utils.abi import collapse_if_tuple

from story_tasks.core.exceptions import DecodeError, EventNotFound
from story_tasks.infrastructure.blockchain.contracts import ContractHandle
from story_tasks.infrastructure.blockchain.transaction import (
    ReceiptStatus,
    TransactionReceipt,
)

logger = logging.getLogger(__name__)

# Indexed values of these types are stored as their keccak hash
DYNAMIC_TYPES = ("string", "bytes")


@dataclass
class DecodedEvent:
    """Decoded contract event."""

    event_name: str
    args: dict[str, Any]
    address: str
    tx_hash: str
    log_index: int
    block_number: int | None = None
    raw_topics: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation."""
        return {
            "event_name": self.event_name,
            "args": to_jsonable(self.args),
            "address": self.address,
            "tx_hash": self.tx_hash,
            "log_index": self.log_index,
            "block_number": self.block_number,
        }


def to_jsonable(value: Any) -> Any:
    """Convert decoded ABI values and raw log fields into JSON-safe values."""
    if isinstance(value, (bytes, bytearray)):
        return to_hex(value)
    if isinstance(value, dict) or hasattr(value, "items"):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return to_bytes(hexstr=value)
    raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def _is_dynamic(abi_type: str) -> bool:
    return abi_type in DYNAMIC_TYPES or abi_type.endswith("]") or abi_type.startswith("(")


def _same_address(left: Any, right: str) -> bool:
    if not isinstance(left, str):
        left = to_hex(left)
    return left.lower() == right.lower()


def decode_log(event_abi: dict[str, Any], log: dict[str, Any]) -> dict[str, Any]:
    """Decode a single log entry against an event ABI.

    Indexed dynamic values (strings, bytes, arrays, tuples) only exist on
    chain as a topic hash and are returned as that hash.

    Raises:
        ValueError: If topics or data do not match the declared inputs
    """
    inputs = event_abi.get("inputs", [])
    topics = [_as_bytes(t) for t in log.get("topics", [])]
    data = _as_bytes(log.get("data") or b"")

    indexed = [i for i in inputs if i.get("indexed")]
    non_indexed = [i for i in inputs if not i.get("indexed")]

    offset = 0 if event_abi.get("anonymous") else 1
    if len(topics) - offset != len(indexed):
        raise ValueError(
            f"expected {len(indexed)} indexed topics, log has {len(topics) - offset}"
        )

    args: dict[str, Any] = {}
    for param, topic in zip(indexed, topics[offset:]):
        abi_type = collapse_if_tuple(param)
        if _is_dynamic(abi_type):
            args[param["name"]] = topic
        else:
            args[param["name"]] = decode([abi_type], topic)[0]

    types = [collapse_if_tuple(p) for p in non_indexed]
    values = decode(types, data) if types else ()
    for param, value in zip(non_indexed, values):
        args[param["name"]] = value

    # Restore declaration order
    return {p["name"]: args[p["name"]] for p in inputs}


def _matching_logs(
    receipt: TransactionReceipt, handle: ContractHandle, event_abi: dict[str, Any]
) -> list[tuple[int, dict[str, Any]]]:
    topic = event_abi_to_log_topic(event_abi)
    matches = []
    for position, log in enumerate(receipt.logs):
        topics = log.get("topics") or []
        if not topics or _as_bytes(topics[0]) != topic:
            continue
        if not _same_address(log.get("address", ""), handle.address):
            # Same event from another contract reached through a cross-contract call
            continue
        matches.append((position, log))
    return matches


def _decode_match(
    receipt: TransactionReceipt,
    handle: ContractHandle,
    event_abi: dict[str, Any],
    position: int,
    log: dict[str, Any],
) -> DecodedEvent:
    event_name = event_abi["name"]
    try:
        args = decode_log(event_abi, log)
    except (DecodingError, ValueError, TypeError, OverflowError) as e:
        raise DecodeError(event_name, handle.address, receipt.tx_hash, str(e)) from e

    return DecodedEvent(
        event_name=event_name,
        args=args,
        address=handle.address,
        tx_hash=receipt.tx_hash,
        log_index=log.get("logIndex", position),
        block_number=receipt.block_number,
        raw_topics=[to_hex(_as_bytes(t)) for t in log.get("topics", [])],
    )


def decode_event(
    receipt: TransactionReceipt, handle: ContractHandle, event_name: str
) -> DecodedEvent:
    """Extract the named event emitted by ``handle`` in a successful receipt.

    One call is expected to emit exactly one instance of the event. The
    first match in log order is returned; extra matches are logged and
    otherwise ignored.

    Args:
        receipt: Mined receipt with status success
        handle: Contract expected to emit the event
        event_name: Event declared in the handle's ABI

    Returns:
        First matching decoded event

    Raises:
        ValueError: If the receipt is not successful
        EventNotFound: If no log matches
        DecodeError: If the matching log does not decode
    """
    if receipt.status is not ReceiptStatus.SUCCESS:
        raise ValueError(
            f"Refusing to decode {event_name} from {receipt.status.value} "
            f"transaction {receipt.tx_hash}"
        )

    event_abi = handle.event_abi(event_name)
    matches = _matching_logs(receipt, handle, event_abi)
    if not matches:
        raise EventNotFound(event_name, handle.address, receipt.tx_hash)

    position, log = matches[0]
    event = _decode_match(receipt, handle, event_abi, position, log)
    if len(matches) > 1:
        logger.warning(
            f"{len(matches)} {event_name} events from {handle.name} in "
            f"{receipt.tx_hash}; using the first (log index {event.log_index})"
        )

    logger.debug(f"Decoded {event_name} from {handle.name}: {event.args}")
    return event
