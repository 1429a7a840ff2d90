"""
Exceptions raised by deployment resolution and transaction execution.
"""
from pathlib import Path


class StoryTasksError(Exception):
    """Base exception for all story-tasks errors."""
    pass


class ConfigurationError(StoryTasksError):
    """Raised when settings cannot produce a usable chain profile."""
    pass


class ManifestNotFound(StoryTasksError):
    """Raised when no deployment manifest exists for a chain."""

    def __init__(self, chain_id: int, path: Path):
        self.chain_id = chain_id
        self.path = path
        super().__init__(f"No deployment manifest for chain {chain_id} at {path}")


class ManifestMalformed(StoryTasksError):
    """Raised when a deployment manifest is not a flat name -> address object."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed deployment manifest {path}: {reason}")


class UnknownContract(StoryTasksError):
    """Raised when a logical contract name is absent from the address book."""

    def __init__(self, name: str, chain_id: int):
        self.name = name
        self.chain_id = chain_id
        super().__init__(f"Contract '{name}' is not deployed on chain {chain_id}")


class AbiNotFound(StoryTasksError):
    """Raised when an interface description or one of its entries is missing."""
    pass


class InputFileError(StoryTasksError):
    """Raised when a bulk input file cannot be read as records."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid input file {path}: {reason}")


class InvalidRecord(StoryTasksError):
    """Raised when a single batch record has an unusable payload."""
    pass


class TransactionError(StoryTasksError):
    """Base for failures tied to one contract call."""

    def __init__(
        self,
        message: str,
        contract: str,
        method: str,
        tx_hash: str | None = None,
    ):
        self.contract = contract
        self.method = method
        self.tx_hash = tx_hash
        super().__init__(message)


class SubmissionError(TransactionError):
    """Raised when the node rejects a transaction before it enters the pool."""

    def __init__(self, contract: str, method: str, reason: str):
        self.reason = reason
        super().__init__(
            f"{contract}.{method} rejected before submission: {reason}",
            contract,
            method,
        )


class RevertError(TransactionError):
    """Raised when a mined transaction reverted."""

    def __init__(
        self, contract: str, method: str, tx_hash: str, reason: str | None = None
    ):
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"{contract}.{method} reverted in {tx_hash}{detail}",
            contract,
            method,
            tx_hash,
        )


class UnconfirmedTransaction(TransactionError):
    """Raised when a transaction may have been sent but its outcome is unknown.

    Re-query it by ``tx_hash`` before submitting the call again.
    """

    def __init__(self, contract: str, method: str, tx_hash: str, reason: str):
        self.reason = reason
        super().__init__(
            f"{contract}.{method} outcome unknown for tx {tx_hash}: {reason}",
            contract,
            method,
            tx_hash,
        )


class TransactionTimeout(UnconfirmedTransaction, TimeoutError):
    """Raised when no receipt arrives within the wait window."""

    def __init__(self, contract: str, method: str, tx_hash: str, timeout: float):
        self.timeout = timeout
        super().__init__(contract, method, tx_hash, f"not confirmed within {timeout}s")


class EventError(StoryTasksError):
    """Base for failures extracting an event from a receipt."""

    def __init__(self, message: str, event_name: str, address: str, tx_hash: str):
        self.event_name = event_name
        self.address = address
        self.tx_hash = tx_hash
        super().__init__(message)


class EventNotFound(EventError):
    """Raised when a successful receipt holds no matching event."""

    def __init__(self, event_name: str, address: str, tx_hash: str):
        super().__init__(
            f"{event_name} not emitted by {address} in {tx_hash}",
            event_name,
            address,
            tx_hash,
        )


class DecodeError(EventError):
    """Raised when a matching log does not decode against the ABI.

    Signals an address/interface mismatch, not a transient failure.
    """

    def __init__(self, event_name: str, address: str, tx_hash: str, reason: str):
        self.reason = reason
        super().__init__(
            f"Failed to decode {event_name} from {address} in {tx_hash}: {reason}",
            event_name,
            address,
            tx_hash,
        )
