"""Blockchain infrastructure module."""

from story_tasks.infrastructure.blockchain.client import ChainClient, RPCClient
from story_tasks.infrastructure.blockchain.contracts import (
    ABILoader,
    ContractHandle,
    bind,
    get_abi_loader,
)
from story_tasks.infrastructure.blockchain.deployment import (
    AddressBook,
    load_address_book,
    manifest_path,
)
from story_tasks.infrastructure.blockchain.events import (
    DecodedEvent,
    decode_event,
)
from story_tasks.infrastructure.blockchain.transaction import (
    ReceiptStatus,
    TransactionReceipt,
    TransactionRequest,
    TransactionService,
)

__all__ = [
    # Client
    "ChainClient",
    "RPCClient",
    # Deployment
    "AddressBook",
    "load_address_book",
    "manifest_path",
    # Contracts
    "ABILoader",
    "ContractHandle",
    "bind",
    "get_abi_loader",
    # Events
    "DecodedEvent",
    "decode_event",
    # Transactions
    "ReceiptStatus",
    "TransactionReceipt",
    "TransactionRequest",
    "TransactionService",
]
