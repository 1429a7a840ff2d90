"""Blockchain client with multi-RPC failover for read calls."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from eth_utils import to_hex
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3RPCError
from web3.types import BlockIdentifier, TxParams, Wei

logger = logging.getLogger(__name__)

# Definitive node answers; retrying them on another RPC cannot change the result
NON_RETRYABLE_ERRORS = (ContractLogicError, TransactionNotFound)


class ChainClient(ABC):
    """Abstract base class for blockchain clients."""

    @abstractmethod
    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        ...

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt, or None if not mined yet."""
        ...

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """Get a pending or mined transaction, or None if unknown."""
        ...

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        """Get pending transaction count (nonce) for address."""
        ...

    @abstractmethod
    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        ...

    @abstractmethod
    async def get_gas_price(self) -> Wei:
        """Get current gas price."""
        ...

    @abstractmethod
    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Send signed raw transaction exactly once."""
        ...

    async def wait_for_transaction_receipt(
        self, tx_hash: str, timeout: float = 120, poll_latency: float = 2.0
    ) -> dict[str, Any]:
        """Wait for transaction receipt with timeout.

        Args:
            tx_hash: Transaction hash
            timeout: Maximum wait time in seconds
            poll_latency: Polling interval in seconds

        Returns:
            Transaction receipt

        Raises:
            TimeoutError: If transaction not confirmed within timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                return receipt
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_latency, remaining))

        raise TimeoutError(f"Transaction {tx_hash} not confirmed within {timeout}s")


class RPCClient(ChainClient):
    """JSON-RPC client for EVM chains with multi-RPC failover."""

    def __init__(
        self,
        rpc_urls: list[str] | tuple[str, ...],
        chain_id: int,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """Initialize RPC client.

        Args:
            rpc_urls: List of RPC endpoints (primary + backups)
            chain_id: Chain ID the endpoints serve
            max_retries: Maximum retry attempts per RPC for read calls
            retry_delay: Delay between retries in seconds
        """
        if not rpc_urls:
            raise ValueError("At least one RPC URL is required")
        self.rpc_urls = list(rpc_urls)
        self.chain_id = chain_id
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._current_rpc_index = 0
        self._web3: AsyncWeb3 | None = None

    @property
    def web3(self) -> AsyncWeb3:
        """Get or create Web3 instance."""
        if self._web3 is None:
            self._web3 = self._create_web3()
        return self._web3

    def _create_web3(self, rpc_index: int | None = None) -> AsyncWeb3:
        """Create Web3 instance for specified RPC."""
        index = rpc_index if rpc_index is not None else self._current_rpc_index
        return AsyncWeb3(AsyncHTTPProvider(self.rpc_urls[index]))

    async def _execute_with_failover(
        self, method: str, *args: Any, **kwargs: Any
    ) -> Any:
        """Execute a read method with automatic RPC failover.

        Args:
            method: Web3 eth method name to call
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method

        Returns:
            Result from the Web3 method

        Raises:
            Web3RPCError: If all RPCs fail
        """
        last_error: Exception | None = None

        for rpc_offset in range(len(self.rpc_urls)):
            rpc_index = (self._current_rpc_index + rpc_offset) % len(self.rpc_urls)
            web3 = self._create_web3(rpc_index)

            for attempt in range(self.max_retries):
                try:
                    web3_method = getattr(web3.eth, method)
                    result = await web3_method(*args, **kwargs)

                    self._current_rpc_index = rpc_index
                    self._web3 = web3

                    return result

                except NON_RETRYABLE_ERRORS:
                    raise

                except Exception as e:
                    last_error = e
                    logger.warning(
                        f"RPC {self.rpc_urls[rpc_index]} {method} failed "
                        f"(attempt {attempt + 1}): {e}"
                    )
                    if attempt < self.max_retries - 1:
                        await asyncio.sleep(self.retry_delay * (attempt + 1))

            if rpc_offset < len(self.rpc_urls) - 1:
                logger.warning(
                    f"Switching from RPC {self.rpc_urls[rpc_index]} to next backup"
                )

        raise Web3RPCError(f"All RPCs failed. Last error: {last_error}")

    async def eth_call(
        self, transaction: TxParams, block_identifier: BlockIdentifier = "latest"
    ) -> bytes:
        """Execute eth_call (read-only contract call)."""
        return await self._execute_with_failover("call", transaction, block_identifier)

    async def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get transaction receipt, or None if the node does not know it yet."""
        try:
            receipt = await self._execute_with_failover("get_transaction_receipt", tx_hash)
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt else None

    async def get_transaction(self, tx_hash: str) -> dict[str, Any] | None:
        """Get a transaction by hash, or None if the node does not know it."""
        try:
            tx = await self._execute_with_failover("get_transaction", tx_hash)
        except TransactionNotFound:
            return None
        return dict(tx) if tx else None

    async def get_transaction_count(self, address: str) -> int:
        """Get pending transaction count (nonce) for address."""
        return await self._execute_with_failover(
            "get_transaction_count", address, "pending"
        )

    async def estimate_gas(self, transaction: TxParams) -> int:
        """Estimate gas for transaction."""
        return await self._execute_with_failover("estimate_gas", transaction)

    async def get_gas_price(self) -> Wei:
        """Get current gas price."""
        # AsyncWeb3 uses gas_price property, not method
        return await self.web3.eth.gas_price

    async def send_raw_transaction(self, signed_tx: bytes) -> str:
        """Send signed raw transaction.

        Submitted once against the current RPC; a failed send is never
        replayed on a backup endpoint.

        Args:
            signed_tx: Signed transaction bytes

        Returns:
            Transaction hash as 0x-prefixed hex string
        """
        tx_hash = await self.web3.eth.send_raw_transaction(signed_tx)
        return to_hex(tx_hash)
