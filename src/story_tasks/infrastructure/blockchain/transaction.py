"""Transaction service for sending on-chain transactions.

Provides functionality to sign and send contract calls with:
- Automatic gas estimation
- Nonce management serialized per signer
- Receipt waiting with a caller deadline
- Revert reason recovery for reverted transactions

A call is submitted exactly once; nothing here resubmits or bumps nonces.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from eth_account.signers.local import LocalAccount
from eth_utils import to_hex
from web3.exceptions import ContractLogicError, Web3RPCError

from story_tasks.core.exceptions import (
    RevertError,
    SubmissionError,
    TransactionTimeout,
    UnconfirmedTransaction,
)
from story_tasks.infrastructure.blockchain.client import ChainClient
from story_tasks.infrastructure.blockchain.contracts import ContractHandle

logger = logging.getLogger(__name__)


class ReceiptStatus(str, Enum):
    """Transaction inclusion status."""

    PENDING = "pending"
    NOT_FOUND = "not_found"
    SUCCESS = "success"
    REVERTED = "reverted"


@dataclass(frozen=True)
class TransactionRequest:
    """One contract call to submit."""

    handle: ContractHandle
    method: str
    args: tuple[Any, ...] = ()
    value: int = 0

    @property
    def label(self) -> str:
        return f"{self.handle.name}.{self.method}"


@dataclass
class TransactionReceipt:
    """Receipt as seen by the executor."""

    tx_hash: str
    status: ReceiptStatus
    block_number: int | None = None
    gas_used: int | None = None
    logs: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_raw(cls, tx_hash: str, raw: dict[str, Any] | None) -> "TransactionReceipt":
        """Build from a node receipt; None or an unmined receipt is pending."""
        if not raw or raw.get("blockNumber") is None:
            return cls(tx_hash=tx_hash, status=ReceiptStatus.PENDING)

        status = ReceiptStatus.SUCCESS if raw.get("status") == 1 else ReceiptStatus.REVERTED
        return cls(
            tx_hash=tx_hash,
            status=status,
            block_number=raw.get("blockNumber"),
            gas_used=raw.get("gasUsed"),
            logs=[dict(log) for log in raw.get("logs", [])],
        )


class TransactionService:
    """Service for sending contract call transactions.

    Handles signing, gas estimation, nonce assignment and confirmation
    waiting for a single signer.
    """

    def __init__(
        self,
        client: ChainClient,
        account: LocalAccount,
        chain_id: int,
        gas_limit_multiplier: float = 1.2,
        receipt_timeout: float = 120,
        poll_latency: float = 2.0,
    ):
        """Initialize transaction service.

        Args:
            client: Blockchain client for sending transactions
            account: Signing identity
            chain_id: Chain ID embedded in signed transactions
            gas_limit_multiplier: Multiplier for estimated gas limit
            receipt_timeout: Default confirmation wait in seconds
            poll_latency: Receipt polling interval in seconds
        """
        self.client = client
        self.account = account
        self.chain_id = chain_id
        self.gas_limit_multiplier = gas_limit_multiplier
        self.receipt_timeout = receipt_timeout
        self.poll_latency = poll_latency
        # Serializes nonce fetch -> sign -> send for concurrent submissions
        self._submit_lock = asyncio.Lock()

        logger.info(f"TransactionService initialized for address: {self.account.address}")

    @property
    def address(self) -> str:
        """Get the signer address."""
        return self.account.address

    async def submit(self, request: TransactionRequest) -> str:
        """Sign and send a contract call without waiting for inclusion.

        Args:
            request: Contract call to submit

        Returns:
            Transaction hash

        Raises:
            SubmissionError: If encoding, estimation, signing or sending fails
        """
        handle = request.handle
        try:
            data = handle.encode_call(request.method, request.args)
        except Exception as e:
            raise SubmissionError(handle.name, request.method, f"cannot encode call: {e}") from e

        async with self._submit_lock:
            try:
                nonce = await self.client.get_transaction_count(self.account.address)
                logger.debug(f"Current nonce: {nonce}")

                gas_price = await self.client.get_gas_price()

                estimated_gas = await self.client.estimate_gas(
                    {
                        "from": self.account.address,
                        "to": handle.address,
                        "data": data,
                        "value": request.value,
                    }
                )
                gas_limit = int(estimated_gas * self.gas_limit_multiplier)
                logger.debug(f"Estimated gas: {estimated_gas}, using: {gas_limit}")

                tx = {
                    "to": handle.address,
                    "data": data,
                    "gas": gas_limit,
                    "gasPrice": gas_price,
                    "nonce": nonce,
                    "chainId": self.chain_id,
                    "value": request.value,
                }
                signed_tx = self.account.sign_transaction(tx)

            except ContractLogicError as e:
                raise SubmissionError(
                    handle.name, request.method, f"execution would revert: {e.message or e}"
                ) from e
            except Exception as e:
                logger.error(f"Submission of {request.label} failed: {e}")
                raise SubmissionError(handle.name, request.method, str(e)) from e

            signed_hash = to_hex(signed_tx.hash)
            try:
                tx_hash = await self.client.send_raw_transaction(signed_tx.raw_transaction)
            except (Web3RPCError, ValueError) as e:
                # The node answered with a rejection
                logger.error(f"Submission of {request.label} rejected: {e}")
                raise SubmissionError(handle.name, request.method, str(e)) from e
            except Exception as e:
                # No answer; the transaction may already be in the pool
                logger.error(f"Send of {request.label} as {signed_hash} failed: {e}")
                raise UnconfirmedTransaction(
                    handle.name, request.method, signed_hash, f"send failed: {e}"
                ) from e

        logger.info(f"Transaction sent: {tx_hash}, call: {request.label}, nonce: {nonce}")
        return tx_hash

    async def wait(
        self,
        request: TransactionRequest,
        tx_hash: str,
        timeout: float | None = None,
    ) -> TransactionReceipt:
        """Wait until a submitted transaction is mined.

        Args:
            request: The submitted call (for error context and revert replay)
            tx_hash: Hash returned by submit
            timeout: Deadline in seconds, defaults to receipt_timeout

        Returns:
            Receipt with status success

        Raises:
            RevertError: If the transaction was mined and reverted
            TransactionTimeout: If not mined within the deadline
            UnconfirmedTransaction: If the receipt lookup itself failed
        """
        timeout = self.receipt_timeout if timeout is None else timeout
        logger.info(f"Waiting for {tx_hash} to be mined (timeout {timeout}s)")
        try:
            raw = await self.client.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self.poll_latency
            )
        except TimeoutError as e:
            logger.warning(f"{request.label} not confirmed within {timeout}s: {tx_hash}")
            raise TransactionTimeout(
                request.handle.name, request.method, tx_hash, timeout
            ) from e
        except Exception as e:
            logger.error(f"Lost track of {request.label} in {tx_hash}: {e}")
            raise UnconfirmedTransaction(
                request.handle.name, request.method, tx_hash, f"receipt lookup failed: {e}"
            ) from e

        receipt = TransactionReceipt.from_raw(tx_hash, raw)
        if receipt.status is ReceiptStatus.REVERTED:
            reason = await self.revert_reason(request, receipt.block_number)
            logger.error(f"{request.label} reverted in {tx_hash}: {reason}")
            raise RevertError(request.handle.name, request.method, tx_hash, reason)

        logger.info(
            f"Transaction {tx_hash} mined in block {receipt.block_number}, "
            f"gas used: {receipt.gas_used}"
        )
        return receipt

    async def execute(
        self,
        handle: ContractHandle,
        method: str,
        args: list[Any] | tuple[Any, ...] = (),
        *,
        value: int = 0,
        timeout: float | None = None,
    ) -> TransactionReceipt:
        """Submit a call and wait for its successful inclusion.

        Exactly one transaction is submitted per call.

        Raises:
            SubmissionError: If the node rejects the transaction
            RevertError: If the mined transaction reverted
            TransactionTimeout: If not mined within the deadline
            UnconfirmedTransaction: If the send or receipt lookup lost contact
        """
        request = TransactionRequest(handle=handle, method=method, args=tuple(args), value=value)
        tx_hash = await self.submit(request)
        return await self.wait(request, tx_hash, timeout=timeout)

    async def fetch_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Re-query a previously submitted transaction.

        Returns:
            Receipt with status pending while the transaction waits in the
            pool, or not_found when the node does not know the hash
        """
        raw = await self.client.get_transaction_receipt(tx_hash)
        receipt = TransactionReceipt.from_raw(tx_hash, raw)
        if receipt.status is ReceiptStatus.PENDING:
            if await self.client.get_transaction(tx_hash) is None:
                receipt.status = ReceiptStatus.NOT_FOUND
        return receipt

    async def revert_reason(
        self, request: TransactionRequest, block_number: int | None
    ) -> str | None:
        """Replay a reverted call with eth_call to recover its reason."""
        try:
            await self.client.eth_call(
                {
                    "from": self.account.address,
                    "to": request.handle.address,
                    "data": request.handle.encode_call(request.method, request.args),
                    "value": request.value,
                },
                block_number if block_number is not None else "latest",
            )
        except ContractLogicError as e:
            return e.message or str(e)
        except Exception as e:
            logger.warning(f"Could not replay {request.label} for revert reason: {e}")
        return None
