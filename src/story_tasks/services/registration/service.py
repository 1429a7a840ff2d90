"""Story Protocol registration commands.

Every command binds all contract handles it needs before the first
submission, so a missing deployment entry fails before anything is sent.
"""

import logging
from pathlib import Path

from pydantic import ValidationError
from web3.exceptions import Web3RPCError

from story_tasks.core.config import Settings, chain_profile, get_settings
from story_tasks.core.exceptions import EventError, InputFileError, InvalidRecord
from story_tasks.infrastructure.blockchain.client import RPCClient
from story_tasks.infrastructure.blockchain.contracts import (
    ABILoader,
    ContractHandle,
    bind,
    get_abi_loader,
)
from story_tasks.infrastructure.blockchain.deployment import AddressBook, load_address_book
from story_tasks.infrastructure.blockchain.events import DecodedEvent, decode_event
from story_tasks.infrastructure.blockchain.transaction import (
    ReceiptStatus,
    TransactionService,
)
from story_tasks.services.batch import (
    BatchOrchestrator,
    BatchRecord,
    BatchReport,
    BatchResults,
    BatchResultStore,
    load_input_records,
    merge_previous,
    results_path_for,
)
from story_tasks.services.registration.schemas import (
    IpAssetInput,
    OperationResult,
    UploadResult,
    checksum_address,
)

logger = logging.getLogger(__name__)

# Manifest keys and the ABI each is bound with
STORY_PROTOCOL = ("StoryProtocol", "StoryProtocol")
IP_ORG_CONTROLLER = ("IPOrgController-Proxy", "IPOrgController")
IP_ASSET_REGISTRY = ("IPAssetRegistry", "IPAssetRegistry")

IP_ORG_REGISTERED = "IPOrgRegistered"
IP_ASSET_REGISTERED = "IPAssetRegistered"


class StoryProtocolService:
    """Registers IP Orgs and IP assets through the StoryProtocol entrypoint."""

    def __init__(
        self,
        transactions: TransactionService,
        address_book: AddressBook,
        abi_loader: ABILoader | None = None,
        batch_size: int = 100,
        concurrency: int = 1,
    ):
        """Initialize registration service.

        Args:
            transactions: Executor bound to the operator's signer
            address_book: Deployment addresses for the active chain
            abi_loader: ABI source (bundled ABIs if None)
            batch_size: Default records per chunk for uploads
            concurrency: Concurrent submissions within a chunk
        """
        self.transactions = transactions
        self.address_book = address_book
        self.abi_loader = abi_loader or get_abi_loader()
        self.batch_size = batch_size
        self.concurrency = concurrency

    def _bind(self, contract: tuple[str, str]) -> ContractHandle:
        logical_name, abi_name = contract
        return bind(self.address_book, logical_name, self.abi_loader.get_abi(abi_name))

    async def create_ip_org(
        self, name: str, symbol: str, *, events: bool = False
    ) -> OperationResult:
        """Create an IP Org owned by the signer.

        Args:
            name: IP Org name
            symbol: IP Org symbol
            events: Include every raw receipt log in the result

        Returns:
            Result carrying the decoded IPOrgRegistered event
        """
        story = self._bind(STORY_PROTOCOL)
        controller = self._bind(IP_ORG_CONTROLLER)

        logger.info(f"Creating IP Org: {name} {symbol}")
        receipt = await self.transactions.execute(
            story, "registerIpOrg", [self.transactions.address, name, symbol, []]
        )
        event = decode_event(receipt, controller, IP_ORG_REGISTERED)
        logger.info(f"IP Org created: {event.args.get('ipAssetOrg')}")
        return OperationResult.from_event(event, receipt, include_logs=events)

    async def create_ip_asset(
        self,
        ip_org: str,
        ip_asset_type: str,
        name: str,
        description: str,
        media_url: str,
        *,
        owner: str | None = None,
        events: bool = False,
    ) -> OperationResult:
        """Register one IP asset in an IP Org.

        Raises:
            ValueError: If the IP Org address or asset type is invalid
        """
        story = self._bind(STORY_PROTOCOL)
        registry = self._bind(IP_ASSET_REGISTRY)

        asset = IpAssetInput(
            name=name,
            description=description,
            media_url=media_url,
            ip_asset_type=ip_asset_type,
        )
        logger.info(f"Registering IP asset '{name}' ({asset.ip_asset_type.name}) in {ip_org}")
        receipt = await self.transactions.execute(
            story,
            "registerIPAsset",
            [checksum_address(ip_org), asset.call_params(owner or self.transactions.address)],
        )
        event = decode_event(receipt, registry, IP_ASSET_REGISTERED)
        logger.info(f"IP asset registered with id {event.args.get('ipAssetId')}")
        return OperationResult.from_event(event, receipt, include_logs=events)

    async def upload_ip_assets(
        self,
        ip_org: str,
        receiver: str,
        file_path: str | Path,
        batch_size: int | None = None,
        concurrency: int | None = None,
    ) -> UploadResult:
        """Register every IP asset in a bulk input file.

        Outcomes are saved next to the input after each chunk. Re-running
        with the same file skips records that already succeeded and first
        re-queries records whose transaction was sent but never confirmed;
        only those the node does not know are submitted again.

        Args:
            ip_org: IP Org the assets belong to
            receiver: Owner of the registered assets
            file_path: JSON input file
            batch_size: Records per chunk
            concurrency: Concurrent submissions within a chunk

        Returns:
            Report and per-record outcomes in input order
        """
        story = self._bind(STORY_PROTOCOL)
        registry = self._bind(IP_ASSET_REGISTRY)
        ip_org = checksum_address(ip_org)
        receiver = checksum_address(receiver)

        records = load_input_records(file_path)
        store = BatchResultStore(results_path_for(file_path))
        previous = store.load()
        if previous is not None:
            logger.info(f"Resuming from {store.path}")
            records = merge_previous(records, previous.records)
            await self._confirm_pending(records, registry)

        results = BatchResults(
            chain_id=self.address_book.chain_id,
            source=str(file_path),
            metadata={"ip_org": ip_org, "receiver": receiver},
            records=records,
        )

        def persist(current: list[BatchRecord]) -> None:
            results.records = current
            store.save(results)

        if previous is not None:
            persist(records)

        async def register(record: BatchRecord) -> DecodedEvent:
            try:
                asset = IpAssetInput.model_validate(record.source_payload)
                params = asset.call_params(receiver)
            except (ValidationError, ValueError) as e:
                raise InvalidRecord(f"Record {record.index} is invalid: {e}") from e

            receipt = await self.transactions.execute(
                story, "registerIPAsset", [ip_org, params]
            )
            return decode_event(receipt, registry, IP_ASSET_REGISTERED)

        orchestrator = BatchOrchestrator(
            batch_size=batch_size or self.batch_size,
            concurrency=concurrency or self.concurrency,
            on_chunk=persist,
        )
        processed = await orchestrator.run(records, register)
        persist(processed)

        return UploadResult(
            report=orchestrator.last_report or BatchReport.from_records(processed),
            results_path=str(store.path),
            records=processed,
        )

    async def reconcile_ip_assets(self, file_path: str | Path) -> UploadResult:
        """Re-check records whose transaction was sent but never confirmed.

        Nothing is submitted. See _confirm_pending for the outcomes.

        Raises:
            InputFileError: If no saved results exist for the input file
        """
        registry = self._bind(IP_ASSET_REGISTRY)
        store = BatchResultStore(results_path_for(file_path))
        results = store.load()
        if results is None:
            raise InputFileError(store.path, "no batch results to reconcile")

        await self._confirm_pending(results.records, registry)
        store.save(results)
        return UploadResult(
            report=BatchReport.from_records(results.records),
            results_path=str(store.path),
            records=results.records,
        )

    async def _confirm_pending(
        self, records: list[BatchRecord], registry: ContractHandle
    ) -> None:
        """Settle records awaiting confirmation from their saved tx hash.

        Mined and successful records are decoded and marked succeeded,
        reverted ones are marked failed with the revert recorded. Records
        the node still holds in its pool stay failed with their hash, and
        records the node does not know are reopened for resubmission. A
        lookup error leaves the record as it was.
        """
        for record in records:
            if not record.awaiting_confirmation:
                continue

            tx_hash = record.tx_hash
            try:
                receipt = await self.transactions.fetch_receipt(tx_hash)
            except Web3RPCError as e:
                logger.warning(f"Record {record.index}: cannot look up {tx_hash}: {e}")
                continue

            if receipt.status is ReceiptStatus.PENDING:
                logger.info(f"Record {record.index}: {tx_hash} still pending")
                continue

            record.reopen()
            if receipt.status is ReceiptStatus.NOT_FOUND:
                logger.warning(f"Record {record.index}: {tx_hash} unknown to the node, will resubmit")
                continue
            if receipt.status is ReceiptStatus.REVERTED:
                record.mark_failed(f"{tx_hash} reverted on chain", "RevertError", tx_hash)
                continue
            try:
                record.mark_succeeded(decode_event(receipt, registry, IP_ASSET_REGISTERED))
            except EventError as e:
                record.mark_failed(str(e), type(e).__name__, tx_hash)
            else:
                logger.info(f"Record {record.index}: confirmed in {tx_hash}")


async def get_story_protocol_service(settings: Settings | None = None) -> StoryProtocolService:
    """Create a StoryProtocolService for the configured network.

    Raises:
        ConfigurationError: If the network has no RPC URL or signer key
        ManifestNotFound: If no deployment manifest exists for the chain
        ManifestMalformed: If the manifest is invalid
    """
    settings = settings or get_settings()
    profile = chain_profile(settings)
    if settings.is_mainnet:
        logger.warning(f"MAINNET: transactions will be signed by {profile.signer_address}")

    client = RPCClient(
        rpc_urls=profile.rpc_urls,
        chain_id=profile.chain_id,
        max_retries=settings.rpc_max_retries,
    )
    transactions = TransactionService(
        client=client,
        account=profile.account,
        chain_id=profile.chain_id,
        gas_limit_multiplier=settings.gas_limit_multiplier,
        receipt_timeout=settings.receipt_timeout,
        poll_latency=settings.poll_latency,
    )
    address_book = await load_address_book(profile.chain_id, settings.deployment_dir)
    return StoryProtocolService(
        transactions=transactions,
        address_book=address_book,
        batch_size=settings.default_batch_size,
        concurrency=settings.batch_concurrency,
    )
