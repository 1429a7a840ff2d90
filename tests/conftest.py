"""Pytest configuration and fixtures."""

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode
from eth_account import Account
from eth_utils import event_abi_to_log_topic, keccak
from eth_utils.abi import collapse_if_tuple

from story_tasks.core.config import LOCAL_DEV_PRIVATE_KEY
from story_tasks.infrastructure.blockchain.client import ChainClient
from story_tasks.infrastructure.blockchain.contracts import bind, get_abi_loader
from story_tasks.infrastructure.blockchain.deployment import AddressBook
from story_tasks.infrastructure.blockchain.transaction import TransactionService

STORY_PROTOCOL_ADDRESS = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"
IP_ORG_CONTROLLER_ADDRESS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
IP_ASSET_REGISTRY_ADDRESS = "0xCf7Ed3AccA5a467e9e704C703E8D87F634fB0Fc9"
OTHER_CONTRACT_ADDRESS = "0xDc64a140Aa3E981100a9becA4E685f962f0cF6C9"
IP_ORG_ADDRESS = "0x5FC8d32690cc91D4c39d9d3abcBD16989F875707"

DEPLOYMENT = {
    "AccessControlSingleton-Proxy": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
    "IPAssetRegistry": IP_ASSET_REGISTRY_ADDRESS,
    "IPOrgController-Proxy": IP_ORG_CONTROLLER_ADDRESS,
    "StoryProtocol": STORY_PROTOCOL_ADDRESS,
    "TokenGatedHook": OTHER_CONTRACT_ADDRESS,
}


@pytest.fixture
def deployment():
    """Contract addresses as written by the deployment scripts."""
    return dict(DEPLOYMENT)


@pytest.fixture
def deployment_dir(tmp_path):
    """Directory holding a local-chain manifest in the deployment script format."""
    (tmp_path / "deployment-31337.json").write_text(json.dumps({"main": DEPLOYMENT}))
    return tmp_path


@pytest.fixture
def settings(deployment_dir):
    """Create settings instance for testing."""
    from story_tasks.core.config import Settings

    return Settings(_env_file=None, network="local", deployment_dir=deployment_dir)


@pytest.fixture
def address_book():
    return AddressBook(31337, DEPLOYMENT)


@pytest.fixture
def account():
    return Account.from_key(LOCAL_DEV_PRIVATE_KEY)


@pytest.fixture
def story_protocol(address_book):
    return bind(address_book, "StoryProtocol", get_abi_loader().get_abi("StoryProtocol"))


@pytest.fixture
def ip_org_controller(address_book):
    return bind(
        address_book, "IPOrgController-Proxy", get_abi_loader().get_abi("IPOrgController")
    )


@pytest.fixture
def ip_asset_registry(address_book):
    return bind(address_book, "IPAssetRegistry", get_abi_loader().get_abi("IPAssetRegistry"))


@pytest.fixture
def mock_client():
    """Chain client with every RPC call mocked."""
    client = AsyncMock(spec=ChainClient)
    client.get_transaction_count.return_value = 7
    client.get_gas_price.return_value = 1_000_000_000
    client.estimate_gas.return_value = 100_000
    client.send_raw_transaction.return_value = "0x" + "ab" * 32
    return client


@pytest.fixture
def transaction_service(mock_client, account):
    return TransactionService(
        client=mock_client,
        account=account,
        chain_id=31337,
        receipt_timeout=5,
        poll_latency=0.01,
    )


def _encode_topic(param: dict[str, Any], value: Any) -> bytes:
    abi_type = collapse_if_tuple(param)
    if abi_type == "string":
        return keccak(text=value)
    return encode([abi_type], [value])


@pytest.fixture
def make_log():
    """Build a raw log for an event declared in a handle's ABI."""

    def _make_log(
        handle,
        event_name: str,
        values: dict[str, Any],
        *,
        address: str | None = None,
        log_index: int = 0,
        tx_hash: str = "0x" + "ab" * 32,
    ) -> dict[str, Any]:
        event_abi = handle.event_abi(event_name)
        inputs = event_abi["inputs"]
        topics = [event_abi_to_log_topic(event_abi)]
        topics += [_encode_topic(p, values[p["name"]]) for p in inputs if p.get("indexed")]
        non_indexed = [p for p in inputs if not p.get("indexed")]
        data = encode(
            [collapse_if_tuple(p) for p in non_indexed],
            [values[p["name"]] for p in non_indexed],
        )
        return {
            "address": address or handle.address,
            "topics": topics,
            "data": data,
            "logIndex": log_index,
            "transactionHash": tx_hash,
        }

    return _make_log


@pytest.fixture
def make_receipt():
    """Build a raw mined receipt."""

    def _make_receipt(logs: list[dict[str, Any]], status: int = 1, block_number: int = 100):
        return {
            "blockNumber": block_number,
            "status": status,
            "gasUsed": 90_000,
            "logs": logs,
        }

    return _make_receipt


@pytest.fixture
def mock_transactions(account):
    """Transaction service double for command tests."""
    transactions = MagicMock(spec=TransactionService)
    transactions.address = account.address
    transactions.execute = AsyncMock()
    transactions.fetch_receipt = AsyncMock()
    return transactions


@pytest.fixture
def ip_org_address():
    return IP_ORG_ADDRESS


@pytest.fixture
def other_contract_address():
    """Deployed contract that is not part of the registration flow."""
    return OTHER_CONTRACT_ADDRESS
