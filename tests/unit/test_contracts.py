"""Tests for ABI loading and contract handles."""

import json

import pytest
from eth_utils import function_signature_to_4byte_selector, to_hex

from story_tasks.core.exceptions import AbiNotFound, UnknownContract
from story_tasks.infrastructure.blockchain.contracts import (
    ABILoader,
    ContractHandle,
    bind,
    get_abi_loader,
)
from story_tasks.infrastructure.blockchain.deployment import AddressBook


class TestABILoader:
    """Tests for ABILoader."""

    def test_bundled_abis(self):
        """Test the bundled ABIs cover the registration contracts."""
        loader = get_abi_loader()

        assert {"StoryProtocol", "IPOrgController", "IPAssetRegistry"} <= set(loader.names)

    def test_loads_artifact_and_plain_abi(self, tmp_path):
        """Test both artifact files and plain ABI arrays load."""
        entry = {"type": "function", "name": "owner", "inputs": [], "outputs": []}
        (tmp_path / "Artifact.json").write_text(json.dumps({"abi": [entry]}))
        (tmp_path / "Plain.json").write_text(json.dumps([entry]))

        loader = ABILoader(tmp_path)

        assert loader.get_abi("Artifact") == (entry,)
        assert loader.get_abi("Plain") == (entry,)

    def test_missing_directory(self, tmp_path):
        """Test a missing ABI directory yields an empty loader."""
        loader = ABILoader(tmp_path / "missing")

        assert loader.names == []

    def test_unknown_abi(self):
        """Test asking for an unknown ABI raises AbiNotFound."""
        with pytest.raises(AbiNotFound, match="LicenseRegistry"):
            get_abi_loader().get_abi("LicenseRegistry")


class TestBind:
    """Tests for binding logical names to handles."""

    def test_bind_checksums_address(self, deployment):
        """Test the handle address is checksummed."""
        book = AddressBook(31337, {"StoryProtocol": deployment["StoryProtocol"].lower()})

        handle = bind(book, "StoryProtocol", get_abi_loader().get_abi("StoryProtocol"))

        assert handle.name == "StoryProtocol"
        assert handle.address == deployment["StoryProtocol"]

    def test_bind_unknown_contract(self, address_book):
        """Test binding a missing name raises UnknownContract."""
        with pytest.raises(UnknownContract):
            bind(address_book, "LicenseRegistry", [])

    def test_handle_is_immutable(self, story_protocol):
        """Test handles cannot be rebound."""
        with pytest.raises(AttributeError):
            story_protocol.address = "0x0000000000000000000000000000000000000000"

    def test_same_address_different_abis(self, deployment):
        """Test two handles may share an address with different interfaces."""
        book = AddressBook(31337, {"Proxy": deployment["IPOrgController-Proxy"]})
        loader = get_abi_loader()

        controller = bind(book, "Proxy", loader.get_abi("IPOrgController"))
        registry = bind(book, "Proxy", loader.get_abi("IPAssetRegistry"))

        assert controller.address == registry.address
        assert controller.abi != registry.abi


class TestContractHandle:
    """Tests for ContractHandle lookups and encoding."""

    def test_event_abi(self, ip_org_controller):
        """Test event lookup by name."""
        event = ip_org_controller.event_abi("IPOrgRegistered")

        assert event["type"] == "event"
        assert [i["name"] for i in event["inputs"]][:2] == ["owner", "ipAssetOrg"]

    def test_missing_event(self, story_protocol):
        """Test a missing event raises AbiNotFound."""
        with pytest.raises(AbiNotFound, match="IPOrgRegistered"):
            story_protocol.event_abi("IPOrgRegistered")

    def test_encode_call(self, story_protocol, account):
        """Test call data starts with the function selector."""
        data = story_protocol.encode_call(
            "registerIpOrg", [account.address, "Acme", "ACM", []]
        )

        selector = function_signature_to_4byte_selector(
            "registerIpOrg(address,string,string,string[])"
        )
        assert data.startswith(to_hex(selector))

    def test_encode_call_tuple_argument(self, story_protocol, account, ip_org_address):
        """Test struct arguments encode from positional tuples."""
        data = story_protocol.encode_call(
            "registerIPAsset",
            [ip_org_address, (account.address, "Hero", 2, "desc", "https://x")],
        )

        selector = function_signature_to_4byte_selector(
            "registerIPAsset(address,(address,string,uint8,string,string))"
        )
        assert data.startswith(to_hex(selector))

    def test_encode_unknown_function(self, story_protocol):
        """Test encoding an undeclared function raises AbiNotFound."""
        with pytest.raises(AbiNotFound):
            story_protocol.encode_call("transferOwnership", [])

    def test_encode_wrong_arguments(self, story_protocol):
        """Test mismatched arguments fail to encode."""
        with pytest.raises(Exception):
            story_protocol.encode_call("registerIpOrg", ["not-an-address"])

    def test_handle_from_plain_values(self):
        """Test handles can be built directly."""
        handle = ContractHandle(name="X", address="0x" + "11" * 20, abi=())

        assert handle.abi == ()
