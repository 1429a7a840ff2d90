"""Tests for deployment manifest loading."""

import json

import pytest

from story_tasks.core.exceptions import ManifestMalformed, ManifestNotFound, UnknownContract
from story_tasks.infrastructure.blockchain.deployment import (
    AddressBook,
    load_address_book,
    manifest_path,
    parse_manifest,
)

STORY_PROTOCOL_ADDRESS = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"


class TestLoadAddressBook:
    """Tests for load_address_book."""

    def test_manifest_path(self, tmp_path):
        """Test manifests are named after the chain ID."""
        assert manifest_path(tmp_path, 5) == tmp_path / "deployment-5.json"

    @pytest.mark.asyncio
    async def test_load_wrapped_manifest(self, deployment_dir, deployment):
        """Test the manifest written by the deployment scripts loads."""
        book = await load_address_book(31337, deployment_dir)

        assert book.chain_id == 31337
        assert book.source == deployment_dir / "deployment-31337.json"
        assert dict(book) == deployment

    @pytest.mark.asyncio
    async def test_load_flat_manifest(self, tmp_path):
        """Test a flat name -> address object loads."""
        (tmp_path / "deployment-5.json").write_text(
            json.dumps({"StoryProtocol": STORY_PROTOCOL_ADDRESS})
        )

        book = await load_address_book(5, tmp_path)

        assert book["StoryProtocol"] == STORY_PROTOCOL_ADDRESS

    @pytest.mark.asyncio
    async def test_addresses_kept_byte_identical(self, tmp_path):
        """Test addresses are not re-cased on load."""
        lower = STORY_PROTOCOL_ADDRESS.lower()
        (tmp_path / "deployment-5.json").write_text(json.dumps({"StoryProtocol": lower}))

        book = await load_address_book(5, tmp_path)

        assert book["StoryProtocol"] == lower

    @pytest.mark.asyncio
    async def test_missing_manifest(self, tmp_path):
        """Test a chain without a manifest raises ManifestNotFound."""
        with pytest.raises(ManifestNotFound) as exc_info:
            await load_address_book(11155111, tmp_path)

        assert exc_info.value.chain_id == 11155111
        assert exc_info.value.path == tmp_path / "deployment-11155111.json"

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path):
        """Test non-JSON content raises ManifestMalformed."""
        (tmp_path / "deployment-5.json").write_text("{not json")

        with pytest.raises(ManifestMalformed, match="invalid JSON"):
            await load_address_book(5, tmp_path)

    @pytest.mark.asyncio
    async def test_empty_manifest(self, tmp_path):
        """Test an empty object is a valid, empty book."""
        (tmp_path / "deployment-5.json").write_text("{}")

        book = await load_address_book(5, tmp_path)

        assert len(book) == 0


class TestParseManifest:
    """Tests for manifest validation."""

    def test_rejects_non_object(self, tmp_path):
        """Test a top-level array is malformed."""
        with pytest.raises(ManifestMalformed, match="expected an object"):
            parse_manifest([STORY_PROTOCOL_ADDRESS], tmp_path)

    def test_rejects_non_string_value(self, tmp_path):
        """Test nested values other than the wrapper are malformed."""
        with pytest.raises(ManifestMalformed, match="must be a string"):
            parse_manifest({"StoryProtocol": {"address": STORY_PROTOCOL_ADDRESS}}, tmp_path)

    def test_rejects_invalid_address(self, tmp_path):
        """Test values that are not 20-byte hex addresses are malformed."""
        with pytest.raises(ManifestMalformed, match="not a 20-byte address"):
            parse_manifest({"StoryProtocol": "0x1234"}, tmp_path)

    def test_wrapper_with_siblings_not_unwrapped(self, tmp_path, deployment):
        """Test "main" is only unwrapped when it is the sole key."""
        raw = {"main": deployment, "StoryProtocol": STORY_PROTOCOL_ADDRESS}

        with pytest.raises(ManifestMalformed):
            parse_manifest(raw, tmp_path)


class TestAddressBook:
    """Tests for AddressBook."""

    def test_address_of(self, address_book):
        """Test resolving a known name."""
        assert address_book.address_of("StoryProtocol") == STORY_PROTOCOL_ADDRESS

    def test_unknown_contract(self, address_book):
        """Test resolving an unknown name raises UnknownContract."""
        with pytest.raises(UnknownContract) as exc_info:
            address_book.address_of("LicenseRegistry")

        assert exc_info.value.name == "LicenseRegistry"
        assert exc_info.value.chain_id == 31337

    def test_require(self, address_book):
        """Test require fails on the first missing name."""
        address_book.require("StoryProtocol", "IPAssetRegistry")

        with pytest.raises(UnknownContract, match="LicenseRegistry"):
            address_book.require("StoryProtocol", "LicenseRegistry")

    def test_immutable(self):
        """Test the book does not change when its source dict does."""
        source = {"StoryProtocol": STORY_PROTOCOL_ADDRESS}
        book = AddressBook(1, source)
        source["Other"] = STORY_PROTOCOL_ADDRESS

        assert "Other" not in book
        with pytest.raises(TypeError):
            book["StoryProtocol"] = STORY_PROTOCOL_ADDRESS
