"""Tests for EIP-7201 storage key derivation."""

import pytest

from story_tasks.services.storage_key import namespaced_storage_key

EXAMPLE_MAIN_KEY = "0x183a6125c38840424c4a85fa12bab2ab606c4b6d0e7cc73c0c06ba5300eab500"


class TestNamespacedStorageKey:
    """Tests for namespaced_storage_key."""

    def test_reference_namespace(self):
        """Test the example.main location from the EIP."""
        assert namespaced_storage_key("example.main") == EXAMPLE_MAIN_KEY

    def test_formula_prefix_stripped(self):
        """Test the erc7201: prefix names the same namespace."""
        assert namespaced_storage_key("erc7201:example.main") == EXAMPLE_MAIN_KEY

    def test_last_byte_cleared(self):
        """Test locations are aligned to 256 slots."""
        key = namespaced_storage_key("story-protocol.ip-org-controller")

        assert len(key) == 66
        assert key.endswith("00")

    @pytest.mark.parametrize("namespace", ["", "erc7201:"])
    def test_empty_namespace(self, namespace):
        """Test an empty namespace is rejected."""
        with pytest.raises(ValueError):
            namespaced_storage_key(namespace)
