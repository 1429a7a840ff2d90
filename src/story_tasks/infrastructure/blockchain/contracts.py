"""Contract handles and ABI handling.

Loads ABIs bundled in the package's abis/ directory and binds them to
addresses from the deployment address book.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from web3 import Web3

from story_tasks.core.exceptions import AbiNotFound
from story_tasks.infrastructure.blockchain.deployment import AddressBook

logger = logging.getLogger(__name__)

ABI_DIR = Path(__file__).parent.parent.parent / "abis"

# Encoding only, never connected
_w3 = Web3()


class ABILoader:
    """Loads and caches contract ABIs from JSON files."""

    def __init__(self, abi_dir: Path = ABI_DIR):
        self.abi_dir = abi_dir
        self._abis: dict[str, tuple[dict[str, Any], ...]] = {}
        self._load_all_abis()

    def _load_all_abis(self) -> None:
        """Load all ABIs from the ABI directory."""
        if not self.abi_dir.exists():
            logger.warning(f"ABI directory not found: {self.abi_dir}")
            return

        for abi_file in sorted(self.abi_dir.glob("*.json")):
            with open(abi_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            # Hardhat artifacts wrap the ABI array, plain exports are the array
            abi = data.get("abi", []) if isinstance(data, dict) else data
            if abi:
                self._abis[abi_file.stem] = tuple(abi)
                logger.debug(f"Loaded ABI: {abi_file.stem} ({len(abi)} entries)")

        logger.debug(f"Loaded {len(self._abis)} ABIs: {list(self._abis.keys())}")

    def get_abi(self, contract_name: str) -> tuple[dict[str, Any], ...]:
        """Get ABI by contract name.

        Raises:
            AbiNotFound: If no ABI file exists for the contract
        """
        if contract_name not in self._abis:
            raise AbiNotFound(f"ABI not found for contract: {contract_name}")
        return self._abis[contract_name]

    @property
    def names(self) -> list[str]:
        return sorted(self._abis)


@lru_cache(maxsize=1)
def get_abi_loader() -> ABILoader:
    """Get the shared ABI loader for the bundled ABIs."""
    return ABILoader()


@dataclass(frozen=True)
class ContractHandle:
    """Immutable binding of a logical contract to its address and ABI."""

    name: str
    address: str
    abi: tuple[dict[str, Any], ...]

    def _entry(self, entry_type: str, entry_name: str) -> dict[str, Any]:
        for item in self.abi:
            if item.get("type") == entry_type and item.get("name") == entry_name:
                return item
        raise AbiNotFound(f"{entry_type} {entry_name} not found in ABI of {self.name}")

    def function_abi(self, function_name: str) -> dict[str, Any]:
        """Get a function's ABI entry."""
        return self._entry("function", function_name)

    def event_abi(self, event_name: str) -> dict[str, Any]:
        """Get an event's ABI entry."""
        return self._entry("event", event_name)

    def encode_call(self, function_name: str, args: list[Any] | tuple[Any, ...]) -> str:
        """Encode function call data.

        Raises:
            AbiNotFound: If the function is not declared
        """
        self.function_abi(function_name)
        contract = _w3.eth.contract(address=self.address, abi=list(self.abi))
        func = contract.get_function_by_name(function_name)
        return func(*args)._encode_transaction_data()


def bind(
    address_book: AddressBook,
    logical_name: str,
    abi: list[dict[str, Any]] | tuple[dict[str, Any], ...],
) -> ContractHandle:
    """Bind a logical contract name to a handle.

    Args:
        address_book: Resolved deployment addresses
        logical_name: Manifest key, e.g. "StoryProtocol"
        abi: Interface description for the contract

    Returns:
        Immutable contract handle

    Raises:
        UnknownContract: If the name is not in the address book
    """
    address = address_book.address_of(logical_name)
    handle = ContractHandle(
        name=logical_name,
        address=Web3.to_checksum_address(address),
        abi=tuple(abi),
    )
    logger.debug(f"Bound {logical_name} at {handle.address}")
    return handle
