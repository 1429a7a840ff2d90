"""Per-chain deployment manifest (address book) loading.

Manifests are written by the deployment scripts as
``deployment-<chainId>.json``, either as a flat ``{name: address}`` object
or wrapped as ``{"main": {name: address}}``.
"""

import asyncio
import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType

from eth_utils import is_hex_address

from story_tasks.core.exceptions import ManifestMalformed, ManifestNotFound, UnknownContract

logger = logging.getLogger(__name__)

MANIFEST_WRAPPER_KEY = "main"


def manifest_path(deployment_dir: str | Path, chain_id: int) -> Path:
    """Get the manifest path for a chain."""
    return Path(deployment_dir) / f"deployment-{chain_id}.json"


class AddressBook(Mapping[str, str]):
    """Immutable mapping of logical contract name to deployed address."""

    def __init__(self, chain_id: int, addresses: Mapping[str, str], source: Path | None = None):
        self.chain_id = chain_id
        self.source = source
        self._addresses = MappingProxyType(dict(addresses))

    def __getitem__(self, name: str) -> str:
        return self._addresses[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._addresses)

    def __len__(self) -> int:
        return len(self._addresses)

    def __repr__(self) -> str:
        return f"AddressBook(chain_id={self.chain_id}, contracts={sorted(self._addresses)})"

    def address_of(self, name: str) -> str:
        """Resolve a logical name.

        Raises:
            UnknownContract: If the name is not in the manifest
        """
        try:
            return self._addresses[name]
        except KeyError:
            raise UnknownContract(name, self.chain_id) from None

    def require(self, *names: str) -> None:
        """Fail fast unless every name is present."""
        for name in names:
            self.address_of(name)


def parse_manifest(raw: object, path: Path) -> dict[str, str]:
    """Validate decoded manifest JSON into a flat name -> address dict.

    Raises:
        ManifestMalformed: On any structural violation
    """
    if not isinstance(raw, dict):
        raise ManifestMalformed(path, f"expected an object, got {type(raw).__name__}")

    # Deployment scripts nest the book under "main"
    if set(raw) == {MANIFEST_WRAPPER_KEY} and isinstance(raw[MANIFEST_WRAPPER_KEY], dict):
        raw = raw[MANIFEST_WRAPPER_KEY]

    addresses: dict[str, str] = {}
    for name, address in raw.items():
        if not isinstance(address, str):
            raise ManifestMalformed(
                path, f"address for '{name}' must be a string, got {type(address).__name__}"
            )
        if not is_hex_address(address):
            raise ManifestMalformed(path, f"'{address}' for '{name}' is not a 20-byte address")
        addresses[name] = address
    return addresses


async def load_address_book(chain_id: int, deployment_dir: str | Path = ".") -> AddressBook:
    """Load the address book for a chain.

    Args:
        chain_id: Chain the manifest describes
        deployment_dir: Directory holding the manifests

    Returns:
        Validated address book

    Raises:
        ManifestNotFound: If the manifest file does not exist
        ManifestMalformed: If the file is not a flat name -> address object
    """
    path = manifest_path(deployment_dir, chain_id)
    try:
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except FileNotFoundError:
        raise ManifestNotFound(chain_id, path) from None

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestMalformed(path, f"invalid JSON: {e}") from e

    book = AddressBook(chain_id, parse_manifest(raw, path), source=path)
    logger.info(f"Loaded {len(book)} contract addresses for chain {chain_id} from {path}")
    logger.debug(f"Address book: {dict(book)}")
    return book
