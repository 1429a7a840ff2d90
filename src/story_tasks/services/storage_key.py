"""EIP-7201 namespaced storage locations.

See https://eips.ethereum.org/EIPS/eip-7201
"""

from eth_abi import encode
from eth_utils import keccak, to_hex

# Clears the last byte so the location is aligned to 256 slots
SLOT_ALIGNMENT_MASK = ~0xFF


def namespaced_storage_key(namespace: str) -> str:
    """Storage root for a namespace id such as "example.main".

    keccak256(abi.encode(uint256(keccak256(namespace)) - 1)) & ~bytes32(uint256(0xff))

    Args:
        namespace: Namespace id; an "erc7201:" formula prefix is stripped

    Returns:
        32-byte slot as 0x-prefixed hex
    """
    namespace = namespace.removeprefix("erc7201:")
    if not namespace:
        raise ValueError("Namespace must not be empty")

    slot = int.from_bytes(keccak(text=namespace), "big") - 1
    location = int.from_bytes(keccak(encode(["uint256"], [slot])), "big")
    return to_hex((location & SLOT_ALIGNMENT_MASK).to_bytes(32, "big"))
