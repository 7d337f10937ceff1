"""
ABI codec for the participant and asset registries.

Only the read-only views and the transfer event used for provenance
reconstruction are described here. Call data is built with eth-abi and
return data decoded back into plain tuples; the readers turn those tuples
into model objects.
"""

from typing import Any, Dict, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address


# Addresses of the reference local deployment
DEFAULT_PARTICIPANTS_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
DEFAULT_ASSETS_ADDRESS = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"

# Participant registry
GET_PARTICIPANTS = "getUsuarios()"
PARTICIPANT_TUPLE = "(address,string,string,string,bool)"  # address, name, gps, role, active

# Asset registry
GET_ASSET = "tokens(uint256)"
ASSET_TYPES = ["uint256", "string", "address", "string", "uint256", "uint256"]
GET_ATTRIBUTE_NAMES = "getNombresAtributos(uint256)"
GET_ATTRIBUTE = "getAtributo(uint256,string)"
ATTRIBUTE_TYPES = ["string", "string", "uint256"]
GET_COMPOSITION = "getMateriasPrimas(uint256)"
COMPOSITION_TUPLE = "(uint256,uint256,uint256,uint256)"  # child, parent, used, timestamp

TRANSFER_EVENT = "TokenTransferido(uint256,address,address,uint256)"
TRANSFER_EVENT_TYPES = ["uint256", "address", "address", "uint256"]
TRANSFER_EVENT_TOPIC = "0x" + keccak(text=TRANSFER_EVENT).hex()


def selector(signature: str) -> bytes:
    """Return the 4-byte function selector for a canonical signature."""
    return bytes(function_signature_to_4byte_selector(signature))


def encode_call(signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()) -> bytes:
    """
    Build call data for a contract function.

    Args:
        signature: Canonical function signature, e.g. "tokens(uint256)"
        arg_types: ABI types of the arguments
        args: Argument values

    Returns:
        Selector followed by the ABI-encoded arguments
    """
    return selector(signature) + encode(list(arg_types), list(args))


def decode_participants(data: bytes) -> List[Tuple[str, str, str, str, bool]]:
    """Decode the participant snapshot into (address, name, gps, role, active) tuples."""
    (rows,) = decode([PARTICIPANT_TUPLE + "[]"], data)
    return [
        (to_checksum_address(address), name, gps, role, bool(active))
        for address, name, gps, role, active in rows
    ]


def decode_asset(data: bytes) -> Tuple[int, str, str, str, int, int]:
    """Decode an asset record into (id, name, creator, description, quantity, timestamp)."""
    asset_id, name, creator, description, quantity, timestamp = decode(ASSET_TYPES, data)
    return asset_id, name, to_checksum_address(creator), description, quantity, timestamp


def decode_attribute_names(data: bytes) -> List[str]:
    (names,) = decode(["string[]"], data)
    return list(names)


def decode_attribute(data: bytes) -> Tuple[str, str, int]:
    name, value, timestamp = decode(ATTRIBUTE_TYPES, data)
    return name, value, timestamp


def decode_composition(data: bytes) -> List[Tuple[int, int, int, int]]:
    (rows,) = decode([COMPOSITION_TUPLE + "[]"], data)
    return [tuple(row) for row in rows]


def decode_transfer_log(log: Dict[str, Any]) -> Tuple[int, str, str, int]:
    """
    Decode the data section of a TokenTransferido log.

    All event fields are non-indexed, so the payload lives entirely in
    the log data.

    Returns:
        Tuple of (asset_id, sender, recipient, quantity)
    """
    raw = log.get("data") or "0x"
    if not isinstance(raw, str):
        raise ValueError(f"Malformed log data: {raw!r}")
    data = bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)
    asset_id, sender, recipient, quantity = decode(TRANSFER_EVENT_TYPES, data)
    return asset_id, to_checksum_address(sender), to_checksum_address(recipient), quantity
