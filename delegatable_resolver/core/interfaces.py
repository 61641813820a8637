"""
Delegatable Resolver Capability Registry

Which capability groups this resolver implements, keyed by 4-byte
interface id. The table is fixed; anything not in it is unsupported.
The query never raises.
"""

from typing import Union


# interface id -> capability group
INTERFACES: dict[bytes, str] = {
    bytes.fromhex("01ffc9a7"): "interface_introspection",
    bytes.fromhex("3b3b57de"): "addr",
    bytes.fromhex("f1cb7e06"): "address",
    bytes.fromhex("691f3431"): "name",
    bytes.fromhex("2203ab56"): "abi",
    bytes.fromhex("c8690233"): "pubkey",
    bytes.fromhex("59d1d43c"): "text",
    bytes.fromhex("bc1c58d1"): "contenthash",
    bytes.fromhex("a8fa5682"): "dns_records",
    bytes.fromhex("5c98042b"): "dns_zone",
    bytes.fromhex("4fbf0433"): "multicall",
    bytes.fromhex("f21ce672"): "delegatable",
}


def _interface_bytes(interface_id: Union[bytes, str]) -> bytes:
    if isinstance(interface_id, str):
        text = interface_id[2:] if interface_id.lower().startswith("0x") else interface_id
        try:
            return bytes.fromhex(text)
        except ValueError:
            return b""
    return bytes(interface_id)


def supports_interface(interface_id: Union[bytes, str]) -> bool:
    """True for a recognized 4-byte id, False for anything else."""
    try:
        raw = _interface_bytes(interface_id)
    except (TypeError, ValueError):
        return False
    return len(raw) == 4 and raw in INTERFACES


def capability_of(interface_id: Union[bytes, str]) -> str:
    """Capability group name, or "" when unsupported."""
    if not supports_interface(interface_id):
        return ""
    return INTERFACES[_interface_bytes(interface_id)]
