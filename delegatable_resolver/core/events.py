"""
Delegatable Resolver Events

Every successful mutating call emits events. Events are staged inside the
call's transaction and only reach the journal when it commits, so an
aborted multicall leaves no trace here either.
"""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class RecordType(Enum):
    """The closed set of record kinds a node can carry."""
    ADDRESS = "addr"
    NAME = "name"
    ABI = "abi"
    PUBKEY = "pubkey"
    TEXT = "text"
    CONTENT_HASH = "contenthash"
    DNS_RECORD = "dns_record"
    DNS_ZONEHASH = "dns_zonehash"
    INTERFACE = "interface"


# Event name per record type, as observers know them
RECORD_EVENT_NAMES: dict[RecordType, str] = {
    RecordType.ADDRESS: "AddressChanged",
    RecordType.NAME: "NameChanged",
    RecordType.ABI: "ABIChanged",
    RecordType.PUBKEY: "PubkeyChanged",
    RecordType.TEXT: "TextChanged",
    RecordType.CONTENT_HASH: "ContenthashChanged",
    RecordType.DNS_RECORD: "DNSRecordChanged",
    RecordType.DNS_ZONEHASH: "DNSZonehashChanged",
    RecordType.INTERFACE: "InterfaceChanged",
}


@dataclass(frozen=True)
class ApprovalChanged:
    node: bytes
    operator: str
    name: bytes                # wire-format name the approval was made for
    approved: bool

    @property
    def event_name(self) -> str:
        return "Approval"

    def fields(self) -> dict[str, Any]:
        return {"node": self.node.hex(), "operator": self.operator,
                "name": self.name.hex(), "approved": self.approved}


@dataclass(frozen=True)
class NameRegistered:
    node: bytes
    label: bytes
    owner: str

    @property
    def event_name(self) -> str:
        return "NameRegistered"

    def fields(self) -> dict[str, Any]:
        return {"node": self.node.hex(), "label": self.label.hex(), "owner": self.owner}


@dataclass(frozen=True)
class RecordChanged:
    node: bytes
    record_type: RecordType
    sub_key: bytes
    payload: bytes

    @property
    def event_name(self) -> str:
        if self.record_type == RecordType.DNS_RECORD and not self.payload:
            return "DNSRecordDeleted"
        return RECORD_EVENT_NAMES[self.record_type]

    def fields(self) -> dict[str, Any]:
        return {"node": self.node.hex(), "kind": self.record_type.value,
                "sub_key": self.sub_key.hex(), "payload": self.payload.hex()}


@dataclass(frozen=True)
class VersionChanged:
    node: bytes
    version: int

    @property
    def event_name(self) -> str:
        return "VersionChanged"

    def fields(self) -> dict[str, Any]:
        return {"node": self.node.hex(), "version": self.version}


Event = Union[ApprovalChanged, NameRegistered, RecordChanged, VersionChanged]


def event_hash(event: Event, prev_hash: str = "") -> str:
    """Deterministic hash of an event chained onto the previous entry."""
    h = hashlib.sha256()
    h.update(prev_hash.encode())
    h.update(event.event_name.encode())
    for key, value in sorted(event.fields().items()):
        h.update(key.encode())
        h.update(str(value).encode())
    return h.hexdigest()


def event_to_dict(event: Event, entry_hash: Optional[str] = None) -> dict[str, Any]:
    out = {"event": event.event_name, **event.fields()}
    if entry_hash is not None:
        out["hash"] = entry_hash
    return out
