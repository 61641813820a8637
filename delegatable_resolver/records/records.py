"""
Delegatable Resolver Record Store

Records are opaque bytes keyed by (node, version, kind, sub-key). One
generic write path and one generic read path serve every record kind:

    set_record(name, kind, payload, caller)   authorized, emits RecordChanged
    get_record(name, kind)                    public, b"" when unset

An empty payload is the "unset" state: writing it deletes the entry.
Bumping a node's version (clear_records) makes every older record unset
at once without touching them.

The typed helpers at the bottom only pack and unpack payloads (pubkey
coordinates, ABI content-type masks, DNS record batches). They all go
through the same two paths.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from delegatable_resolver.auth.gate import Gate
from delegatable_resolver.core.errors import InvalidRecord
from delegatable_resolver.core.events import RecordChanged, RecordType, VersionChanged
from delegatable_resolver.core.identity import Principal
from delegatable_resolver.core.names import NameHierarchy
from delegatable_resolver.store.backend import MAX_KEY_PART, Substrate, Transaction, make_key


logger = logging.getLogger(__name__)

COIN_TYPE_ETH = 60
MAX_ABI_CONTENT_TYPE_BITS = 256


# ============================================================
# Record kinds
# ============================================================

@dataclass(frozen=True)
class RecordKind:
    """A record type plus the sub-key that selects one slot of it."""
    record_type: RecordType
    sub_key: bytes = b""

    @staticmethod
    def address(coin_type: int = COIN_TYPE_ETH) -> "RecordKind":
        if coin_type < 0:
            raise InvalidRecord(f"coin type must be non-negative, got {coin_type}")
        return RecordKind(RecordType.ADDRESS, coin_type.to_bytes(32, "big"))

    @staticmethod
    def name() -> "RecordKind":
        return RecordKind(RecordType.NAME)

    @staticmethod
    def abi(content_type: int) -> "RecordKind":
        # Exactly one content type per record
        if content_type <= 0 or content_type & (content_type - 1):
            raise InvalidRecord(f"ABI content type must be a single power of two, got {content_type}")
        return RecordKind(RecordType.ABI, content_type.to_bytes(32, "big"))

    @staticmethod
    def pubkey() -> "RecordKind":
        return RecordKind(RecordType.PUBKEY)

    @staticmethod
    def text(key: str) -> "RecordKind":
        raw = key.encode("utf-8")
        if len(raw) > MAX_KEY_PART:
            raise InvalidRecord(f"text key of {len(raw)} bytes exceeds {MAX_KEY_PART}")
        return RecordKind(RecordType.TEXT, raw)

    @staticmethod
    def content_hash() -> "RecordKind":
        return RecordKind(RecordType.CONTENT_HASH)

    @staticmethod
    def dns_record(dns_name: bytes, rrtype: int) -> "RecordKind":
        """dns_name is the wire-format owner name of the resource record."""
        if not 0 <= rrtype < 2 ** 16:
            raise InvalidRecord(f"DNS resource type out of range: {rrtype}")
        # sub-key is itself a two-part key: 2 + len(dns_name) + 2 + 2
        if len(dns_name) > MAX_KEY_PART - 6:
            raise InvalidRecord(f"DNS owner name of {len(dns_name)} bytes is too long")
        return RecordKind(RecordType.DNS_RECORD, make_key(dns_name, rrtype.to_bytes(2, "big")))

    @staticmethod
    def dns_zonehash() -> "RecordKind":
        return RecordKind(RecordType.DNS_ZONEHASH)

    @staticmethod
    def interface(interface_id: bytes) -> "RecordKind":
        if len(interface_id) != 4:
            raise InvalidRecord(f"interface id must be 4 bytes, got {len(interface_id)}")
        return RecordKind(RecordType.INTERFACE, bytes(interface_id))

    @staticmethod
    def parse(kind: str, key: Optional[str] = None) -> "RecordKind":
        """Build a kind from its string form, e.g. ("text", "url"), ("addr", "60")."""
        try:
            record_type = RecordType(kind)
        except ValueError:
            raise InvalidRecord(f"unknown record kind {kind!r}")
        try:
            if record_type == RecordType.ADDRESS:
                return RecordKind.address(int(key) if key else COIN_TYPE_ETH)
            if record_type == RecordType.ABI:
                return RecordKind.abi(int(key or "0"))
            if record_type == RecordType.TEXT:
                if key is None:
                    raise InvalidRecord("text records need a key")
                return RecordKind.text(key)
            if record_type == RecordType.DNS_RECORD:
                dns_name, _, rrtype = (key or "").partition("/")
                return RecordKind.dns_record(bytes.fromhex(dns_name), int(rrtype))
            if record_type == RecordType.INTERFACE:
                return RecordKind.interface(bytes.fromhex((key or "").removeprefix("0x")))
        except ValueError as e:
            raise InvalidRecord(f"bad key {key!r} for {kind}: {e}")
        return RecordKind(record_type)

    @property
    def dns_name(self) -> bytes:
        """Owner name of a DNS record kind."""
        length = int.from_bytes(self.sub_key[:2], "big")
        return self.sub_key[2:2 + length]


def _version_key(node: bytes) -> bytes:
    return make_key(b"version", node)


def _record_key(node: bytes, version: int, kind: RecordKind) -> bytes:
    return make_key(b"record", node, version.to_bytes(8, "big"),
                    kind.record_type.value.encode(), kind.sub_key)


def _dns_count_key(node: bytes, version: int, dns_name: bytes) -> bytes:
    return make_key(b"dns_count", node, version.to_bytes(8, "big"), dns_name)


# ============================================================
# Record store
# ============================================================

class RecordStore:
    """Authorized writes, public reads."""

    def __init__(self, substrate: Substrate, gate: Gate):
        self.substrate = substrate
        self.gate = gate

    def record_version(self, name: NameHierarchy) -> int:
        raw = self.substrate.read(_version_key(name.node))
        return int.from_bytes(raw, "big") if raw else 0

    def get_record(self, name: NameHierarchy, kind: RecordKind) -> bytes:
        """Current payload, or b"" when unset."""
        node = name.node
        raw = self.substrate.read(_record_key(node, self.record_version(name), kind))
        return raw if raw is not None else b""

    def set_record(self, name: NameHierarchy, kind: RecordKind, payload: bytes,
                   caller: Principal) -> RecordChanged:
        """Upsert one record after the gate approves `caller` for `name`."""
        payload = bytes(payload)
        with self.substrate.transaction() as txn:
            self.gate.require(name, caller)
            return self._write(txn, name, kind, payload)

    def _write(self, txn: Transaction, name: NameHierarchy, kind: RecordKind,
               payload: bytes) -> RecordChanged:
        node = name.node
        version = self.record_version(name)
        key = _record_key(node, version, kind)

        if kind.record_type == RecordType.DNS_RECORD:
            self._track_dns_count(txn, node, version, kind.dns_name,
                                  had=bool(txn.get(key)), has=bool(payload))

        if payload:
            txn.put(key, payload)
        else:
            txn.delete(key)
        event = RecordChanged(node=node, record_type=kind.record_type,
                              sub_key=kind.sub_key, payload=payload)
        txn.emit(event)
        return event

    def _track_dns_count(self, txn: Transaction, node: bytes, version: int,
                         dns_name: bytes, had: bool, has: bool) -> None:
        if had == has:
            return
        key = _dns_count_key(node, version, dns_name)
        raw = txn.get(key)
        count = int.from_bytes(raw, "big") if raw else 0
        count += 1 if has else -1
        if count > 0:
            txn.put(key, count.to_bytes(8, "big"))
        else:
            txn.delete(key)

    def clear_records(self, name: NameHierarchy, caller: Principal) -> VersionChanged:
        """Unset every record of `name` by moving it to a fresh version."""
        with self.substrate.transaction() as txn:
            self.gate.require(name, caller)
            version = self.record_version(name) + 1
            txn.put(_version_key(name.node), version.to_bytes(8, "big"))
            event = VersionChanged(node=name.node, version=version)
            txn.emit(event)
        logger.info(f"cleared records of {name}, now at version {version}")
        return event

    # --------------------------------------------------------
    # Typed helpers
    # --------------------------------------------------------

    def set_pubkey(self, name: NameHierarchy, x: bytes, y: bytes,
                   caller: Principal) -> RecordChanged:
        if len(x) != 32 or len(y) != 32:
            raise InvalidRecord("pubkey coordinates must be 32 bytes each")
        return self.set_record(name, RecordKind.pubkey(), x + y, caller)

    def pubkey(self, name: NameHierarchy) -> tuple[bytes, bytes]:
        raw = self.get_record(name, RecordKind.pubkey())
        if not raw:
            return b"\x00" * 32, b"\x00" * 32
        return raw[:32], raw[32:64]

    def abi(self, name: NameHierarchy, content_types: int) -> tuple[int, bytes]:
        """First stored ABI whose content type bit is set in the mask."""
        content_type = 1
        while content_type <= content_types and content_type.bit_length() <= MAX_ABI_CONTENT_TYPE_BITS:
            if content_type & content_types:
                data = self.get_record(name, RecordKind.abi(content_type))
                if data:
                    return content_type, data
            content_type <<= 1
        return 0, b""

    def set_dns_records(self, name: NameHierarchy,
                        entries: Iterable[tuple[bytes, int, bytes]],
                        caller: Principal) -> list[RecordChanged]:
        """Write many (dns_name, rrtype, rdata) records under one authorization."""
        kinds = [(RecordKind.dns_record(dns_name, rrtype), bytes(rdata))
                 for dns_name, rrtype, rdata in entries]
        with self.substrate.transaction() as txn:
            self.gate.require(name, caller)
            return [self._write(txn, name, kind, rdata) for kind, rdata in kinds]

    def has_dns_records(self, name: NameHierarchy, dns_name: bytes) -> bool:
        if len(dns_name) > MAX_KEY_PART:
            return False
        raw = self.substrate.read(_dns_count_key(name.node, self.record_version(name), dns_name))
        return bool(raw) and int.from_bytes(raw, "big") > 0
