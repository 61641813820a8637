"""
Delegatable Resolver

One resolver instance wires the pieces together:

    Substrate            transactional key/value state + event journal
    AuthorizationStore   owners and approvals
    Gate                 the ancestry walk that authorizes every write
    RecordStore          typed records behind one write path
    BatchExecutor        all-or-nothing multicalls

Names can be passed as dotted strings ("a.b.eth"), wire-format bytes,
label tuples or NameHierarchy objects.
"""

import logging
from typing import Any, Iterable, Optional, Sequence, Union

from delegatable_resolver.auth.authority import AuthorizationStore
from delegatable_resolver.auth.gate import AuthorizationResult, Gate
from delegatable_resolver.core.events import ApprovalChanged, RecordChanged, VersionChanged
from delegatable_resolver.core.identity import Principal, ReplayGuard
from delegatable_resolver.core.interfaces import supports_interface
from delegatable_resolver.core.log import EventJournal
from delegatable_resolver.core.names import HashFn, NameHierarchy, decode_name, sha3
from delegatable_resolver.records.multicall import BatchExecutor, Call
from delegatable_resolver.records.records import RecordKind, RecordStore
from delegatable_resolver.store.backend import Substrate


logger = logging.getLogger(__name__)

NameLike = Union[str, bytes, Sequence[bytes], NameHierarchy]


class DelegatableResolver:
    """A name registry whose owners delegate write authority down the hierarchy."""

    def __init__(self, root_owner: Principal, store=None, hash_fn: HashFn = sha3):
        self.hash_fn = hash_fn
        self.substrate = Substrate(store)
        self.authority = AuthorizationStore(self.substrate)
        self.gate = Gate(self.authority)
        self.records = RecordStore(self.substrate, self.gate)
        self.executor = BatchExecutor(self.substrate, self.records, self.authority)
        self.replay_guard = ReplayGuard(self.substrate)
        self.authority.initialize(root_owner)

    def name(self, name: NameLike) -> NameHierarchy:
        hierarchy = NameHierarchy.from_name(name, self.hash_fn)
        if hierarchy.hash_fn is not self.hash_fn:
            hierarchy = NameHierarchy(hierarchy.labels, self.hash_fn)
        return hierarchy

    def node(self, name: NameLike) -> bytes:
        return self.name(name).node

    def transaction(self):
        """One unit of work: every call made inside commits or aborts together."""
        return self.substrate.transaction()

    @property
    def journal(self) -> EventJournal:
        return self.substrate.journal

    @property
    def root_owner(self) -> Optional[Principal]:
        return self.authority.root_owner

    # --------------------------------------------------------
    # Ownership and delegation
    # --------------------------------------------------------

    def register(self, label: str, owner: Principal, caller: Principal) -> bytes:
        """Register a top-level name. Returns its node."""
        hierarchy = self.name(label)
        self.authority.register(hierarchy, owner, caller)
        return hierarchy.node

    def owner_of(self, label: str) -> Optional[Principal]:
        return self.authority.owner_of(label.encode("utf-8"))

    def is_owner(self, principal: Principal, name: Optional[NameLike] = None) -> bool:
        """Owner of the name's top-level name. With no name: root authority only."""
        top_level = self.name(name).top_level if name is not None else None
        return self.authority.is_owner(top_level, principal)

    def approve(self, name: NameLike, operator: Principal, approved: bool,
                caller: Principal) -> ApprovalChanged:
        return self.authority.set_approval(self.name(name), operator, approved, caller)

    def is_approved(self, node: bytes, principal: Principal) -> bool:
        return self.authority.is_approved(node, principal)

    def authorize(self, name: NameLike, principal: Principal) -> AuthorizationResult:
        return self.gate.authorize(self.name(name), principal)

    def get_authorised_node(self, wire_name: bytes, offset: int,
                            operator: Principal) -> tuple[bytes, bool]:
        """Wire-level authorization query: (node of the name at offset, authorized)."""
        labels = decode_name(wire_name, offset)
        result = self.gate.authorize(NameHierarchy(labels, self.hash_fn), operator)
        return result.node, result.authorized

    # --------------------------------------------------------
    # Records
    # --------------------------------------------------------

    def set_record(self, name: NameLike, kind: RecordKind, payload: bytes,
                   caller: Principal) -> RecordChanged:
        return self.records.set_record(self.name(name), kind, payload, caller)

    def get_record(self, name: NameLike, kind: RecordKind) -> bytes:
        return self.records.get_record(self.name(name), kind)

    def clear_records(self, name: NameLike, caller: Principal) -> VersionChanged:
        return self.records.clear_records(self.name(name), caller)

    def record_version(self, name: NameLike) -> int:
        return self.records.record_version(self.name(name))

    def set_pubkey(self, name: NameLike, x: bytes, y: bytes, caller: Principal) -> RecordChanged:
        return self.records.set_pubkey(self.name(name), x, y, caller)

    def pubkey(self, name: NameLike) -> tuple[bytes, bytes]:
        return self.records.pubkey(self.name(name))

    def set_abi(self, name: NameLike, content_type: int, data: bytes,
                caller: Principal) -> RecordChanged:
        return self.set_record(name, RecordKind.abi(content_type), data, caller)

    def abi(self, name: NameLike, content_types: int) -> tuple[int, bytes]:
        return self.records.abi(self.name(name), content_types)

    def set_dns_records(self, name: NameLike, entries: Iterable[tuple[bytes, int, bytes]],
                        caller: Principal) -> list[RecordChanged]:
        return self.records.set_dns_records(self.name(name), entries, caller)

    def has_dns_records(self, name: NameLike, dns_name: bytes) -> bool:
        return self.records.has_dns_records(self.name(name), dns_name)

    # --------------------------------------------------------
    # Batches and introspection
    # --------------------------------------------------------

    def multicall(self, calls: Sequence[Call], caller: Principal) -> list[Any]:
        return self.executor.multicall(calls, caller)

    def multicall_with_node_check(self, node: bytes, calls: Sequence[Call],
                                  caller: Principal) -> list[Any]:
        return self.executor.multicall_with_node_check(node, calls, caller)

    def supports_interface(self, interface_id: Union[bytes, str]) -> bool:
        return supports_interface(interface_id)


def parse_name_arg(name: str) -> NameLike:
    """Names over the wire: 0x-prefixed wire-format hex, or dotted strings.

    A 0x-prefixed argument that is not valid hex ("0xabc.eth") is a dotted
    name whose first label happens to start with 0x.
    """
    if name.startswith("0x"):
        try:
            return bytes.fromhex(name[2:])
        except ValueError:
            pass
    return name
