"""
Delegatable Resolver Batch Executor

A multicall runs an ordered list of write calls as one transaction.
Each call goes through the gate on its own, since calls in one batch may
target different names. The first failing call aborts the whole batch:
nothing it or any earlier call wrote is kept, and BatchAborted reports
its index and cause.

multicall_with_node_check additionally pins every call to one node.
A call aimed anywhere else aborts the batch the same way.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

from delegatable_resolver.auth.authority import AuthorizationStore
from delegatable_resolver.core.errors import BatchAborted, NodeMismatch, ResolverError
from delegatable_resolver.core.identity import Principal
from delegatable_resolver.core.names import NameHierarchy
from delegatable_resolver.records.records import RecordKind, RecordStore
from delegatable_resolver.store.backend import Substrate


logger = logging.getLogger(__name__)


# ============================================================
# Calls
# ============================================================

@dataclass
class SetRecord:
    target: NameHierarchy
    kind: RecordKind
    payload: bytes

    def apply(self, records: RecordStore, authority: AuthorizationStore, caller: Principal) -> Any:
        return records.set_record(self.target, self.kind, self.payload, caller)


@dataclass
class SetDNSRecords:
    target: NameHierarchy
    entries: list[tuple[bytes, int, bytes]] = field(default_factory=list)

    def apply(self, records: RecordStore, authority: AuthorizationStore, caller: Principal) -> Any:
        return records.set_dns_records(self.target, self.entries, caller)


@dataclass
class ClearRecords:
    target: NameHierarchy

    def apply(self, records: RecordStore, authority: AuthorizationStore, caller: Principal) -> Any:
        return records.clear_records(self.target, caller)


@dataclass
class Approve:
    target: NameHierarchy
    operator: Principal
    approved: bool = True

    def apply(self, records: RecordStore, authority: AuthorizationStore, caller: Principal) -> Any:
        return authority.set_approval(self.target, self.operator, self.approved, caller)


Call = Union[SetRecord, SetDNSRecords, ClearRecords, Approve]


# ============================================================
# Executor
# ============================================================

class BatchExecutor:
    """Runs calls in order inside a single transaction."""

    def __init__(self, substrate: Substrate, records: RecordStore, authority: AuthorizationStore):
        self.substrate = substrate
        self.records = records
        self.authority = authority

    def multicall(self, calls: Sequence[Call], caller: Principal,
                  node: Optional[bytes] = None) -> list[Any]:
        """Execute all calls or none. Returns one result per call."""
        results = []
        with self.substrate.transaction() as txn:
            for index, call in enumerate(calls):
                try:
                    if node is not None and call.target.node != node:
                        raise NodeMismatch(expected=node, actual=call.target.node)
                    results.append(call.apply(self.records, self.authority, caller))
                except ResolverError as e:
                    logger.warning(f"multicall txn {txn.txn_id} aborted at call {index}: {e}")
                    raise BatchAborted(index, e) from e
        return results

    def multicall_with_node_check(self, node: bytes, calls: Sequence[Call],
                                  caller: Principal) -> list[Any]:
        return self.multicall(calls, caller, node=node)
