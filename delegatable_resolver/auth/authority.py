"""
Delegatable Resolver Authorization Store

Two kinds of authority facts live here:

  owner     one principal per top-level label, fixed at registration.
            The root owner (the deploying principal) stands above them and
            counts as owner of every top-level name.
  approval  (node, principal) -> True. Delegated write authority rooted
            at that node. Absence means False; revoking deletes the entry.

An approval at ROOT_NODE is blanket authority: it makes the principal an
owner of every top-level name. The store answers direct questions only.
Walking a name's ancestry is the gate's job.
"""

import logging
from typing import Optional

from delegatable_resolver.core.errors import MalformedName, NameAlreadyRegistered, NotAuthorized
from delegatable_resolver.core.events import ApprovalChanged, NameRegistered
from delegatable_resolver.core.identity import Principal, normalize_principal
from delegatable_resolver.core.names import ROOT_NODE, NameHierarchy
from delegatable_resolver.store.backend import Substrate, make_key


logger = logging.getLogger(__name__)

_ROOT_OWNER_KEY = make_key(b"root_owner")
_APPROVED = b"\x01"


def _owner_key(label: bytes) -> bytes:
    return make_key(b"owner", label)


def _approval_key(node: bytes, principal: Principal) -> bytes:
    return make_key(b"approval", node, principal.encode())


class AuthorizationStore:
    """Owners and approvals, read and written through the substrate."""

    def __init__(self, substrate: Substrate):
        self.substrate = substrate

    # --------------------------------------------------------
    # Owners
    # --------------------------------------------------------

    def initialize(self, root_owner: Principal) -> None:
        """Set the root owner once. Later calls leave it unchanged."""
        with self.substrate.transaction() as txn:
            if txn.get(_ROOT_OWNER_KEY) is None:
                txn.put(_ROOT_OWNER_KEY, normalize_principal(root_owner).encode())

    @property
    def root_owner(self) -> Optional[Principal]:
        raw = self.substrate.read(_ROOT_OWNER_KEY)
        return raw.decode() if raw is not None else None

    def owner_of(self, label: bytes) -> Optional[Principal]:
        raw = self.substrate.read(_owner_key(label))
        return raw.decode() if raw is not None else None

    def register(self, name: NameHierarchy, owner: Principal, caller: Principal) -> None:
        """Create a top-level name with its permanent owner.

        Only root authority (root owner or root approval) may register.
        """
        if name.depth != 1:
            raise MalformedName(f"only top-level names can be registered, got {name}")
        caller = normalize_principal(caller)
        if not self.is_owner(None, caller):
            raise NotAuthorized(ROOT_NODE, caller, f"{caller} cannot register {name}")

        label = name.labels[0]
        with self.substrate.transaction() as txn:
            if txn.get(_owner_key(label)) is not None:
                raise NameAlreadyRegistered(f"{name} is already registered")
            owner = normalize_principal(owner)
            txn.put(_owner_key(label), owner.encode())
            txn.emit(NameRegistered(node=name.node, label=label, owner=owner))
        logger.info(f"registered {name} for {owner}")

    def is_owner(self, top_level: Optional[bytes], principal: Principal) -> bool:
        """Owner of the top-level name, root owner, or approved at the root."""
        principal = normalize_principal(principal)
        if top_level is not None and self.owner_of(top_level) == principal:
            return True
        if self.root_owner == principal:
            return True
        return self.is_approved(ROOT_NODE, principal)

    # --------------------------------------------------------
    # Approvals
    # --------------------------------------------------------

    def is_approved(self, node: bytes, principal: Principal) -> bool:
        """Direct lookup at one node. No ancestry."""
        raw = self.substrate.read(_approval_key(node, normalize_principal(principal)))
        return raw == _APPROVED

    def set_approval(self, name: NameHierarchy, operator: Principal, approved: bool,
                     caller: Principal) -> ApprovalChanged:
        """Grant or revoke `operator`'s authority rooted at `name`.

        Only an owner of the name's top-level name may do this. Emits
        exactly one ApprovalChanged, even when the flag does not change.
        """
        caller = normalize_principal(caller)
        operator = normalize_principal(operator)
        node = name.node
        if not self.is_owner(name.top_level, caller):
            logger.warning(f"approval for {name} denied: {caller} is not an owner")
            raise NotAuthorized(node, caller)

        event = ApprovalChanged(node=node, operator=operator, name=name.wire,
                                approved=bool(approved))
        with self.substrate.transaction() as txn:
            if approved:
                txn.put(_approval_key(node, operator), _APPROVED)
            else:
                txn.delete(_approval_key(node, operator))
            txn.emit(event)
        return event
