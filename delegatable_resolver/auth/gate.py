"""
Delegatable Resolver Gate: authorization resolution

Every write passes through authorize(). Given a name and a principal it
walks the name's ancestry from the name itself down to the root:

    a.b.c.eth -> b.c.eth -> c.eth -> eth -> (root)

and stops at the first node where the principal holds an approval. If no
level approves, ownership of the top-level name (or root authority)
decides. The result is the OR of all levels; the walk order only picks
which level gets reported as the deciding one.

Approval at a node never authorizes that node's ancestors.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from delegatable_resolver.auth.authority import AuthorizationStore
from delegatable_resolver.core.errors import NotAuthorized
from delegatable_resolver.core.identity import Principal, normalize_principal
from delegatable_resolver.core.names import NameHierarchy


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of one authorization walk."""
    node: bytes                  # node of the requested name
    authorized: bool
    deciding_node: bytes         # level that decided; the name's own node for owners/denials
    deciding_offset: Optional[int] = None   # label offset of an approving level
    via_owner: bool = False


class Gate:
    """Resolves whether a principal may write at a name."""

    def __init__(self, authority: AuthorizationStore):
        self.authority = authority

    def authorize(self, name: NameHierarchy, principal: Principal) -> AuthorizationResult:
        principal = normalize_principal(principal)
        full_node = None
        for offset, node in name.suffixes():
            if full_node is None:
                full_node = node
            if self.authority.is_approved(node, principal):
                logger.debug(f"{principal} approved for {name} at offset {offset}")
                return AuthorizationResult(node=full_node, authorized=True,
                                           deciding_node=node, deciding_offset=offset)

        if self.authority.is_owner(name.top_level, principal):
            return AuthorizationResult(node=full_node, authorized=True,
                                       deciding_node=full_node, via_owner=True)
        return AuthorizationResult(node=full_node, authorized=False, deciding_node=full_node)

    def require(self, name: NameHierarchy, principal: Principal) -> AuthorizationResult:
        """authorize() or raise NotAuthorized."""
        result = self.authorize(name, principal)
        if not result.authorized:
            logger.warning(f"write at {name} denied for {normalize_principal(principal)}")
            raise NotAuthorized(result.node, normalize_principal(principal))
        return result
