"""
Delegatable Resolver Errors

Every rejection carries a deterministic code. The same failing call
produces the same code on every replica, so callers can branch on
`err.code` without parsing messages.
"""

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Deterministic error codes for rejected calls."""
    E_AUTH = "E_AUTH"               # caller lacks authority at every level
    E_NAME = "E_NAME"               # name cannot be decoded into labels
    E_BATCH = "E_BATCH"             # a call inside a multicall failed
    E_NODE = "E_NODE"               # multicall target differs from declared node
    E_RECORD = "E_RECORD"           # record payload or selector is invalid
    E_EXISTS = "E_EXISTS"           # top-level name already registered
    E_SIG = "E_SIG"                 # request signature invalid
    E_SEQ = "E_SEQ"                 # replayed request sequence number
    E_CONFLICT = "E_CONFLICT"       # state read by the transaction changed before commit
    E_PRINCIPAL = "E_PRINCIPAL"     # principal identifier empty or oversized


class ResolverError(Exception):
    """Base class. Subclasses pin their code."""
    code: ErrorCode = ErrorCode.E_AUTH

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code.value)
        self.detail = detail


class NotAuthorized(ResolverError):
    """Caller is neither approved at any level of the name nor its owner."""
    code = ErrorCode.E_AUTH

    def __init__(self, node: bytes, principal: str, detail: str = ""):
        super().__init__(detail or f"{principal} not authorized for node 0x{node.hex()}")
        self.node = node
        self.principal = principal


class MalformedName(ResolverError):
    code = ErrorCode.E_NAME


class NodeMismatch(ResolverError):
    code = ErrorCode.E_NODE

    def __init__(self, expected: bytes, actual: bytes):
        super().__init__(f"call targets 0x{actual.hex()}, batch is bound to 0x{expected.hex()}")
        self.expected = expected
        self.actual = actual


class InvalidRecord(ResolverError):
    code = ErrorCode.E_RECORD


class NameAlreadyRegistered(ResolverError):
    code = ErrorCode.E_EXISTS


class BadSignature(ResolverError):
    code = ErrorCode.E_SIG


class ReplayedRequest(ResolverError):
    code = ErrorCode.E_SEQ


class InvalidPrincipal(ResolverError):
    code = ErrorCode.E_PRINCIPAL


class TransactionConflict(ResolverError):
    """Another writer changed a key this transaction read. Nothing was applied."""
    code = ErrorCode.E_CONFLICT


class BatchAborted(ResolverError):
    """A multicall stopped at `index`. Nothing in the batch was committed."""
    code = ErrorCode.E_BATCH

    def __init__(self, index: int, cause: ResolverError):
        super().__init__(f"call {index} failed: [{cause.code.value}] {cause}")
        self.index = index
        self.cause = cause

    @property
    def root_code(self) -> Optional[ErrorCode]:
        return self.cause.code if self.cause is not None else None
