"""
Delegatable Resolver Identity System

Ed25519 keypairs for principals. A principal's address is derived from
its public key, and every mutating request is signed with that key.

The resolver core only ever sees the address string. Signatures are
checked at the edge (HTTP), inside the transaction of the call they admit.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Optional

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError

from delegatable_resolver.core.errors import BadSignature, InvalidPrincipal, ReplayedRequest
from delegatable_resolver.store.backend import Substrate, make_key


Principal = str

MAX_PRINCIPAL_LENGTH = 256


def normalize_principal(principal: str) -> Principal:
    """Principals compare case-insensitively."""
    principal = principal.strip().lower()
    if not principal or len(principal) > MAX_PRINCIPAL_LENGTH:
        raise InvalidPrincipal(f"principal must be 1..{MAX_PRINCIPAL_LENGTH} characters")
    return principal


def address_of(public_key: bytes) -> Principal:
    """0x-prefixed last 20 bytes of SHA3-256(public_key)."""
    return "0x" + hashlib.sha3_256(public_key).digest()[-20:].hex()


@dataclass(frozen=True)
class PrincipalIdentity:
    """A principal's cryptographic identity."""
    public_key: bytes          # 32 bytes Ed25519 public key
    signing_key: Optional[bytes] = field(default=None, repr=False)  # 64 bytes (private)

    @property
    def address(self) -> Principal:
        return address_of(self.public_key)

    def sign(self, message: bytes) -> bytes:
        """Sign a message. Returns 64-byte signature."""
        if self.signing_key is None:
            raise ValueError("Cannot sign without private key (read-only identity)")
        sk = SigningKey(self.signing_key[:32])  # nacl wants the seed (first 32 bytes)
        return sk.sign(message).signature

    @staticmethod
    def verify(public_key: bytes, message: bytes, signature: bytes) -> bool:
        """Verify a signature against a public key. Returns True/False."""
        try:
            VerifyKey(public_key).verify(message, signature)
            return True
        except (BadSignatureError, ValueError, TypeError):
            return False

    def public_only(self) -> "PrincipalIdentity":
        return PrincipalIdentity(public_key=self.public_key)


def generate_identity() -> PrincipalIdentity:
    """Generate a new Ed25519 keypair."""
    sk = SigningKey.generate()
    return PrincipalIdentity(
        public_key=bytes(sk.verify_key),
        signing_key=bytes(sk) + bytes(sk.verify_key)  # seed + pubkey = 64 bytes
    )


# ============================================================
# Signed requests
# ============================================================

def canonical_body(body: dict[str, Any]) -> bytes:
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode()


def request_digest(op: str, body: dict[str, Any], seq: int) -> bytes:
    """What the principal signs: op || seq || canonical JSON of the body.

    `op` names the operation the body is meant for (the HTTP route), so a
    body signed for one operation never verifies as another.
    """
    h = hashlib.sha256()
    op_bytes = op.encode()
    h.update(len(op_bytes).to_bytes(2, "big"))
    h.update(op_bytes)
    h.update(seq.to_bytes(8, "big"))
    h.update(canonical_body(body))
    return h.digest()


@dataclass
class SignedRequest:
    """A request body plus proof of which principal sent it, for which operation."""
    public_key: bytes
    seq: int
    body: dict[str, Any]
    signature: bytes
    op: str

    @property
    def principal(self) -> Principal:
        return address_of(self.public_key)

    @staticmethod
    def create(identity: PrincipalIdentity, op: str, body: dict[str, Any],
               seq: int) -> "SignedRequest":
        return SignedRequest(
            public_key=identity.public_key,
            seq=seq,
            body=body,
            signature=identity.sign(request_digest(op, body, seq)),
            op=op,
        )

    def verify(self) -> bool:
        if self.seq < 0 or self.seq >= 2 ** 64 or len(self.op.encode()) > 0xFFFF:
            return False
        return PrincipalIdentity.verify(self.public_key,
                                        request_digest(self.op, self.body, self.seq),
                                        self.signature)


def _seq_key(public_key: bytes) -> bytes:
    return make_key(b"seq", public_key)


class ReplayGuard:
    """Per-key monotonic sequence numbers. Gaps are fine, repeats are not.

    The last accepted number is resolver state, so it survives restarts and
    is shared by every process on the same store. Call accept() inside the
    transaction of the write it admits: a failed write leaves the counter
    where it was.
    """

    def __init__(self, substrate: Substrate):
        self.substrate = substrate

    def last_seq(self, public_key: bytes) -> int:
        raw = self.substrate.read(_seq_key(public_key))
        return int.from_bytes(raw, "big") if raw is not None else -1

    def check_seq(self, public_key: bytes, seq: int) -> bool:
        return seq > self.last_seq(public_key)

    def accept(self, request: SignedRequest) -> Principal:
        """Verify signature and sequence. Returns the authenticated principal."""
        if not request.verify():
            raise BadSignature("request signature does not verify")
        with self.substrate.transaction() as txn:
            raw = txn.get(_seq_key(request.public_key))
            last = int.from_bytes(raw, "big") if raw is not None else -1
            if request.seq <= last:
                raise ReplayedRequest(f"sequence {request.seq} not above {last}")
            txn.put(_seq_key(request.public_key), request.seq.to_bytes(8, "big"))
        return request.principal
