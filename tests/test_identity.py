"""Tests for principal identities and signed requests."""

from delegatable_resolver.core.errors import BadSignature, InvalidPrincipal, ReplayedRequest
from delegatable_resolver.core.identity import (
    PrincipalIdentity, ReplayGuard, SignedRequest, address_of,
    generate_identity, normalize_principal, request_digest,
)
from delegatable_resolver.store.backend import MemoryStore, Substrate


def test_generate_identity():
    """Generate keypair, verify basic properties."""
    identity = generate_identity()
    assert len(identity.public_key) == 32
    assert identity.signing_key is not None
    assert identity.address.startswith("0x")
    assert len(identity.address) == 42
    assert identity.address == identity.address.lower()
    print("  ✓ generate_identity")


def test_sign_and_verify():
    """Sign a message, verify it succeeds."""
    identity = generate_identity()
    msg = b"set addr a.b.eth"
    sig = identity.sign(msg)
    assert len(sig) == 64
    assert PrincipalIdentity.verify(identity.public_key, msg, sig)
    print("  ✓ sign_and_verify")


def test_bad_signature_fails():
    """Tampered message, wrong key or garbage key fails verification."""
    identity = generate_identity()
    msg = b"original message"
    sig = identity.sign(msg)
    assert not PrincipalIdentity.verify(identity.public_key, b"tampered message", sig)
    other = generate_identity()
    assert not PrincipalIdentity.verify(other.public_key, msg, sig)
    assert not PrincipalIdentity.verify(b"short", msg, sig)
    print("  ✓ bad_signature_fails")


def test_public_only():
    """Public-only identity keeps its address but cannot sign."""
    identity = generate_identity()
    pub = identity.public_only()
    assert pub.signing_key is None
    assert pub.address == identity.address
    try:
        pub.sign(b"nope")
        assert False, "Should have raised"
    except ValueError:
        pass
    print("  ✓ public_only")


def test_principal_normalization():
    """Principals compare case-insensitively."""
    assert normalize_principal(" 0xABcd ") == "0xabcd"
    identity = generate_identity()
    assert address_of(identity.public_key) == identity.address
    print("  ✓ principal_normalization")


def test_signed_request_roundtrip():
    """A signed request verifies and names its signer."""
    identity = generate_identity()
    req = SignedRequest.create(identity, "/approvals", {"name": "eth", "operator": "0x01"}, seq=1)
    assert req.verify()
    assert req.principal == identity.address
    print("  ✓ signed_request_roundtrip")


def test_signed_request_tampered_body():
    """Changing the body or the sequence breaks the signature."""
    identity = generate_identity()
    req = SignedRequest.create(identity, "/records", {"name": "eth"}, seq=1)
    forged = SignedRequest(req.public_key, req.seq, {"name": "evil.eth"}, req.signature, req.op)
    assert not forged.verify()
    reseq = SignedRequest(req.public_key, 2, req.body, req.signature, req.op)
    assert not reseq.verify()
    print("  ✓ signed_request_tampered_body")


def test_signed_request_bound_to_operation():
    """A body signed for one operation does not verify as another."""
    identity = generate_identity()
    req = SignedRequest.create(identity, "/records", {"name": "eth", "kind": "text"}, seq=1)
    moved = SignedRequest(req.public_key, req.seq, req.body, req.signature, "/records/clear")
    assert not moved.verify()
    assert request_digest("/records", req.body, 1) != request_digest("/records/clear", req.body, 1)
    print("  ✓ signed_request_bound_to_operation")


def test_replay_guard():
    """Sequence numbers must increase per key; gaps are fine."""
    guard = ReplayGuard(Substrate())
    identity = generate_identity()
    assert guard.accept(SignedRequest.create(identity, "/names", {}, seq=1)) == identity.address
    guard.accept(SignedRequest.create(identity, "/names", {}, seq=5))
    assert guard.last_seq(identity.public_key) == 5
    try:
        guard.accept(SignedRequest.create(identity, "/names", {}, seq=5))
        assert False, "Should have raised"
    except ReplayedRequest:
        pass
    # Another key has its own counter
    other = generate_identity()
    guard.accept(SignedRequest.create(other, "/names", {}, seq=1))
    print("  ✓ replay_guard")


def test_replay_guard_bad_signature():
    """A bad signature is rejected and does not advance the counter."""
    guard = ReplayGuard(Substrate())
    identity = generate_identity()
    req = SignedRequest.create(identity, "/names", {"a": 1}, seq=3)
    bad = SignedRequest(req.public_key, req.seq, req.body, b"\x00" * 64, req.op)
    try:
        guard.accept(bad)
        assert False, "Should have raised"
    except BadSignature:
        pass
    assert guard.accept(req) == identity.address
    print("  ✓ replay_guard_bad_signature")


def test_replay_guard_survives_restart():
    """The counter lives in the store, so a new process still rejects old requests."""
    store = MemoryStore()
    identity = generate_identity()
    grant = SignedRequest.create(identity, "/approvals", {"approved": True}, seq=2)
    ReplayGuard(Substrate(store)).accept(grant)

    restarted = ReplayGuard(Substrate(store))
    assert restarted.last_seq(identity.public_key) == 2
    try:
        restarted.accept(grant)
        assert False, "Should have raised"
    except ReplayedRequest:
        pass
    print("  ✓ replay_guard_survives_restart")


def test_replay_guard_rolls_back_with_write():
    """A write that fails leaves the sequence number unused."""
    substrate = Substrate()
    guard = ReplayGuard(substrate)
    identity = generate_identity()
    req = SignedRequest.create(identity, "/records", {}, seq=7)
    try:
        with substrate.transaction():
            guard.accept(req)
            raise RuntimeError("write failed")
    except RuntimeError:
        pass
    assert guard.last_seq(identity.public_key) == -1
    assert guard.accept(req) == identity.address
    print("  ✓ replay_guard_rolls_back_with_write")


def test_principal_bounds():
    """Empty or oversized principals are rejected."""
    for bad in ["", "   ", "0x" + "a" * 300]:
        try:
            normalize_principal(bad)
            assert False, "Should have raised"
        except InvalidPrincipal:
            pass
    print("  ✓ principal_bounds")


def test_unique_identities():
    """Every generated identity is unique."""
    ids = [generate_identity() for _ in range(100)]
    assert len({i.address for i in ids}) == 100
    print("  ✓ unique_identities (100)")


if __name__ == "__main__":
    print("Testing identity system...")
    test_generate_identity()
    test_sign_and_verify()
    test_bad_signature_fails()
    test_public_only()
    test_principal_normalization()
    test_signed_request_roundtrip()
    test_signed_request_tampered_body()
    test_signed_request_bound_to_operation()
    test_replay_guard()
    test_replay_guard_bad_signature()
    test_replay_guard_survives_restart()
    test_replay_guard_rolls_back_with_write()
    test_principal_bounds()
    test_unique_identities()
    print("\nAll identity tests passed ✓")
