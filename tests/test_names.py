"""Tests for the name hierarchy: wire format, node ids, suffix walks."""

import hashlib

from delegatable_resolver.core.errors import MalformedName
from delegatable_resolver.core.names import (
    ROOT_NODE, NameHierarchy, child_node, decode_name, encode_name,
    label_hash, namehash, parse_name,
)


def expect_malformed(fn, *args):
    try:
        fn(*args)
        assert False, "Should have raised MalformedName"
    except MalformedName:
        pass


# ============================================================
# Wire format
# ============================================================

def test_encode_decode():
    """Dotted names encode to length-prefixed labels and back."""
    raw = encode_name("a.bc.eth")
    assert raw == b"\x01a\x02bc\x03eth\x00"
    assert decode_name(raw) == (b"a", b"bc", b"eth")
    assert encode_name("") == b"\x00"
    assert decode_name(b"\x00") == ()
    print("  ✓ encode_decode")


def test_decode_with_offset():
    """Decoding from an offset yields the ancestor's labels."""
    raw = encode_name("a.b.eth")
    assert decode_name(raw, 2) == (b"b", b"eth")
    assert decode_name(raw, 8) == ()
    print("  ✓ decode_with_offset")


def test_malformed_names():
    """Bad framing is rejected before it reaches the hierarchy."""
    expect_malformed(decode_name, b"")
    expect_malformed(decode_name, b"\x03et")            # label runs past end
    expect_malformed(decode_name, b"\x03eth")           # no terminator
    expect_malformed(decode_name, b"\x03eth\x00\x01")   # trailing bytes
    expect_malformed(decode_name, b"\x00", 5)           # offset outside
    expect_malformed(parse_name, "a..eth")
    expect_malformed(parse_name, "x" * 256 + ".eth")
    print("  ✓ malformed_names")


# ============================================================
# Node ids
# ============================================================

def test_root_node():
    """The empty name is the fixed root node."""
    assert namehash("") == ROOT_NODE
    assert NameHierarchy.from_name("").node == ROOT_NODE
    assert len(ROOT_NODE) == 32
    print("  ✓ root_node")


def test_namehash_construction():
    """node(l + rest) = H(node(rest) || H(l))."""
    eth = hashlib.sha3_256(ROOT_NODE + hashlib.sha3_256(b"eth").digest()).digest()
    assert namehash("eth") == eth
    assert namehash("foo.eth") == child_node(eth, b"foo")
    assert label_hash(b"eth") == hashlib.sha3_256(b"eth").digest()
    print("  ✓ namehash_construction")


def test_namehash_deterministic():
    """Equal suffixes give equal nodes no matter how the name was given."""
    assert namehash("a.b.eth") == namehash((b"a", b"b", b"eth"))
    assert NameHierarchy.from_name(encode_name("a.b.eth")).node == namehash("a.b.eth")
    assert namehash("a.b.eth") != namehash("b.a.eth")
    print("  ✓ namehash_deterministic")


def test_custom_hash_fn():
    """The hash collaborator is injectable."""
    sha256 = lambda data: hashlib.sha256(data).digest()
    h = NameHierarchy.from_name("eth", sha256)
    assert h.node == sha256(ROOT_NODE + sha256(b"eth"))
    assert h.node != namehash("eth")
    print("  ✓ custom_hash_fn")


# ============================================================
# Suffix walk
# ============================================================

def test_suffixes_most_specific_first():
    """Walk goes from the full name down to the root."""
    h = NameHierarchy.from_name("a.b.c.eth")
    walk = list(h.suffixes())
    assert [offset for offset, _ in walk] == [0, 1, 2, 3, 4]
    assert walk[0][1] == namehash("a.b.c.eth")
    assert walk[1][1] == namehash("b.c.eth")
    assert walk[3][1] == namehash("eth")
    assert walk[4][1] == ROOT_NODE
    print("  ✓ suffixes_most_specific_first")


def test_suffixes_restartable():
    """Each call is a fresh walk with the same result."""
    h = NameHierarchy.from_name("x.eth")
    assert list(h.suffixes()) == list(h.suffixes())
    it = h.suffixes()
    next(it)
    assert len(list(h.suffixes())) == 3
    print("  ✓ suffixes_restartable")


def test_root_has_single_suffix():
    """The root's walk is just the root."""
    assert list(NameHierarchy.from_name("").suffixes()) == [(0, ROOT_NODE)]
    print("  ✓ root_has_single_suffix")


def test_hierarchy_properties():
    """Top level, parent and coverage follow the labels."""
    h = NameHierarchy.from_name("a.b.eth")
    assert h.top_level == b"eth"
    assert h.parent().dotted == "b.eth"
    assert NameHierarchy.from_name("").top_level is None
    assert NameHierarchy.from_name("b.eth").covers(h)
    assert not h.covers(NameHierarchy.from_name("b.eth"))
    assert not NameHierarchy.from_name("c.eth").covers(h)
    assert NameHierarchy.from_name("").covers(h)
    assert h.wire == encode_name("a.b.eth")
    print("  ✓ hierarchy_properties")


if __name__ == "__main__":
    print("Testing name hierarchy...\n")
    test_encode_decode()
    test_decode_with_offset()
    test_malformed_names()
    test_root_node()
    test_namehash_construction()
    test_namehash_deterministic()
    test_custom_hash_fn()
    test_suffixes_most_specific_first()
    test_suffixes_restartable()
    test_root_has_single_suffix()
    test_hierarchy_properties()
    print("\nALL NAME TESTS PASSED ✓")
