"""
Delegatable Resolver Name Hierarchy

A name is a tuple of labels, most specific first: "a.b.eth" is
(b"a", b"b", b"eth"). Every suffix of that tuple is an ancestor domain,
down to the empty suffix, which is the root.

Each suffix has a 32-byte node id built the namehash way:

    node(())            = ROOT_NODE
    node((l,) + rest)   = H(node(rest) || H(l))

Ancestry is never stored. It is recomputed from the labels on demand,
so there is no tree to keep consistent.
"""

import hashlib
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Sequence, Union

from delegatable_resolver.core.errors import MalformedName


HashFn = Callable[[bytes], bytes]

ROOT_NODE = b"\x00" * 32
MAX_LABEL_LENGTH = 255   # one length byte on the wire


def sha3(data: bytes) -> bytes:
    """Default node hash."""
    return hashlib.sha3_256(data).digest()


# ============================================================
# Wire format
# ============================================================

def parse_name(name: str) -> tuple[bytes, ...]:
    """Split a dotted name into labels. "" is the root."""
    if name == "" or name == ".":
        return ()
    labels = tuple(part.encode("utf-8") for part in name.rstrip(".").split("."))
    for label in labels:
        if not label:
            raise MalformedName(f"empty label in {name!r}")
        if len(label) > MAX_LABEL_LENGTH:
            raise MalformedName(f"label longer than {MAX_LABEL_LENGTH} bytes in {name!r}")
    return labels


def encode_labels(labels: Sequence[bytes]) -> bytes:
    """Length-prefixed labels followed by a zero byte."""
    out = bytearray()
    for label in labels:
        if not label or len(label) > MAX_LABEL_LENGTH:
            raise MalformedName(f"label of length {len(label)} cannot be encoded")
        out.append(len(label))
        out.extend(label)
    out.append(0)
    return bytes(out)


def encode_name(name: str) -> bytes:
    return encode_labels(parse_name(name))


def decode_name(raw: bytes, offset: int = 0) -> tuple[bytes, ...]:
    """Decode wire-format labels starting at `offset`.

    The encoding must end exactly at the terminating zero byte.
    """
    if offset < 0 or offset >= len(raw):
        raise MalformedName(f"offset {offset} outside name of {len(raw)} bytes")
    labels = []
    pos = offset
    while True:
        if pos >= len(raw):
            raise MalformedName("name is missing its terminating zero byte")
        length = raw[pos]
        pos += 1
        if length == 0:
            break
        if pos + length > len(raw):
            raise MalformedName(f"label at byte {pos - 1} runs past end of name")
        labels.append(bytes(raw[pos:pos + length]))
        pos += length
    if pos != len(raw):
        raise MalformedName(f"{len(raw) - pos} trailing bytes after name terminator")
    return tuple(labels)


def to_dotted(labels: Sequence[bytes]) -> str:
    return ".".join(label.decode("utf-8", errors="replace") for label in labels)


# ============================================================
# Node ids
# ============================================================

def label_hash(label: bytes, hash_fn: HashFn = sha3) -> bytes:
    return hash_fn(label)


def child_node(parent: bytes, label: bytes, hash_fn: HashFn = sha3) -> bytes:
    return hash_fn(parent + hash_fn(label))


def namehash(name: Union[str, Sequence[bytes]], hash_fn: HashFn = sha3) -> bytes:
    """Node id of a dotted name or a label tuple."""
    labels = parse_name(name) if isinstance(name, str) else tuple(name)
    node = ROOT_NODE
    for label in reversed(labels):
        node = child_node(node, label, hash_fn)
    return node


@dataclass(frozen=True)
class NameHierarchy:
    """An immutable label sequence and the ancestry derived from it."""
    labels: tuple[bytes, ...]
    hash_fn: HashFn = field(default=sha3, repr=False, compare=False)

    @staticmethod
    def from_name(name: Union[str, bytes, Sequence[bytes], "NameHierarchy"],
                  hash_fn: HashFn = sha3) -> "NameHierarchy":
        """Accept a dotted string, wire-format bytes, a label sequence or a hierarchy."""
        if isinstance(name, NameHierarchy):
            return name
        if isinstance(name, str):
            return NameHierarchy(parse_name(name), hash_fn)
        if isinstance(name, (bytes, bytearray)):
            return NameHierarchy(decode_name(bytes(name)), hash_fn)
        return NameHierarchy(tuple(bytes(label) for label in name), hash_fn)

    @property
    def depth(self) -> int:
        return len(self.labels)

    @property
    def top_level(self) -> Optional[bytes]:
        """The top-level label this name falls under, None for the root."""
        return self.labels[-1] if self.labels else None

    @property
    def node(self) -> bytes:
        return self._chain()[0]

    @property
    def wire(self) -> bytes:
        return encode_labels(self.labels)

    @property
    def dotted(self) -> str:
        return to_dotted(self.labels)

    def parent(self) -> Optional["NameHierarchy"]:
        if not self.labels:
            return None
        return NameHierarchy(self.labels[1:], self.hash_fn)

    def covers(self, other: "NameHierarchy") -> bool:
        """True if `other` is this name or one of its descendants."""
        if len(other.labels) < len(self.labels):
            return False
        return other.labels[len(other.labels) - len(self.labels):] == self.labels

    def _chain(self) -> list[bytes]:
        # chain[k] is the node of labels[k:]; chain[-1] is the root
        chain = [ROOT_NODE]
        for label in reversed(self.labels):
            chain.append(child_node(chain[-1], label, self.hash_fn))
        chain.reverse()
        return chain

    def suffixes(self) -> Iterator[tuple[int, bytes]]:
        """Yield (offset, node) from the full name (offset 0) to the root.

        Every call returns a fresh generator. The root is always the last
        entry, at offset == depth.
        """
        chain = self._chain()
        for offset, node in enumerate(chain):
            yield offset, node

    def __str__(self) -> str:
        return self.dotted or "."
