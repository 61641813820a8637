"""Tests for the MCP tool dispatch (read-only resolver tools)."""

from delegatable_resolver.core.names import namehash
from delegatable_resolver.mcp.server import create_mcp_server, dispatch
from delegatable_resolver.records.records import RecordKind
from delegatable_resolver.resolver.resolver import DelegatableResolver


OWNER = "0x" + "0a" * 20
DELEGATE = "0x" + "0b" * 20


def make_resolver() -> DelegatableResolver:
    resolver = DelegatableResolver(OWNER)
    resolver.register("eth", OWNER, caller=OWNER)
    resolver.approve("a.eth", DELEGATE, True, caller=OWNER)
    resolver.set_record("a.eth", RecordKind.text("url"), b"https://a", caller=DELEGATE)
    return resolver


def test_server_builds():
    """The MCP server object can be created around a resolver."""
    resolver = make_resolver()
    server = create_mcp_server(lambda: resolver)
    assert server.name == "delegatable-resolver"
    print("  ✓ server_builds")


def test_dispatch_reads():
    """Read tools answer from resolver state."""
    resolver = make_resolver()
    assert dispatch("supports_interface", {"interface_id": "0x59d1d43c"}, resolver)["supported"]
    auth = dispatch("authorize", {"name": "x.a.eth", "principal": DELEGATE}, resolver)
    assert auth["authorized"] is True
    assert auth["deciding_node"] == namehash("a.eth").hex()
    assert dispatch("is_owner", {"principal": OWNER}, resolver)["is_owner"] is True
    assert dispatch("is_owner", {"principal": DELEGATE, "name": "a.eth"}, resolver)["is_owner"] is False
    assert dispatch("owner_of", {"label": "eth"}, resolver)["owner"] == OWNER
    rec = dispatch("get_record", {"name": "a.eth", "kind": "text", "key": "url"}, resolver)
    assert bytes.fromhex(rec["payload"]) == b"https://a"
    assert dispatch("record_version", {"name": "a.eth"}, resolver)["version"] == 0
    print("  ✓ dispatch_reads")


def test_dispatch_events():
    """Event tool pages through the journal."""
    resolver = make_resolver()
    out = dispatch("events", {"limit": 2}, resolver)
    assert [e["event"] for e in out["events"]] == ["NameRegistered", "Approval"]
    assert out["head"] == resolver.journal.head_hash
    print("  ✓ dispatch_events")


def test_dispatch_unknown_tool():
    """Unknown tools report an error instead of raising."""
    assert "error" in dispatch("set_record", {}, make_resolver())
    print("  ✓ dispatch_unknown_tool")


if __name__ == "__main__":
    print("Testing MCP dispatch...\n")
    test_server_builds()
    test_dispatch_reads()
    test_dispatch_events()
    test_dispatch_unknown_tool()
    print("\nALL MCP TESTS PASSED ✓")
