"""
Delegatable Resolver MCP Server

Exposes the resolver's read side as an MCP server so agents and other
MCP-compatible clients can query it natively. Writes need a signed
envelope and stay on the HTTP API.

Tools exposed:
  Introspection:  supports_interface
  Authority:      authorize, is_owner, owner_of
  Records:        get_record, record_version
  Journal:        events
"""

import json
from mcp.server import Server
from mcp.types import Tool, TextContent


def create_mcp_server(get_resolver):
    """Create an MCP server backed by a DelegatableResolver.

    get_resolver is a callable returning the current resolver (it may not
    exist at import time).
    """
    server = Server("delegatable-resolver")

    TOOLS = [
        Tool(name="supports_interface", description="Check whether a 4-byte interface id is implemented",
             inputSchema={"type": "object", "properties": {
                 "interface_id": {"type": "string", "description": "0x-prefixed 4-byte hex id"},
             }, "required": ["interface_id"]}),

        Tool(name="authorize", description="Resolve whether a principal may write records at a name",
             inputSchema={"type": "object", "properties": {
                 "name": {"type": "string", "description": "Dotted name, or 0x-prefixed wire-format hex"},
                 "principal": {"type": "string"},
             }, "required": ["name", "principal"]}),

        Tool(name="is_owner", description="Check owner authority, for a name's top-level name or for the root",
             inputSchema={"type": "object", "properties": {
                 "principal": {"type": "string"},
                 "name": {"type": "string", "description": "Omit to ask about root authority"},
             }, "required": ["principal"]}),

        Tool(name="owner_of", description="Registered owner of a top-level name",
             inputSchema={"type": "object", "properties": {
                 "label": {"type": "string"},
             }, "required": ["label"]}),

        Tool(name="get_record", description="Read a record (public, empty when unset)",
             inputSchema={"type": "object", "properties": {
                 "name": {"type": "string"},
                 "kind": {"type": "string", "enum": ["addr", "name", "abi", "pubkey", "text",
                                                     "contenthash", "dns_record", "dns_zonehash",
                                                     "interface"]},
                 "key": {"type": "string", "description": "coin type, text key, ABI content type, "
                                                          "interface id or dns_name_hex/rrtype"},
             }, "required": ["name", "kind"]}),

        Tool(name="record_version", description="Current record version of a name",
             inputSchema={"type": "object", "properties": {
                 "name": {"type": "string"},
             }, "required": ["name"]}),

        Tool(name="events", description="Committed events after a journal hash",
             inputSchema={"type": "object", "properties": {
                 "after": {"type": "string", "default": ""},
                 "limit": {"type": "integer", "default": 50},
             }}),
    ]

    @server.list_tools()
    async def list_tools():
        return TOOLS

    # --------------------------------------------------------
    # Tool dispatch
    # --------------------------------------------------------

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        resolver = get_resolver()
        try:
            result = dispatch(name, arguments or {}, resolver)
            return [TextContent(type="text", text=json.dumps(result, default=str))]
        except Exception as e:
            return [TextContent(type="text", text=json.dumps({"error": str(e)}))]

    return server


def dispatch(name: str, args: dict, resolver) -> dict:
    """Route tool calls to resolver functions."""

    # Lazy imports to avoid circular deps
    from delegatable_resolver.core.events import event_to_dict
    from delegatable_resolver.core.interfaces import capability_of, supports_interface
    from delegatable_resolver.records.records import RecordKind
    from delegatable_resolver.resolver.resolver import parse_name_arg

    if name == "supports_interface":
        return {"supported": supports_interface(args["interface_id"]),
                "capability": capability_of(args["interface_id"])}

    elif name == "authorize":
        r = resolver.authorize(parse_name_arg(args["name"]), args["principal"])
        return {"node": r.node.hex(), "authorized": r.authorized,
                "deciding_node": r.deciding_node.hex(), "deciding_offset": r.deciding_offset}

    elif name == "is_owner":
        target = args.get("name")
        return {"is_owner": resolver.is_owner(
            args["principal"], parse_name_arg(target) if target is not None else None)}

    elif name == "owner_of":
        return {"owner": resolver.owner_of(args["label"])}

    elif name == "get_record":
        kind = RecordKind.parse(args["kind"], args.get("key"))
        return {"payload": resolver.get_record(parse_name_arg(args["name"]), kind).hex()}

    elif name == "record_version":
        return {"version": resolver.record_version(parse_name_arg(args["name"]))}

    elif name == "events":
        entries = resolver.journal.entries_since(args.get("after", ""))[:args.get("limit", 50)]
        return {"head": resolver.journal.head_hash,
                "events": [event_to_dict(e.event, e.entry_hash) for e in entries]}

    else:
        return {"error": f"Unknown tool: {name}"}
