"""
Delegatable Resolver API Service

FastAPI wrapper around the Delegatable Resolver.
Connects to Redis for persistent storage (falls back to in-memory).

Reads are public. Every write arrives as a signed envelope; the signer's
address is the principal the gate authorizes.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from delegatable_resolver.core.errors import (
    BatchAborted, ErrorCode, ResolverError,
)
from delegatable_resolver.core.events import event_to_dict
from delegatable_resolver.core.identity import SignedRequest
from delegatable_resolver.core.interfaces import capability_of, supports_interface
from delegatable_resolver.records.multicall import (
    Approve, Call, ClearRecords, SetDNSRecords, SetRecord,
)
from delegatable_resolver.records.records import RecordKind
from delegatable_resolver.resolver.resolver import DelegatableResolver, parse_name_arg
from delegatable_resolver.store.redis_backend import RedisStore

# MCP imports
try:
    from mcp.server.sse import SseServerTransport
    from delegatable_resolver.mcp.server import create_mcp_server
    HAS_MCP = True
except ImportError:
    HAS_MCP = False


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                    format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger("resolver")


# ============================================================
# Global State
# ============================================================

resolver: DelegatableResolver = None
RESOLVER_ADMIN = os.getenv("RESOLVER_ADMIN", "0x" + "00" * 20)
VERSION = "0.3.0"


def build_resolver() -> tuple[DelegatableResolver, str]:
    """Resolver on Redis when configured and reachable, else in memory."""
    redis_host = os.getenv("REDIS_HOST")
    redis_port = int(os.getenv("REDIS_PORT", "6379"))
    redis_pass = os.getenv("REDIS_PASSWORD", "")
    redis_prefix = os.getenv("REDIS_PREFIX", "resolver")

    if redis_host:
        try:
            store = RedisStore(host=redis_host, port=redis_port,
                               password=redis_pass, prefix=redis_prefix)
            return (DelegatableResolver(RESOLVER_ADMIN, store=store),
                    f"Redis ({redis_host}:{redis_port}/{redis_prefix})")
        except Exception as e:
            logger.warning(f"Redis connection failed: {e}, falling back to in-memory")
            return DelegatableResolver(RESOLVER_ADMIN), "In-Memory (Redis failed)"
    return DelegatableResolver(RESOLVER_ADMIN), "In-Memory"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the resolver on startup."""
    global resolver

    resolver, backend_name = build_resolver()

    if HAS_MCP:
        mcp_server = create_mcp_server(lambda: resolver)
        sse = SseServerTransport("/mcp/messages/")

        async def handle_sse(request):
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as streams:
                await mcp_server.run(
                    streams[0], streams[1], mcp_server.create_initialization_options()
                )

        async def handle_messages(request):
            await sse.handle_post_message(request.scope, request.receive, request._send)

        from starlette.routing import Route
        app.routes.append(Route("/mcp/sse", endpoint=handle_sse))
        app.routes.append(Route("/mcp/messages/", endpoint=handle_messages, methods=["POST"]))
        logger.info("MCP: enabled at /mcp/sse")
    else:
        logger.info("MCP: disabled (mcp package not installed)")

    logger.info(f"Delegatable Resolver booted, root owner {resolver.root_owner}")
    logger.info(f"  Backend: {backend_name}")
    yield
    logger.info("Delegatable Resolver shutting down")


app = FastAPI(
    title="Delegatable Resolver",
    description="Hierarchical name records with delegated write authority",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# Request/Response Models
# ============================================================

class SignedEnvelope(BaseModel):
    public_key: str                  # hex Ed25519 public key
    seq: int
    body: dict[str, Any]
    signature: str                   # hex signature over seq || canonical body

class NameRegister(BaseModel):
    label: str
    owner: str

class ApprovalSet(BaseModel):
    name: str
    operator: str
    approved: bool = True

class RecordSet(BaseModel):
    name: str
    kind: str
    key: Optional[str] = None
    payload: str = ""                # hex; empty unsets

class DNSRecordEntry(BaseModel):
    dns_name: str                    # hex wire-format owner name
    rrtype: int
    rdata: str = ""                  # hex

class BatchCall(BaseModel):
    op: str                          # set_record | set_dns_records | clear_records | approve
    name: str
    kind: Optional[str] = None
    key: Optional[str] = None
    payload: str = ""
    operator: Optional[str] = None
    approved: bool = True
    entries: list[DNSRecordEntry] = Field(default_factory=list)

class MulticallRequest(BaseModel):
    calls: list[BatchCall]
    node: Optional[str] = None       # hex; pins every call to this node

class ClearRequest(BaseModel):
    name: str


# ============================================================
# Helpers
# ============================================================

_STATUS = {
    ErrorCode.E_AUTH: 403,
    ErrorCode.E_NAME: 400,
    ErrorCode.E_NODE: 400,
    ErrorCode.E_RECORD: 400,
    ErrorCode.E_PRINCIPAL: 400,
    ErrorCode.E_EXISTS: 409,
    ErrorCode.E_SIG: 401,
    ErrorCode.E_SEQ: 409,
    ErrorCode.E_CONFLICT: 409,
}


def _http_error(e: ResolverError) -> HTTPException:
    if isinstance(e, BatchAborted):
        status = _STATUS.get(e.root_code, 400)
        return HTTPException(status, {"code": e.code.value, "index": e.index,
                                      "cause": e.cause.code.value, "detail": str(e)})
    return HTTPException(_STATUS.get(e.code, 400), {"code": e.code.value, "detail": str(e)})


def _unhex(value: str) -> bytes:
    try:
        return bytes.fromhex(value.removeprefix("0x"))
    except ValueError:
        raise HTTPException(400, f"not hex: {value[:80]!r}")


def authenticate(envelope: SignedEnvelope, op: str) -> str:
    """Check the envelope's signature for `op` and its sequence, return the principal.

    Must run inside the write's transaction so the sequence number only
    advances when the write commits.
    """
    request = SignedRequest(public_key=_unhex(envelope.public_key), seq=envelope.seq,
                            body=envelope.body, signature=_unhex(envelope.signature), op=op)
    return resolver.replay_guard.accept(request)


def _body(envelope: SignedEnvelope, model):
    try:
        return model(**envelope.body)
    except (TypeError, ValueError) as e:
        raise HTTPException(422, f"bad request body: {e}")


def _to_call(call: BatchCall) -> Call:
    name = resolver.name(parse_name_arg(call.name))
    if call.op == "set_record":
        if call.kind is None:
            raise HTTPException(422, "set_record needs a kind")
        return SetRecord(name, RecordKind.parse(call.kind, call.key), _unhex(call.payload))
    if call.op == "set_dns_records":
        return SetDNSRecords(name, [(_unhex(e.dns_name), e.rrtype, _unhex(e.rdata))
                                    for e in call.entries])
    if call.op == "clear_records":
        return ClearRecords(name)
    if call.op == "approve":
        if call.operator is None:
            raise HTTPException(422, "approve needs an operator")
        return Approve(name, call.operator, call.approved)
    raise HTTPException(422, f"unknown op {call.op!r}")


# ============================================================
# Health
# ============================================================

@app.get("/")
async def root():
    return {
        "service": "Delegatable Resolver",
        "version": VERSION,
        "root_owner": resolver.root_owner,
        "events": resolver.journal.length,
        "status": "operational",
    }

@app.get("/health")
async def health():
    return {"status": "healthy", "mcp": "enabled" if HAS_MCP else "disabled",
            "journal_ok": resolver.journal.verify_chain()}


# ============================================================
# Introspection
# ============================================================

@app.get("/interfaces/{interface_id}")
async def interface_endpoint(interface_id: str):
    return {"interface_id": interface_id,
            "supported": supports_interface(interface_id),
            "capability": capability_of(interface_id)}


# ============================================================
# Ownership and delegation
# ============================================================

@app.post("/names")
async def register_endpoint(envelope: SignedEnvelope):
    try:
        with resolver.transaction():
            caller = authenticate(envelope, "/names")
            req = _body(envelope, NameRegister)
            node = resolver.register(req.label, req.owner, caller)
    except ResolverError as e:
        raise _http_error(e)
    return {"label": req.label, "node": node.hex(), "owner": resolver.owner_of(req.label)}

@app.post("/approvals")
async def approve_endpoint(envelope: SignedEnvelope):
    try:
        with resolver.transaction():
            caller = authenticate(envelope, "/approvals")
            req = _body(envelope, ApprovalSet)
            event = resolver.approve(parse_name_arg(req.name), req.operator, req.approved, caller)
    except ResolverError as e:
        raise _http_error(e)
    return event_to_dict(event)

@app.get("/approvals")
async def is_approved_endpoint(name: str, principal: str):
    try:
        node = resolver.node(parse_name_arg(name))
        approved = resolver.is_approved(node, principal)
    except ResolverError as e:
        raise _http_error(e)
    return {"node": node.hex(), "principal": principal, "approved": approved}

@app.get("/authorization")
async def authorization_endpoint(name: str, principal: str):
    try:
        result = resolver.authorize(parse_name_arg(name), principal)
    except ResolverError as e:
        raise _http_error(e)
    return {"node": result.node.hex(), "authorized": result.authorized,
            "deciding_node": result.deciding_node.hex(),
            "deciding_offset": result.deciding_offset, "via_owner": result.via_owner}

@app.get("/owners/{principal}")
async def is_owner_endpoint(principal: str, name: Optional[str] = None):
    try:
        owner = resolver.is_owner(principal, parse_name_arg(name) if name is not None else None)
    except ResolverError as e:
        raise _http_error(e)
    return {"principal": principal, "name": name, "is_owner": owner}


# ============================================================
# Records
# ============================================================

@app.post("/records")
async def set_record_endpoint(envelope: SignedEnvelope):
    try:
        with resolver.transaction():
            caller = authenticate(envelope, "/records")
            req = _body(envelope, RecordSet)
            event = resolver.set_record(parse_name_arg(req.name),
                                        RecordKind.parse(req.kind, req.key),
                                        _unhex(req.payload), caller)
    except ResolverError as e:
        raise _http_error(e)
    return event_to_dict(event)

@app.get("/records")
async def get_record_endpoint(name: str, kind: str, key: Optional[str] = None):
    try:
        payload = resolver.get_record(parse_name_arg(name), RecordKind.parse(kind, key))
    except ResolverError as e:
        raise _http_error(e)
    return {"name": name, "kind": kind, "key": key, "payload": payload.hex()}

@app.post("/records/clear")
async def clear_records_endpoint(envelope: SignedEnvelope):
    try:
        with resolver.transaction():
            caller = authenticate(envelope, "/records/clear")
            req = _body(envelope, ClearRequest)
            event = resolver.clear_records(parse_name_arg(req.name), caller)
    except ResolverError as e:
        raise _http_error(e)
    return event_to_dict(event)

@app.post("/multicall")
async def multicall_endpoint(envelope: SignedEnvelope):
    try:
        with resolver.transaction():
            caller = authenticate(envelope, "/multicall")
            req = _body(envelope, MulticallRequest)
            calls = []
            for index, call in enumerate(req.calls):
                try:
                    calls.append(_to_call(call))
                except ResolverError as e:
                    raise BatchAborted(index, e) from e
            if req.node is not None:
                results = resolver.multicall_with_node_check(_unhex(req.node), calls, caller)
            else:
                results = resolver.multicall(calls, caller)
    except ResolverError as e:
        raise _http_error(e)

    out = []
    for r in results:
        if isinstance(r, list):
            out.append([event_to_dict(e) for e in r])
        else:
            out.append(event_to_dict(r))
    return {"results": out}


# ============================================================
# Events
# ============================================================

@app.get("/events")
async def events_endpoint(after: str = "", limit: int = 100):
    entries = resolver.journal.entries_since(after)[:limit]
    return {"head": resolver.journal.head_hash,
            "events": [event_to_dict(e.event, e.entry_hash) for e in entries]}


# ============================================================
# Run
# ============================================================

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8080))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=False)
