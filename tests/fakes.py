"""In-process fake endpoints for the TCK's own tests."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Tuple, Union

from aiohttp import web
from aiohttp.test_utils import TestServer

from ledger_tck.config import EndpointConfig, OperatorConfig, TckConfig

OPERATOR_ID = "0.0.2"
OPERATOR_KEY = "302e020100300506032b657004220420operator"

Reply = Dict[str, Any]


# --- JSON-RPC reply builders ---


def ok(result: Any = None) -> Reply:
    return {"result": {} if result is None else result}


def rejected(status: str, code: int = -32001) -> Reply:
    return {
        "error": {
            "code": code,
            "message": "Hiero error",
            "data": {"status": status, "message": f"receipt status {status}"},
        }
    }


def rpc_error(code: int, message: str = "Internal error") -> Reply:
    return {"error": {"code": code, "message": message}}


class FakeSut:
    """Scripted JSON-RPC endpoint.

    Each method maps to a handler ``params -> reply``; a reply is the
    ``result``/``error`` part of the response. Unknown methods answer
    ``-32601``. A reply may also carry ``http_status`` or ``id`` to break
    the framing on purpose.
    """

    def __init__(self) -> None:
        self.url = ""
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.handlers: Dict[str, Callable[[Dict[str, Any]], Reply]] = {}
        self.on("setup", ok({"message": "Successfully setup client", "status": "SUCCESS"}))
        self.on("reset", ok({"status": "SUCCESS"}))

    def on(self, method: str, reply: Union[Reply, Callable[[Dict[str, Any]], Reply]]) -> None:
        self.handlers[method] = reply if callable(reply) else (lambda params, r=reply: r)

    def methods(self) -> List[str]:
        return [method for method, _ in self.calls]

    def params_of(self, method: str) -> List[Dict[str, Any]]:
        return [params for m, params in self.calls if m == method]

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.json()
        method = body["method"]
        params = body.get("params") or {}
        self.calls.append((method, params))

        handler = self.handlers.get(method)
        reply = dict(handler(params)) if handler else rpc_error(-32601, "Method not found")

        status = reply.pop("http_status", 200)
        response = {"jsonrpc": "2.0", "id": reply.pop("id", body["id"])}
        response.update(reply)
        return web.Response(status=status, text=json.dumps(response), content_type="application/json")


class FakeMirror:
    """Scripted mirror REST API keyed by path with query, then by bare path."""

    def __init__(self) -> None:
        self.url = ""
        self.documents: Dict[str, Any] = {}
        self.hits: Dict[str, int] = {}

    def serve(self, path: str, document: Any) -> None:
        """``document`` is a JSON body, an HTTP status, or ``hit_count -> body|status``."""
        self.documents[path] = document

    async def handle(self, request: web.Request) -> web.Response:
        key = request.path_qs if request.path_qs in self.documents else request.path
        self.hits[key] = self.hits.get(key, 0) + 1

        document = self.documents.get(key, 404)
        if callable(document):
            document = document(self.hits[key])
        if isinstance(document, int):
            return web.json_response({"_status": {"messages": [{"message": "Not found"}]}}, status=document)
        return web.json_response(document)


async def serve(handler: Callable[[web.Request], Any], method: str) -> TestServer:
    app = web.Application()
    app.router.add_route(method, "/{tail:.*}", handler)
    server = TestServer(app)
    await server.start_server()
    return server


def make_config(rpc_url: str, consensus_url: str, mirror_url: str) -> TckConfig:
    config = TckConfig()
    config.json_rpc = EndpointConfig("json-rpc", rpc_url, 5.0)
    config.consensus = EndpointConfig("consensus", consensus_url, 5.0)
    config.mirror = EndpointConfig("mirror", mirror_url, 5.0)
    config.operator = OperatorConfig(OPERATOR_ID, OPERATOR_KEY)
    config.retry_attempts = 3
    config.retry_delay = 0.0
    config.test_timeout = 5.0
    return config
