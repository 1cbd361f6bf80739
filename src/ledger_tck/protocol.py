"""
JSON-RPC client for the SUT's control protocol.

Every exchange resolves to an ``OperationOutcome``; transport failures,
JSON-RPC errors and ledger rejections are folded into ``Failure`` here so
callers only ever assert on one shape. The client never retries: most
operations are not idempotent.
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from .config import EndpointConfig
from .errors import NOT_IMPLEMENTED, ErrorCategory, JsonRpcErrorCode
from .types import (
    Failure,
    Method,
    OperationOutcome,
    OperationRequest,
    RawRequest,
    Success,
    request_method,
)

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"


def normalize_error(error: Mapping[str, Any]) -> Failure:
    """Fold a JSON-RPC error object into a ``Failure``."""
    code = error.get("code")
    message = str(error.get("message", ""))
    data = error.get("data")

    # A ledger status means the SUT evaluated the request and refused it.
    if isinstance(data, Mapping) and data.get("status"):
        return Failure(
            category=ErrorCategory.BUSINESS_REJECTION,
            code=code,
            status=str(data["status"]),
            message=str(data.get("message", message)),
        )

    if code == JsonRpcErrorCode.METHOD_NOT_FOUND:
        return Failure(ErrorCategory.NOT_IMPLEMENTED, code=code, message=message)

    return Failure(ErrorCategory.REQUEST_SHAPE, code=code, message=message)


def normalize_response(payload: Any, request_id: int) -> OperationOutcome:
    """Fold a decoded JSON-RPC response body into an outcome."""
    if not isinstance(payload, Mapping):
        return Failure(ErrorCategory.TRANSPORT, message="response is not a JSON object")

    if payload.get("id") != request_id:
        return Failure(
            ErrorCategory.TRANSPORT,
            message=f"response id {payload.get('id')!r} does not match request id {request_id}",
        )

    error = payload.get("error")
    if error is not None:
        if not isinstance(error, Mapping):
            return Failure(ErrorCategory.TRANSPORT, message=f"malformed error: {error!r}")
        return normalize_error(error)

    if "result" not in payload:
        return Failure(ErrorCategory.TRANSPORT, message="response has neither result nor error")

    result = payload["result"]
    if result is None:
        return Success({})
    if not isinstance(result, dict):
        return Success({"value": result})
    if result.get("error") == NOT_IMPLEMENTED:
        return Failure(ErrorCategory.NOT_IMPLEMENTED, message=NOT_IMPLEMENTED)
    return Success(result)


class ProtocolClient:
    """HTTP JSON-RPC client for a single SUT endpoint."""

    def __init__(self, config: EndpointConfig):
        self.config = config
        self.session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count()

    async def connect(self) -> None:
        """Initialize HTTP session."""
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        self.session = aiohttp.ClientSession(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )

    async def close(self) -> None:
        """Close HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def __aenter__(self) -> "ProtocolClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def submit(self, request: OperationRequest) -> OperationOutcome:
        """Send one typed request and return its normalized outcome."""
        return await self._exchange(request_method(request), request.to_params())

    async def call(self, method: Method, params: Optional[Mapping[str, Any]] = None) -> OperationOutcome:
        """Send a method with an untyped parameter bag."""
        return await self.submit(RawRequest(Method(method), dict(params or {})))

    async def _exchange(self, method: Method, params: Dict[str, Any]) -> OperationOutcome:
        if self.session is None:
            raise RuntimeError(f"[{self.config.name}] client is not connected")

        request_id = next(self._ids)
        body = {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id,
            "method": method.value,
            "params": params,
        }
        logger.debug(f"[{self.config.name}] -> {method.value} #{request_id} {json.dumps(params)}")

        try:
            async with self.session.post(self.config.endpoint, json=body) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    return Failure(
                        ErrorCategory.TRANSPORT,
                        code=resp.status,
                        message=f"HTTP {resp.status}: {text[:200]}",
                    )
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"[{self.config.name}] {method.value} #{request_id} transport error: {e!r}")
            return Failure(ErrorCategory.TRANSPORT, message=f"{type(e).__name__}: {e}")
        except ValueError as e:
            return Failure(ErrorCategory.TRANSPORT, message=f"undecodable response: {e}")

        outcome = normalize_response(payload, request_id)
        logger.debug(f"[{self.config.name}] <- {method.value} #{request_id} {outcome}")
        return outcome
