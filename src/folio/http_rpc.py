"""FastAPI APIRouter exposing the RPC handlers over HTTP.

Speaks JSON-RPC 2.0: one request object per POST to ``/rpc``. There is no
authentication; the owner of every request comes from the
``X-Folio-Owner`` header, falling back to the configured default owner.

The dispatcher looks methods up in the flat ``METHODS`` registry and runs
the (synchronous, sqlite-backed) handlers in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request

from .rpc.handlers import METHODS
from .rpc.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    OWNER_HEADER,
    PARSE_ERROR,
    RequestContext,
    RpcError,
    jsonrpc_error,
    jsonrpc_result,
)
from .settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def get_request_context(
    x_folio_owner: str | None = Header(default=None, alias=OWNER_HEADER),
) -> RequestContext:
    """FastAPI dependency resolving the caller's owner id."""
    owner = (x_folio_owner or "").strip() or settings.default_owner
    return RequestContext(owner_id=owner)


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 dispatcher
# ---------------------------------------------------------------------------


def _build_rpc_error(
    req_id: str | int | None, code: int, message: str, data: Any = None
) -> dict[str, Any]:
    return jsonrpc_error(req_id, RpcError(code, message, data))


async def _dispatch(ctx: RequestContext, body: dict[str, Any]) -> dict[str, Any]:
    """Core JSON-RPC 2.0 dispatcher for a single request object.

    Separated from the route handler so it can be tested without a full HTTP
    request cycle.
    """
    req_id: str | int | None = body.get("id")
    method: str | None = body.get("method")
    params: Any = body.get("params") or {}

    if not isinstance(method, str) or not method:
        return _build_rpc_error(req_id, INVALID_REQUEST, "Invalid Request: method is required")

    if not isinstance(params, dict):
        return _build_rpc_error(req_id, INVALID_REQUEST, "Invalid Request: params must be an object")

    handler = METHODS.get(method)
    if handler is None:
        return _build_rpc_error(req_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    try:
        result = await asyncio.to_thread(handler, ctx, **params)
        return jsonrpc_result(req_id, result)
    except RpcError as exc:
        return jsonrpc_error(req_id, exc)
    except TypeError as exc:
        return _build_rpc_error(req_id, INVALID_PARAMS, f"Invalid parameters: {exc}")
    except Exception as exc:
        logger.exception("Unexpected error in method=%s", method)
        return _build_rpc_error(
            req_id,
            INTERNAL_ERROR,
            f"Internal error in {method}",
            {"error_type": type(exc).__name__},
        )


@router.post("/rpc")
async def rpc_dispatch(
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    """JSON-RPC 2.0 endpoint for all editor -> store calls.

    Accepts a single JSON-RPC request object (batch not supported).
    """
    try:
        body = await request.json()
    except ValueError:
        return _build_rpc_error(None, PARSE_ERROR, "Parse error: invalid JSON")

    if not isinstance(body, dict):
        return _build_rpc_error(None, INVALID_REQUEST, "Invalid Request: expected a JSON object")

    return await _dispatch(ctx, body)
