"""JSON-RPC surface of the page store."""

from .types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    NOT_FOUND_ERROR,
    PARSE_ERROR,
    JSON,
    RequestContext,
    RpcError,
    jsonrpc_error,
    jsonrpc_result,
)

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "JSON",
    "METHOD_NOT_FOUND",
    "NOT_FOUND_ERROR",
    "PARSE_ERROR",
    "RequestContext",
    "RpcError",
    "jsonrpc_error",
    "jsonrpc_result",
]
