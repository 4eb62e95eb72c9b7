"""Wire-level pieces shared by the RPC server and the httpx client.

Error codes live here so both ends of the wire agree on them; the domain
error classes map onto the application codes in ``folio.errors``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..errors import FolioError

JSON = dict[str, Any]

# Header carrying the caller's owner id
OWNER_HEADER = "X-Folio-Owner"

# JSON-RPC 2.0 reserved codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Page store codes
VALIDATION_ERROR = -32000
NOT_FOUND_ERROR = -32003
PERSISTENCE_UNAVAILABLE_ERROR = -32050
STORAGE_ERROR = -32051


class RpcError(Exception):
    """An error object ready to go out in a JSON-RPC reply."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    @classmethod
    def from_domain(cls, exc: FolioError, code: int) -> RpcError:
        return cls(code=code, message=exc.message, data=exc.to_dict())

    def to_dict(self) -> JSON:
        error: JSON = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


@dataclass(frozen=True)
class RequestContext:
    """Per-request facts handlers need; only the owner for now."""

    owner_id: str


def jsonrpc_error(request_id: str | int | None, error: RpcError) -> JSON:
    return {"jsonrpc": "2.0", "id": request_id, "error": error.to_dict()}


def jsonrpc_result(request_id: str | int | None, result: Any) -> JSON:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}
