"""JSON-RPC client for a remote page store.

``RpcClient`` posts single JSON-RPC 2.0 requests to the server's ``/rpc``
endpoint. ``RpcPersistence`` layers the ``PersistenceClient`` procedures
on top of it, so a ``BlockCollection`` can run against a remote store
exactly as it does against ``LocalPersistence``.

Error mapping:
- transport failures, timeouts and HTTP 5xx -> PersistenceUnavailableError
- RPC -32003 -> NotFoundError
- RPC -32000 / -32602 -> ValidationError
- any other RPC error, or a reply missing the expected fields -> StorageError
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Sequence
from enum import Enum
from typing import Any

import httpx

from ..errors import NotFoundError, PersistenceUnavailableError, StorageError, ValidationError
from ..rpc.types import INVALID_PARAMS, NOT_FOUND_ERROR, OWNER_HEADER, VALIDATION_ERROR
from ..settings import settings
from .models import Block, BlockType, Page, TrashRecord

logger = logging.getLogger(__name__)

_VALIDATION_CODES = frozenset({VALIDATION_ERROR, INVALID_PARAMS})


def _wire(value: Any) -> Any:
    """Make enum values JSON-plain."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_wire(v) for v in value]
    return value


class RpcClient:
    """Minimal async JSON-RPC 2.0 client over httpx."""

    def __init__(
        self,
        url: str | None = None,
        *,
        owner_id: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            url: Full URL of the ``/rpc`` endpoint.
            owner_id: Sent as the owner header on every request.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.url = url or settings.rpc_url
        self.owner_id = owner_id or settings.default_owner
        self.timeout = timeout if timeout is not None else settings.rpc_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={OWNER_HEADER: self.owner_id},
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> RpcClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Invoke one method and return its result.

        Raises:
            PersistenceUnavailableError: The server could not be reached.
            NotFoundError, ValidationError, StorageError: The server
                answered with an error.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": _wire(params or {}),
        }
        try:
            response = await self._get_client().post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code >= 500:
                raise PersistenceUnavailableError(
                    f"Server error {e.response.status_code}", operation=method, url=self.url
                ) from e
            raise StorageError(
                f"Unexpected HTTP status {e.response.status_code}", operation=method
            ) from e
        except httpx.HTTPError as e:
            logger.warning("RPC %s to %s failed: %s", method, self.url, e)
            raise PersistenceUnavailableError(str(e) or type(e).__name__, operation=method, url=self.url) from e

        try:
            body = response.json()
        except ValueError as e:
            raise StorageError("Malformed RPC response", operation=method) from e
        if not isinstance(body, dict):
            raise StorageError("Malformed RPC response", operation=method)

        error = body.get("error")
        if error:
            raise self._to_domain_error(method, error)
        return body.get("result")

    @staticmethod
    def _to_domain_error(method: str, error: dict[str, Any]) -> Exception:
        code = error.get("code")
        message = error.get("message") or "RPC error"
        data = error.get("data") or {}
        if code == NOT_FOUND_ERROR:
            return NotFoundError(
                message,
                resource_type=data.get("resource_type"),
                resource_id=data.get("resource_id"),
            )
        if code in _VALIDATION_CODES:
            return ValidationError(message, field=data.get("field"))
        return StorageError(message, operation=method)


class RpcPersistence:
    """``PersistenceClient`` over a remote page store."""

    def __init__(self, client: RpcClient) -> None:
        self.client = client

    async def _fetch(self, method: str, params: dict[str, Any] | None, *keys: str) -> dict[str, Any]:
        """Call ``method`` and check the result object carries ``keys``."""
        result = await self.client.call(method, params)
        if not isinstance(result, dict) or any(key not in result for key in keys):
            raise StorageError(f"Malformed result for {method}", operation=method)
        return result

    # -------------------------------------------------------------------------
    # Pages
    # -------------------------------------------------------------------------

    async def create_page(self, *, title: str | None = None, parent_page_id: str | None = None) -> str:
        params: dict[str, Any] = {"title": title}
        if parent_page_id is not None:
            params["parent_page_id"] = parent_page_id
        result = await self._fetch("pages/create", params, "id")
        return result["id"]

    async def get_page(self, page_id: str) -> Page:
        result = await self._fetch("pages/get", {"id": page_id}, "page")
        return Page.from_dict(result["page"])

    async def list_pages(self) -> list[Page]:
        result = await self._fetch("pages/list", None, "pages")
        return [Page.from_dict(p) for p in result["pages"]]

    async def update_page(self, page_id: str, **fields: Any) -> None:
        await self.client.call("pages/update", {"id": page_id, **fields})

    async def delete_page(self, page_id: str) -> None:
        await self.client.call("pages/delete", {"id": page_id})

    async def page_markdown(self, page_id: str) -> str:
        result = await self._fetch("pages/markdown", {"id": page_id}, "markdown")
        return result["markdown"]

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    async def list_blocks(self, page_id: str) -> list[Block]:
        result = await self._fetch("blocks/list", {"page_id": page_id}, "blocks")
        return [Block.from_dict(b) for b in result["blocks"]]

    async def create_block(
        self,
        *,
        page_id: str,
        type: BlockType,
        content: str,
        order_index: int,
        parent_block_id: str | None = None,
    ) -> str:
        params: dict[str, Any] = {
            "page_id": page_id,
            "type": type,
            "content": content,
            "order_index": order_index,
        }
        if parent_block_id is not None:
            params["parent_block_id"] = parent_block_id
        result = await self._fetch("blocks/create", params, "id")
        return result["id"]

    async def update_block(self, block_id: str, *, page_id: str, updates: dict[str, Any]) -> None:
        await self.client.call("blocks/update", {"id": block_id, "page_id": page_id, **updates})

    async def delete_block(self, block_id: str, *, page_id: str) -> None:
        await self.client.call("blocks/delete", {"id": block_id, "page_id": page_id})

    async def reorder_blocks(self, page_id: str, block_ids: Sequence[str]) -> None:
        await self.client.call("blocks/reorder", {"page_id": page_id, "block_ids": list(block_ids)})

    async def import_markdown(self, page_id: str, markdown: str) -> list[str]:
        result = await self._fetch(
            "blocks/import_markdown", {"page_id": page_id, "markdown": markdown}, "ids"
        )
        return list(result["ids"])

    # -------------------------------------------------------------------------
    # Trash and search
    # -------------------------------------------------------------------------

    async def list_trash(self) -> list[TrashRecord]:
        result = await self._fetch("trash/list", None, "items")
        return [TrashRecord(**item) for item in result["items"]]

    async def restore_trash(self, trash_id: str) -> Page:
        result = await self._fetch("trash/restore", {"id": trash_id}, "page")
        return Page.from_dict(result["page"])

    async def delete_trash(self, trash_id: str) -> None:
        await self.client.call("trash/delete", {"id": trash_id})

    async def search(self, query: str) -> dict[str, list[Any]]:
        result = await self._fetch("search/query", {"query": query}, "pages", "blocks")
        return {
            "pages": [Page.from_dict(p) for p in result["pages"]],
            "blocks": [Block.from_dict(b) for b in result["blocks"]],
        }
