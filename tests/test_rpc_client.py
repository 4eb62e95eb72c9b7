"""Tests for the httpx JSON-RPC client and the persistence adapters."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest
from conftest import OWNER, FakeHandle, FakeScheduler

from folio.app import app
from folio.editor.collection import BlockCollection
from folio.editor.models import Block, BlockType
from folio.editor.page_session import PageSession, SessionState
from folio.editor.persistence import LocalPersistence
from folio.editor.rpc_client import OWNER_HEADER, RpcClient, RpcPersistence
from folio.errors import (
    NotFoundError,
    PersistenceUnavailableError,
    StorageError,
    ValidationError,
    get_error_code,
)
from folio.store import blocks_db, pages_db

URL = "http://testserver/rpc"


def mock_client(handler: Any, owner_id: str = OWNER) -> RpcClient:
    return RpcClient(URL, owner_id=owner_id, transport=httpx.MockTransport(handler))


def reply_error(code: int, message: str = "nope", data: Any = None) -> httpx.Response:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": error})


# =============================================================================
# Client
# =============================================================================


class TestRpcClient:
    """Requests on the wire and error mapping."""

    def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"ok": True}})

        async def scenario() -> Any:
            async with mock_client(handler) as client:
                return await client.call("blocks/create", {"page_id": "p", "type": BlockType.TODO})

        assert asyncio.run(scenario()) == {"ok": True}

        body = json.loads(seen[0].content)
        assert body["method"] == "blocks/create"
        assert body["params"] == {"page_id": "p", "type": "todo"}
        assert body["jsonrpc"] == "2.0"
        assert seen[0].headers[OWNER_HEADER] == OWNER

    @pytest.mark.parametrize(
        "code,expected",
        [
            (-32003, NotFoundError),
            (-32000, ValidationError),
            (-32602, ValidationError),
            (-32051, StorageError),
            (-32603, StorageError),
        ],
    )
    def test_error_codes(self, code: int, expected: type[Exception]) -> None:
        client = mock_client(lambda request: reply_error(code))

        with pytest.raises(expected):
            asyncio.run(client.call("pages/get", {"id": "x"}))

    def test_not_found_keeps_resource(self) -> None:
        client = mock_client(
            lambda request: reply_error(-32003, data={"resource_type": "page", "resource_id": "x"})
        )

        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(client.call("pages/get", {"id": "x"}))
        assert exc_info.value.resource_id == "x"

    def test_transport_failure_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PersistenceUnavailableError) as exc_info:
            asyncio.run(mock_client(handler).call("pages/list"))
        assert exc_info.value.recoverable is True

    def test_server_error_is_unavailable(self) -> None:
        client = mock_client(lambda request: httpx.Response(503, text="down"))

        with pytest.raises(PersistenceUnavailableError):
            asyncio.run(client.call("pages/list"))

    def test_malformed_reply(self) -> None:
        client = mock_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(StorageError):
            asyncio.run(client.call("pages/list"))

    def test_client_codes_match_server_codes(self) -> None:
        for exc in (NotFoundError("x"), ValidationError("x"), StorageError("x")):
            code = get_error_code(exc)
            mapped = RpcClient._to_domain_error("m", {"code": code, "message": "x"})
            assert type(mapped) is type(exc)


class TestNullResults:
    """Replies that succeed without the expected result object."""

    @staticmethod
    def null_persistence() -> RpcPersistence:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None})

        return RpcPersistence(mock_client(handler))

    def test_create_block_raises_storage_error(self) -> None:
        persistence = self.null_persistence()

        with pytest.raises(StorageError):
            asyncio.run(
                persistence.create_block(page_id="p", type=BlockType.PARAGRAPH, content="", order_index=0)
            )

    def test_collection_rolls_back_and_keeps_syncing(self, scheduler: FakeScheduler) -> None:
        persistence = self.null_persistence()
        collection = BlockCollection(
            "p", [Block(id="a", page_id="p")], persistence, scheduler=scheduler, quiet_period=0.3
        )

        result = asyncio.run(collection.add_after(0))

        assert result is None
        assert collection.ids == ["a"]
        assert isinstance(collection.last_error, StorageError)
        assert collection.sync([Block(id="a", page_id="p", content="remote")]) is True
        assert collection.get("a").content == "remote"


# =============================================================================
# RpcPersistence against the real app
# =============================================================================


def asgi_persistence(owner_id: str = OWNER) -> RpcPersistence:
    client = RpcClient(URL, owner_id=owner_id, transport=httpx.ASGITransport(app=app))
    return RpcPersistence(client)


class TestRpcPersistence:
    """The editor core driving the HTTP store end to end."""

    def test_collection_over_http(self, page_id: str, scheduler: FakeScheduler) -> None:
        first = blocks_db.create_block(page_id=page_id, owner_id=OWNER, content="first")
        persistence = asgi_persistence()

        async def scenario() -> BlockCollection:
            blocks = await persistence.list_blocks(page_id)
            collection = BlockCollection(page_id, blocks, persistence, scheduler=scheduler, quiet_period=0.3)
            added = await collection.add_after(0)
            collection.change(added.id, {"content": "second", "type": BlockType.QUOTE})
            await collection.drain()
            collection.reorder(1, 0)
            await collection.drain()
            await persistence.client.aclose()
            return collection

        collection = asyncio.run(scenario())

        stored = blocks_db.list_blocks(page_id, owner_id=OWNER)
        assert [(b.content, b.type) for b in stored] == [
            ("second", BlockType.QUOTE),
            ("first", BlockType.PARAGRAPH),
        ]
        assert collection.ids == [b.id for b in stored]
        assert collection.ids[1] == first.id

    def test_missing_page_opens_as_no_page(self, temp_data_dir: Path) -> None:
        persistence = asgi_persistence()

        async def scenario() -> SessionState:
            session = PageSession("does-not-exist", persistence)
            state = await session.open()
            await persistence.client.aclose()
            return state

        assert asyncio.run(scenario()) is SessionState.NO_PAGE

    def test_pages_trash_and_search(self, temp_data_dir: Path) -> None:
        persistence = asgi_persistence()

        async def scenario() -> dict[str, Any]:
            page_id = await persistence.create_page(title="Journal")
            await persistence.import_markdown(page_id, "# Monday\n\n- [x] wake up\n")
            found = await persistence.search("wake")
            markdown = await persistence.page_markdown(page_id)
            await persistence.delete_page(page_id)
            trash = await persistence.list_trash()
            restored = await persistence.restore_trash(trash[0].id)
            await persistence.client.aclose()
            return {"found": found, "markdown": markdown, "trash": trash, "restored": restored}

        result = asyncio.run(scenario())

        assert [b.content for b in result["found"]["blocks"]] == ["wake up"]
        assert result["markdown"] == "# Monday\n\n- [x] wake up"
        assert result["trash"][0].page_data["title"] == "Journal"
        assert result["restored"].title == "Journal"
        assert result["restored"].is_archived is False


# =============================================================================
# LocalPersistence
# =============================================================================


class TestLocalPersistence:
    """The in-process adapter over the sqlite store."""

    def test_session_edits_reach_the_store(self, page_id: str, scheduler: FakeScheduler) -> None:
        persistence = LocalPersistence(owner_id=OWNER)

        async def scenario() -> None:
            session = PageSession(page_id, persistence, scheduler=scheduler, quiet_period=0.3)
            assert await session.open() is SessionState.READY
            collection = session.collection
            block = await collection.append()
            editor = collection.mount(block.id, FakeHandle())
            editor.focus()
            editor.handle_input("typed")
            await session.close()

        asyncio.run(scenario())

        stored = blocks_db.list_blocks(page_id, owner_id=OWNER)
        assert [b.content for b in stored] == ["typed"]

    def test_get_page_of_other_owner(self, page_id: str) -> None:
        persistence = LocalPersistence(owner_id="someone-else")

        with pytest.raises(NotFoundError):
            asyncio.run(persistence.get_page(page_id))

    def test_validation_passes_through(self, page_id: str) -> None:
        persistence = LocalPersistence(owner_id=OWNER)

        with pytest.raises(ValidationError):
            asyncio.run(persistence.reorder_blocks(page_id, ["a", "a"]))

    def test_rename_and_list(self, page_id: str) -> None:
        persistence = LocalPersistence(owner_id=OWNER)

        async def scenario() -> list[str]:
            await persistence.update_page(page_id, title="Renamed")
            return [p.title for p in await persistence.list_pages()]

        assert asyncio.run(scenario()) == ["Renamed"]
        assert pages_db.get_page(page_id, owner_id=OWNER).title == "Renamed"
