"""Tests for the dispatcher and the tool execution routines."""

from datetime import timedelta

import httpx
import pytest

from lark_mcp.auth.store import TokenRecord, utcnow
from lark_mcp.errors import ParamsParseFailure
from lark_mcp.tools import handlers
from lark_mcp.tools.dispatch import Dispatcher, parse_params
from lark_mcp.tools.schema import TokenMode

from conftest import TENANT_TOKEN

USER_TOKEN = "u-stored-user-token-0001"


def login(store, token=USER_TOKEN, expires_in=3600):
    store.save(TokenRecord(app_id="cli_a1", token=token, expires_at=utcnow() + timedelta(seconds=expires_in)))


class TestParseParams:
    """Tests for parse_params."""

    def test_empty(self):
        assert parse_params(None) == {}
        assert parse_params("  ") == {}

    def test_inline(self):
        assert parse_params('{"params": {"page_size": 5}}') == {"params": {"page_size": 5}}

    def test_file_wins(self, tmp_path):
        path = tmp_path / "params.json"
        path.write_text('{"path": {"chat_id": "oc_1"}}', encoding="utf-8")

        assert parse_params('{"ignored": true}', path) == {"path": {"chat_id": "oc_1"}}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParamsParseFailure, match="params file"):
            parse_params(path=tmp_path / "nope.json")

    def test_invalid_json(self):
        with pytest.raises(ParamsParseFailure, match="Failed to parse params JSON"):
            parse_params("{not json")

    def test_not_an_object(self):
        with pytest.raises(ParamsParseFailure, match="list"):
            parse_params("[1, 2]")


class TestDispatcherFailures:
    """Failures come back as results, before any remote call where possible."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool("im.v1.nothing", {})

        assert not result.success
        assert result.error_kind == "tool_not_found"
        assert result.exit_code == 1
        assert result.error_envelope()["tool"] == "im.v1.nothing"
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_unparsable_params_text(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool("im.v1.chat.list", "{oops")

        assert result.error_kind == "params_parse_failure"
        assert api.requests == []
        assert api.tenant_token_requests == 0

    @pytest.mark.asyncio
    async def test_unknown_top_level_key(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool("im.v1.chat.list", {"query": {}})

        assert result.error_kind == "params_parse_failure"
        assert "query" in result.error

    @pytest.mark.asyncio
    async def test_missing_path_param(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool("docx.v1.document.rawContent", {})

        assert result.error_kind == "params_parse_failure"
        assert "document_id" in result.error
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_user_only_tool_without_login(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool(
            "docx.builtin.search", {"data": {"search_key": "plan"}}
        )

        assert result.error_kind == "credential_unavailable"
        assert "lark-mcp login" in result.error

    @pytest.mark.asyncio
    async def test_remote_error_passed_through(self, api, client, store):
        api.route("GET", "/open-apis/im/v1/chats", {"code": 230002, "msg": "Bot is not in the chat"})

        result = await Dispatcher(client, store=store).call_tool("im.v1.chat.list", {})

        assert result.error_kind == "remote_call_failure"
        assert result.error == "Bot is not in the chat"


class TestDispatcherCredentials:
    """Which access token a call ends up with."""

    @pytest.fixture(autouse=True)
    def chats(self, api):
        api.route("GET", "/open-apis/im/v1/chats", {"code": 0, "msg": "success", "data": {"items": [{"chat_id": "oc_1"}]}})

    @pytest.mark.asyncio
    async def test_tenant_token_by_default(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool("im.v1.chat.list", {"params": {"page_size": 1}})

        assert result.success
        assert result.output == {"items": [{"chat_id": "oc_1"}]}
        assert api.authorization() == f"Bearer {TENANT_TOKEN}"
        assert api.requests[-1].url.params["page_size"] == "1"

    @pytest.mark.asyncio
    async def test_stored_login_used_automatically(self, api, client, store):
        login(store)

        result = await Dispatcher(client, store=store).call_tool("im.v1.chat.list", {})

        assert result.success
        assert api.authorization() == f"Bearer {USER_TOKEN}"

    @pytest.mark.asyncio
    async def test_explicit_token_beats_stored(self, api, client, store):
        login(store)

        await Dispatcher(client, store=store).call_tool("im.v1.chat.list", {}, user_access_token="u-explicit")

        assert api.authorization() == "Bearer u-explicit"

    @pytest.mark.asyncio
    async def test_expired_login_ignored(self, api, client, store):
        login(store, expires_in=-10)

        result = await Dispatcher(client, store=store).call_tool("im.v1.chat.list", {})

        assert result.success
        assert api.authorization() == f"Bearer {TENANT_TOKEN}"

    @pytest.mark.asyncio
    async def test_tenant_mode_never_sends_user_token(self, api, client, store):
        login(store)
        dispatcher = Dispatcher(client, store=store, token_mode=TokenMode.TENANT)

        await dispatcher.call_tool("im.v1.chat.list", {"useUAT": True})

        assert api.authorization() == f"Bearer {TENANT_TOKEN}"

    @pytest.mark.asyncio
    async def test_user_mode_without_token(self, api, client, store):
        dispatcher = Dispatcher(client, store=store, token_mode=TokenMode.USER)

        result = await dispatcher.call_tool("im.v1.chat.list", {})

        assert result.error_kind == "credential_unavailable"

    @pytest.mark.asyncio
    async def test_tenant_only_tool_ignores_user_token(self, api, client, store):
        api.route("POST", "/open-apis/contact/v3/users/batch_get_id", {"code": 0, "data": {"user_list": []}})
        login(store)

        result = await Dispatcher(client, store=store).call_tool(
            "contact.v3.user.batchGetId", {"data": {"emails": ["a@example.com"]}}
        )

        assert result.success
        assert api.authorization() == f"Bearer {TENANT_TOKEN}"

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_no_credential(self, api, client):
        class BrokenStore:
            def get_local_access_token(self, app_id):
                raise OSError("disk on fire")

        result = await Dispatcher(client, store=BrokenStore()).call_tool("im.v1.chat.list", {})

        assert result.success
        assert api.authorization() == f"Bearer {TENANT_TOKEN}"


class TestImportMarkdown:
    """The docx.builtin.import routine."""

    @pytest.fixture(autouse=True)
    def no_sleep(self, monkeypatch):
        monkeypatch.setattr(handlers, "IMPORT_POLL_INTERVAL", 0)

    @pytest.fixture
    def upload_routes(self, api):
        api.route("POST", "/open-apis/drive/v1/medias/upload_all", {"code": 0, "data": {"file_token": "box_1"}})
        api.route("POST", "/open-apis/drive/v1/import_tasks", {"code": 0, "data": {"ticket": "tk_1"}})

    @pytest.mark.asyncio
    async def test_import_completes(self, api, client, store, upload_routes):
        statuses = iter([2, 0])

        def poll(request):
            return httpx.Response(200, json={
                "code": 0,
                "data": {"result": {"job_status": next(statuses), "token": "doxcn_1", "url": "https://x/docx/doxcn_1"}},
            })

        api.route("GET", "/open-apis/drive/v1/import_tasks/tk_1", poll)

        result = await Dispatcher(client, store=store).call_tool(
            "docx.builtin.import", {"data": {"markdown": "# Plan\n\nship it", "file_name": "Plan"}}
        )

        assert result.success, result.error
        assert result.output["token"] == "doxcn_1"

        upload = api.requests[0]
        assert b'filename="Plan.md"' in upload.content
        assert b"# Plan" in upload.content
        task = api.json_body(1)
        assert task["file_token"] == "box_1"
        assert task["type"] == "docx"
        assert task["point"] == {"mount_type": 1, "mount_key": ""}
        assert len(api.requests) == 4

    @pytest.mark.asyncio
    async def test_import_still_running(self, api, client, store, upload_routes):
        api.route("GET", "/open-apis/drive/v1/import_tasks/tk_1", {"code": 0, "data": {"result": {"job_status": 1}}})

        result = await Dispatcher(client, store=store).call_tool("docx.builtin.import", {"data": {"markdown": "x"}})

        assert result.success
        assert result.output == {"ticket": "tk_1", "job_status": 1, "pending": True}
        assert len(api.requests) == 2 + handlers.IMPORT_POLL_ATTEMPTS

    @pytest.mark.asyncio
    async def test_import_failed(self, api, client, store, upload_routes):
        api.route(
            "GET",
            "/open-apis/drive/v1/import_tasks/tk_1",
            {"code": 0, "data": {"result": {"job_status": 3, "job_error_msg": "unsupported content"}}},
        )

        result = await Dispatcher(client, store=store).call_tool("docx.builtin.import", {"data": {"markdown": "x"}})

        assert result.error_kind == "remote_call_failure"
        assert result.error == "unsupported content"

    @pytest.mark.asyncio
    async def test_markdown_required(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool("docx.builtin.import", {"data": {}})

        assert result.error_kind == "params_parse_failure"
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_markdown_must_be_text(self, api, client, store):
        result = await Dispatcher(client, store=store).call_tool("docx.builtin.import", {"data": {"markdown": 123}})

        assert result.error_kind == "params_parse_failure"
        assert "markdown" in result.error
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_unregistered_routine(self, api, client, store, monkeypatch):
        monkeypatch.setattr(handlers, "CUSTOM_HANDLERS", {})

        result = await Dispatcher(client, store=store).call_tool("docx.builtin.import", {"data": {"markdown": "x"}})

        assert not result.success
        assert result.error_kind == "handler_not_found"
        assert "docx.builtin.import" in result.error
        assert api.requests == []
