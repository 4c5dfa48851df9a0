"""Tests for the tool catalog and registry."""

import pytest

from lark_mcp.errors import ToolNotFound
from lark_mcp.tools.catalog import ToolCatalog, load_builtin_catalog
from lark_mcp.tools.registry import ToolRegistry
from lark_mcp.tools.schema import CustomExecution, DeclarativeExecution, TokenMode


class TestToolCatalog:
    """Tests for ToolCatalog."""

    def test_builtin_catalog_loads(self):
        catalog = load_builtin_catalog()

        assert len(catalog) > 0
        assert "im.v1.message.create" in catalog
        assert catalog.names()[0] == "im.v1.chat.create"

    def test_names_are_unique(self):
        names = load_builtin_catalog().names()
        assert len(names) == len(set(names))

    def test_every_tool_has_english_and_chinese_text(self):
        for tool in load_builtin_catalog():
            assert tool.describe("en")
            assert tool.describe("zh")
            assert tool.describe("zh") != tool.describe("en")

    def test_path_placeholders_are_required(self):
        """Every :name segment of a declarative path is a required path param."""
        for tool in load_builtin_catalog():
            if not isinstance(tool.execution, DeclarativeExecution):
                continue
            placeholders = [seg[1:] for seg in tool.execution.path.split("/") if seg.startswith(":")]
            path_schema = tool.input_schema.get("properties", {}).get("path", {})
            assert sorted(path_schema.get("required", [])) == sorted(placeholders), tool.name

    def test_import_is_the_custom_tool(self):
        custom = [t.name for t in load_builtin_catalog() if isinstance(t.execution, CustomExecution)]
        assert custom == ["docx.builtin.import"]

    def test_duplicate_names_rejected(self):
        entry = {
            "name": "x",
            "project": "p",
            "description": {"en": "x"},
            "execution": {"kind": "custom", "handler": "h"},
        }
        with pytest.raises(ValueError, match="Duplicate"):
            ToolCatalog.from_dicts([entry, entry])

    def test_from_yaml(self):
        catalog = ToolCatalog.from_yaml(
            """
tools:
  - name: demo.v1.thing.get
    project: demo
    description: {en: Get a thing}
    access_tokens: [tenant]
    execution: {kind: declarative, http_method: GET, path: /open-apis/demo/v1/things/:id}
"""
        )
        tool = catalog.get("demo.v1.thing.get")

        assert tool.execution.http_method == "GET"
        assert tool.accepts_tenant_token
        assert not tool.accepts_user_token


class TestToolRegistry:
    """Tests for ToolRegistry."""

    @pytest.fixture
    def registry(self):
        return ToolRegistry()

    def test_get_tool_unknown(self, registry):
        assert registry.get_tool("im.v1.nothing") is None

    def test_require_tool_raises(self, registry):
        with pytest.raises(ToolNotFound) as exc_info:
            registry.require_tool("im.v1.nothing")

        assert exc_info.value.kind == "tool_not_found"
        assert "im.v1.nothing" in str(exc_info.value)

    def test_same_names_in_every_language(self, registry):
        catalog = registry.catalog
        assert [t.name for t in catalog.localized("en")] == [t.name for t in catalog.localized("zh")]

    def test_describe_declarative(self, registry):
        document = registry.describe("im.v1.chatMembers.get")

        assert document["name"] == "im.v1.chatMembers.get"
        assert document["project"] == "im"
        assert document["httpMethod"] == "GET"
        assert document["path"] == "/open-apis/im/v1/chats/:chat_id/members"
        assert document["schema"]["properties"]["path"]["required"] == ["chat_id"]
        assert document["accessTokens"] == ["tenant", "user"]
        assert document["handler"] is None

    def test_describe_custom(self, registry):
        document = registry.describe("docx.builtin.import", "zh")

        assert document["handler"] == "docx.builtin.import"
        assert document["httpMethod"] is None
        assert document["supportFileUpload"] is True
        assert "Markdown" in document["description"]

    def test_select_default_preset(self, registry):
        selected = registry.select()
        assert len(selected) == len(registry.presets["preset.default"])

    def test_select_with_keyword_and_mode(self, registry):
        selected = registry.select(["preset.doc.default"], token_mode=TokenMode.TENANT, keyword="wiki")
        assert [t.name for t in selected] == ["wiki.v2.space.getNode"]
