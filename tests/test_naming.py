"""Tests for tool name case conversion."""

import pytest

from lark_mcp.tools.catalog import load_builtin_catalog
from lark_mcp.tools.naming import ToolNameCase, build_name_map, convert_tool_name


class TestConvertToolName:

    @pytest.mark.parametrize(
        "case, expected",
        [
            (ToolNameCase.SNAKE, "im_v1_chatMembers_get"),
            (ToolNameCase.CAMEL, "imV1ChatMembersGet"),
            (ToolNameCase.KEBAB, "im-v1-chatMembers-get"),
            (ToolNameCase.DOT, "im.v1.chatMembers.get"),
        ],
    )
    def test_cases(self, case, expected):
        assert convert_tool_name("im.v1.chatMembers.get", case) == expected

    def test_accepts_plain_string(self):
        assert convert_tool_name("task.v2.task.create", "kebab") == "task-v2-task-create"


class TestBuildNameMap:

    def test_builtin_catalog_maps_back_in_every_case(self):
        names = load_builtin_catalog().names()
        for case in ToolNameCase:
            mapping = build_name_map(names, case)
            assert sorted(mapping.values()) == sorted(names)

    def test_collision_rejected(self):
        with pytest.raises(ValueError, match="collide"):
            build_name_map(["a.b_c", "a_b.c"], ToolNameCase.SNAKE)
