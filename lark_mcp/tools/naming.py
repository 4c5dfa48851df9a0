"""Tool name case conversion for clients that reject dotted names."""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Iterable


class ToolNameCase(str, Enum):
    SNAKE = "snake"
    CAMEL = "camel"
    KEBAB = "kebab"
    DOT = "dot"


def convert_tool_name(name: str, case: ToolNameCase = ToolNameCase.SNAKE) -> str:
    """
    Render a dotted catalog name in ``case``.

    ``im.v1.chatMembers.get`` becomes ``im_v1_chatMembers_get`` (snake),
    ``imV1ChatMembersGet`` (camel), ``im-v1-chatMembers-get`` (kebab).
    """
    case = ToolNameCase(case)
    if case == ToolNameCase.SNAKE:
        return name.replace(".", "_")
    if case == ToolNameCase.KEBAB:
        return name.replace(".", "-")
    if case == ToolNameCase.CAMEL:
        return re.sub(r"\.(\w)", lambda m: m.group(1).upper(), name)
    return name


def build_name_map(names: Iterable[str], case: ToolNameCase = ToolNameCase.SNAKE) -> Dict[str, str]:
    """Map each converted name back to its catalog name."""
    mapping: Dict[str, str] = {}
    for name in names:
        converted = convert_tool_name(name, case)
        if converted in mapping and mapping[converted] != name:
            raise ValueError(f"Tool names {mapping[converted]!r} and {name!r} collide as {converted!r}")
        mapping[converted] = name
    return mapping
