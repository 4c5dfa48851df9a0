"""
Tool registry, resolution and dispatch.

    catalog.yaml --> ToolCatalog --> ToolRegistry (presets + filter) --> Dispatcher --> LarkClient
"""

from lark_mcp.tools.catalog import ToolCatalog, load_builtin_catalog
from lark_mcp.tools.dispatch import Dispatcher, parse_params
from lark_mcp.tools.filters import filter_tools
from lark_mcp.tools.presets import PRESET_TOOLS, expand_presets
from lark_mcp.tools.registry import ToolRegistry
from lark_mcp.tools.schema import (
    AccessToken,
    FilterCriteria,
    LocalizedTool,
    TokenMode,
    ToolDescriptor,
    ToolResult,
)

__all__ = [
    "AccessToken",
    "Dispatcher",
    "FilterCriteria",
    "LocalizedTool",
    "PRESET_TOOLS",
    "TokenMode",
    "ToolCatalog",
    "ToolDescriptor",
    "ToolRegistry",
    "ToolResult",
    "expand_presets",
    "filter_tools",
    "load_builtin_catalog",
    "parse_params",
]
