"""
lark-mcp - Feishu/Lark open-platform APIs as MCP tools.

Architecture:
- A static catalog of tool descriptors ships in ``tools/data/catalog.yaml``
- Presets and filters pick the tools a session exposes
- The dispatcher attaches a tenant or user access token and calls the API
- User access tokens come from an OAuth login and live in ``~/.lark-mcp/``
- Every CLI command prints one JSON document and exits
"""

__version__ = "0.1.0"

from lark_mcp.errors import LarkMCPError
from lark_mcp.tools.dispatch import Dispatcher
from lark_mcp.tools.registry import ToolRegistry

__all__ = [
    "Dispatcher",
    "LarkMCPError",
    "ToolRegistry",
    "__version__",
]
