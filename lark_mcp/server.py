"""MCP server exposing the selected tools over stdio."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from lark_mcp import __version__
from lark_mcp.errors import ToolNotFound
from lark_mcp.tools.dispatch import Dispatcher
from lark_mcp.tools.naming import ToolNameCase, build_name_map, convert_tool_name
from lark_mcp.tools.schema import LocalizedTool, TokenMode, ToolResult

logger = logging.getLogger(__name__)

SERVER_NAME = "lark-mcp"


class ToolCallFailed(Exception):
    """Carries a failed result's error envelope back to the MCP client."""


def render_result(result: ToolResult) -> str:
    """Text payload of a tool result for an MCP client."""
    if result.success:
        if isinstance(result.output, str):
            return result.output
        return json.dumps(result.output, ensure_ascii=False, indent=2)
    return json.dumps(result.error_envelope(), ensure_ascii=False)


def strip_user_flag(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Drop ``useUAT`` from a schema when the token mode already decides it."""
    properties = {k: v for k, v in schema.get("properties", {}).items() if k != "useUAT"}
    return {**schema, "properties": properties}


class LarkMCPServer:
    """
    Binds a tool selection and a :class:`Dispatcher` to an MCP ``Server``.

    Tool names are advertised in ``name_case`` and mapped back to catalog
    names on every call.
    """

    def __init__(
        self,
        tools: List[LocalizedTool],
        dispatcher: Dispatcher,
        name_case: ToolNameCase = ToolNameCase.SNAKE,
        user_access_token: Optional[str] = None,
    ):
        self.tools = tools
        self.dispatcher = dispatcher
        self.name_case = ToolNameCase(name_case)
        self.user_access_token = user_access_token
        self.name_map = build_name_map((t.name for t in tools), self.name_case)
        self.server = Server(SERVER_NAME, version=__version__)
        self._register()

    def mcp_tools(self) -> List[types.Tool]:
        token_mode_fixed = self.dispatcher.token_mode != TokenMode.AUTO
        result = []
        for tool in self.tools:
            schema = tool.descriptor.input_schema or {"type": "object", "properties": {}}
            if token_mode_fixed:
                schema = strip_user_flag(schema)
            result.append(
                types.Tool(
                    name=convert_tool_name(tool.name, self.name_case),
                    description=tool.description,
                    inputSchema=schema,
                )
            )
        return result

    async def call(self, exposed_name: str, arguments: Optional[Dict[str, Any]]) -> ToolResult:
        name = self.name_map.get(exposed_name)
        if name is None:
            error = ToolNotFound(exposed_name)
            return ToolResult(tool_name=exposed_name, success=False, error=str(error), error_kind=error.kind)
        return await self.dispatcher.call_tool(name, arguments or {}, self.user_access_token)

    def _register(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> List[types.Tool]:
            return self.mcp_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[types.TextContent]:
            result = await self.call(name, arguments)
            if not result.success:
                logger.warning("Tool %s failed: %s", name, result.error)
                # the server turns a raised error into an isError result
                raise ToolCallFailed(render_result(result))
            return [types.TextContent(type="text", text=render_result(result))]

    async def run_stdio(self) -> None:
        logger.info("Serving %d tools over stdio", len(self.tools))
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(read_stream, write_stream, self.server.create_initialization_options())
