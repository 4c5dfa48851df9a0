"""Tool registry - resolves names and presets against the catalog."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from lark_mcp.errors import ToolNotFound
from lark_mcp.tools.catalog import ToolCatalog, load_builtin_catalog
from lark_mcp.tools.filters import filter_tools
from lark_mcp.tools.presets import DEFAULT_PRESET, PRESET_TOOLS, expand_presets
from lark_mcp.tools.schema import DEFAULT_LANGUAGE, FilterCriteria, LocalizedTool, TokenMode

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Read-only view over a :class:`ToolCatalog` and its presets.

    Holds no mutable state after construction, so one instance can serve
    the CLI and the MCP server for the whole process.
    """

    def __init__(
        self,
        catalog: Optional[ToolCatalog] = None,
        presets: Optional[Mapping[str, Sequence[str]]] = None,
        default_preset: str = DEFAULT_PRESET,
    ):
        self.catalog = catalog if catalog is not None else load_builtin_catalog()
        self.presets = presets if presets is not None else PRESET_TOOLS
        self.default_preset = default_preset

    # ── Lookup ────────────────────────────────────────────────────────────

    def get_tool(self, name: str, language: str = DEFAULT_LANGUAGE) -> Optional[LocalizedTool]:
        tool = self.catalog.get(name)
        return tool.localize(language) if tool else None

    def require_tool(self, name: str, language: str = DEFAULT_LANGUAGE) -> LocalizedTool:
        """Like :meth:`get_tool` but raises :class:`ToolNotFound`."""
        tool = self.get_tool(name, language)
        if tool is None:
            raise ToolNotFound(name)
        return tool

    def describe(self, name: str, language: str = DEFAULT_LANGUAGE) -> Dict[str, Any]:
        return self.require_tool(name, language).full_description()

    # ── Selection ─────────────────────────────────────────────────────────

    def expand(self, tokens: Optional[Sequence[str]] = None) -> List[str]:
        return expand_presets(tokens or [], self.presets, self.default_preset)

    def select(
        self,
        tools: Optional[Sequence[str]] = None,
        token_mode: TokenMode = TokenMode.AUTO,
        language: str = DEFAULT_LANGUAGE,
        keyword: Optional[str] = None,
    ) -> List[LocalizedTool]:
        """Expand presets in ``tools`` and filter the catalog with the result."""
        criteria = FilterCriteria(
            allow_tools=self.expand(tools),
            token_mode=token_mode,
            language=language,
            keyword=keyword,
        )
        selected = filter_tools(self.catalog, criteria)
        logger.debug(
            "Selected %d of %d tools (mode=%s, keyword=%r)",
            len(selected),
            len(self.catalog),
            criteria.token_mode.value,
            keyword,
        )
        return selected
