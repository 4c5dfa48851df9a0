"""Tool catalog - the immutable, name-indexed list of tool descriptors."""

from __future__ import annotations

from functools import lru_cache
from importlib import resources
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import yaml

from lark_mcp.tools.schema import DEFAULT_LANGUAGE, LocalizedTool, ToolDescriptor


class ToolCatalog:
    """
    Ordered, read-only collection of :class:`ToolDescriptor`.

    One catalog serves every language: descriptors carry per-language
    descriptions, so the language views share names and ordering.
    """

    def __init__(self, tools: Iterable[ToolDescriptor]):
        self._tools: Tuple[ToolDescriptor, ...] = tuple(tools)
        self._by_name: Dict[str, ToolDescriptor] = {}
        for tool in self._tools:
            if tool.name in self._by_name:
                raise ValueError(f"Duplicate tool name in catalog: {tool.name}")
            self._by_name[tool.name] = tool

    @classmethod
    def from_dicts(cls, entries: Iterable[dict]) -> "ToolCatalog":
        return cls(ToolDescriptor.model_validate(entry) for entry in entries)

    @classmethod
    def from_yaml(cls, text: str) -> "ToolCatalog":
        data = yaml.safe_load(text) or {}
        return cls.from_dicts(data.get("tools", []))

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self._by_name.get(name)

    def names(self) -> List[str]:
        return [tool.name for tool in self._tools]

    def localized(self, language: str = DEFAULT_LANGUAGE) -> List[LocalizedTool]:
        """The whole catalog seen through ``language``, in catalog order."""
        return [tool.localize(language) for tool in self._tools]


@lru_cache(maxsize=1)
def load_builtin_catalog() -> ToolCatalog:
    """Load the catalog shipped in ``lark_mcp/tools/data/catalog.yaml``."""
    text = resources.files("lark_mcp.tools").joinpath("data/catalog.yaml").read_text(encoding="utf-8")
    return ToolCatalog.from_yaml(text)
