"""Tool filter - selects the requested tools that can run under a token mode."""

from __future__ import annotations

from typing import Iterable, List, Optional

from lark_mcp.tools.schema import FilterCriteria, LocalizedTool, TokenMode, ToolDescriptor


def is_token_mode_compatible(tool: ToolDescriptor, token_mode: TokenMode) -> bool:
    """
    Whether ``tool`` can be called under ``token_mode``.

    - ``auto``: any requirement.
    - ``user_access_token``: only tools that accept a user token.
    - ``tenant_access_token``: everything except tools that need a user token.
    """
    if token_mode == TokenMode.USER:
        return tool.accepts_user_token
    if token_mode == TokenMode.TENANT:
        return not tool.requires_user_token
    return True


def matches_keyword(tool: LocalizedTool, keyword: Optional[str]) -> bool:
    """Case-insensitive substring match on name, description or project."""
    if not keyword:
        return True
    needle = keyword.lower()
    return (
        needle in tool.name.lower()
        or needle in tool.description.lower()
        or needle in tool.project.lower()
    )


def filter_tools(catalog: Iterable[ToolDescriptor], criteria: FilterCriteria) -> List[LocalizedTool]:
    """
    Return the catalog entries selected by ``criteria``, in catalog order.

    Names in ``criteria.allow_tools`` that match no catalog entry are
    ignored.
    """
    allowed = set(criteria.allow_tools)
    selected: List[LocalizedTool] = []
    for tool in catalog:
        if tool.name not in allowed:
            continue
        if not is_token_mode_compatible(tool, criteria.token_mode):
            continue
        localized = tool.localize(criteria.language)
        if matches_keyword(localized, criteria.keyword):
            selected.append(localized)
    return selected
