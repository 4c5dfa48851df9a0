"""Dispatcher - runs one tool call and normalises the outcome."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from lark_mcp.auth.store import TokenStore
from lark_mcp.client import LarkAPIError, LarkClient
from lark_mcp.errors import LarkMCPError, ParamsParseFailure, RemoteCallFailure
from lark_mcp.tools.handlers import HandlerContext, ToolArguments, resolve_handler
from lark_mcp.tools.registry import ToolRegistry
from lark_mcp.tools.schema import DEFAULT_LANGUAGE, TokenMode, ToolCall, ToolDescriptor, ToolResult

logger = logging.getLogger(__name__)

Params = Union[Mapping[str, Any], str, None]


def parse_params(text: Optional[str] = None, path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Decode a params payload given inline or as a file; the file wins.

    Raises :class:`ParamsParseFailure` for unreadable files, invalid JSON
    or a JSON value that is not an object.
    """
    if path:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ParamsParseFailure(f"Failed to read params file: {exc}") from exc
    if text is None or not text.strip():
        return {}
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParamsParseFailure(f"Failed to parse params JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ParamsParseFailure(f"Params must be a JSON object, got {type(payload).__name__}")
    return payload


class Dispatcher:
    """
    Executes one tool call at a time against a :class:`LarkClient`.

    The dispatcher reads the credential store but never writes to it, and
    never retries: every outcome, success or failure, comes back as a
    :class:`ToolResult`.
    """

    def __init__(
        self,
        client: LarkClient,
        registry: Optional[ToolRegistry] = None,
        store: Optional[TokenStore] = None,
        language: str = DEFAULT_LANGUAGE,
        token_mode: TokenMode = TokenMode.AUTO,
    ):
        self.client = client
        self.registry = registry or ToolRegistry()
        self.store = store
        self.language = language
        self.token_mode = TokenMode(token_mode)

    async def call_tool(
        self,
        name: str,
        params: Params = None,
        user_access_token: Optional[str] = None,
    ) -> ToolResult:
        """
        Run tool ``name`` with ``params`` (a mapping or raw JSON text).

        ``user_access_token`` overrides the credential store.
        """
        call = ToolCall(tool_name=name, arguments=params if isinstance(params, Mapping) else {})
        t0 = time.perf_counter()
        try:
            tool = self.registry.require_tool(name, self.language).descriptor
            payload = dict(params) if isinstance(params, Mapping) else parse_params(params)
            arguments = ToolArguments.from_payload(payload)
            token = self._select_user_token(tool, user_access_token)
            arguments = self._apply_token_mode(tool, arguments, token)

            handler = resolve_handler(tool)
            logger.debug("Calling %s (call %s)", name, call.call_id)
            try:
                output = await handler(self.client, arguments, HandlerContext(tool=tool, user_access_token=token))
            except LarkAPIError as exc:
                raise RemoteCallFailure(str(exc)) from exc

        except LarkMCPError as exc:
            logger.debug("Call %s to %s failed: %s", call.call_id, name, exc)
            return ToolResult(
                call_id=call.call_id,
                tool_name=name,
                success=False,
                error=str(exc),
                error_kind=exc.kind,
                duration_ms=int((time.perf_counter() - t0) * 1000),
            )

        return ToolResult(
            call_id=call.call_id,
            tool_name=name,
            success=True,
            output=output,
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )

    # ── Credentials ───────────────────────────────────────────────────────

    def _select_user_token(self, tool: ToolDescriptor, explicit: Optional[str]) -> Optional[str]:
        if self.token_mode == TokenMode.TENANT or not tool.accepts_user_token:
            return None
        return explicit or self._stored_user_token()

    def _stored_user_token(self) -> Optional[str]:
        """Best-effort lookup; any store problem means no user token."""
        if self.store is None:
            return None
        try:
            key = self.store.get_local_access_token(self.client.app_id)
            record = self.store.get_token(key) if key else None
        except Exception as exc:
            logger.debug("Ignoring stored token lookup failure: %s", exc)
            return None
        if record:
            logger.debug("Using stored user access token for app %s", self.client.app_id)
            return record.token
        return None

    def _apply_token_mode(
        self, tool: ToolDescriptor, arguments: ToolArguments, token: Optional[str]
    ) -> ToolArguments:
        if self.token_mode == TokenMode.TENANT:
            use_uat = False
        elif self.token_mode == TokenMode.USER:
            use_uat = tool.accepts_user_token
        else:
            use_uat = arguments.use_uat or (token is not None and tool.accepts_user_token)
        return arguments.model_copy(update={"use_uat": use_uat})
