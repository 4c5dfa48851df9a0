"""Execution strategies: the declarative invoker and named custom routines."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from lark_mcp.client import LarkAPIError, LarkClient
from lark_mcp.errors import CredentialUnavailable, HandlerNotFound, ParamsParseFailure
from lark_mcp.tools.schema import CustomExecution, ToolDescriptor

logger = logging.getLogger(__name__)


class ToolArguments(BaseModel):
    """Envelope every tool call payload must fit."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    path: Dict[str, Any] = Field(default_factory=dict)
    params: Dict[str, Any] = Field(default_factory=dict)
    data: Optional[Dict[str, Any]] = None
    use_uat: bool = Field(default=False, alias="useUAT")

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ToolArguments":
        return _validate(cls, payload, "Invalid tool params")


class ImportData(BaseModel):
    """``data`` accepted by the Markdown import routine."""

    markdown: str = Field(min_length=1)
    file_name: str = "Untitled"
    mount_key: str = ""


def _validate(model: type, payload: Any, label: str) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in exc.errors()
        )
        raise ParamsParseFailure(f"{label}: {problems}") from exc


@dataclass
class HandlerContext:
    """What a routine knows about the call besides its arguments."""

    tool: ToolDescriptor
    user_access_token: Optional[str] = None

    def access_token_for(self, arguments: ToolArguments) -> Optional[str]:
        """
        Pick the user token when the call asks for one (``useUAT``) or the
        tool only accepts user tokens; ``None`` means the tenant token.
        """
        wants_user = arguments.use_uat or self.tool.requires_user_token
        if not wants_user:
            return None
        if not self.tool.accepts_user_token:
            logger.debug("%s does not accept user tokens, using tenant token", self.tool.name)
            return None
        if not self.user_access_token:
            raise CredentialUnavailable(
                f"{self.tool.name} needs a user access token. "
                "Run `lark-mcp login` or pass --user-access-token."
            )
        return self.user_access_token


Handler = Callable[[LarkClient, ToolArguments, HandlerContext], Awaitable[Any]]


def missing_required(schema: Dict[str, Any], section: str, values: Dict[str, Any]) -> List[str]:
    """Required keys of ``schema.properties[section]`` absent from ``values``."""
    sub_schema = schema.get("properties", {}).get(section, {})
    return [key for key in sub_schema.get("required", []) if values.get(key) in (None, "")]


def unwrap_envelope(response: Dict[str, Any]) -> Any:
    """Strip the ``{code, msg, data}`` envelope from a successful response."""
    if "data" in response:
        return response["data"]
    return {k: v for k, v in response.items() if k not in ("code", "msg")}


# ── Declarative ───────────────────────────────────────────────────────────


async def call_declarative(client: LarkClient, arguments: ToolArguments, context: HandlerContext) -> Any:
    """Map the call onto the tool's HTTP binding."""
    execution = context.tool.execution

    missing = missing_required(context.tool.input_schema, "path", arguments.path)
    if missing:
        raise ParamsParseFailure(f"Missing required path parameter(s): {', '.join(missing)}")

    token = context.access_token_for(arguments)
    logger.debug(
        "%s %s (%s) as %s",
        execution.http_method,
        execution.path,
        execution.sdk_name or context.tool.name,
        "user" if token else "tenant",
    )
    response = await client.request(
        execution.http_method,
        execution.path,
        path_params=arguments.path,
        params=arguments.params,
        data=arguments.data,
        user_access_token=token,
    )
    return unwrap_envelope(response)


# ── Custom routines ───────────────────────────────────────────────────────

IMPORT_POLL_ATTEMPTS = 5
IMPORT_POLL_INTERVAL = 1.0

# drive import task job_status values
_JOB_DONE = 0
_JOB_RUNNING = (1, 2)


async def import_markdown(client: LarkClient, arguments: ToolArguments, context: HandlerContext) -> Any:
    """Upload Markdown, create an import task and wait for the new document."""
    data: ImportData = _validate(ImportData, arguments.data or {}, "Invalid import data")
    file_name = data.file_name or "Untitled"
    token = context.access_token_for(arguments)

    content = data.markdown.encode("utf-8")
    upload = await client.request(
        "POST",
        "/open-apis/drive/v1/medias/upload_all",
        form={
            "file_name": f"{file_name}.md",
            "parent_type": "ccm_import_open",
            "size": str(len(content)),
            "extra": json.dumps({"obj_type": "docx", "file_extension": "md"}),
        },
        files={"file": (f"{file_name}.md", content, "text/markdown")},
        user_access_token=token,
    )
    file_token = unwrap_envelope(upload).get("file_token")
    if not file_token:
        raise LarkAPIError("Upload response carried no file_token")

    task = await client.request(
        "POST",
        "/open-apis/drive/v1/import_tasks",
        data={
            "file_extension": "md",
            "file_token": file_token,
            "type": "docx",
            "file_name": file_name,
            "point": {"mount_type": 1, "mount_key": data.mount_key},
        },
        user_access_token=token,
    )
    ticket = unwrap_envelope(task).get("ticket")
    if not ticket:
        raise LarkAPIError("Import task response carried no ticket")

    job: Dict[str, Any] = {}
    for attempt in range(IMPORT_POLL_ATTEMPTS):
        if attempt:
            await asyncio.sleep(IMPORT_POLL_INTERVAL)
        status = await client.request(
            "GET",
            "/open-apis/drive/v1/import_tasks/:ticket",
            path_params={"ticket": ticket},
            user_access_token=token,
        )
        job = unwrap_envelope(status).get("result", {})
        job_status = job.get("job_status")
        if job_status == _JOB_DONE:
            return job
        if job_status not in _JOB_RUNNING:
            raise LarkAPIError(job.get("job_error_msg") or f"Import task failed with status {job_status}")

    return {"ticket": ticket, "job_status": job.get("job_status"), "pending": True}


CUSTOM_HANDLERS: Dict[str, Handler] = {
    "docx.builtin.import": import_markdown,
}


def resolve_handler(tool: ToolDescriptor) -> Handler:
    """Choose the routine for ``tool`` from its execution variant."""
    execution = tool.execution
    if isinstance(execution, CustomExecution):
        handler = CUSTOM_HANDLERS.get(execution.handler)
        if handler is None:
            raise HandlerNotFound(execution.handler)
        return handler
    return call_declarative
