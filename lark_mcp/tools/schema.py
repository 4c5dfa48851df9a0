"""Data models for tool descriptors, filter criteria, calls, and results."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES = ("en", "zh")


class AccessToken(str, Enum):
    """Credential kinds a tool may be called with."""

    TENANT = "tenant"
    USER = "user"


class TokenMode(str, Enum):
    """Policy constraining which credential kinds the selected tools may require."""

    AUTO = "auto"
    USER = "user_access_token"
    TENANT = "tenant_access_token"


class DeclarativeExecution(BaseModel):
    """Tool bound to a single HTTP endpoint of the open platform."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["declarative"] = "declarative"
    http_method: str
    path: str  # e.g. "/open-apis/im/v1/chats/:chat_id/members"
    sdk_name: str = ""  # e.g. "im.v1.chatMembers.get"


class CustomExecution(BaseModel):
    """Tool executed by a named routine from ``lark_mcp.tools.handlers``."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["custom"] = "custom"
    handler: str


Execution = Annotated[
    Union[DeclarativeExecution, CustomExecution],
    Field(discriminator="kind"),
]


class ToolDescriptor(BaseModel):
    """
    One catalog entry.

    ``description`` maps a language code to text; English is mandatory and
    is the fallback for any language without its own text. Everything else
    is locale-invariant, so every language view of the catalog has the same
    names in the same order.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str  # e.g. "im.v1.message.create"
    project: str  # e.g. "im"
    description: Dict[str, str]
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="schema")
    access_tokens: List[AccessToken] = Field(default_factory=list)
    support_file_upload: bool = False
    support_file_download: bool = False
    execution: Execution

    def describe(self, language: str = DEFAULT_LANGUAGE) -> str:
        """Description text in ``language``, falling back to English."""
        return self.description.get(language) or self.description[DEFAULT_LANGUAGE]

    def localize(self, language: str = DEFAULT_LANGUAGE) -> "LocalizedTool":
        return LocalizedTool(descriptor=self, language=language)

    @property
    def accepts_user_token(self) -> bool:
        return AccessToken.USER in self.access_tokens

    @property
    def accepts_tenant_token(self) -> bool:
        return AccessToken.TENANT in self.access_tokens

    @property
    def requires_user_token(self) -> bool:
        """True when the tool can only be called on behalf of a user."""
        return self.accepts_user_token and not self.accepts_tenant_token


class LocalizedTool(BaseModel):
    """A descriptor seen through one language."""

    model_config = ConfigDict(frozen=True)

    descriptor: ToolDescriptor
    language: str = DEFAULT_LANGUAGE

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def project(self) -> str:
        return self.descriptor.project

    @property
    def description(self) -> str:
        return self.descriptor.describe(self.language)

    def summary(self) -> Dict[str, Any]:
        """Short form used by ``list-tools``."""
        return {"name": self.name, "description": self.description}

    def verbose_summary(self) -> Dict[str, Any]:
        """Long form used by ``list-tools --verbose``."""
        execution = self.descriptor.execution
        declarative = isinstance(execution, DeclarativeExecution)
        return {
            "name": self.name,
            "description": self.description,
            "project": self.project,
            "accessTokens": [t.value for t in self.descriptor.access_tokens],
            "httpMethod": execution.http_method if declarative else None,
            "path": execution.path if declarative else None,
        }

    def full_description(self) -> Dict[str, Any]:
        """Everything ``describe`` prints."""
        execution = self.descriptor.execution
        declarative = isinstance(execution, DeclarativeExecution)
        return {
            "name": self.name,
            "description": self.description,
            "project": self.project,
            "schema": self.descriptor.input_schema,
            "accessTokens": [t.value for t in self.descriptor.access_tokens],
            "httpMethod": execution.http_method if declarative else None,
            "path": execution.path if declarative else None,
            "sdkName": execution.sdk_name if declarative else None,
            "handler": None if declarative else execution.handler,
            "supportFileUpload": self.descriptor.support_file_upload,
            "supportFileDownload": self.descriptor.support_file_download,
        }


class FilterCriteria(BaseModel):
    """Input of the tool filter. ``allow_tools`` must already be preset-expanded."""

    allow_tools: List[str] = Field(default_factory=list)
    token_mode: TokenMode = TokenMode.AUTO
    language: str = DEFAULT_LANGUAGE
    keyword: Optional[str] = None


class ToolCall(BaseModel):
    """Record of a single tool invocation."""

    call_id: str = ""
    tool_name: str = ""
    arguments: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = ""

    def model_post_init(self, __context: Any) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()
        if not self.call_id:
            raw = f"{self.tool_name}:{sorted(self.arguments)}:{self.timestamp}"
            self.call_id = hashlib.sha256(raw.encode()).hexdigest()[:12]


class ToolResult(BaseModel):
    """Normalised outcome of a dispatched call."""

    call_id: str = ""
    tool_name: str = ""
    success: bool = False
    output: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    duration_ms: int = 0

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def error_envelope(self) -> Dict[str, Any]:
        return {"error": self.error, "kind": self.error_kind, "tool": self.tool_name}
