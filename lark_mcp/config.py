"""
lark-mcp configuration - option loading and validation.

Options come from four layers, later ones overriding earlier ones:
built-in defaults, environment variables (``.env`` included), a JSON or
YAML config file, and command-line options.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from lark_mcp.client import DEFAULT_DOMAIN
from lark_mcp.errors import ConfigError, MissingCredentials
from lark_mcp.tools.naming import ToolNameCase
from lark_mcp.tools.schema import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES, TokenMode

ENV_VARS: Dict[str, str] = {
    "app_id": "APP_ID",
    "app_secret": "APP_SECRET",
    "domain": "LARK_DOMAIN",
    "tools": "LARK_TOOLS",
    "tool_name_case": "LARK_TOOL_NAME_CASE",
    "language": "LARK_LANGUAGE",
    "token_mode": "LARK_TOKEN_MODE",
    "user_access_token": "USER_ACCESS_TOKEN",
    "scope": "LARK_SCOPE",
    "host": "LARK_HOST",
    "port": "LARK_PORT",
}

_SEPARATORS = re.compile(r"[\s,]+")


def parse_string_array(value: Any) -> List[str]:
    """Split ``"a, b c"`` into ``["a", "b", "c"]``; lists pass through."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item for item in _SEPARATORS.split(value) if item]
    return [str(item).strip() for item in value if str(item).strip()]


class LarkOptions(BaseModel):
    """Validated options. Config files may use snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    app_id: Optional[str] = None
    app_secret: Optional[str] = None
    domain: str = DEFAULT_DOMAIN
    tools: List[str] = Field(default_factory=list)
    tool_name_case: ToolNameCase = ToolNameCase.SNAKE
    language: str = DEFAULT_LANGUAGE
    token_mode: TokenMode = TokenMode.AUTO
    user_access_token: Optional[str] = None
    scope: List[str] = Field(default_factory=list)
    host: str = "localhost"
    port: int = 3000
    debug: bool = False

    @field_validator("tools", "scope", mode="before")
    @classmethod
    def _split_lists(cls, value: Any) -> List[str]:
        return parse_string_array(value)

    @field_validator("language")
    @classmethod
    def _known_language(cls, value: str) -> str:
        if value not in SUPPORTED_LANGUAGES:
            raise ValueError(f"language must be one of {', '.join(SUPPORTED_LANGUAGES)}")
        return value


class Config:
    """
    Layered configuration manager.

    Example:
        >>> config = Config.load(config_path="lark.json", cli_options={"debug": True})
        >>> config.options.token_mode
        <TokenMode.AUTO: 'auto'>
    """

    def __init__(
        self,
        env_config: Optional[Dict[str, Any]] = None,
        file_config: Optional[Dict[str, Any]] = None,
        cli_config: Optional[Dict[str, Any]] = None,
    ):
        self._env_config = env_config or {}
        self._file_config = file_config or {}
        self._cli_config = {k: v for k, v in (cli_config or {}).items() if v is not None}
        self._options: Optional[LarkOptions] = None

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        cli_options: Optional[Dict[str, Any]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """
        Build a Config from the process environment, a config file and CLI options.

        ``.env`` in the working directory is loaded into the environment
        unless an explicit ``environ`` is given.
        """
        if environ is None:
            load_dotenv(find_dotenv(usecwd=True))
            environ = os.environ
        file_config = cls._load_file(Path(config_path)) if config_path else {}
        return cls(
            env_config=cls.from_environ(environ),
            file_config=file_config,
            cli_config=cli_options,
        )

    @staticmethod
    def from_environ(environ: Mapping[str, str]) -> Dict[str, Any]:
        return {key: environ[var] for key, var in ENV_VARS.items() if environ.get(var)}

    @classmethod
    def _load_file(cls, path: Path) -> Dict[str, Any]:
        """Load a JSON or YAML config file (JSON is valid YAML)."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read config file {path}: {e}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data

    def get_merged_config(self) -> Dict[str, Any]:
        """Merge the layers as plain dicts; CLI over file over environment."""
        merged = self._deep_merge(self._normalize(self._env_config), self._normalize(self._file_config))
        return self._deep_merge(merged, self._normalize(self._cli_config))

    @property
    def options(self) -> LarkOptions:
        """Get the validated merged options."""
        if self._options is None:
            try:
                self._options = LarkOptions.model_validate(self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._options

    def require_app_credentials(self) -> LarkOptions:
        """Options, insisting that an app id and app secret are configured."""
        options = self.options
        if not options.app_id or not options.app_secret:
            raise MissingCredentials("Missing required options: --app-id and --app-secret are required")
        return options

    @staticmethod
    def _normalize(config: Dict[str, Any]) -> Dict[str, Any]:
        """Key every layer by field name so camelCase and snake_case merge."""
        by_alias = {to_camel(name): name for name in LarkOptions.model_fields}
        return {by_alias.get(key, key): value for key, value in config.items()}

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
