"""Error hierarchy shared by the registry, dispatcher, credential store and CLI."""


class LarkMCPError(Exception):
    """Base class for every error surfaced to a caller as a JSON envelope."""

    kind = "error"

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind}


class ToolNotFound(LarkMCPError):
    """Raised when a tool name is not in the active-language catalog."""

    kind = "tool_not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Tool not found: {name}")


class ParamsParseFailure(LarkMCPError):
    """Raised when the params payload is not a valid JSON object."""

    kind = "params_parse_failure"


class AuthFailure(LarkMCPError):
    """Raised when the OAuth login flow cannot complete."""

    kind = "auth_failure"


class CredentialUnavailable(LarkMCPError):
    """Raised when a user access token is required but none is available."""

    kind = "credential_unavailable"


class RemoteCallFailure(LarkMCPError):
    """Raised when the remote API client fails; the message is passed through."""

    kind = "remote_call_failure"


class MissingCredentials(LarkMCPError):
    """Raised when an app id / app secret pair is required but not configured."""

    kind = "missing_credentials"


class ConfigError(LarkMCPError):
    """Raised when there's a configuration error."""

    kind = "config_error"


class HandlerNotFound(LarkMCPError):
    """Raised when a tool names a custom routine that is not registered."""

    kind = "handler_not_found"

    def __init__(self, handler: str):
        self.handler = handler
        super().__init__(f"No custom handler registered as {handler!r}")
