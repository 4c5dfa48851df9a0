"""
Credential management for user access tokens.

``TokenStore`` persists one token per application id; ``LoginHandler``
runs the OAuth authorization-code flow that produces them.
"""

from lark_mcp.auth.oauth import LoginHandler
from lark_mcp.auth.store import TokenRecord, TokenStore

__all__ = ["LoginHandler", "TokenRecord", "TokenStore"]
