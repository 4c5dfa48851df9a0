"""Async HTTP client for the Feishu/Lark open platform."""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = "https://open.feishu.cn"
TENANT_TOKEN_PATH = "/open-apis/auth/v3/tenant_access_token/internal"

_PATH_PARAM = re.compile(r":(\w+)")


class LarkAPIError(Exception):
    """Raised when the open platform rejects a request or cannot be reached."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        status_code: Optional[int] = None,
        log_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.log_id = log_id


class LarkClient:
    """
    Thin async client keyed by app id, app secret and domain.

    The tenant access token is fetched lazily and reused until shortly
    before it expires. User access tokens are passed in per request and
    never stored here.
    """

    # Refresh the tenant token this many seconds before the server expiry.
    TOKEN_EXPIRY_MARGIN = 60

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        domain: str = DEFAULT_DOMAIN,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = app_id
        self.app_secret = app_secret
        self.domain = domain.rstrip("/")
        self._http = httpx.AsyncClient(base_url=self.domain, timeout=timeout, transport=transport)
        self._tenant_token: Optional[str] = None
        self._tenant_token_deadline = 0.0

    async def __aenter__(self) -> "LarkClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Tokens ────────────────────────────────────────────────────────────

    async def get_tenant_access_token(self) -> str:
        """Return a cached tenant access token, fetching a new one when stale."""
        if self._tenant_token and time.monotonic() < self._tenant_token_deadline:
            return self._tenant_token

        logger.debug("Fetching tenant access token for app %s", self.app_id)
        payload = await self._send(
            "POST",
            TENANT_TOKEN_PATH,
            json={"app_id": self.app_id, "app_secret": self.app_secret},
        )
        token = payload.get("tenant_access_token")
        if not token:
            raise LarkAPIError("Tenant access token missing from response", code=payload.get("code"))
        expire = int(payload.get("expire", 0))
        self._tenant_token = token
        self._tenant_token_deadline = time.monotonic() + max(expire - self.TOKEN_EXPIRY_MARGIN, 0)
        return token

    # ── Requests ──────────────────────────────────────────────────────────

    @staticmethod
    def render_path(path: str, path_params: Optional[Dict[str, Any]] = None) -> str:
        """Substitute ``:name`` segments of ``path`` with URL-quoted values."""
        values = path_params or {}

        def replace(match: re.Match) -> str:
            key = match.group(1)
            if key not in values:
                raise LarkAPIError(f"Missing path parameter: {key}")
            return quote(str(values[key]), safe="")

        return _PATH_PARAM.sub(replace, path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        path_params: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        form: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        user_access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Call one open-platform endpoint.

        Uses ``user_access_token`` when given, the tenant token otherwise.
        Returns the decoded ``{code, msg, data}`` envelope; a non-zero
        ``code`` raises :class:`LarkAPIError`.
        """
        token = user_access_token or await self.get_tenant_access_token()
        url = self.render_path(path, path_params)
        query = {k: v for k, v in (params or {}).items() if v is not None}
        return await self._send(
            method,
            url,
            params=query or None,
            json=data if files is None else None,
            data=form,
            files=files,
            headers={"Authorization": f"Bearer {token}"},
        )

    async def _send(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._http.request(method.upper(), url, **kwargs)
        except httpx.HTTPError as exc:
            raise LarkAPIError(f"Request to {url} failed: {exc}") from exc
        return self._unwrap(response)

    @staticmethod
    def _unwrap(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            if response.is_error:
                raise LarkAPIError(
                    f"HTTP {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            return {"code": 0, "data": {"content": response.text}}

        if not isinstance(payload, dict):
            return {"code": 0, "data": payload}

        code = payload.get("code", 0)
        if code or response.is_error:
            error = payload.get("error") or {}
            raise LarkAPIError(
                payload.get("msg") or f"HTTP {response.status_code}",
                code=code,
                status_code=response.status_code,
                log_id=error.get("log_id") if isinstance(error, dict) else None,
            )
        return payload
