"""OAuth 2.0 authorization-code login for user access tokens."""

from __future__ import annotations

import html
import logging
import secrets
import socket
import threading
import webbrowser
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse
from starlette.routing import Route

from lark_mcp.auth.store import TokenRecord, TokenStore, mask_token, utcnow
from lark_mcp.client import DEFAULT_DOMAIN
from lark_mcp.errors import AuthFailure

logger = logging.getLogger(__name__)

AUTHORIZE_PATH = "/open-apis/authen/v1/authorize"
TOKEN_PATH = "/open-apis/authen/v2/oauth/token"
CALLBACK_PATH = "/callback"
DEFAULT_LOGIN_TIMEOUT = 300.0

_PAGE = "<html><body><h3>{title}</h3><p>{body}</p></body></html>"


class _CallbackListener:
    """
    One-route Starlette app served by uvicorn on a background thread.

    The socket is bound by the caller, so a busy port fails before the
    server starts and port 0 resolves to a real port.
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.port = sock.getsockname()[1]
        self.params: Optional[Dict[str, str]] = None
        self.received = threading.Event()
        app = Starlette(routes=[Route(CALLBACK_PATH, self.callback, methods=["GET"])])
        self.server = uvicorn.Server(
            uvicorn.Config(app, log_config=None, access_log=False, lifespan="off")
        )
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"sockets": [sock]},
            name="oauth-callback",
            daemon=True,
        )

    async def callback(self, request: Request) -> HTMLResponse:
        params = dict(request.query_params)
        if "code" in params:
            page = _PAGE.format(title="Login succeeded", body="You can close this window.")
        else:
            reason = params.get("error_description") or params.get("error") or "no authorization code"
            page = _PAGE.format(title="Login failed", body=html.escape(reason))
        # first redirect wins
        if not self.received.is_set():
            self.params = params
            self.received.set()
        return HTMLResponse(page)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self.server.should_exit = True
        self._thread.join(timeout=5)
        self.sock.close()


class LoginHandler:
    """
    Runs one authorization-code login for an application.

    Flow:
    1. bind a listener on ``host:port``
    2. show the authorization URL (and open it in a browser)
    3. wait up to ``timeout`` seconds for the redirect
    4. exchange the code for a user access token
    5. store the token as the app's :class:`TokenRecord`

    Every failure along the way surfaces as :class:`AuthFailure`.
    """

    def __init__(
        self,
        store: TokenStore,
        app_id: str,
        app_secret: str,
        domain: str = DEFAULT_DOMAIN,
        host: str = "localhost",
        port: int = 3000,
        scope: Optional[List[str]] = None,
        timeout: float = DEFAULT_LOGIN_TIMEOUT,
        http: Optional[httpx.Client] = None,
        open_browser: Optional[Callable[[str], Any]] = webbrowser.open,
        notify: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.app_id = app_id
        self.app_secret = app_secret
        self.domain = domain.rstrip("/")
        self.host = host
        self.port = port
        self.scope = scope or []
        self.timeout = timeout
        self._http = http
        self._open_browser = open_browser
        self._notify = notify

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        query = {
            "client_id": self.app_id,
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "state": state,
        }
        # No scope means every permission already granted to the app.
        if self.scope:
            query["scope"] = " ".join(self.scope)
        return f"{self.domain}{AUTHORIZE_PATH}?{urlencode(query)}"

    def login(self) -> TokenRecord:
        """Run the whole flow and return the stored record."""
        with self.store.pending_login(self.app_id):
            listener = _CallbackListener(self._bind())
            listener.start()
            try:
                redirect_uri = f"http://{self.host}:{listener.port}{CALLBACK_PATH}"
                state = secrets.token_urlsafe(16)
                self._announce(self.authorization_url(redirect_uri, state))
                if not listener.received.wait(self.timeout):
                    raise AuthFailure(f"No authorization callback received within {self.timeout:.0f}s")
            finally:
                listener.stop()

            params = listener.params or {}
            if params.get("error"):
                reason = params.get("error_description") or params["error"]
                raise AuthFailure(f"Authorization was denied: {reason}")
            if params.get("state") != state:
                raise AuthFailure("Authorization callback state does not match this login")
            code = params.get("code")
            if not code:
                raise AuthFailure("Authorization callback carried no code")

            record = self.exchange_code(code, redirect_uri)
            self.store.save(record)
            logger.info("Logged in app %s with token %s", self.app_id, mask_token(record.token))
            return record

    def exchange_code(self, code: str, redirect_uri: str) -> TokenRecord:
        """Trade an authorization code for a user access token."""
        body = {
            "grant_type": "authorization_code",
            "client_id": self.app_id,
            "client_secret": self.app_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        }
        http = self._http or httpx.Client(timeout=30.0)
        try:
            response = http.post(f"{self.domain}{TOKEN_PATH}", json=body)
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise AuthFailure(f"Token exchange failed: {exc}") from exc
        finally:
            if self._http is None:
                http.close()

        if not isinstance(payload, dict) or payload.get("code", 0) != 0 or not payload.get("access_token"):
            reason = None
            if isinstance(payload, dict):
                reason = payload.get("error_description") or payload.get("msg") or payload.get("error")
            raise AuthFailure(f"Token exchange failed: {reason or 'no access token in response'}")

        expires_in = payload.get("expires_in")
        if not expires_in:
            raise AuthFailure("Token exchange failed: no expires_in")

        now = utcnow()
        refresh_expires_in = payload.get("refresh_token_expires_in")
        granted_scope = payload.get("scope")
        return TokenRecord(
            app_id=self.app_id,
            token=payload["access_token"],
            expires_at=now + timedelta(seconds=int(expires_in)),
            refresh_token=payload.get("refresh_token"),
            refresh_expires_at=now + timedelta(seconds=int(refresh_expires_in)) if refresh_expires_in else None,
            scope=granted_scope.split() if granted_scope else list(self.scope),
            created_at=now,
        )

    # ── Internals ─────────────────────────────────────────────────────────

    def _bind(self) -> socket.socket:
        try:
            return socket.create_server((self.host, self.port))
        except OSError as exc:
            raise AuthFailure(f"Cannot listen for the OAuth callback on {self.host}:{self.port}: {exc}") from exc

    def _announce(self, url: str) -> None:
        if self._notify:
            self._notify(url)
        logger.debug("Authorization URL: %s", url)
        if self._open_browser is None:
            return
        try:
            self._open_browser(url)
        except webbrowser.Error as exc:
            logger.warning("Could not open a browser (%s); open the URL manually", exc)
