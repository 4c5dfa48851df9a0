"""
Credential store - persistent per-app user access tokens.

One YAML file per application id under ``<home>/tokens/``. A login for an
app replaces that app's file; logout deletes it. Nothing is refreshed here:
an expired record simply stops resolving until the user logs in again.
"""

import hashlib
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml

from lark_mcp.errors import AuthFailure

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".lark-mcp"
HOME_ENV_VAR = "LARK_MCP_HOME"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def mask_token(token: str) -> str:
    """Shorten a token for display: first 6 and last 4 characters."""
    if len(token) <= 12:
        return "*" * len(token)
    return f"{token[:6]}...{token[-4:]}"


@dataclass
class TokenRecord:
    """
    A user access token issued to one application.

    Records are replaced, never edited: a new login writes a new record.
    """

    app_id: str
    token: str
    expires_at: datetime
    refresh_token: Optional[str] = None
    refresh_expires_at: Optional[datetime] = None
    scope: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> str:
        """Lookup key handed out by :meth:`TokenStore.get_local_access_token`."""
        digest = hashlib.sha256(self.token.encode()).hexdigest()[:12]
        return f"{self.app_id}:{digest}"

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary for serialization."""
        return {
            "app_id": self.app_id,
            "token": self.token,
            "expires_at": self.expires_at.isoformat(),
            "refresh_token": self.refresh_token,
            "refresh_expires_at": self.refresh_expires_at.isoformat() if self.refresh_expires_at else None,
            "scope": self.scope,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRecord":
        """Create a TokenRecord from a dictionary."""
        refresh_expires_at = data.get("refresh_expires_at")
        return cls(
            app_id=data["app_id"],
            token=data["token"],
            expires_at=_parse_time(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
            refresh_expires_at=_parse_time(refresh_expires_at) if refresh_expires_at else None,
            scope=data.get("scope") or [],
            created_at=_parse_time(data["created_at"]) if data.get("created_at") else utcnow(),
        )

    def session_info(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Display form used by ``whoami``; the token is masked."""
        return {
            "app_id": self.app_id,
            "token": mask_token(self.token),
            "expires_at": self.expires_at.isoformat(),
            "valid": not self.is_expired(now),
            "scope": self.scope,
        }


def _parse_time(value: Any) -> datetime:
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class TokenStore:
    """
    File-backed store of :class:`TokenRecord`, one per application id.

    Writes for the same app id are serialized in-process and land via an
    atomic rename, so concurrent logins end with the last completed one.
    The store also tracks which app ids have a login in progress so a
    second login for the same app is refused while the first is pending.

    Example:
        >>> store = TokenStore(Path("/tmp/lark"))
        >>> store.save(record)
        >>> key = store.get_local_access_token(record.app_id)
        >>> store.get_token(key).token == record.token
        True
    """

    def __init__(self, home: Optional[Path] = None):
        if home is None:
            home = Path(os.environ.get(HOME_ENV_VAR) or DEFAULT_HOME)
        self.home = Path(home).expanduser()
        self.tokens_dir = self.home / "tokens"
        self._guard = threading.Lock()
        self._app_locks: Dict[str, threading.Lock] = {}
        self._pending: set = set()

    # ── Paths & locks ─────────────────────────────────────────────────────

    def _path(self, app_id: str) -> Path:
        # distinct app ids never share a file, whatever the filesystem case rules
        return self.tokens_dir / f"{app_id.encode().hex()}.yaml"

    def _lock_for(self, app_id: str) -> threading.Lock:
        with self._guard:
            return self._app_locks.setdefault(app_id, threading.Lock())

    # ── Records ───────────────────────────────────────────────────────────

    def save(self, record: TokenRecord) -> Path:
        """Store ``record``, replacing any previous record for its app id."""
        path = self._path(record.app_id)
        with self._lock_for(record.app_id):
            self.tokens_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.tokens_dir, prefix=".tmp-", suffix=".yaml")
            try:
                with os.fdopen(fd, "w") as f:
                    yaml.safe_dump(record.to_dict(), f, default_flow_style=False, sort_keys=False)
                os.chmod(tmp_name, 0o600)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        logger.debug("Stored token %s for app %s", mask_token(record.token), record.app_id)
        return path

    def load(self, app_id: str) -> Optional[TokenRecord]:
        """Return the stored record for ``app_id`` whether or not it has expired."""
        path = self._path(app_id)
        if not path.exists():
            return None
        with open(path) as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict) or data.get("app_id") != app_id:
            return None
        return TokenRecord.from_dict(data)

    def list_records(self) -> List[TokenRecord]:
        if not self.tokens_dir.exists():
            return []
        records = []
        for path in sorted(self.tokens_dir.glob("*.yaml")):
            if path.name.startswith(".tmp-"):
                continue
            try:
                with open(path) as f:
                    data = yaml.safe_load(f)
                records.append(TokenRecord.from_dict(data))
            except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable token file %s: %s", path, exc)
        return records

    def get_local_access_token(self, app_id: str) -> Optional[str]:
        """Key of the stored record for ``app_id``, if any. No network I/O."""
        record = self.load(app_id)
        return record.key if record else None

    def get_token(self, key: str) -> Optional[TokenRecord]:
        """
        Resolve a key from :meth:`get_local_access_token`.

        Returns ``None`` when the record is gone, was replaced by a newer
        login, or has expired.
        """
        app_id, sep, _ = key.rpartition(":")
        if not sep:
            return None
        record = self.load(app_id)
        if record is None or record.key != key:
            return None
        if record.is_expired():
            logger.debug("Stored token for app %s expired at %s", app_id, record.expires_at.isoformat())
            return None
        return record

    # ── Logout ────────────────────────────────────────────────────────────

    def delete(self, app_id: str) -> bool:
        """Delete the record for ``app_id``. Returns False if there was none."""
        with self._lock_for(app_id):
            path = self._path(app_id)
            if path.exists():
                path.unlink()
                return True
        return False

    def logout(self, app_id: Optional[str] = None) -> List[str]:
        """
        Remove the record of ``app_id``, or every record when omitted.

        Returns the app ids that were logged out; an app without a record
        is not an error.
        """
        if app_id:
            return [app_id] if self.delete(app_id) else []
        return [record.app_id for record in self.list_records() if self.delete(record.app_id)]

    def who_am_i(self) -> List[Dict[str, Any]]:
        now = utcnow()
        return [record.session_info(now) for record in self.list_records()]

    # ── Pending logins ────────────────────────────────────────────────────

    @contextmanager
    def pending_login(self, app_id: str) -> Iterator[None]:
        """Mark a login for ``app_id`` as in progress for the duration of the block."""
        with self._guard:
            if app_id in self._pending:
                raise AuthFailure(f"A login for app {app_id} is already in progress")
            self._pending.add(app_id)
        try:
            yield
        finally:
            with self._guard:
                self._pending.discard(app_id)

    def is_login_pending(self, app_id: str) -> bool:
        with self._guard:
            return app_id in self._pending
