"""One-time authorization that yields a long-lived refresh token."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import dropbox

from .remote import classify_error

logger = logging.getLogger("kiosksync.sync.oauth")

DEFAULT_SCOPES = (
    "account_info.read",
    "files.metadata.read",
    "files.content.read",
    "files.content.write",
)


@dataclass
class AuthorizationTokens:
    refresh_token: str
    access_token: str = ""
    scope: str = ""


class AuthorizationFlow:
    """Offline (refresh-token) flow without a redirect URI.

    The operator opens :meth:`start`'s URL, approves the app and pastes the
    code shown by the provider into :meth:`finish`.
    """

    def __init__(
        self,
        app_key: str,
        app_secret: str,
        scopes: Sequence[str] = DEFAULT_SCOPES,
        flow_factory: Callable[..., Any] = dropbox.DropboxOAuth2FlowNoRedirect,
    ):
        if not app_key or not app_secret:
            raise ValueError("App key and app secret are required before connecting.")
        self._flow = flow_factory(
            app_key,
            consumer_secret=app_secret,
            token_access_type="offline",
            scope=list(scopes),
        )
        self._started = False

    def start(self) -> str:
        url = self._flow.start()
        self._started = True
        return url

    def finish(self, code: str) -> AuthorizationTokens:
        if not self._started:
            raise RuntimeError("Authorization has not been started")
        try:
            result = self._flow.finish(code.strip())
        except Exception as exc:
            raise classify_error(exc) from exc
        refresh_token: Optional[str] = getattr(result, "refresh_token", None)
        if not refresh_token:
            raise ValueError("No refresh token returned; check the app's access type and scopes.")
        logger.info("Authorization completed; refresh token obtained")
        scope = getattr(result, "scope", "") or ""
        return AuthorizationTokens(
            refresh_token=refresh_token,
            access_token=getattr(result, "access_token", "") or "",
            scope=scope if isinstance(scope, str) else " ".join(scope),
        )


__all__ = ["AuthorizationFlow", "AuthorizationTokens", "DEFAULT_SCOPES"]
