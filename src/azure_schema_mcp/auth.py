"""Bearer-token acquisition with an in-memory and on-disk cache.

``CredentialAdapter`` is the only place that talks to ``azure-identity``.
``TokenCache`` sits in front of it and keeps one token per instance, so the
server builds one cache per audience (Log Analytics, Microsoft Graph).
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional, Protocol

from azure.core.credentials import AccessToken
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import CredentialUnavailableError, DefaultAzureCredential

from azure_schema_mcp.exceptions import AuthenticationError, CacheCorruptionError
from azure_schema_mcp.models import CachedToken

logger = logging.getLogger("azure-schema-mcp")

LOG_ANALYTICS_SCOPES = ["https://api.loganalytics.io/.default"]
GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]

EXPIRY_WINDOW_MS = 5 * 60 * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


class TokenProvider(Protocol):
    def acquire(self, scopes: list[str]) -> CachedToken: ...


class CredentialAdapter:
    """Thin wrapper over ``DefaultAzureCredential`` scoped to one tenant.

    The credential chain tries environment variables, managed identity,
    the Azure CLI (``az login``) and the other developer sign-ins in turn.
    """

    def __init__(self, tenant_id: str, credential=None) -> None:
        self._credential = credential or DefaultAzureCredential(
            additionally_allowed_tenants=[tenant_id],
        )
        self._tenant_id = tenant_id

    def acquire(self, scopes: list[str]) -> CachedToken:
        try:
            access = self._credential.get_token(*scopes, tenant_id=self._tenant_id)
        except (ClientAuthenticationError, CredentialUnavailableError) as exc:
            raise AuthenticationError(
                "Failed to acquire access token. "
                f"Make sure you are signed in to Azure (run: az login). {exc}"
            ) from exc
        if access is None or not access.token:
            raise AuthenticationError("Credential chain returned no access token")
        return CachedToken(value=access.token, expires_at_epoch_ms=int(access.expires_on) * 1000)


class TokenCache:
    """Serve a valid bearer token with as few credential calls as possible."""

    def __init__(self, provider: TokenProvider, cache_file: Path) -> None:
        self._provider = provider
        self._cache_file = Path(cache_file)
        self._token: Optional[CachedToken] = None

    @property
    def cache_file(self) -> Path:
        return self._cache_file

    def get_token(self, scopes: list[str]) -> str:
        return self.get_cached_token(scopes).value

    def get_cached_token(self, scopes: list[str]) -> CachedToken:
        """Like :meth:`get_token` but keeps the expiry alongside the value."""
        now = _now_ms()
        if self._token is not None and self._token.is_valid(now):
            return self._token

        stored = self._load()
        if stored is not None and stored.is_valid(now):
            self._token = stored
            return stored

        try:
            token = self._provider.acquire(scopes)
        except AuthenticationError:
            raise
        except Exception as exc:
            raise AuthenticationError(f"Failed to acquire access token: {exc}") from exc
        if token is None or not token.value:
            raise AuthenticationError("Credential provider returned no token")

        self._token = token
        self._save(token)
        return token

    def force_refresh(self, scopes: list[str]) -> str:
        self._token = None
        self._delete()
        return self.get_token(scopes)

    def as_credential(self, scopes: list[str]) -> "TokenCacheCredential":
        return TokenCacheCredential(self, scopes)

    def is_expiring_soon(self) -> bool:
        if self._token is None:
            return True
        return self._token.expires_at_epoch_ms < _now_ms() + EXPIRY_WINDOW_MS

    # ── Persistence ──────────────────────────────────────────────────────────

    def _load(self) -> Optional[CachedToken]:
        try:
            data = json.loads(self._cache_file.read_text(encoding="utf-8"))
            return CachedToken.from_dict(data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, CacheCorruptionError) as exc:
            logger.debug("Ignoring unreadable token cache %s: %s", self._cache_file, exc)
            return None

    def _save(self, token: CachedToken) -> None:
        try:
            self._cache_file.parent.mkdir(parents=True, exist_ok=True)
            self._cache_file.write_text(json.dumps(token.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to cache token to disk (%s): %s", self._cache_file, exc)

    def _delete(self) -> None:
        try:
            self._cache_file.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to remove cached token %s: %s", self._cache_file, exc)


class TokenCacheCredential:
    """``TokenCredential`` for Azure SDK clients that reads from a :class:`TokenCache`.

    SDK clients built over it can live for the whole process: every call the
    bearer-token policy makes goes back to the cache, and the expiry reported
    is the cached token's real one.
    """

    def __init__(self, tokens: TokenCache, scopes: list[str]) -> None:
        self._tokens = tokens
        self._scopes = list(scopes)

    def get_token(self, *scopes: str, **_kwargs) -> AccessToken:
        token = self._tokens.get_cached_token(list(scopes) or self._scopes)
        return AccessToken(token.value, token.expires_at_epoch_ms // 1000)
