import time
from pathlib import Path
from types import SimpleNamespace
from typing import Callable

import httpx
import pytest
from azure.monitor.query import LogsQueryStatus

from azure_schema_mcp.auth import TokenCache
from azure_schema_mcp.cache import SchemaCache
from azure_schema_mcp.config import Settings
from azure_schema_mcp.discovery import SchemaDiscoveryService
from azure_schema_mcp.exceptions import AuthenticationError
from azure_schema_mcp.models import CachedToken

GETSCHEMA_COLUMNS = ["ColumnName", "ColumnOrdinal", "DataType", "ColumnType"]


def now_ms() -> int:
    return int(time.time() * 1000)


class FakeTokenProvider:
    """Stands in for CredentialAdapter; counts acquisitions."""

    def __init__(self, lifetime_ms: int = 60 * 60 * 1000, fail: bool = False):
        self.calls: list[list[str]] = []
        self.lifetime_ms = lifetime_ms
        self.fail = fail

    def acquire(self, scopes: list[str]) -> CachedToken:
        self.calls.append(list(scopes))
        if self.fail:
            raise AuthenticationError("no credentials available")
        return CachedToken(
            value=f"token-{len(self.calls)}",
            expires_at_epoch_ms=now_ms() + self.lifetime_ms,
        )


def logs_table(columns, rows, types=None):
    return SimpleNamespace(
        name="PrimaryResult",
        columns=list(columns),
        columns_types=list(types or ["string"] * len(columns)),
        rows=[list(r) for r in rows],
    )


def logs_success(*tables):
    return SimpleNamespace(status=LogsQueryStatus.SUCCESS, tables=list(tables))


def logs_failure():
    return SimpleNamespace(status=LogsQueryStatus.PARTIAL, partial_data=[], partial_error="boom")


class FakeLogsClient:
    """Records queries and answers them through a handler."""

    def __init__(self, handler: Callable[[str, str], object]):
        self.handler = handler
        self.queries: list[tuple[str, str, object]] = []
        self.credentials: list[object] = []
        self.closed = False

    def factory(self, credential):
        self.credentials.append(credential)
        return self

    def query_workspace(self, workspace_id, query, *, timespan=None, **_kwargs):
        self.queries.append((workspace_id, query, timespan))
        return self.handler(workspace_id, query)

    def close(self):
        self.closed = True


def orders_handler(workspace_id, query):
    if query == "Orders | getschema":
        return logs_success(
            logs_table(GETSCHEMA_COLUMNS, [["Id", 0, "System.Int64", "long"], ["Total", 1, "System.Double", "real"]])
        )
    return logs_failure()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        tenant_id="test-tenant",
        workspace_id="ws-primary",
        token_cache_dir=tmp_path / "tokens",
        schema_cache_dir=tmp_path / "schemas",
        graph_base_url="https://graph.test/v1.0",
    )


@pytest.fixture
def token_provider() -> FakeTokenProvider:
    return FakeTokenProvider()


@pytest.fixture
def logs_client() -> FakeLogsClient:
    return FakeLogsClient(orders_handler)


@pytest.fixture
def graph_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def graph_handler():
    """Mutable holder so tests can swap the Graph response."""
    holder = {
        "handler": lambda request: httpx.Response(
            200,
            json={
                "value": [
                    {"id": "1", "displayName": "Ada", "tags": ["a"], "mail": None, "enabled": True, "score": 4.5},
                    {"id": "2", "displayName": "Grace", "tags": [], "mail": "g@x.test", "enabled": False},
                ]
            },
        )
    }
    return holder


@pytest.fixture
def http_client(graph_requests, graph_handler) -> httpx.Client:
    def handle(request: httpx.Request) -> httpx.Response:
        graph_requests.append(request)
        return graph_handler["handler"](request)

    return httpx.Client(transport=httpx.MockTransport(handle))


@pytest.fixture
def schema_cache(settings) -> SchemaCache:
    return SchemaCache(settings.schema_cache_dir)


@pytest.fixture
def service(settings, token_provider, logs_client, http_client, schema_cache) -> SchemaDiscoveryService:
    return SchemaDiscoveryService(
        settings,
        log_tokens=TokenCache(token_provider, settings.token_cache_dir / "azure-token.json"),
        graph_tokens=TokenCache(token_provider, settings.token_cache_dir / "graph-token.json"),
        schema_cache=schema_cache,
        logs_client_factory=logs_client.factory,
        http_client=http_client,
    )
