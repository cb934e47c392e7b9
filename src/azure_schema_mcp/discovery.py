"""Schema discovery against Log Analytics and Microsoft Graph.

:class:`SchemaDiscoveryService` resolves a token, checks the
:class:`~azure_schema_mcp.cache.SchemaCache`, and only on a miss calls the
remote service. Every call is blocking; the MCP layer moves them off the
event loop. Nothing here retries: a failed remote call surfaces as
``DiscoveryError`` or ``QueryError`` and the caller decides what to do.
"""

import logging
import os
import re
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
from azure.core.exceptions import AzureError
from azure.monitor.query import LogsQueryClient, LogsQueryStatus

from azure_schema_mcp.auth import GRAPH_SCOPES, LOG_ANALYTICS_SCOPES, TokenCache
from azure_schema_mcp.cache import SchemaCache
from azure_schema_mcp.config import Settings
from azure_schema_mcp.exceptions import AzureSchemaError, DiscoveryError, QueryError
from azure_schema_mcp.models import (
    ApiSchema,
    PropertySchema,
    QueryColumn,
    QueryResult,
    TableColumn,
    TableSchema,
    api_key,
    table_key,
)

logger = logging.getLogger("azure-schema-mcp")

DISCOVERY_WINDOW = timedelta(hours=1)
METADATA_WINDOW = timedelta(days=90)

LIST_TABLES_QUERY = "union withsource = TableName * | distinct TableName | sort by TableName asc"

_ROW_LIMIT = re.compile(r"\b(take|limit)\b", re.IGNORECASE)

_EXAMPLE_SUFFIXES = frozenset({".kql", ".csl", ".ts", ".tsx", ".js", ".jsx", ".py", ".md"})
_SKIP_DIRS = frozenset({".git", "node_modules", ".venv", "venv", "__pycache__", ".cache", "build", "dist"})
_MAX_EXAMPLES = 20


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_type(value: Any) -> str:
    """Name a JSON value's type the way JavaScript's ``typeof`` would."""
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return "object"


def _column_index(columns: list[str], name: str, fallback: int) -> int:
    return columns.index(name) if name in columns else fallback


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return str(value)
    return value


class SchemaDiscoveryService:
    def __init__(
        self,
        settings: Settings,
        log_tokens: TokenCache,
        graph_tokens: TokenCache,
        schema_cache: SchemaCache,
        *,
        logs_client_factory: Callable[[Any], Any] = LogsQueryClient,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._settings = settings
        self._log_tokens = log_tokens
        self._graph_tokens = graph_tokens
        self._cache = schema_cache
        self._logs_client_factory = logs_client_factory
        self._logs_client = None
        self._http = http_client or httpx.Client(timeout=30.0)

    @property
    def settings(self) -> Settings:
        return self._settings

    def close(self) -> None:
        if self._logs_client is not None:
            self._logs_client.close()
            self._logs_client = None
        self._http.close()

    # ── Log Analytics plumbing ───────────────────────────────────────────────

    def _get_logs_client(self):
        if self._logs_client is None:
            self._logs_client = self._logs_client_factory(
                self._log_tokens.as_credential(LOG_ANALYTICS_SCOPES)
            )
        return self._logs_client

    def _query_workspace(self, workspace_id: str, query: str, timespan: timedelta):
        # Sign-in failures raise AuthenticationError here, not inside the SDK.
        self._log_tokens.get_token(LOG_ANALYTICS_SCOPES)
        client = self._get_logs_client()
        return client.query_workspace(workspace_id, query, timespan=timespan)

    @staticmethod
    def _first_table(response):
        if getattr(response, "status", None) != LogsQueryStatus.SUCCESS:
            return None
        tables = getattr(response, "tables", None) or []
        return tables[0] if tables else None

    # ── Tables ───────────────────────────────────────────────────────────────

    def discover_table_schema(self, table_name: str) -> TableSchema:
        key = table_key(table_name)
        cached = self._cache.get(key)
        if isinstance(cached, TableSchema):
            return replace(cached, cached=True)

        logger.info("Discovering schema for table: %s", table_name)
        try:
            response = self._query_workspace(
                self._settings.workspace_id, f"{table_name} | getschema", DISCOVERY_WINDOW
            )
        except AzureError as exc:
            raise DiscoveryError(f"Failed to get schema for table {table_name}: {exc}") from exc

        table = self._first_table(response)
        if table is None:
            raise DiscoveryError(f"Failed to get schema for table {table_name}")

        header = list(table.columns)
        name_idx = _column_index(header, "ColumnName", 0)
        ordinal_idx = _column_index(header, "ColumnOrdinal", 1)
        type_idx = _column_index(header, "ColumnType", _column_index(header, "DataType", 2))

        columns = []
        for index, row in enumerate(table.rows):
            values = list(row)
            ordinal = values[ordinal_idx] if ordinal_idx < len(values) else None
            if isinstance(ordinal, bool) or not isinstance(ordinal, int):
                ordinal = index
            columns.append(
                TableColumn(name=str(values[name_idx]), type=str(values[type_idx]), ordinal=ordinal)
            )

        schema = TableSchema(
            table_name=table_name,
            columns=columns,
            discovered_at=_now_iso(),
            cached=False,
        )
        self._cache.put(key, schema)
        logger.info("Discovered %d columns for %s", len(columns), table_name)
        return schema

    def list_tables(self) -> list[str]:
        # Some workspaces reject the union/withsource form.
        try:
            response = self._query_workspace(
                self._settings.workspace_id, LIST_TABLES_QUERY, DISCOVERY_WINDOW
            )
        except AzureError as exc:
            raise DiscoveryError(f"Failed to list tables: {exc}") from exc

        table = self._first_table(response)
        if table is None:
            raise DiscoveryError("Failed to list tables")
        return [str(list(row)[0]) for row in table.rows]

    def test_query(self, query: str, max_rows: int = 10) -> QueryResult:
        limited = query if _ROW_LIMIT.search(query) else f"{query} | take {max_rows}"
        try:
            response = self._query_workspace(self._settings.workspace_id, limited, DISCOVERY_WINDOW)
        except AzureError as exc:
            raise QueryError(f"Query failed: {exc}") from exc

        table = self._first_table(response)
        if table is None:
            raise QueryError("Query failed or returned no results")

        names = list(table.columns)
        types = list(getattr(table, "columns_types", None) or [])
        columns = [
            QueryColumn(name=name or "unknown", type=types[i] if i < len(types) else "unknown")
            for i, name in enumerate(names)
        ]
        rows = [[_jsonable(v) for v in row] for row in table.rows]
        return QueryResult(columns=columns, rows=rows)

    # ── Microsoft Graph ──────────────────────────────────────────────────────

    def discover_api_schema(self, endpoint: str, sample_size: int = 2) -> ApiSchema:
        key = api_key(endpoint)
        cached = self._cache.get(key)
        if isinstance(cached, ApiSchema):
            return cached

        logger.info("Discovering schema for API endpoint: %s", endpoint)
        token = self._graph_tokens.get_token(GRAPH_SCOPES)
        separator = "&" if "?" in endpoint else "?"
        url = f"{self._settings.graph_base_url}{endpoint}{separator}$top={sample_size}"
        try:
            response = self._http.get(
                url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as exc:
            raise DiscoveryError(f"Graph API request failed: {exc}") from exc

        if not response.is_success:
            raise DiscoveryError(
                f"Graph API request failed: {response.status_code} {response.reason_phrase}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise DiscoveryError(f"Graph API returned invalid JSON: {exc}") from exc

        if isinstance(data, dict):
            value = data.get("value", [data])
            samples = value if isinstance(value, list) else [data]
        else:
            samples = []
        samples = [s for s in samples if isinstance(s, dict)]

        properties: dict[str, PropertySchema] = {}
        if samples:
            for name, value in samples[0].items():
                required = all(s.get(name) is not None for s in samples)
                properties[name] = PropertySchema(type=_json_type(value), required=required)

        schema = ApiSchema(endpoint=endpoint, properties=properties, discovered_at=_now_iso())
        self._cache.put(key, schema)
        logger.info("Discovered %d properties for %s", len(properties), endpoint)
        return schema

    # ── Cache maintenance ────────────────────────────────────────────────────

    def refresh_schema(self, source: str) -> dict:
        is_api = source.startswith("/")
        key = api_key(source) if is_api else table_key(source)
        self._cache.invalidate(key)

        if is_api:
            self.discover_api_schema(source)
        else:
            self.discover_table_schema(source)

        return {"success": True, "source": source, "refreshedAt": _now_iso()}

    # ── Workspace helpers ────────────────────────────────────────────────────

    def detect_table_workspace(
        self, table_name: str, workspace_ids: Optional[list[str]] = None
    ) -> dict:
        """Report which workspaces hold *table_name* and how much data each has.

        A failure in one workspace is recorded against it and the scan moves on.
        """
        primary = self._settings.workspace_id
        found_in: list[dict] = []
        not_found_in: list[dict] = []

        for workspace_id in workspace_ids or [primary]:
            info = {
                "workspaceId": workspace_id,
                "workspaceName": "primary" if workspace_id == primary else "secondary",
            }
            try:
                exists = self._first_table(
                    self._query_workspace(
                        workspace_id,
                        f'union withsource = TableName * | where TableName == "{table_name}" | take 1',
                        DISCOVERY_WINDOW,
                    )
                )
                if exists is None or not list(exists.rows):
                    not_found_in.append({**info, "hasData": False, "reason": "Table does not exist"})
                    continue

                metadata = self._first_table(
                    self._query_workspace(
                        workspace_id,
                        f"{table_name}\n| summarize\n"
                        "    RowCount = count(),\n"
                        "    EarliestRecord = min(TimeGenerated),\n"
                        "    LatestRecord = max(TimeGenerated)",
                        METADATA_WINDOW,
                    )
                )
                rows = list(metadata.rows) if metadata is not None else []
                if not rows:
                    not_found_in.append({**info, "hasData": False, "reason": "Metadata query failed"})
                    continue

                row_count, earliest, latest = list(rows[0])[:3]
                found_in.append(
                    {
                        **info,
                        "hasData": bool(row_count),
                        "rowCount": row_count,
                        "dateRange": {"earliest": _jsonable(earliest), "latest": _jsonable(latest)},
                    }
                )
            except (AzureSchemaError, AzureError) as exc:
                logger.warning("Table lookup in workspace %s failed: %s", workspace_id, exc)
                not_found_in.append({**info, "hasData": False, "reason": str(exc)})

        return {"tableName": table_name, "foundIn": found_in, "notFoundIn": not_found_in}

    def find_working_query_examples(
        self, table_name: str, search_paths: Optional[list[str]] = None
    ) -> dict:
        """Search local source and query files for lines mentioning *table_name*."""
        roots = [Path(p) for p in (search_paths or [os.getcwd()])]
        examples: list[dict] = []

        for root in roots:
            for path in self._iter_example_files(root):
                try:
                    lines = path.read_text(encoding="utf-8", errors="ignore").splitlines()
                except OSError as exc:
                    logger.debug("Skipping unreadable file %s: %s", path, exc)
                    continue
                for lineno, line in enumerate(lines, start=1):
                    if table_name in line:
                        examples.append({"file": str(path), "line": lineno, "snippet": line.strip()})
                        if len(examples) >= _MAX_EXAMPLES:
                            return self._examples_result(table_name, roots, examples)

        return self._examples_result(table_name, roots, examples)

    @staticmethod
    def _iter_example_files(root: Path):
        if root.is_file():
            if root.suffix in _EXAMPLE_SUFFIXES:
                yield root
            return
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if path.suffix in _EXAMPLE_SUFFIXES:
                    yield path

    @staticmethod
    def _examples_result(table_name: str, roots: list[Path], examples: list[dict]) -> dict:
        return {
            "tableName": table_name,
            "searchedPaths": [str(r) for r in roots],
            "examples": examples,
        }
