"""Azure Schema MCP Server

Gives an AI coding assistant the real column names and types of Azure Log
Analytics tables and Microsoft Graph endpoints, so generated queries and
code stop guessing.

Tools fall into three groups:

- **Discovery**: get_kql_table_schema, get_graph_api_schema, list_tables,
  refresh_schema. Results are cached in memory and under SCHEMA_CACHE_DIR.
- **Query**: test_kql_query, detect_table_workspace,
  find_working_query_examples.
- **Generation**: generate_sdk_code, generate_graph_sdk_code,
  generate_example_query.

Configuration is driven by environment variables (see README.md).
"""

import asyncio
import json
import sys
from typing import Callable, Literal, Optional, TypeVar

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from azure_schema_mcp.client import (
    close_discovery_service,
    get_code_generator,
    get_discovery_service,
    get_query_examples,
    get_settings,
    logger,
)
from azure_schema_mcp.exceptions import AzureSchemaError, ConfigurationError

T = TypeVar("T")

Framework = Literal["react", "node", "inline"]
AuthType = Literal["msal-browser", "default-credential"]
HttpMethod = Literal["GET", "POST", "PATCH", "DELETE"]
ExampleOperation = Literal["simple_select", "filter", "aggregation", "parse_json", "mv_expand"]

mcp = FastMCP("azure-schema-mcp")


async def _run(operation: str, fn: Callable[[], T]) -> T:
    """Run a blocking service call off the event loop, mapping errors to ToolError."""
    try:
        return await asyncio.to_thread(fn)
    except AzureSchemaError as exc:
        logger.exception("%s failed", operation)
        raise ToolError(str(exc)) from exc


def _dump(payload) -> str:
    return json.dumps(payload, indent=2, default=str)


# ── Discovery ─────────────────────────────────────────────────────────────────


@mcp.tool()
async def get_kql_table_schema(table_name: str) -> str:
    """Discover the schema of an Azure Log Analytics table using the getschema operator.

    Returns the table's columns (name, KQL type, ordinal) plus when the schema
    was discovered and whether it came from the cache.

    Args:
        table_name: Name of the Log Analytics table (e.g. "SecurityAlert" or
            "QualysHostDetectionV3_CL").

    Example prompts:
    - "What columns does the SigninLogs table have?"
    - "Get the schema for QualysHostDetectionV3_CL before writing the query"
    """
    schema = await _run(
        "get_kql_table_schema",
        lambda: get_discovery_service().discover_table_schema(table_name),
    )
    return _dump(schema.to_dict())


@mcp.tool()
async def get_graph_api_schema(endpoint: str, sample_size: int = 2) -> str:
    """Introspect a Microsoft Graph API endpoint to discover its schema.

    Fetches a few sample records and infers each property's type and whether
    it is always present.

    Args:
        endpoint: Graph API endpoint path (e.g. "/security/alerts_v2").
        sample_size: Number of sample records to fetch (default: 2).

    Example prompts:
    - "What fields come back from /users?"
    - "Discover the schema of the Graph security alerts endpoint"
    """
    schema = await _run(
        "get_graph_api_schema",
        lambda: get_discovery_service().discover_api_schema(endpoint, sample_size),
    )
    return _dump(schema.to_dict())


@mcp.tool()
async def list_tables() -> str:
    """List all available tables in the Azure Log Analytics workspace.

    Example prompts:
    - "Which tables exist in this workspace?"
    """
    tables = await _run("list_tables", lambda: get_discovery_service().list_tables())
    return _dump({"tables": tables, "count": len(tables)})


@mcp.tool()
async def refresh_schema(source: str) -> str:
    """Force refresh of the cached schema for a table or API endpoint.

    Args:
        source: Table name, or a Graph endpoint path starting with "/".

    Example prompts:
    - "The SecurityAlert schema changed, refresh it"
    - "Re-discover /users"
    """
    result = await _run("refresh_schema", lambda: get_discovery_service().refresh_schema(source))
    return _dump(result)


# ── Query ─────────────────────────────────────────────────────────────────────


@mcp.tool()
async def test_kql_query(query: str, max_rows: int = 10) -> str:
    """Execute a KQL query against Azure Log Analytics and return sample results.

    A "| take <max_rows>" clause is appended unless the query already limits
    its rows with take or limit.

    Args:
        query: KQL query to execute.
        max_rows: Maximum number of rows to return (default: 10).

    Example prompts:
    - "Run SecurityAlert | where Severity == 'High' and show me a few rows"
    """
    result = await _run(
        "test_kql_query",
        lambda: get_discovery_service().test_query(query, max_rows),
    )
    return _dump(result.to_dict())


@mcp.tool()
async def detect_table_workspace(table_name: str, workspace_ids: Optional[list[str]] = None) -> str:
    """Find which Log Analytics workspace(s) contain a table and how much data they hold.

    Args:
        table_name: Table to look for.
        workspace_ids: Workspace IDs to check (default: the configured workspace).

    Example prompts:
    - "Which of these workspaces has the Syslog table?"
    """
    result = await _run(
        "detect_table_workspace",
        lambda: get_discovery_service().detect_table_workspace(table_name, workspace_ids),
    )
    return _dump(result)


@mcp.tool()
async def find_working_query_examples(table_name: str, search_paths: Optional[list[str]] = None) -> str:
    """Search local source and .kql files for existing queries that use a table.

    Args:
        table_name: Table name to search for.
        search_paths: Files or directories to search (default: the working directory).

    Example prompts:
    - "Do we already query DeviceEvents anywhere in this repo?"
    """
    result = await _run(
        "find_working_query_examples",
        lambda: get_discovery_service().find_working_query_examples(table_name, search_paths),
    )
    return _dump(result)


# ── Generation ────────────────────────────────────────────────────────────────


@mcp.tool()
async def generate_sdk_code(
    table_name: str,
    framework: Framework = "inline",
    auth_type: AuthType = "msal-browser",
) -> str:
    """Generate Azure Monitor Query SDK code for a Log Analytics table.

    Args:
        table_name: Table to query.
        framework: "react", "node" or "inline" (default).
        auth_type: "msal-browser" (default) or "default-credential".

    Example prompts:
    - "Write a React hook that loads the latest SigninLogs rows"
    """
    return await _run(
        "generate_sdk_code",
        lambda: get_code_generator().generate_sdk_code(table_name, framework, auth_type),
    )


@mcp.tool()
async def generate_graph_sdk_code(
    endpoint: str,
    framework: Framework = "inline",
    auth_type: AuthType = "msal-browser",
    method: HttpMethod = "GET",
) -> str:
    """Generate Microsoft Graph SDK code for an endpoint.

    Args:
        endpoint: Graph API endpoint path (e.g. "/users").
        framework: "react", "node" or "inline" (default).
        auth_type: "msal-browser" (default) or "default-credential".
        method: HTTP method (default: GET).

    Example prompts:
    - "Give me Node code that lists /security/incidents"
    """
    return await _run(
        "generate_graph_sdk_code",
        lambda: get_code_generator().generate_graph_sdk_code(endpoint, framework, auth_type, method),
    )


@mcp.tool()
async def generate_example_query(
    table_name: str,
    operation: ExampleOperation,
    time_range: str = "30d",
) -> str:
    """Generate an example KQL query shaped by the table's real columns.

    Args:
        table_name: Table to query.
        operation: simple_select, filter, aggregation, parse_json or mv_expand.
        time_range: KQL timespan literal for the TimeGenerated filter (default: 30d).

    Example prompts:
    - "Show me an aggregation query over SecurityEvent"
    """
    return await _run(
        "generate_example_query",
        lambda: get_query_examples().generate_example_query(table_name, operation, time_range),
    )


# ── Entry point ───────────────────────────────────────────────────────────────


def main() -> None:
    """Launch the Azure Schema MCP Server via stdio (compatible with uvx)."""
    try:
        get_settings()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)
    try:
        mcp.run()
    finally:
        close_discovery_service()


if __name__ == "__main__":
    main()
