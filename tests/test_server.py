import asyncio
import json

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from azure_schema_mcp import client as shared
from azure_schema_mcp.server import main, mcp

from conftest import logs_failure

EXPECTED_TOOLS = {
    "get_kql_table_schema",
    "test_kql_query",
    "list_tables",
    "get_graph_api_schema",
    "refresh_schema",
    "generate_sdk_code",
    "generate_graph_sdk_code",
    "generate_example_query",
    "detect_table_workspace",
    "find_working_query_examples",
}


@pytest.fixture(autouse=True)
def installed_service(service):
    shared.set_discovery_service(service)
    yield service
    shared.set_discovery_service(None)


def call(name: str, arguments: dict):
    async def _call():
        async with Client(mcp) as client:
            return await client.call_tool(name, arguments)

    return asyncio.run(_call())


def test_registers_all_tools():
    async def _list():
        async with Client(mcp) as client:
            return await client.list_tools()

    assert {tool.name for tool in asyncio.run(_list())} == EXPECTED_TOOLS


def test_get_kql_table_schema_returns_json():
    result = call("get_kql_table_schema", {"table_name": "Orders"})

    payload = json.loads(result.content[0].text)
    assert payload["tableName"] == "Orders"
    assert payload["cached"] is False
    assert [c["name"] for c in payload["columns"]] == ["Id", "Total"]


def test_refresh_schema_reports_success():
    call("get_kql_table_schema", {"table_name": "Orders"})

    payload = json.loads(call("refresh_schema", {"source": "Orders"}).content[0].text)

    assert payload["success"] is True
    assert payload["source"] == "Orders"


def test_service_error_becomes_tool_error(logs_client):
    logs_client.handler = lambda ws, q: logs_failure()

    with pytest.raises(ToolError, match="Failed to get schema for table Missing"):
        call("get_kql_table_schema", {"table_name": "Missing"})


def test_generate_example_query_returns_kql():
    result = call("generate_example_query", {"table_name": "Orders", "operation": "simple_select"})

    assert "| project Id, Total" in result.content[0].text


def test_main_exits_on_missing_configuration(monkeypatch):
    monkeypatch.setattr(shared, "_settings", None)
    monkeypatch.delenv("AZURE_TENANT_ID", raising=False)
    monkeypatch.delenv("AZURE_WORKSPACE_ID", raising=False)
    monkeypatch.setattr("azure_schema_mcp.config.load_dotenv", lambda: None)

    with pytest.raises(SystemExit) as info:
        main()
    assert info.value.code == 1


def test_unknown_log_level_does_not_break_startup_logging(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    assert shared.startup_log_level() == "WARNING"

    monkeypatch.setenv("LOG_LEVEL", "info")
    assert shared.startup_log_level() == "INFO"


def test_main_exits_on_unknown_log_level(monkeypatch):
    monkeypatch.setattr(shared, "_settings", None)
    monkeypatch.setenv("AZURE_TENANT_ID", "t")
    monkeypatch.setenv("AZURE_WORKSPACE_ID", "w")
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    monkeypatch.setattr("azure_schema_mcp.config.load_dotenv", lambda: None)

    with pytest.raises(SystemExit) as info:
        main()
    assert info.value.code == 1


def test_main_closes_service_on_shutdown(monkeypatch, settings, service, logs_client, http_client):
    monkeypatch.setattr(shared, "_settings", settings)
    monkeypatch.setattr(mcp, "run", lambda: service.discover_table_schema("Orders"))

    main()

    assert logs_client.closed is True
    assert http_client.is_closed
    assert shared._discovery is None
