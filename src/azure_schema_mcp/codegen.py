"""Source and KQL snippet generation from discovered schemas.

Everything here is string templating. The only I/O is the schema lookup,
which goes through :class:`SchemaDiscoveryService` and therefore the cache.
Snippets target the JavaScript/TypeScript Azure SDKs because that is what
the assistant is usually writing against.
"""

import logging
import re

from azure_schema_mcp.discovery import SchemaDiscoveryService
from azure_schema_mcp.exceptions import AzureSchemaError

logger = logging.getLogger("azure-schema-mcp")


_PREVIEW_COLUMNS = 5

_MSAL_CREDENTIAL = """\
// Custom TokenCredential using MSAL
const credential = new (class implements TokenCredential {
  async getToken(scopes: string | string[]): Promise<AccessToken | null> {
    const accounts = msalInstance.getAllAccounts();
    if (accounts.length === 0) {
      throw new Error('Not authenticated. Please sign in.');
    }
    const response = await msalInstance.acquireTokenSilent({
      scopes: Array.isArray(scopes) ? scopes : [scopes],
      account: accounts[0],
    });
    return {
      token: response.accessToken,
      expiresOnTimestamp: response.expiresOn?.getTime() || 0,
    };
  }
})();"""


def _identifier(text: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "", text)


def _pick_variant(framework: str, auth_type: str) -> str:
    if framework == "react" and auth_type == "msal-browser":
        return "react"
    if framework == "node" or auth_type == "default-credential":
        return "node"
    return "inline"


def _kql_body(table_name: str, indent: str) -> str:
    return (
        f"{indent}{table_name}\n"
        f"{indent}| where TimeGenerated > ago(30d)\n"
        f"{indent}| take 10"
    )


class CodeGenerator:
    def __init__(self, discovery: SchemaDiscoveryService) -> None:
        self._discovery = discovery

    @property
    def _workspace_id(self) -> str:
        return self._discovery.settings.workspace_id

    # ── Log Analytics SDK code ───────────────────────────────────────────────

    def generate_sdk_code(
        self,
        table_name: str,
        framework: str = "inline",
        auth_type: str = "msal-browser",
    ) -> str:
        schema = self._discovery.discover_table_schema(table_name)
        column_list = ", ".join(c.name for c in schema.columns[:_PREVIEW_COLUMNS])
        if len(schema.columns) > _PREVIEW_COLUMNS:
            column_list += f", ... ({len(schema.columns)} total)"

        variant = _pick_variant(framework, auth_type)
        if variant == "react":
            return self._react_logs_code(table_name, column_list)
        if variant == "node":
            return self._node_logs_code(table_name, column_list)
        return self._inline_logs_code(table_name, column_list)

    def _react_logs_code(self, table_name: str, column_list: str) -> str:
        fn = f"query{_identifier(table_name)}"
        return f"""\
// React component with MSAL authentication
import {{ LogsQueryClient }} from '@azure/monitor-query';
import {{ AccessToken, TokenCredential }} from '@azure/core-auth';
import {{ msalInstance }} from '../config/azureConfig';

{_MSAL_CREDENTIAL}

async function {fn}() {{
  const client = new LogsQueryClient(credential);
  const workspaceId = '{self._workspace_id}';

  // Table columns: {column_list}
  const query = `
{_kql_body(table_name, '    ')}
  `;

  const result = await client.queryWorkspace(workspaceId, query, {{ duration: 'P30D' }});
  if (result.status === 'Success' && result.tables.length > 0) {{
    const table = result.tables[0];
    console.log(`Retrieved ${{table.rows.length}} rows`);
    return table.rows;
  }}
  console.error('Query failed or returned no results');
  return [];
}}

// Usage in React component:
// const data = await {fn}();"""

    def _node_logs_code(self, table_name: str, column_list: str) -> str:
        fn = f"query{_identifier(table_name)}"
        return f"""\
// Node.js with DefaultAzureCredential
import {{ LogsQueryClient }} from '@azure/monitor-query';
import {{ DefaultAzureCredential }} from '@azure/identity';

// Uses Azure CLI, Managed Identity, environment variables, ...
const credential = new DefaultAzureCredential();
const client = new LogsQueryClient(credential);

async function {fn}() {{
  const workspaceId = '{self._workspace_id}';

  // Table columns: {column_list}
  const query = `
{_kql_body(table_name, '    ')}
  `;

  const result = await client.queryWorkspace(workspaceId, query, {{ duration: 'P30D' }});
  if (result.status !== 'Success' || result.tables.length === 0) {{
    throw new Error('Query failed or returned no results');
  }}

  const table = result.tables[0];
  const columns = table.columnDescriptors?.map(col => col.name) || [];
  return table.rows.map(row => {{
    const record: Record<string, unknown> = {{}};
    columns.forEach((col, j) => {{ record[col] = row[j]; }});
    return record;
  }});
}}

{fn}()
  .then(data => console.log('Data:', data))
  .catch(err => console.error('Error:', err));"""

    def _inline_logs_code(self, table_name: str, column_list: str) -> str:
        fn = f"query{_identifier(table_name)}"
        return f"""\
// Inline query code (generic TokenCredential)
import {{ LogsQueryClient }} from '@azure/monitor-query';
import type {{ TokenCredential }} from '@azure/core-auth';

async function {fn}(credential: TokenCredential) {{
  const client = new LogsQueryClient(credential);
  const workspaceId = '{self._workspace_id}';

  // Table columns: {column_list}
  const query = `
{_kql_body(table_name, '    ')}
  `;

  const result = await client.queryWorkspace(workspaceId, query, {{ duration: 'P30D' }});
  if (result.status === 'Success' && result.tables.length > 0) {{
    return result.tables[0].rows;
  }}
  return [];
}}"""

    # ── Microsoft Graph SDK code ─────────────────────────────────────────────

    def generate_graph_sdk_code(
        self,
        endpoint: str,
        framework: str = "inline",
        auth_type: str = "msal-browser",
        method: str = "GET",
    ) -> str:
        try:
            schema = self._discovery.discover_api_schema(endpoint, 2)
            names = list(schema.properties)
            schema_info = "Properties: " + ", ".join(names[:_PREVIEW_COLUMNS])
            if len(names) > _PREVIEW_COLUMNS:
                schema_info += "..."
        except AzureSchemaError as exc:
            logger.info("Schema lookup for %s unavailable: %s", endpoint, exc)
            schema_info = "Schema discovery not available"

        fn = f"query{_identifier(endpoint)}"
        call = f"graphClient\n    .api('{endpoint}')\n    .{method.lower()}()"
        variant = _pick_variant(framework, auth_type)

        if variant == "react":
            return f"""\
// React component with MSAL authentication for Microsoft Graph
import {{ Client }} from '@microsoft/microsoft-graph-client';
import {{ TokenCredentialAuthenticationProvider }} from '@microsoft/microsoft-graph-client/authProviders/azureTokenCredentials';
import {{ AccessToken, TokenCredential }} from '@azure/core-auth';
import {{ msalInstance }} from '../config/azureConfig';

{_MSAL_CREDENTIAL}

const authProvider = new TokenCredentialAuthenticationProvider(credential, {{
  scopes: ['https://graph.microsoft.com/.default'],
}});
const graphClient = Client.initWithMiddleware({{ authProvider }});

async function {fn}() {{
  // {schema_info}
  const response = await {call};
  return response.value || response;
}}

// Usage in React component:
// const data = await {fn}();"""

        if variant == "node":
            return f"""\
// Node.js with DefaultAzureCredential for Microsoft Graph
import {{ Client, PageIterator }} from '@microsoft/microsoft-graph-client';
import {{ TokenCredentialAuthenticationProvider }} from '@microsoft/microsoft-graph-client/authProviders/azureTokenCredentials';
import {{ DefaultAzureCredential }} from '@azure/identity';

const credential = new DefaultAzureCredential();
const authProvider = new TokenCredentialAuthenticationProvider(credential, {{
  scopes: ['https://graph.microsoft.com/.default'],
}});
const graphClient = Client.initWithMiddleware({{ authProvider }});

async function {fn}() {{
  // {schema_info}
  const response = await {call};
  if (!response.value) {{
    return response;
  }}

  const items: unknown[] = [];
  const iterator = new PageIterator(graphClient, response, item => {{
    items.push(item);
    return true;
  }});
  await iterator.iterate();
  return items;
}}

{fn}()
  .then(data => console.log('Data:', data))
  .catch(err => console.error('Error:', err));"""

        return f"""\
// Generic Microsoft Graph API query with TokenCredential
// {schema_info}
import {{ Client }} from '@microsoft/microsoft-graph-client';
import {{ TokenCredentialAuthenticationProvider }} from '@microsoft/microsoft-graph-client/authProviders/azureTokenCredentials';
import type {{ TokenCredential }} from '@azure/core-auth';

async function {fn}(credential: TokenCredential) {{
  const authProvider = new TokenCredentialAuthenticationProvider(credential, {{
    scopes: ['https://graph.microsoft.com/.default'],
  }});
  const graphClient = Client.initWithMiddleware({{ authProvider }});

  const response = await {call};
  return response.value || response;
}}"""


class QueryExampleGenerator:
    """Build starter KQL for a table, picking columns by their discovered type."""

    def __init__(self, discovery: SchemaDiscoveryService) -> None:
        self._discovery = discovery

    def generate_example_query(
        self, table_name: str, operation: str, time_range: str = "30d"
    ) -> str:
        schema = self._discovery.discover_table_schema(table_name)
        columns = schema.columns
        string_columns = [c.name for c in columns if c.type == "string"][:3]
        dynamic_columns = [c.name for c in columns if c.type == "dynamic"]
        head = f"{table_name}\n| where TimeGenerated > ago({time_range})"

        if operation == "simple_select":
            projected = ", ".join(c.name for c in columns[:_PREVIEW_COLUMNS])
            return f"// Simple select - get latest records\n{head}\n| project {projected}\n| take 10"

        if operation == "filter":
            col = string_columns[0] if string_columns else "Computer"
            return (
                "// Filter by specific criteria\n"
                f"{head}\n"
                f"| where isnotempty({col})\n"
                f'| where {col} contains "example" // Adjust filter condition\n'
                "| take 100"
            )

        if operation == "aggregation":
            col = string_columns[0] if string_columns else "Computer"
            return (
                f"// Count and aggregate by {col}\n"
                f"{head}\n"
                "| summarize\n"
                "    RecordCount = count(),\n"
                "    FirstSeen = min(TimeGenerated),\n"
                "    LastSeen = max(TimeGenerated)\n"
                f"  by {col}\n"
                "| order by RecordCount desc\n"
                "| take 50"
            )

        if operation == "parse_json":
            if not dynamic_columns:
                available = ", ".join(f"{c.name} ({c.type})" for c in columns)
                return (
                    f"// No dynamic/JSON columns found in {table_name}\n"
                    f"// Available columns: {available}"
                )
            col = dynamic_columns[0]
            return (
                f"// Parse nested JSON from {col} column\n"
                f"{head}\n"
                f"| where isnotempty({col})\n"
                "| extend\n"
                "    // Adjust property names as needed\n"
                f"    Property1 = tostring({col}.propertyName),\n"
                f"    Property2 = toint({col}.numericProperty)\n"
                f"| project TimeGenerated, {col}, Property1, Property2\n"
                "| take 100"
            )

        if operation == "mv_expand":
            if not dynamic_columns:
                return (
                    f"// No dynamic/JSON array columns found in {table_name}\n"
                    "// This operation requires a column with JSON arrays"
                )
            col = dynamic_columns[0]
            return (
                f"// Expand JSON array from {col} column\n"
                f"{head}\n"
                f"| where isnotempty({col})\n"
                f"| mv-expand Item = {col}\n"
                "| extend\n"
                "    ItemId = tostring(Item.id),\n"
                "    ItemName = tostring(Item.name),\n"
                "    ItemValue = toint(Item.value)\n"
                "| project TimeGenerated, ItemId, ItemName, ItemValue\n"
                "| take 100"
            )

        return f"// Unknown operation: {operation}"
