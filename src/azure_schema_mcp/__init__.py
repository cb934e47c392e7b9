"""azure_schema_mcp – schema discovery for Azure Log Analytics and Microsoft Graph.

The MCP entry point lives in :mod:`azure_schema_mcp.server`; the pieces it
wires together can also be used directly::

    from azure_schema_mcp import SchemaCache, SchemaDiscoveryService, TokenCache
"""

from azure_schema_mcp.auth import CredentialAdapter, TokenCache
from azure_schema_mcp.cache import SchemaCache
from azure_schema_mcp.config import Settings, load_settings
from azure_schema_mcp.discovery import SchemaDiscoveryService

__version__ = "1.0.0"

__all__ = [
    "CredentialAdapter",
    "SchemaCache",
    "SchemaDiscoveryService",
    "Settings",
    "TokenCache",
    "load_settings",
]
