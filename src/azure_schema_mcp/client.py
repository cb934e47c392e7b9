"""Shared logging setup and lazily-built service singletons.

The MCP tools import from here so the credential, caches and discovery
service are built once per process. Construction reads configuration through
:func:`azure_schema_mcp.config.load_settings`, so a missing required setting
surfaces as ``ConfigurationError`` the first time anything is needed.
"""

import logging
import os
import sys
from typing import Optional

from azure_schema_mcp.auth import CredentialAdapter, TokenCache
from azure_schema_mcp.cache import SchemaCache
from azure_schema_mcp.codegen import CodeGenerator, QueryExampleGenerator
from azure_schema_mcp.config import Settings, load_settings, parse_log_level
from azure_schema_mcp.discovery import SchemaDiscoveryService
from azure_schema_mcp.exceptions import ConfigurationError


def startup_log_level() -> str:
    try:
        return parse_log_level(os.getenv("LOG_LEVEL"))
    except ConfigurationError:
        # load_settings reports the bad value when main() starts
        return "WARNING"


# ── Logging ────────────────────────────────────────────────────────────────────
# stdout carries MCP JSON-RPC, so everything goes to stderr.
logging.basicConfig(
    level=startup_log_level(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("azure-schema-mcp")

LOG_TOKEN_FILE = "azure-token.json"
GRAPH_TOKEN_FILE = "graph-token.json"

# ── Lazy singletons ────────────────────────────────────────────────────────────
_settings: Optional[Settings] = None
_discovery: Optional[SchemaDiscoveryService] = None
_code_generator: Optional[CodeGenerator] = None
_query_examples: Optional[QueryExampleGenerator] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
        logging.getLogger().setLevel(_settings.log_level)
    return _settings


def build_discovery_service(settings: Settings) -> SchemaDiscoveryService:
    """Wire a discovery service with real Azure collaborators."""
    adapter = CredentialAdapter(settings.tenant_id)
    return SchemaDiscoveryService(
        settings,
        log_tokens=TokenCache(adapter, settings.token_cache_dir / LOG_TOKEN_FILE),
        graph_tokens=TokenCache(adapter, settings.token_cache_dir / GRAPH_TOKEN_FILE),
        schema_cache=SchemaCache(settings.schema_cache_dir),
    )


def get_discovery_service() -> SchemaDiscoveryService:
    global _discovery
    if _discovery is None:
        _discovery = build_discovery_service(get_settings())
    return _discovery


def get_code_generator() -> CodeGenerator:
    global _code_generator
    if _code_generator is None:
        _code_generator = CodeGenerator(get_discovery_service())
    return _code_generator


def get_query_examples() -> QueryExampleGenerator:
    global _query_examples
    if _query_examples is None:
        _query_examples = QueryExampleGenerator(get_discovery_service())
    return _query_examples


def set_discovery_service(service: Optional[SchemaDiscoveryService]) -> None:
    """Install *service* as the process-wide instance (``None`` resets).

    Dependent generators are rebuilt on next use.
    """
    global _discovery, _code_generator, _query_examples
    _discovery = service
    _code_generator = None
    _query_examples = None


def close_discovery_service() -> None:
    """Release the SDK and HTTP clients held by the process-wide service."""
    if _discovery is not None:
        _discovery.close()
    set_discovery_service(None)
