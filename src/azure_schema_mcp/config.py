"""Environment-driven configuration.

Values come from the process environment, optionally seeded from a ``.env``
file in the working directory (see README.md for the full list).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from azure_schema_mcp.exceptions import ConfigurationError

DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclass(frozen=True)
class Settings:
    tenant_id: str
    workspace_id: str
    token_cache_dir: Path
    schema_cache_dir: Path
    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    log_level: str = "WARNING"


def _require(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigurationError(f"{name} environment variable is required")
    return value


def parse_log_level(raw: Optional[str]) -> str:
    level = (raw or "").strip().upper() or "WARNING"
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {raw!r}")
    return level


def load_settings(*, use_dotenv: bool = True) -> Settings:
    """Build :class:`Settings` from the environment.

    Raises ``ConfigurationError`` when ``AZURE_TENANT_ID`` or
    ``AZURE_WORKSPACE_ID`` is unset, or when ``LOG_LEVEL`` names no known
    level.
    """
    if use_dotenv:
        load_dotenv()

    tenant_id = _require("AZURE_TENANT_ID")
    workspace_id = _require("AZURE_WORKSPACE_ID")

    cwd = Path.cwd()
    token_cache_dir = Path(os.getenv("TOKEN_CACHE_DIR") or cwd / ".cache")
    schema_cache_dir = Path(os.getenv("SCHEMA_CACHE_DIR") or cwd / ".cache" / "schemas")

    return Settings(
        tenant_id=tenant_id,
        workspace_id=workspace_id,
        token_cache_dir=token_cache_dir,
        schema_cache_dir=schema_cache_dir,
        graph_base_url=os.getenv("GRAPH_BASE_URL", DEFAULT_GRAPH_BASE_URL).rstrip("/"),
        log_level=parse_log_level(os.getenv("LOG_LEVEL")),
    )
