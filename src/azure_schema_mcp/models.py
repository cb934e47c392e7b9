"""Typed records for tokens, schemas and query results.

Each record converts to and from the camelCase JSON used both on disk and in
tool output. ``from_dict`` validates shape and raises
``CacheCorruptionError`` on anything unexpected.
"""

from dataclasses import dataclass, field
from typing import Any, Union

from azure_schema_mcp.exceptions import CacheCorruptionError

TABLE_PREFIX = "table:"
API_PREFIX = "api:"


def table_key(table_name: str) -> str:
    return f"{TABLE_PREFIX}{table_name}"


def api_key(endpoint: str) -> str:
    return f"{API_PREFIX}{endpoint}"


def _expect(data: Any, key: str, kind: type | tuple[type, ...]) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise CacheCorruptionError(f"missing '{key}'")
    value = data[key]
    # bool is an int subclass; reject it wherever a real int is expected
    if kind is int and isinstance(value, bool):
        raise CacheCorruptionError(f"'{key}' has unexpected type bool")
    if not isinstance(value, kind):
        raise CacheCorruptionError(f"'{key}' has unexpected type {type(value).__name__}")
    return value


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at_epoch_ms: int

    def is_valid(self, now_ms: int) -> bool:
        return self.expires_at_epoch_ms > now_ms

    def to_dict(self) -> dict:
        return {"value": self.value, "expiresAtEpochMs": self.expires_at_epoch_ms}

    @classmethod
    def from_dict(cls, data: Any) -> "CachedToken":
        return cls(
            value=_expect(data, "value", str),
            expires_at_epoch_ms=_expect(data, "expiresAtEpochMs", int),
        )


@dataclass(frozen=True)
class TableColumn:
    name: str
    type: str
    ordinal: int

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type, "ordinal": self.ordinal}

    @classmethod
    def from_dict(cls, data: Any) -> "TableColumn":
        return cls(
            name=_expect(data, "name", str),
            type=_expect(data, "type", str),
            ordinal=_expect(data, "ordinal", int),
        )


@dataclass(frozen=True)
class TableSchema:
    table_name: str
    columns: list[TableColumn]
    discovered_at: str
    cached: bool = False

    def to_dict(self) -> dict:
        return {
            "tableName": self.table_name,
            "columns": [c.to_dict() for c in self.columns],
            "discoveredAt": self.discovered_at,
            "cached": self.cached,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TableSchema":
        return cls(
            table_name=_expect(data, "tableName", str),
            columns=[TableColumn.from_dict(c) for c in _expect(data, "columns", list)],
            discovered_at=_expect(data, "discoveredAt", str),
            cached=bool(data.get("cached", False)),
        )


@dataclass(frozen=True)
class PropertySchema:
    type: str
    required: bool

    def to_dict(self) -> dict:
        return {"type": self.type, "required": self.required}

    @classmethod
    def from_dict(cls, data: Any) -> "PropertySchema":
        return cls(
            type=_expect(data, "type", str),
            required=_expect(data, "required", bool),
        )


@dataclass(frozen=True)
class ApiSchema:
    endpoint: str
    properties: dict[str, PropertySchema]
    discovered_at: str

    def to_dict(self) -> dict:
        return {
            "endpoint": self.endpoint,
            "properties": {k: v.to_dict() for k, v in self.properties.items()},
            "discoveredAt": self.discovered_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ApiSchema":
        props = _expect(data, "properties", dict)
        return cls(
            endpoint=_expect(data, "endpoint", str),
            properties={str(k): PropertySchema.from_dict(v) for k, v in props.items()},
            discovered_at=_expect(data, "discoveredAt", str),
        )


SchemaEntry = Union[TableSchema, ApiSchema]


def entry_from_dict(key: str, data: Any) -> SchemaEntry:
    """Rebuild the schema variant implied by the cache key prefix."""
    if key.startswith(TABLE_PREFIX):
        return TableSchema.from_dict(data)
    if key.startswith(API_PREFIX):
        return ApiSchema.from_dict(data)
    raise CacheCorruptionError(f"unknown cache key kind: {key!r}")


def entry_key(entry: SchemaEntry) -> str:
    """Return the cache key an entry was stored under."""
    if isinstance(entry, TableSchema):
        return table_key(entry.table_name)
    return api_key(entry.endpoint)


@dataclass(frozen=True)
class QueryColumn:
    name: str
    type: str


@dataclass(frozen=True)
class QueryResult:
    columns: list[QueryColumn]
    rows: list[list[Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict:
        return {
            "columns": [{"name": c.name, "type": c.type} for c in self.columns],
            "rows": self.rows,
            "rowCount": self.row_count,
        }
