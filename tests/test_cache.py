import json

import pytest

from azure_schema_mcp.cache import SchemaCache
from azure_schema_mcp.models import ApiSchema, PropertySchema, TableColumn, TableSchema

TABLE = TableSchema(
    table_name="Orders",
    columns=[TableColumn("Id", "long", 0), TableColumn("Total", "real", 1)],
    discovered_at="2026-01-01T00:00:00+00:00",
    cached=False,
)
API = ApiSchema(
    endpoint="/security/alerts",
    properties={"id": PropertySchema("string", True), "tags": PropertySchema("array", False)},
    discovered_at="2026-01-01T00:00:00+00:00",
)


@pytest.fixture
def cache(tmp_path):
    return SchemaCache(tmp_path / "schemas")


@pytest.mark.parametrize("key, entry", [("table:Orders", TABLE), ("api:/security/alerts", API)])
def test_put_then_get_same_process(cache, key, entry):
    cache.put(key, entry)
    assert cache.get(key) == entry


@pytest.mark.parametrize("key, entry", [("table:Orders", TABLE), ("api:/security/alerts", API)])
def test_put_then_get_fresh_process(cache, key, entry):
    cache.put(key, entry)

    fresh = SchemaCache(cache.cache_dir)
    assert fresh.get(key) == entry


def test_filename_is_filesystem_safe(cache):
    cache.put("api:/security/alerts", API)

    path = cache.path_for("api:/security/alerts")
    assert path.name == "api__security_alerts.json"
    assert path.parent == cache.cache_dir
    assert json.loads(path.read_text())["endpoint"] == "/security/alerts"


def test_disk_layout_uses_camel_case_keys(cache):
    cache.put("table:Orders", TABLE)

    data = json.loads(cache.path_for("table:Orders").read_text())
    assert data == {
        "tableName": "Orders",
        "columns": [
            {"name": "Id", "type": "long", "ordinal": 0},
            {"name": "Total", "type": "real", "ordinal": 1},
        ],
        "discoveredAt": "2026-01-01T00:00:00+00:00",
        "cached": False,
    }


def test_missing_key_is_absent(cache):
    assert cache.get("table:Nope") is None


@pytest.mark.parametrize("key", ["table:Orders", "table:NeverCached", "api:/users"])
def test_invalidate_then_get_is_absent(cache, key):
    cache.put("table:Orders", TABLE)

    cache.invalidate(key)

    assert cache.get(key) is None
    assert not cache.path_for(key).exists()


def test_invalidate_is_visible_to_fresh_process(cache):
    cache.put("table:Orders", TABLE)
    cache.invalidate("table:Orders")

    assert SchemaCache(cache.cache_dir).get("table:Orders") is None


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        json.dumps({"tableName": "Orders"}),
        json.dumps({"tableName": "Orders", "columns": [{"name": "Id"}], "discoveredAt": "x"}),
    ],
)
def test_corrupt_file_is_a_miss(cache, content):
    path = cache.path_for("table:Orders")
    path.parent.mkdir(parents=True)
    path.write_text(content)

    assert cache.get("table:Orders") is None


def test_disk_write_failure_keeps_memory_copy(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    cache = SchemaCache(blocker)

    cache.put("table:Orders", TABLE)

    assert cache.get("table:Orders") == TABLE


def test_memory_wins_over_disk(cache):
    cache.put("table:Orders", TABLE)
    cache.path_for("table:Orders").write_text("{broken")

    assert cache.get("table:Orders") == TABLE


def test_colliding_file_name_is_a_miss(cache):
    messages = ApiSchema(endpoint="/me/messages", properties={}, discovered_at="2026-01-01T00:00:00+00:00")
    cache.put("api:/me/messages", messages)
    assert cache.path_for("api:/me_messages") == cache.path_for("api:/me/messages")

    fresh = SchemaCache(cache.cache_dir)
    assert fresh.get("api:/me_messages") is None
    assert fresh.get("api:/me/messages") == messages
