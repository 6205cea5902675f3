"""
Test 1: Config System (config.py)

Tests ConfigMerger and ConfigLoader.
"""

import json

import pytest

from ormbridge.config import ConfigLoader, ConfigMerger
from ormbridge.faults import ValidationError


# ============================================================================
# ConfigMerger
# ============================================================================

class TestConfigMerger:

    def test_empty(self):
        assert ConfigMerger().merge([]) == {}

    def test_none_fragments_ignored(self):
        assert ConfigMerger().merge([None, {"a": 1}, None]) == {"a": 1}

    def test_scalar_later_wins(self):
        merged = ConfigMerger().merge([{"dbal": {"host": "a"}}, {"dbal": {"host": "b"}}])
        assert merged == {"dbal": {"host": "b"}}

    def test_maps_merge_recursively(self):
        merged = ConfigMerger().merge([
            {"dbal": {"connections": {"default": {"host": "a"}}}},
            {"dbal": {"connections": {"default": {"port": 3306}, "replica": {}}}},
        ])
        assert merged == {
            "dbal": {"connections": {"default": {"host": "a", "port": 3306}, "replica": {}}},
        }

    def test_first_seen_key_order(self):
        merged = ConfigMerger().merge([
            {"orm": {"entity_managers": {"b": {}, "a": {}}}},
            {"orm": {"entity_managers": {"c": {}, "a": {"connection": "x"}}}},
        ])
        assert list(merged["orm"]["entity_managers"]) == ["b", "a", "c"]

    def test_sequence_replaced_by_latest_non_empty(self):
        merger = ConfigMerger()
        assert merger.merge([{"x": [1, 2]}, {"x": [3]}]) == {"x": [3]}
        assert merger.merge([{"x": [1, 2]}, {"x": []}]) == {"x": [1, 2]}

    def test_none_overrides(self):
        merged = ConfigMerger().merge([{"dbal": {"password": "secret"}}, {"dbal": {"password": None}}])
        assert merged["dbal"]["password"] is None

    def test_none_then_map(self):
        merged = ConfigMerger().merge([{"orm": None}, {"orm": {"auto_mapping": True}}])
        assert merged == {"orm": {"auto_mapping": True}}

    def test_kind_conflict_names_path(self):
        with pytest.raises(ValidationError) as exc_info:
            ConfigMerger().merge([
                {"dbal": {"connections": {"default": {"host": "a"}}}},
                {"dbal": {"connections": {"default": "oops"}}},
            ])
        assert exc_info.value.path == "dbal.connections.default"
        assert "dbal.connections.default" in str(exc_info.value)

    def test_map_vs_sequence_conflict(self):
        with pytest.raises(ValidationError):
            ConfigMerger().merge([{"x": {"a": 1}}, {"x": [1]}])

    def test_non_mapping_fragment(self):
        with pytest.raises(ValidationError):
            ConfigMerger().merge([["not", "a", "map"]])

    def test_inputs_not_mutated(self):
        a = {"dbal": {"connections": {"default": {"host": "a"}}}}
        b = {"dbal": {"connections": {"default": {"host": "b"}}}}
        ConfigMerger().merge([a, b])
        assert a["dbal"]["connections"]["default"]["host"] == "a"
        assert b["dbal"]["connections"]["default"]["host"] == "b"

    def test_result_is_fresh_copy(self):
        a = {"dbal": {"options": {"x": 1}}}
        merged = ConfigMerger().merge([a])
        merged["dbal"]["options"]["x"] = 2
        assert a["dbal"]["options"]["x"] == 1

    def test_idempotent_once_stable(self):
        merger = ConfigMerger()
        a = {"dbal": {"connections": {"default": {"host": "a", "shards": {}}}}, "orm": {"x": [1]}}
        b = {"dbal": {"connections": {"default": {"port": 5432}}}, "orm": {"x": [2, 3]}}
        once = merger.merge([a, b])
        assert merger.merge([once, once]) == once
        assert merger.merge([a, b, b]) == once


# ============================================================================
# ConfigLoader
# ============================================================================

class TestConfigLoader:

    def test_load_json_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ORMBRIDGE_DBAL__HOST", raising=False)
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"dbal": {"host": "json-host"}}))
        loader = ConfigLoader.load(paths=[str(path)])
        assert loader.get("dbal.host") == "json-host"

    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "ormbridge.yaml"
        path.write_text("dbal:\n  connections:\n    default:\n      dbname: app\n")
        loader = ConfigLoader.load(paths=[str(path)])
        assert loader.get("dbal.connections.default.dbname") == "app"
        assert len(loader.fragments) == 1

    def test_glob_order(self, tmp_path):
        (tmp_path / "10-base.yaml").write_text("dbal:\n  host: base\n  user: app\n")
        (tmp_path / "20-local.yaml").write_text("dbal:\n  host: local\n")
        loader = ConfigLoader.load(paths=[str(tmp_path / "*.yaml")])
        assert loader.get("dbal.host") == "local"
        assert loader.get("dbal.user") == "app"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="does not exist"):
            ConfigLoader.load(paths=[str(tmp_path / "missing.yaml")])

    def test_malformed_yaml_names_file(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("dbal: [unclosed\n")
        with pytest.raises(ValidationError, match="broken.yaml"):
            ConfigLoader.load(paths=[str(path)])

    def test_env_nesting(self, monkeypatch):
        monkeypatch.setenv("ORMBRIDGE_DBAL__CONNECTIONS__DEFAULT__HOST", "db")
        monkeypatch.setenv("ORMBRIDGE_DBAL__CONNECTIONS__DEFAULT__PORT", "5432")
        monkeypatch.setenv("ORMBRIDGE_DBAL__CONNECTIONS__DEFAULT__LOGGING", "true")
        loader = ConfigLoader.load()
        assert loader.get("dbal.connections.default") == {"host": "db", "port": 5432, "logging": True}

    def test_env_overrides_files(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("dbal:\n  host: file\n")
        monkeypatch.setenv("ORMBRIDGE_DBAL__HOST", "env")
        loader = ConfigLoader.load(paths=[str(path)])
        assert loader.get("dbal.host") == "env"

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("ORMBRIDGE_DBAL__DBNAME=from_dotenv\nOTHER_KEY=ignored\n")
        loader = ConfigLoader.load(env_file=str(env_file))
        assert loader.get("dbal.dbname") == "from_dotenv"
        assert loader.get("other_key") is None

    def test_overrides_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ORMBRIDGE_DBAL__HOST", "env")
        loader = ConfigLoader.load(overrides={"dbal": {"host": "override"}})
        assert loader.get("dbal.host") == "override"

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("MYAPP_ORM__AUTO_MAPPING", "yes")
        loader = ConfigLoader.load(env_prefix="MYAPP_")
        assert loader.get("orm.auto_mapping") is True

    def test_env_text_keys_kept_raw(self, monkeypatch):
        monkeypatch.setenv("ORMBRIDGE_DBAL__PASSWORD", "007")
        monkeypatch.setenv("ORMBRIDGE_DBAL__SERVER_VERSION", "5.70")
        monkeypatch.setenv("ORMBRIDGE_DBAL__PORT", "3306")
        loader = ConfigLoader.load()
        assert loader.get("dbal.password") == "007"
        assert loader.get("dbal.server_version") == "5.70"
        assert loader.get("dbal.port") == 3306

    def test_env_file_text_keys_kept_raw(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("ORMBRIDGE_DBAL__CONNECTIONS__DEFAULT__USER=0042\n")
        loader = ConfigLoader.load(env_file=str(env_file))
        assert loader.get("dbal.connections.default.user") == "0042"

    def test_env_nesting_under_scalar(self, monkeypatch):
        monkeypatch.setenv("ORMBRIDGE_DBAL", "1")
        monkeypatch.setenv("ORMBRIDGE_DBAL__HOST", "x")
        with pytest.raises(ValidationError) as exc_info:
            ConfigLoader.load()
        assert exc_info.value.path == "dbal"

    def test_env_file_scalar_over_nested(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("ORMBRIDGE_DBAL__HOST=x\nORMBRIDGE_DBAL=1\n")
        with pytest.raises(ValidationError) as exc_info:
            ConfigLoader.load(env_file=str(env_file))
        assert exc_info.value.path == "dbal"

    def test_get_default(self):
        loader = ConfigLoader()
        assert loader.get("dbal.missing", "fallback") == "fallback"

    def test_to_dict_is_copy(self):
        loader = ConfigLoader()
        loader.add_fragment({"dbal": {"host": "a"}})
        data = loader.to_dict()
        data["dbal"]["host"] = "b"
        assert loader.get("dbal.host") == "a"

    def test_add_fragment_rejects_non_mapping(self):
        with pytest.raises(ValidationError):
            ConfigLoader().add_fragment(["nope"])


class TestParseValue:

    @pytest.mark.parametrize("raw, expected", [
        ("true", True),
        ("No", False),
        ("null", None),
        ("42", 42),
        ("1.5", 1.5),
        ('{"a": 1}', {"a": 1}),
        ("[1, 2]", [1, 2]),
        ("pdo_pgsql", "pdo_pgsql"),
    ])
    def test_parse(self, raw, expected):
        assert ConfigLoader()._parse_value(raw) == expected
