"""
Test 2: DBAL Connections (dbal/connections.py)

Tests ConnectionResolver defaults, default connection selection,
sharding and the emitted connection nodes.
"""

import pytest

from ormbridge.config import ConfigLoader
from ormbridge.dbal import ConnectionResolver
from ormbridge.di import Reference
from ormbridge.faults import ConfigurationError, ValidationError


# ============================================================================
# Resolution
# ============================================================================

class TestConnectionDefaults:

    def test_defaults_applied(self):
        resolved = ConnectionResolver().resolve({"connections": {"default": {}}})
        conn = resolved.connections["default"]
        assert conn.driver == "pdo_mysql"
        assert conn.host == "localhost"
        assert conn.user == "root"
        assert conn.password is None
        assert conn.port is None
        assert conn.options == {}

    def test_options_not_shared(self):
        resolved = ConnectionResolver().resolve({"connections": {"a": {}, "b": {}}})
        assert resolved.connections["a"].options is not resolved.connections["b"].options

    def test_none_options_block(self):
        resolved = ConnectionResolver().resolve({"connections": {"default": None}})
        assert resolved.connections["default"].driver == "pdo_mysql"

    def test_explicit_null_password(self):
        resolved = ConnectionResolver().resolve({"connections": {"default": {"password": None}}})
        assert resolved.connections["default"].password is None

    def test_numeric_string_port(self):
        resolved = ConnectionResolver().resolve({"connections": {"default": {"port": "5432"}}})
        assert resolved.connections["default"].port == 5432

    def test_numeric_password_becomes_string(self):
        resolved = ConnectionResolver().resolve({"connections": {"default": {"password": 1234}}})
        assert resolved.connections["default"].password == "1234"

    def test_env_text_survives_loading(self, monkeypatch):
        monkeypatch.setenv("ORMBRIDGE_DBAL__PASSWORD", "007")
        monkeypatch.setenv("ORMBRIDGE_DBAL__SERVER_VERSION", "5.70")
        dbal = ConfigLoader.load().get("dbal")
        conn = ConnectionResolver().resolve(dbal).connections["default"]
        assert (conn.password, conn.server_version) == ("007", "5.70")

    def test_unknown_key(self):
        with pytest.raises(ValidationError) as exc_info:
            ConnectionResolver().resolve({"connections": {"default": {"hots": "x"}}})
        assert exc_info.value.path == "dbal.connections.default.hots"

    def test_bad_port(self):
        with pytest.raises(ValidationError, match="port"):
            ConnectionResolver().resolve({"connections": {"default": {"port": "abc"}}})

    def test_bad_options(self):
        with pytest.raises(ValidationError):
            ConnectionResolver().resolve({"connections": {"default": {"options": "x"}}})

    def test_bad_bool(self):
        with pytest.raises(ValidationError):
            ConnectionResolver().resolve({"connections": {"default": {"logging": "sometimes"}}})


class TestDefaultConnection:

    def test_single_default(self):
        resolved = ConnectionResolver().resolve({"connections": {"default": {}}})
        assert resolved.default_connection == "default"

    def test_default_preferred_over_first(self):
        resolved = ConnectionResolver().resolve({"connections": {"replica": {}, "default": {}}})
        assert resolved.default_connection == "default"

    def test_first_declared_without_default(self):
        resolved = ConnectionResolver().resolve({"connections": {"primary": {}, "replica": {}}})
        assert resolved.default_connection == "primary"

    def test_explicit_default(self):
        resolved = ConnectionResolver().resolve({
            "default_connection": "replica",
            "connections": {"default": {}, "replica": {}},
        })
        assert resolved.default_connection == "replica"

    def test_unknown_default(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConnectionResolver().resolve({
                "default_connection": "missing",
                "connections": {"default": {}},
            })
        assert exc_info.value.path == "dbal.default_connection"

    def test_shorthand(self):
        resolved = ConnectionResolver().resolve({"dbname": "app", "host": "db"})
        assert resolved.names() == ["default"]
        assert resolved.connections["default"].dbname == "app"

    def test_shorthand_named_after_default(self):
        resolved = ConnectionResolver().resolve({"default_connection": "foo"})
        assert resolved.names() == ["foo"]
        assert resolved.default_connection == "foo"

    def test_shorthand_mixed_with_connections(self):
        with pytest.raises(ValidationError):
            ConnectionResolver().resolve({"host": "db", "connections": {"default": {}}})

    def test_declaration_order(self):
        resolved = ConnectionResolver().resolve({"connections": {"z": {}, "a": {}, "m": {}}})
        assert resolved.names() == ["z", "a", "m"]


class TestShards:

    def test_shards(self):
        resolved = ConnectionResolver().resolve({
            "connections": {"foo": {"shards": {"test": {"id": 1, "dbname": "shard1"}}}},
        })
        conn = resolved.connections["foo"]
        assert conn.is_sharded
        assert conn.shards[0].id == 1
        assert conn.shards[0].to_params() == {"id": 1, "dbname": "shard1"}

    def test_missing_shard_id(self):
        with pytest.raises(ValidationError, match="integer id"):
            ConnectionResolver().resolve({"connections": {"foo": {"shards": {"a": {"dbname": "x"}}}}})

    def test_duplicate_shard_id(self):
        with pytest.raises(ValidationError, match="already used"):
            ConnectionResolver().resolve({
                "connections": {"foo": {"shards": {"a": {"id": 1}, "b": {"id": 1}}}},
            })

    def test_sharded_params(self):
        resolved = ConnectionResolver().resolve({"connections": {"foo": {"shards": {"a": {"id": 1}}}}})
        params = resolved.connections["foo"].to_params()
        assert params["global"]["driver"] == "pdo_mysql"
        assert params["shards"] == [{"id": 1}]
        assert params["wrapper_class"] == "%ormbridge.dbal.shard_connection.class%"
        assert params["shard_choser"] == "%ormbridge.dbal.shard_choser.class%"


# ============================================================================
# Nodes
# ============================================================================

class TestConnectionNodes:

    def _nodes(self, options):
        resolver = ConnectionResolver()
        resolved = resolver.resolve({"connections": {"default": options}})
        return {node.id: node for node in resolver.build_nodes(resolved.connections["default"])}

    def test_connection_node(self):
        nodes = self._nodes({"password": "foo"})
        node = nodes["ormbridge.dbal.default_connection"]
        assert node.public
        assert node.target_type is None
        assert node.factory == (Reference("ormbridge.dbal.connection_factory"), "create_connection")
        params, configuration, event_manager, mapping_types = node.args
        assert params["driver"] == "pdo_mysql"
        assert params["password"] == "foo"
        assert configuration == Reference("ormbridge.dbal.default_connection.configuration")
        assert event_manager == Reference("ormbridge.dbal.default_connection.event_manager")
        assert mapping_types == {}
        assert node.method_calls == ()

    def test_no_shard_manager(self):
        nodes = self._nodes({})
        assert "ormbridge.dbal.default_shard_manager" not in nodes

    def test_shard_manager(self):
        nodes = self._nodes({"shards": {"a": {"id": 1}}})
        manager = nodes["ormbridge.dbal.default_shard_manager"]
        assert manager.args == (Reference("ormbridge.dbal.default_connection"),)

    def test_wrapper_class(self):
        nodes = self._nodes({"wrapper_class": "app.db.TracingConnection"})
        assert nodes["ormbridge.dbal.default_connection"].target_type == "app.db.TracingConnection"

    def test_savepoints(self):
        node = self._nodes({"use_savepoints": True})["ormbridge.dbal.default_connection"]
        assert len(node.method_calls) == 1
        assert node.method_calls[0].name == "set_nest_transactions_with_savepoints"
        assert node.method_calls[0].args == (True,)

    def test_configuration_calls(self):
        nodes = self._nodes({"logging": True, "schema_filter": "^sf2_", "auto_commit": False})
        configuration = nodes["ormbridge.dbal.default_connection.configuration"]
        assert [call.name for call in configuration.method_calls] == [
            "set_sql_logger", "set_schema_assets_filter", "set_auto_commit",
        ]
        filter_node = nodes["ormbridge.dbal.default_regex_schema_filter"]
        assert filter_node.args == ("^sf2_",)
