"""
DBAL connection resolution.

Expands the ``dbal`` section into fully defaulted connection descriptors
and turns each descriptor into its service nodes (connection,
configuration, event manager, and shard manager for sharded
connections).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..di.definitions import Reference, ServiceNode
from ..faults import ConfigurationError, ValidationError
from ..parameters import (
    CONNECTION_FACTORY_ID,
    ROOT,
    SERVICE_CONTAINER_ID,
    SQL_LOGGER_ID,
    connection_id,
    param,
    shard_manager_id,
)

logger = logging.getLogger("ormbridge.dbal")

CONNECTION_DEFAULTS: Dict[str, Any] = {
    "driver": "pdo_mysql",
    "host": "localhost",
    "port": None,
    "user": "root",
    "password": None,
    "options": {},
}

_STRING_KEYS = ("driver", "host", "user", "password", "dbname", "charset", "url",
                "server_version", "wrapper_class", "schema_filter", "shard_choser")
_BOOL_KEYS = ("use_savepoints", "logging", "auto_commit")
_MAP_KEYS = ("options", "mapping_types", "shards")

CONNECTION_KEYS = frozenset(("port",) + _STRING_KEYS + _BOOL_KEYS + _MAP_KEYS)
SHARD_KEYS = frozenset(("id", "host", "port", "user", "password", "dbname", "charset", "unix_socket"))

# Keys whose values are text even when they look numeric ("007", "5.70")
STRING_KEYS = frozenset(_STRING_KEYS + ("unix_socket",))

# Top-level dbal keys that are not connection keys
_DBAL_KEYS = frozenset(("default_connection", "connections"))


@dataclass(frozen=True)
class ShardDescriptor:
    """One physical shard behind a sharded connection."""
    name: str
    id: int
    params: Dict[str, Any] = field(default_factory=dict)

    def to_params(self) -> Dict[str, Any]:
        return {"id": self.id, **self.params}


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Fully defaulted connection configuration."""
    name: str
    driver: str = "pdo_mysql"
    host: Optional[str] = "localhost"
    port: Optional[int] = None
    user: Optional[str] = "root"
    password: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    dbname: Optional[str] = None
    charset: Optional[str] = None
    url: Optional[str] = None
    server_version: Optional[str] = None
    wrapper_class: Optional[str] = None
    use_savepoints: bool = False
    logging: bool = False
    auto_commit: bool = True
    schema_filter: Optional[str] = None
    mapping_types: Dict[str, str] = field(default_factory=dict)
    shards: Tuple[ShardDescriptor, ...] = ()
    shard_choser: Optional[str] = None

    @property
    def service_id(self) -> str:
        return connection_id(self.name)

    @property
    def is_sharded(self) -> bool:
        return bool(self.shards)

    def to_params(self) -> Dict[str, Any]:
        """Connection parameters passed to the connection factory."""
        params: Dict[str, Any] = {
            "driver": self.driver,
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "driver_options": dict(self.options),
        }
        for key in ("dbname", "charset", "url", "server_version"):
            value = getattr(self, key)
            if value is not None:
                params[key] = value
        if self.wrapper_class:
            params["wrapper_class"] = self.wrapper_class

        if self.is_sharded:
            params["global"] = {
                key: value for key, value in params.items()
                if key not in ("wrapper_class", "driver_options")
            }
            params["shards"] = [shard.to_params() for shard in self.shards]
            params["shard_choser"] = self.shard_choser or param(f"{ROOT}.dbal.shard_choser.class")
            params.setdefault("wrapper_class", param(f"{ROOT}.dbal.shard_connection.class"))
        return params


@dataclass(frozen=True)
class ResolvedConnections:
    """Ordered connection descriptors plus the default connection name."""
    connections: Dict[str, ConnectionDescriptor]
    default_connection: str

    def __iter__(self):
        return iter(self.connections.values())

    def __contains__(self, name: str) -> bool:
        return name in self.connections

    def names(self) -> List[str]:
        return list(self.connections)


class ConnectionResolver:
    """
    Expand the merged ``dbal`` section into connection descriptors.

    Without a ``connections`` key, the dbal-level keys describe a single
    connection named after ``default_connection`` (or ``"default"``).
    """

    def resolve(self, dbal: Optional[Mapping[str, Any]]) -> ResolvedConnections:
        dbal = dict(dbal or {})
        unknown = set(dbal) - _DBAL_KEYS - CONNECTION_KEYS
        if unknown:
            raise ValidationError(
                ("dbal", sorted(unknown)[0]),
                "unrecognized option",
            )

        explicit_default = dbal.get("default_connection")
        if explicit_default is not None and not isinstance(explicit_default, str):
            raise ValidationError(("dbal", "default_connection"), "must be a string")

        raw_connections = dbal.get("connections")
        if raw_connections is None:
            shorthand = {key: value for key, value in dbal.items() if key not in _DBAL_KEYS}
            raw_connections = {explicit_default or "default": shorthand}
        elif not isinstance(raw_connections, Mapping):
            raise ValidationError(("dbal", "connections"), "must be a map of connection name to options")
        else:
            stray = [key for key in dbal if key not in _DBAL_KEYS]
            if stray:
                raise ValidationError(
                    ("dbal", stray[0]),
                    "connection options cannot be combined with \"connections\"",
                )

        connections: Dict[str, ConnectionDescriptor] = {}
        for name, options in raw_connections.items():
            connections[name] = self.resolve_connection(name, options)

        if not connections:
            raise ConfigurationError(
                "At least one connection must be configured.",
                path=("dbal", "connections"),
            )

        default = self._default_connection(explicit_default, connections)
        logger.debug("Resolved %d connection(s), default '%s'", len(connections), default)
        return ResolvedConnections(connections=connections, default_connection=default)

    def resolve_connection(self, name: str, options: Optional[Mapping[str, Any]]) -> ConnectionDescriptor:
        """Apply defaults and type checks to one named connection."""
        path = ("dbal", "connections", name)
        if options is None:
            options = {}
        if not isinstance(options, Mapping):
            raise ValidationError(path, "connection options must be a map")

        unknown = set(options) - CONNECTION_KEYS
        if unknown:
            raise ValidationError(path + (sorted(unknown)[0],), "unrecognized connection option")

        values: Dict[str, Any] = {**CONNECTION_DEFAULTS, "options": {}}
        for key, value in options.items():
            if value is None:
                # Explicit null: nullable defaults become null, the rest keep defaults
                if key in CONNECTION_DEFAULTS:
                    values[key] = {"driver": "pdo_mysql", "options": {}}.get(key)
                continue
            values[key] = self._check_value(path + (key,), key, value)

        shards = self._resolve_shards(path, values.pop("shards", {}) or {})
        return ConnectionDescriptor(name=name, shards=shards, **values)

    def _check_value(self, path: tuple, key: str, value: Any) -> Any:
        if value is None:
            return None
        if key == "port":
            if isinstance(value, bool):
                raise ValidationError(path, "port must be an integer")
            if isinstance(value, str) and value.isdigit():
                return int(value)
            if not isinstance(value, int):
                raise ValidationError(path, "port must be an integer")
            return value
        if key in _BOOL_KEYS:
            if not isinstance(value, bool):
                raise ValidationError(path, f"expected a boolean, got {type(value).__name__}")
            return value
        if key in _MAP_KEYS:
            if not isinstance(value, Mapping):
                raise ValidationError(path, f"expected a map, got {type(value).__name__}")
            return dict(value)
        if isinstance(value, (Mapping, list, tuple)):
            raise ValidationError(path, f"expected a scalar, got {type(value).__name__}")
        # Env/YAML may turn passwords and versions into numbers
        return str(value)

    def _resolve_shards(self, path: tuple, raw: Mapping[str, Any]) -> Tuple[ShardDescriptor, ...]:
        shards: List[ShardDescriptor] = []
        seen_ids: Dict[int, str] = {}
        for shard_name, shard in raw.items():
            shard_path = path + ("shards", shard_name)
            if not isinstance(shard, Mapping):
                raise ValidationError(shard_path, "shard options must be a map")
            unknown = set(shard) - SHARD_KEYS
            if unknown:
                raise ValidationError(shard_path + (sorted(unknown)[0],), "unrecognized shard option")

            shard_id = shard.get("id")
            if isinstance(shard_id, bool) or not isinstance(shard_id, int):
                raise ValidationError(shard_path + ("id",), "every shard requires an integer id")
            if shard_id in seen_ids:
                raise ValidationError(
                    shard_path + ("id",),
                    f"shard id {shard_id} is already used by shard \"{seen_ids[shard_id]}\"",
                )
            seen_ids[shard_id] = shard_name

            params = {
                key: self._check_value(shard_path + (key,), key, value)
                for key, value in shard.items()
                if key != "id" and value is not None
            }
            shards.append(ShardDescriptor(name=shard_name, id=shard_id, params=params))
        return tuple(shards)

    def _default_connection(self, explicit: Optional[str], connections: Mapping[str, ConnectionDescriptor]) -> str:
        if explicit is not None:
            if explicit not in connections:
                raise ConfigurationError(
                    f"The default connection \"{explicit}\" is not configured. "
                    f"Available connections: {', '.join(connections)}",
                    path=("dbal", "default_connection"),
                )
            return explicit
        if "default" in connections:
            return "default"
        return next(iter(connections))

    # ------------------------------------------------------------------
    # Service nodes
    # ------------------------------------------------------------------

    def build_nodes(self, descriptor: ConnectionDescriptor) -> List[ServiceNode]:
        """
        Service nodes for one connection, connection node first.

        Sharded connections get an extra shard manager node; others none.
        """
        service_id = descriptor.service_id
        configuration_id = f"{service_id}.configuration"
        event_manager_id = f"{service_id}.event_manager"

        configuration = ServiceNode(
            id=configuration_id,
            target_type=param(f"{ROOT}.dbal.configuration.class"),
        )
        if descriptor.logging:
            configuration = configuration.with_call("set_sql_logger", Reference(SQL_LOGGER_ID))
        extra: List[ServiceNode] = []
        if descriptor.schema_filter:
            filter_node = ServiceNode(
                id=f"{ROOT}.dbal.{descriptor.name}_regex_schema_filter",
                target_type=param(f"{ROOT}.dbal.schema_asset_filter.class"),
                args=(descriptor.schema_filter,),
            )
            extra.append(filter_node)
            configuration = configuration.with_call("set_schema_assets_filter", Reference(filter_node.id))
        if not descriptor.auto_commit:
            configuration = configuration.with_call("set_auto_commit", False)

        event_manager = ServiceNode(
            id=event_manager_id,
            target_type=param(f"{ROOT}.dbal.connection.event_manager.class"),
            args=(Reference(SERVICE_CONTAINER_ID),),
        )

        target_type = descriptor.wrapper_class
        connection = ServiceNode(
            id=service_id,
            target_type=target_type,
            args=(
                descriptor.to_params(),
                Reference(configuration_id),
                Reference(event_manager_id),
                dict(descriptor.mapping_types),
            ),
            public=True,
            factory=(Reference(CONNECTION_FACTORY_ID), "create_connection"),
        )
        if descriptor.use_savepoints:
            connection = connection.with_call("set_nest_transactions_with_savepoints", True)

        nodes = [connection, configuration, event_manager, *extra]

        if descriptor.is_sharded:
            nodes.append(ServiceNode(
                id=shard_manager_id(descriptor.name),
                target_type=param(f"{ROOT}.dbal.shard_manager.class"),
                args=(Reference(service_id),),
            ))
            logger.debug("Connection '%s' has %d shard(s)", descriptor.name, len(descriptor.shards))

        return nodes
