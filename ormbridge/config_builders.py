"""
Fluent configuration builders for ormbridge.

Build configuration fragments in Python instead of YAML. Every builder
produces a plain dict fragment that ``OrmExtension.load`` accepts.

Example:
    >>> fragment = (
    ...     BundleConfiguration()
    ...     .connection(Connection("default").driver("pdo_pgsql").database("app"))
    ...     .entity_manager(EntityManager("default").mapping("Blog").cache("query", "pool", pool="cache.app"))
    ...     .build()
    ... )
"""

from typing import Optional, Any, Dict
from dataclasses import dataclass, field

from .config import ConfigMerger


@dataclass
class ConnectionConfig:
    """Connection configuration."""
    name: str
    options: Dict[str, Any] = field(default_factory=dict)
    shards: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        data = dict(self.options)
        if self.shards:
            data["shards"] = {name: dict(shard) for name, shard in self.shards.items()}
        return data


class Connection:
    """Fluent connection builder."""

    def __init__(self, name: str = "default"):
        self._config = ConnectionConfig(name=name)

    def driver(self, driver: str) -> "Connection":
        self._config.options["driver"] = driver
        return self

    def host(self, host: str, port: Optional[int] = None) -> "Connection":
        self._config.options["host"] = host
        if port is not None:
            self._config.options["port"] = port
        return self

    def database(self, dbname: str) -> "Connection":
        self._config.options["dbname"] = dbname
        return self

    def credentials(self, user: str, password: Optional[str] = None) -> "Connection":
        self._config.options["user"] = user
        self._config.options["password"] = password
        return self

    def url(self, url: str) -> "Connection":
        self._config.options["url"] = url
        return self

    def option(self, key: str, value: Any) -> "Connection":
        """Set a driver option (``options`` map)."""
        self._config.options.setdefault("options", {})[key] = value
        return self

    def wrapper(self, wrapper_class: str) -> "Connection":
        self._config.options["wrapper_class"] = wrapper_class
        return self

    def savepoints(self, enabled: bool = True) -> "Connection":
        self._config.options["use_savepoints"] = enabled
        return self

    def logging(self, enabled: bool = True) -> "Connection":
        self._config.options["logging"] = enabled
        return self

    def schema_filter(self, pattern: str) -> "Connection":
        self._config.options["schema_filter"] = pattern
        return self

    def mapping_type(self, db_type: str, orm_type: str) -> "Connection":
        self._config.options.setdefault("mapping_types", {})[db_type] = orm_type
        return self

    def shard(self, name: str, shard_id: int, **params) -> "Connection":
        """Add a shard; a connection with shards gets a shard manager."""
        self._config.shards[name] = {"id": shard_id, **params}
        return self

    def build(self) -> ConnectionConfig:
        return self._config

    def to_dict(self) -> Dict[str, Any]:
        return self._config.to_dict()


@dataclass
class EntityManagerConfig:
    """Entity manager configuration."""
    name: str
    options: Dict[str, Any] = field(default_factory=dict)
    mappings: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.options)
        if self.mappings:
            data["mappings"] = {name: dict(entry) for name, entry in self.mappings.items()}
        return data


class EntityManager:
    """Fluent entity manager builder."""

    def __init__(self, name: str = "default"):
        self._config = EntityManagerConfig(name=name)

    def connection(self, name: str) -> "EntityManager":
        self._config.options["connection"] = name
        return self

    def mapping(self, name: str, **options) -> "EntityManager":
        """
        Map a bundle (or, with type/dir/prefix, a plain directory).

        Example:
            >>> EntityManager().mapping("Blog", alias="blog")
        """
        self._config.mappings[name] = options
        return self

    def auto_mapping(self, enabled: bool = True) -> "EntityManager":
        self._config.options["auto_mapping"] = enabled
        return self

    def cache(self, kind: str, cache_type: Optional[str] = None, **options) -> "EntityManager":
        """Configure the metadata, query or result cache."""
        self._config.options[f"{kind}_cache_driver"] = {"type": cache_type, **options}
        return self

    def naming_strategy(self, service_id: str) -> "EntityManager":
        self._config.options["naming_strategy"] = service_id
        return self

    def quote_strategy(self, service_id: str) -> "EntityManager":
        self._config.options["quote_strategy"] = service_id
        return self

    def entity_listener_resolver(self, service_id: str) -> "EntityManager":
        self._config.options["entity_listener_resolver"] = service_id
        return self

    def second_level_cache(self, **options) -> "EntityManager":
        self._config.options["second_level_cache"] = {"enabled": True, **options}
        return self

    def build(self) -> EntityManagerConfig:
        return self._config

    def to_dict(self) -> Dict[str, Any]:
        return self._config.to_dict()


class BundleConfiguration:
    """
    Fluent builder for a complete ``{dbal, orm}`` fragment.

    The ``add_*`` methods merge raw partial trees with the same rules as
    ``ConfigMerger``; the ``connection``/``entity_manager`` methods take
    the typed builders above.
    """

    BASE_CONNECTION = {"dbal": {"connections": {"default": {"password": "foo"}}}}
    BASE_ENTITY_MANAGER = {
        "orm": {
            "default_entity_manager": "default",
            "entity_managers": {"default": {"mappings": {"YamlBundle": {}}}},
        },
    }
    BASE_SECOND_LEVEL_CACHE = {
        "region_cache_driver": {"type": "pool", "pool": "my_pool"},
        "regions": {"hour_region": {"lifetime": 3600}},
    }

    def __init__(self):
        self._config: Dict[str, Any] = {}
        self._merger = ConfigMerger()

    @classmethod
    def with_base_values(cls) -> "BundleConfiguration":
        """One ``default`` connection and one ``default`` manager mapping ``YamlBundle``."""
        return cls().add_base_connection().add_base_entity_manager()

    def _merge(self, fragment: Dict[str, Any]) -> "BundleConfiguration":
        self._config = self._merger.merge([self._config, fragment])
        return self

    def add_base_connection(self) -> "BundleConfiguration":
        return self._merge(self.BASE_CONNECTION)

    def add_connection(self, config: Dict[str, Any]) -> "BundleConfiguration":
        return self._merge({"dbal": config})

    def add_base_entity_manager(self) -> "BundleConfiguration":
        return self._merge(self.BASE_ENTITY_MANAGER)

    def add_entity_manager(self, config: Dict[str, Any]) -> "BundleConfiguration":
        return self._merge({"orm": config})

    def add_base_second_level_cache(self) -> "BundleConfiguration":
        return self.add_second_level_cache(self.BASE_SECOND_LEVEL_CACHE)

    def add_second_level_cache(self, config: Dict[str, Any], entity_manager: str = "default") -> "BundleConfiguration":
        """Replace the second-level cache settings of one entity manager."""
        managers = self._config.setdefault("orm", {}).setdefault("entity_managers", {})
        managers.setdefault(entity_manager, {})["second_level_cache"] = dict(config)
        return self

    def connection(self, connection: Connection) -> "BundleConfiguration":
        config = connection.build()
        return self._merge({"dbal": {"connections": {config.name: config.to_dict()}}})

    def default_connection(self, name: str) -> "BundleConfiguration":
        return self._merge({"dbal": {"default_connection": name}})

    def entity_manager(self, manager: EntityManager) -> "BundleConfiguration":
        config = manager.build()
        return self._merge({"orm": {"entity_managers": {config.name: config.to_dict()}}})

    def default_entity_manager(self, name: str) -> "BundleConfiguration":
        return self._merge({"orm": {"default_entity_manager": name}})

    def proxies(
        self,
        namespace: Optional[str] = None,
        directory: Optional[str] = None,
        auto_generate: Any = None,
    ) -> "BundleConfiguration":
        orm: Dict[str, Any] = {}
        if namespace is not None:
            orm["proxy_namespace"] = namespace
        if directory is not None:
            orm["proxy_dir"] = directory
        if auto_generate is not None:
            orm["auto_generate_proxy_classes"] = auto_generate
        return self._merge({"orm": orm})

    def build(self) -> Dict[str, Any]:
        """Return a fresh copy of the fragment."""
        return self._merger.merge([self._config])
