"""
Service ids and default parameters shared by the resolvers.

Type names are symbolic: the host container maps them to real classes.
"""

ROOT = "ormbridge"

REGISTRY_ID = ROOT
SERVICE_CONTAINER_ID = "service_container"
ANNOTATION_READER_ID = "annotation_reader"
CONNECTION_FACTORY_ID = f"{ROOT}.dbal.connection_factory"
SQL_LOGGER_ID = f"{ROOT}.dbal.logger"
DATABASE_CONNECTION_ALIAS = "database_connection"
DEFAULT_ENTITY_MANAGER_ALIAS = f"{ROOT}.orm.entity_manager"

DEFAULT_NAMING_STRATEGY = f"{ROOT}.orm.naming_strategy.default"
DEFAULT_QUOTE_STRATEGY = f"{ROOT}.orm.quote_strategy.default"

# Autowiring aliases (type name -> service id), always private
DBAL_AUTOWIRING_ALIASES = {
    "dbal.Connection": DATABASE_CONNECTION_ALIAS,
    "dbal.driver.Connection": DATABASE_CONNECTION_ALIAS,
}
ORM_AUTOWIRING_ALIASES = {
    "orm.EntityManagerInterface": DEFAULT_ENTITY_MANAGER_ALIAS,
}


def connection_id(name: str) -> str:
    return f"{ROOT}.dbal.{name}_connection"


def shard_manager_id(name: str) -> str:
    return f"{ROOT}.dbal.{name}_shard_manager"


def entity_manager_id(name: str) -> str:
    return f"{ROOT}.orm.{name}_entity_manager"


def orm_configuration_id(name: str) -> str:
    return f"{ROOT}.orm.{name}_configuration"


def metadata_driver_id(name: str, driver_type: str = "") -> str:
    if driver_type:
        return f"{ROOT}.orm.{name}_{driver_type}_metadata_driver"
    return f"{ROOT}.orm.{name}_metadata_driver"


def cache_alias_id(name: str, kind: str) -> str:
    return f"{ROOT}.orm.{name}_{kind}_cache"


def second_level_cache_id(name: str, suffix: str) -> str:
    return f"{ROOT}.orm.{name}_second_level_cache.{suffix}"


DBAL_PARAMETERS = {
    f"{ROOT}.registry.class": "Registry",
    f"{ROOT}.dbal.connection.event_manager.class": "dbal.ContainerAwareEventManager",
    f"{ROOT}.dbal.configuration.class": "dbal.Configuration",
    f"{ROOT}.dbal.connection_factory.class": "dbal.ConnectionFactory",
    f"{ROOT}.dbal.logger.class": "dbal.logging.SqlLogger",
    f"{ROOT}.dbal.schema_asset_filter.class": "dbal.schema.RegexSchemaAssetFilter",
    f"{ROOT}.dbal.shard_manager.class": "dbal.sharding.PoolingShardManager",
    f"{ROOT}.dbal.shard_connection.class": "dbal.sharding.PoolingShardConnection",
    f"{ROOT}.dbal.shard_choser.class": "dbal.sharding.MultiTenantShardChoser",
}

ORM_PARAMETERS = {
    f"{ROOT}.orm.configuration.class": "orm.Configuration",
    f"{ROOT}.orm.entity_manager.class": "orm.EntityManager",
    f"{ROOT}.orm.class_metadata_factory.class": "orm.mapping.ClassMetadataFactory",
    f"{ROOT}.orm.entity_repository.class": "orm.EntityRepository",
    f"{ROOT}.orm.entity_listener_resolver.class": "orm.ContainerEntityListenerResolver",
    f"{ROOT}.orm.naming_strategy.default.class": "orm.mapping.DefaultNamingStrategy",
    f"{ROOT}.orm.naming_strategy.underscore.class": "orm.mapping.UnderscoreNamingStrategy",
    f"{ROOT}.orm.quote_strategy.default.class": "orm.mapping.DefaultQuoteStrategy",
    f"{ROOT}.orm.quote_strategy.ansi.class": "orm.mapping.AnsiQuoteStrategy",
    # metadata drivers
    f"{ROOT}.orm.metadata.driver_chain.class": "orm.mapping.MappingDriverChain",
    f"{ROOT}.orm.metadata.annotation.class": "orm.mapping.AnnotationDriver",
    f"{ROOT}.orm.metadata.xml.class": "orm.mapping.SimplifiedXmlDriver",
    f"{ROOT}.orm.metadata.yml.class": "orm.mapping.SimplifiedYamlDriver",
    f"{ROOT}.orm.metadata.php.class": "orm.mapping.StaticPhpDriver",
    # cache backends
    f"{ROOT}.orm.cache.provider.class": "cache.CacheProvider",
    f"{ROOT}.orm.cache.provider_adapter.class": "cache.ProviderAdapter",
    f"{ROOT}.orm.cache.compiled_array.class": "cache.CompiledArrayAdapter",
    f"{ROOT}.orm.cache.array_adapter.class": "cache.ArrayAdapter",
    f"{ROOT}.orm.cache.array.class": "cache.ArrayCache",
    f"{ROOT}.orm.cache.apcu.class": "cache.ApcuCache",
    f"{ROOT}.orm.cache.filesystem.class": "cache.FilesystemCache",
    f"{ROOT}.orm.cache.php_files.class": "cache.PhpFileCache",
    # second-level cache
    f"{ROOT}.orm.second_level_cache.default_cache_factory.class": "orm.cache.DefaultCacheFactory",
    f"{ROOT}.orm.second_level_cache.default_region.class": "orm.cache.region.DefaultRegion",
    f"{ROOT}.orm.second_level_cache.filelock_region.class": "orm.cache.region.FileLockRegion",
    f"{ROOT}.orm.second_level_cache.logger_chain.class": "orm.cache.logging.CacheLoggerChain",
    f"{ROOT}.orm.second_level_cache.logger_statistics.class": "orm.cache.logging.StatisticsCacheLogger",
    f"{ROOT}.orm.second_level_cache.cache_configuration.class": "orm.cache.CacheConfiguration",
    f"{ROOT}.orm.second_level_cache.regions_configuration.class": "orm.cache.RegionsConfiguration",
    # proxies
    f"{ROOT}.orm.proxy_namespace": "Proxies",
    f"{ROOT}.orm.proxy_dir": "%kernel.cache_dir%/ormbridge/orm/Proxies",
    f"{ROOT}.orm.auto_generate_proxy_classes": False,
}


def param(name: str) -> str:
    """Placeholder string for a parameter (``%name%``)."""
    return f"%{name}%"
