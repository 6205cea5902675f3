"""
OrmExtension - turns configuration fragments into a service graph.

One call to ``load`` merges the fragments, resolves connections, entity
managers, caches and mappings, and emits the resulting nodes, aliases and
parameters in declaration order. Any fault aborts the whole load; no
partial graph is returned.

Example:
    >>> graph = OrmExtension().load([
    ...     {"dbal": {"connections": {"default": {"dbname": "app"}}}},
    ...     {"orm": {"auto_mapping": True}},
    ... ], bundles=BundleRegistry({"Blog": ("app.blog", "src/blog")}))
    >>> graph.find_node("ormbridge.orm.entity_manager").factory
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Collection, Iterable, Mapping, Optional, Sequence

from .config import ConfigMerger
from .dbal.connections import ConnectionResolver, ResolvedConnections
from .di.definitions import Reference, ServiceNode
from .di.errors import DuplicateServiceError
from .di.graph import ServiceGraph
from .faults import ConfigurationError, ValidationError
from .orm.cache import CACHE_KINDS, CacheResolver
from .orm.managers import EntityManagerDescriptor, EntityManagerResolver, ResolvedManagers, SecondLevelCacheDescriptor
from .orm.mapping import ManagerMappings, MappingResolver
from .parameters import (
    ANNOTATION_READER_ID,
    CONNECTION_FACTORY_ID,
    DATABASE_CONNECTION_ALIAS,
    DBAL_AUTOWIRING_ALIASES,
    DBAL_PARAMETERS,
    DEFAULT_ENTITY_MANAGER_ALIAS,
    ORM_AUTOWIRING_ALIASES,
    ORM_PARAMETERS,
    REGISTRY_ID,
    ROOT,
    SERVICE_CONTAINER_ID,
    SQL_LOGGER_ID,
    entity_manager_id,
    metadata_driver_id,
    orm_configuration_id,
    param,
    second_level_cache_id,
)

logger = logging.getLogger("ormbridge.extension")

TOP_LEVEL_KEYS = frozenset(("dbal", "orm"))

# Ids the host container always provides
EXTERNAL_SERVICES = (SERVICE_CONTAINER_ID, ANNOTATION_READER_ID)

_STRATEGIES = (
    f"{ROOT}.orm.naming_strategy.default",
    f"{ROOT}.orm.naming_strategy.underscore",
    f"{ROOT}.orm.quote_strategy.default",
    f"{ROOT}.orm.quote_strategy.ansi",
)


class OrmExtension:
    """
    Service graph builder for the DBAL and ORM layers.

    Instances hold no state between loads; every ``load`` works on a
    fresh graph.
    """

    def __init__(self, merger: Optional[ConfigMerger] = None):
        self.merger = merger or ConfigMerger()

    def load(
        self,
        fragments: Sequence[Optional[Mapping[str, Any]]],
        bundles: Optional[Mapping[str, Any]] = None,
        services: Optional[Collection[str]] = None,
        project_dir: Optional[Path] = None,
    ) -> ServiceGraph:
        """
        Resolve configuration fragments into a service graph.

        Args:
            fragments: Ordered partial configuration trees
            bundles: Bundle registry, or a plain name -> Bundle, (namespace, path) or root map
            services: Ids of services the host provides (cache pools, ...);
                when given, cache references are checked against them
            project_dir: Base directory of non-bundle mapping paths

        Returns:
            ServiceGraph with nodes, aliases and parameters

        Raises:
            ValidationError: Malformed configuration
            ConfigurationError: Invalid references
            InvalidArgumentError: Unrecognized cache type or enum value
        """
        config = self.merger.merge(fragments)
        unknown = set(config) - TOP_LEVEL_KEYS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unrecognized section")

        graph = ServiceGraph()
        dbal = config.get("dbal")
        orm = config.get("orm")

        if orm is not None and dbal is None:
            raise ConfigurationError(
                "Configuring the ORM layer requires to configure the DBAL layer as well.",
                path="orm",
            )
        if dbal is None:
            logger.info("No dbal section configured; nothing to load")
            return graph

        connections = self._load_dbal(dbal, graph)
        if orm is not None:
            self._load_orm(
                orm, connections, graph,
                bundles=bundles,
                cache_resolver=CacheResolver(services),
                project_dir=project_dir,
            )

        logger.info(
            "Loaded %d service(s), %d alias(es), %d parameter(s)",
            len(graph.nodes), len(graph.aliases), len(graph.parameters),
        )
        return graph

    # ------------------------------------------------------------------
    # DBAL
    # ------------------------------------------------------------------

    def _load_dbal(self, dbal: Mapping[str, Any], graph: ServiceGraph) -> ResolvedConnections:
        resolver = ConnectionResolver()
        connections = resolver.resolve(dbal)

        for name, value in DBAL_PARAMETERS.items():
            graph.set_parameter(name, value)
        graph.set_parameter(f"{ROOT}.default_connection", connections.default_connection)
        graph.set_parameter(
            f"{ROOT}.connections",
            {descriptor.name: descriptor.service_id for descriptor in connections},
        )
        graph.set_parameter(f"{ROOT}.entity_managers", {})
        graph.set_parameter(f"{ROOT}.default_entity_manager", None)

        self._add(graph, ServiceNode(
            id=REGISTRY_ID,
            target_type=param(f"{ROOT}.registry.class"),
            args=(
                Reference(SERVICE_CONTAINER_ID),
                param(f"{ROOT}.connections"),
                param(f"{ROOT}.entity_managers"),
                param(f"{ROOT}.default_connection"),
                param(f"{ROOT}.default_entity_manager"),
            ),
            public=True,
        ))
        self._add(graph, ServiceNode(
            id=CONNECTION_FACTORY_ID,
            target_type=param(f"{ROOT}.dbal.connection_factory.class"),
        ))
        self._add(graph, ServiceNode(
            id=SQL_LOGGER_ID,
            target_type=param(f"{ROOT}.dbal.logger.class"),
        ))

        for descriptor in connections:
            for node in resolver.build_nodes(descriptor):
                self._add(graph, node)

        graph.set_alias(
            DATABASE_CONNECTION_ALIAS,
            connections.connections[connections.default_connection].service_id,
            public=True,
        )
        for alias_id, target in DBAL_AUTOWIRING_ALIASES.items():
            graph.set_alias(alias_id, target)
        return connections

    # ------------------------------------------------------------------
    # ORM
    # ------------------------------------------------------------------

    def _load_orm(
        self,
        orm: Mapping[str, Any],
        connections: ResolvedConnections,
        graph: ServiceGraph,
        *,
        bundles: Optional[Mapping[str, Any]],
        cache_resolver: CacheResolver,
        project_dir: Optional[Path],
    ) -> ResolvedManagers:
        managers = EntityManagerResolver().resolve(orm, connections)
        mappings = MappingResolver(bundles, project_dir).resolve({
            manager.name: {"mappings": manager.mappings, "auto_mapping": manager.auto_mapping}
            for manager in managers
        })

        for name, value in ORM_PARAMETERS.items():
            graph.set_parameter(name, value)
        graph.set_parameter(f"{ROOT}.orm.auto_generate_proxy_classes", managers.auto_generate_proxy_classes)
        if managers.proxy_dir is not None:
            graph.set_parameter(f"{ROOT}.orm.proxy_dir", managers.proxy_dir)
        if managers.proxy_namespace is not None:
            graph.set_parameter(f"{ROOT}.orm.proxy_namespace", managers.proxy_namespace)
        graph.set_parameter(f"{ROOT}.default_entity_manager", managers.default_entity_manager)
        graph.set_parameter(
            f"{ROOT}.entity_managers",
            {manager.name: entity_manager_id(manager.name) for manager in managers},
        )

        for strategy in _STRATEGIES:
            self._add(graph, ServiceNode(id=strategy, target_type=param(f"{strategy}.class")))

        for manager in managers:
            self._load_entity_manager(
                manager, mappings[manager.name], connections, graph, cache_resolver,
            )

        graph.set_alias(
            DEFAULT_ENTITY_MANAGER_ALIAS,
            entity_manager_id(managers.default_entity_manager),
            public=True,
        )
        for alias_id, target in ORM_AUTOWIRING_ALIASES.items():
            graph.set_alias(alias_id, target)
        return managers

    def _load_entity_manager(
        self,
        manager: EntityManagerDescriptor,
        mappings: ManagerMappings,
        connections: ResolvedConnections,
        graph: ServiceGraph,
        cache_resolver: CacheResolver,
    ) -> None:
        name = manager.name

        cache_aliases = {}
        for kind in CACHE_KINDS:
            resolved = cache_resolver.resolve(manager.cache_driver(kind), kind, name, defined=graph)
            for node in resolved.nodes:
                self._add_shared(graph, node)
            graph.set_alias(resolved.alias_id, resolved.service_id)
            cache_aliases[kind] = resolved.alias_id

        for node in mappings.build_nodes():
            self._add(graph, node)

        if manager.entity_listener_resolver:
            listener_resolver_id = manager.entity_listener_resolver
        else:
            listener_resolver_id = f"{ROOT}.orm.{name}_entity_listener_resolver"
            self._add(graph, ServiceNode(
                id=listener_resolver_id,
                target_type=param(f"{ROOT}.orm.entity_listener_resolver.class"),
                args=(Reference(SERVICE_CONTAINER_ID),),
            ))

        configuration = ServiceNode(
            id=orm_configuration_id(name),
            target_type=param(f"{ROOT}.orm.configuration.class"),
        )
        configuration = (
            configuration
            .with_call("set_entity_namespaces", mappings.namespaces)
            .with_call("set_metadata_cache_impl", Reference(cache_aliases["metadata"]))
            .with_call("set_query_cache_impl", Reference(cache_aliases["query"]))
            .with_call("set_result_cache_impl", Reference(cache_aliases["result"]))
            .with_call("set_metadata_driver_impl", Reference(metadata_driver_id(name)))
            .with_call("set_proxy_dir", param(f"{ROOT}.orm.proxy_dir"))
            .with_call("set_proxy_namespace", param(f"{ROOT}.orm.proxy_namespace"))
            .with_call("set_auto_generate_proxy_classes", param(f"{ROOT}.orm.auto_generate_proxy_classes"))
            .with_call("set_class_metadata_factory_name", manager.class_metadata_factory_name)
            .with_call("set_default_repository_class", manager.default_repository_class)
            .with_call("set_naming_strategy", Reference(manager.naming_strategy))
            .with_call("set_quote_strategy", Reference(manager.quote_strategy))
            .with_call("set_entity_listener_resolver", Reference(listener_resolver_id))
        )

        if manager.second_level_cache is not None:
            cache_configuration_id = self._load_second_level_cache(
                name, manager.second_level_cache, graph, cache_resolver,
            )
            configuration = (
                configuration
                .with_call("set_second_level_cache_enabled", True)
                .with_call("set_second_level_cache_configuration", Reference(cache_configuration_id))
            )
        self._add(graph, configuration)

        entity_manager_class = param(f"{ROOT}.orm.entity_manager.class")
        connection_service = connections.connections[manager.connection].service_id
        self._add(graph, ServiceNode(
            id=entity_manager_id(name),
            target_type=entity_manager_class,
            args=(Reference(connection_service), Reference(configuration.id)),
            public=True,
            factory=(entity_manager_class, "create"),
        ))
        graph.set_alias(f"{ROOT}.entity_manager.{name}", entity_manager_id(name))

    def _load_second_level_cache(
        self,
        name: str,
        config: SecondLevelCacheDescriptor,
        graph: ServiceGraph,
        cache_resolver: CacheResolver,
    ) -> str:
        """Emit region, factory and logger nodes; return the cache configuration id."""
        region_cache = cache_resolver.resolve(
            config.region_cache_driver, "region", name,
            alias_id=second_level_cache_id(name, "region_cache_driver"),
            cache_name="second_level_cache.region_cache",
            defined=graph,
        )
        for node in region_cache.nodes:
            self._add_shared(graph, node)
        graph.set_alias(region_cache.alias_id, region_cache.service_id)

        regions_configuration = self._add(graph, ServiceNode(
            id=second_level_cache_id(name, "regions_configuration"),
            target_type=param(f"{ROOT}.orm.second_level_cache.regions_configuration.class"),
            args=(config.region_lifetime, config.region_lock_lifetime),
        ))

        region_ids = []
        for region in config.regions:
            cache_alias = region_cache.alias_id
            if region.cache_driver is not None:
                resolved = cache_resolver.resolve(
                    region.cache_driver, f"region.{region.name}", name,
                    alias_id=second_level_cache_id(name, f"region.{region.name}.cache_driver"),
                    cache_name=f"second_level_cache.regions.{region.name}.cache",
                    defined=graph,
                )
                for node in resolved.nodes:
                    self._add_shared(graph, node)
                graph.set_alias(resolved.alias_id, resolved.service_id)
                cache_alias = resolved.alias_id

            default_region = ServiceNode.inline(
                param(f"{ROOT}.orm.second_level_cache.default_region.class"),
                region.name, Reference(cache_alias), region.lifetime,
            )
            if region.type == "filelock":
                node = ServiceNode(
                    id=second_level_cache_id(name, f"region.{region.name}"),
                    target_type=param(f"{ROOT}.orm.second_level_cache.filelock_region.class"),
                    args=(default_region, region.lock_path, region.lock_lifetime),
                )
            else:
                node = ServiceNode(
                    id=second_level_cache_id(name, f"region.{region.name}"),
                    target_type=default_region.target_type,
                    args=default_region.args,
                )
            region_ids.append(self._add(graph, node).id)

        factory = ServiceNode(
            id=second_level_cache_id(name, "default_cache_factory"),
            target_type=config.factory or param(f"{ROOT}.orm.second_level_cache.default_cache_factory.class"),
            args=(Reference(regions_configuration.id), Reference(region_cache.alias_id)),
        )
        for region_id in region_ids:
            factory = factory.with_call("set_region", Reference(region_id))
        self._add(graph, factory)

        cache_configuration = ServiceNode(
            id=second_level_cache_id(name, "cache_configuration"),
            target_type=param(f"{ROOT}.orm.second_level_cache.cache_configuration.class"),
        )
        cache_configuration = (
            cache_configuration
            .with_call("set_cache_factory", Reference(factory.id))
            .with_call("set_regions_configuration", Reference(regions_configuration.id))
        )

        if config.log_enabled:
            statistics = self._add(graph, ServiceNode(
                id=second_level_cache_id(name, "logger_statistics"),
                target_type=param(f"{ROOT}.orm.second_level_cache.logger_statistics.class"),
            ))
            chain = self._add(graph, ServiceNode(
                id=second_level_cache_id(name, "logger_chain"),
                target_type=param(f"{ROOT}.orm.second_level_cache.logger_chain.class"),
            ).with_call("set_logger", "statistics", Reference(statistics.id)))
            cache_configuration = cache_configuration.with_call("set_cache_logger", Reference(chain.id))

        self._add(graph, cache_configuration)
        return cache_configuration.id

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add(self, graph: ServiceGraph, node: ServiceNode) -> ServiceNode:
        graph.add(node)
        logger.debug("Registered service '%s' (%s)", node.id, node.target_type or "factory")
        return node

    def _add_shared(self, graph: ServiceGraph, node: ServiceNode) -> ServiceNode:
        """Add a node that several managers may emit identically (pools, built-ins)."""
        if graph.has_node(node.id):
            existing = graph.get_node(node.id)
            if existing != node:
                raise DuplicateServiceError(node.id)
            return existing
        return self._add(graph, node)


def load(
    fragments: Iterable[Optional[Mapping[str, Any]]],
    bundles: Optional[Mapping[str, Any]] = None,
    services: Optional[Collection[str]] = None,
    project_dir: Optional[Path] = None,
) -> ServiceGraph:
    """Shortcut for ``OrmExtension().load(...)``."""
    return OrmExtension().load(list(fragments), bundles=bundles, services=services, project_dir=project_dir)
