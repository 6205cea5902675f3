"""
ORM cache backend selection.

Each entity manager has three independent cache roles (metadata, query,
result) plus the second-level region cache. A raw cache setting is parsed
into a closed ``CacheSpec`` variant and then matched explicitly to the
service nodes that back it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Collection, Mapping, Optional, Tuple, Union

from ..di.definitions import Reference, ServiceNode
from ..faults import ConfigurationError, UnknownCacheTypeFault, ValidationError
from ..parameters import ROOT, cache_alias_id, param

logger = logging.getLogger("ormbridge.orm.cache")

CACHE_KINDS = ("metadata", "query", "result")

# Legacy literal types backed by one shared built-in service each
BUILTIN_CACHE_TYPES = ("array", "apcu", "filesystem", "php_files")

_FILE_BACKED = ("filesystem", "php_files")
_SPEC_KEYS = frozenset(("type", "pool", "id"))


# ============================================================================
# CacheSpec variants
# ============================================================================

@dataclass(frozen=True)
class ArrayCacheSpec:
    """Process-local cache private to one entity manager and role."""


@dataclass(frozen=True)
class PoolCacheSpec:
    """Existing cache pool, wrapped in a provider for adapter compatibility."""
    pool: str


@dataclass(frozen=True)
class ServiceCacheSpec:
    """Existing cache service used as-is."""
    service_id: str


@dataclass(frozen=True)
class BuiltinCacheSpec:
    """Shared built-in backend selected by a legacy type name."""
    type: str


CacheSpec = Union[ArrayCacheSpec, PoolCacheSpec, ServiceCacheSpec, BuiltinCacheSpec]


def parse_cache_spec(raw: Any, cache_name: str, entity_manager: str) -> CacheSpec:
    """
    Parse a raw cache setting.

    Accepts ``None``, a type string, or a map with ``type`` and the key the
    type needs (``pool`` or ``id``).

    Raises:
        ValidationError: Malformed setting or missing required key
        UnknownCacheTypeFault: Type is not recognized
    """
    path = ("orm", "entity_managers", entity_manager, f"{cache_name}_driver")

    if raw is None:
        return ArrayCacheSpec()
    if isinstance(raw, str):
        raw = {"type": raw}
    if not isinstance(raw, Mapping):
        raise ValidationError(path, f"expected a cache type or a map, got {type(raw).__name__}")

    unknown = set(raw) - _SPEC_KEYS
    if unknown:
        raise ValidationError(path + (sorted(unknown)[0],), "unrecognized cache option")

    cache_type = raw.get("type")
    if cache_type is None:
        return ArrayCacheSpec()
    if cache_type == "pool":
        pool = raw.get("pool")
        if not isinstance(pool, str) or not pool:
            raise ValidationError(path + ("pool",), 'cache type "pool" requires a "pool" name')
        return PoolCacheSpec(pool=pool)
    if cache_type == "service":
        service_id = raw.get("id")
        if not isinstance(service_id, str) or not service_id:
            raise ValidationError(path + ("id",), 'cache type "service" requires a service "id"')
        return ServiceCacheSpec(service_id=service_id)
    if cache_type in BUILTIN_CACHE_TYPES:
        return BuiltinCacheSpec(type=cache_type)

    raise UnknownCacheTypeFault(cache_type, cache_name, entity_manager)


# ============================================================================
# Resolution
# ============================================================================

@dataclass(frozen=True)
class ResolvedCache:
    """
    Outcome of resolving one cache role.

    ``service_id`` is what the role alias points at; ``backend_id`` is the
    unwrapped backend (equal to ``service_id`` unless wrapped).
    """
    entity_manager: str
    kind: str
    spec: CacheSpec
    alias_id: str
    service_id: str
    backend_id: str
    nodes: Tuple[ServiceNode, ...] = ()

    @property
    def wrapped(self) -> bool:
        return self.service_id != self.backend_id


class CacheResolver:
    """
    Map cache specs to backing service nodes.

    Args:
        known_services: Host-provided service ids. When given, ``pool`` and
            ``service`` references must name one of them (or a node already
            in the graph being built); when None, the host validates later.
    """

    def __init__(self, known_services: Optional[Collection[str]] = None):
        self.known_services = None if known_services is None else frozenset(known_services)

    def resolve(
        self,
        raw: Any,
        kind: str,
        entity_manager: str,
        *,
        alias_id: Optional[str] = None,
        cache_name: Optional[str] = None,
        defined: Collection[str] = (),
    ) -> ResolvedCache:
        """
        Resolve one cache role of one entity manager.

        Args:
            raw: Raw cache setting from configuration
            kind: "metadata", "query", "result" or another role name
            entity_manager: Owning entity manager name
            alias_id: Role alias (defaults to ``<em>_<kind>_cache``)
            cache_name: Name used in error messages (``<kind>_cache``)
            defined: Ids already present in the graph
        """
        cache_name = cache_name or f"{kind}_cache"
        spec = parse_cache_spec(raw, cache_name, entity_manager)
        nodes: list[ServiceNode] = []

        if isinstance(spec, ArrayCacheSpec):
            pool_id = f"cache.{ROOT}.orm.{entity_manager}.{kind}"
            nodes.append(ServiceNode(
                id=pool_id,
                target_type=param(f"{ROOT}.orm.cache.array_adapter.class"),
            ))
            backend = self._provider_node(pool_id)
            nodes.append(backend)
            backend_id = backend.id
        elif isinstance(spec, PoolCacheSpec):
            self._check_known(spec.pool, "pool", cache_name, entity_manager, defined)
            backend = self._provider_node(spec.pool)
            nodes.append(backend)
            backend_id = backend.id
        elif isinstance(spec, ServiceCacheSpec):
            self._check_known(spec.service_id, "service", cache_name, entity_manager, defined)
            backend_id = spec.service_id
        elif isinstance(spec, BuiltinCacheSpec):
            backend = self._builtin_node(spec.type)
            nodes.append(backend)
            backend_id = backend.id
        else:
            raise TypeError(f"Unsupported cache spec {spec!r}")

        service_id = backend_id
        if kind == "metadata":
            wrapper = self._compiled_array_node(backend_id, entity_manager)
            nodes.append(wrapper)
            service_id = wrapper.id

        resolved = ResolvedCache(
            entity_manager=entity_manager,
            kind=kind,
            spec=spec,
            alias_id=alias_id or cache_alias_id(entity_manager, kind),
            service_id=service_id,
            backend_id=backend_id,
            nodes=tuple(nodes),
        )
        logger.debug(
            "Cache '%s' of entity manager '%s' -> %s (%s)",
            kind, entity_manager, service_id, type(spec).__name__,
        )
        return resolved

    def _check_known(self, service_id: str, label: str, cache_name: str, entity_manager: str, defined: Collection[str]):
        if self.known_services is None:
            return
        if service_id in self.known_services or service_id in defined:
            return
        raise ConfigurationError(
            f'Cache {label} "{service_id}" configured for cache "{cache_name}" '
            f'in entity manager "{entity_manager}" does not exist',
            path=("orm", "entity_managers", entity_manager, f"{cache_name}_driver"),
            metadata={"service_id": service_id},
        )

    def _provider_node(self, pool_id: str) -> ServiceNode:
        return ServiceNode(
            id=f"{ROOT}.orm.cache.provider.{pool_id}",
            target_type=param(f"{ROOT}.orm.cache.provider.class"),
            args=(Reference(pool_id),),
        )

    def _builtin_node(self, cache_type: str) -> ServiceNode:
        args: tuple = ()
        if cache_type in _FILE_BACKED:
            args = (f"%kernel.cache_dir%/{ROOT}/orm/{cache_type}",)
        return ServiceNode(
            id=f"{ROOT}.orm.cache.{cache_type}",
            target_type=param(f"{ROOT}.orm.cache.{cache_type}.class"),
            args=args,
        )

    def _compiled_array_node(self, backend_id: str, entity_manager: str) -> ServiceNode:
        """File-backed compiled-array layer in front of a metadata backend."""
        path = f"%kernel.cache_dir%/{ROOT}/orm/{entity_manager}_metadata.cache"
        adapter = ServiceNode.inline(
            param(f"{ROOT}.orm.cache.compiled_array.class"),
            path,
            ServiceNode.inline(param(f"{ROOT}.orm.cache.provider_adapter.class"), Reference(backend_id)),
        )
        return ServiceNode(
            id=f"cache.{ROOT}.orm.{entity_manager}.metadata.compiled_array",
            target_type=param(f"{ROOT}.orm.cache.provider.class"),
            args=(adapter,),
        )
