"""
ormbridge ORM layer - entity managers, their caches and mapping drivers.
"""

from .cache import (
    CACHE_KINDS,
    ArrayCacheSpec,
    BuiltinCacheSpec,
    CacheResolver,
    CacheSpec,
    PoolCacheSpec,
    ResolvedCache,
    ServiceCacheSpec,
    parse_cache_spec,
)
from .managers import (
    EntityManagerDescriptor,
    EntityManagerResolver,
    RegionDescriptor,
    ResolvedManagers,
    SecondLevelCacheDescriptor,
    parse_proxy_mode,
)
from .mapping import (
    ManagerMappings,
    MappingResolver,
    ResolvedMapping,
)

__all__ = [
    "CACHE_KINDS",
    "ArrayCacheSpec",
    "BuiltinCacheSpec",
    "CacheResolver",
    "CacheSpec",
    "PoolCacheSpec",
    "ResolvedCache",
    "ServiceCacheSpec",
    "parse_cache_spec",
    "EntityManagerDescriptor",
    "EntityManagerResolver",
    "RegionDescriptor",
    "ResolvedManagers",
    "SecondLevelCacheDescriptor",
    "parse_proxy_mode",
    "ManagerMappings",
    "MappingResolver",
    "ResolvedMapping",
]
