"""
Entity manager normalization.

Expands the ``orm`` section into fully defaulted entity manager
descriptors, validates their connection references and parses the
proxy generation mode and second-level cache settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..dbal.connections import ResolvedConnections
from ..faults import ConfigurationError, InvalidArgumentError, ValidationError
from ..parameters import DEFAULT_NAMING_STRATEGY, DEFAULT_QUOTE_STRATEGY, ROOT, param

logger = logging.getLogger("ormbridge.orm")

# Proxy generation modes
AUTOGENERATE_NEVER = 0
AUTOGENERATE_ALWAYS = 1
AUTOGENERATE_FILE_NOT_EXISTS = 2
AUTOGENERATE_EVAL = 3
AUTOGENERATE_FILE_NOT_EXISTS_OR_CHANGED = 4

PROXY_MODES = {
    "never": AUTOGENERATE_NEVER,
    "none": AUTOGENERATE_NEVER,
    "always": AUTOGENERATE_ALWAYS,
    "file_not_exists": AUTOGENERATE_FILE_NOT_EXISTS,
    "eval": AUTOGENERATE_EVAL,
    "file_not_exists_or_changed": AUTOGENERATE_FILE_NOT_EXISTS_OR_CHANGED,
}

MANAGER_KEYS = frozenset((
    "connection", "mappings", "auto_mapping",
    "metadata_cache_driver", "query_cache_driver", "result_cache_driver",
    "naming_strategy", "quote_strategy", "entity_listener_resolver",
    "class_metadata_factory_name", "default_repository_class",
    "second_level_cache",
))
_ORM_KEYS = frozenset((
    "default_entity_manager", "entity_managers",
    "auto_generate_proxy_classes", "proxy_dir", "proxy_namespace",
))

SECOND_LEVEL_CACHE_KEYS = frozenset((
    "enabled", "region_cache_driver", "region_lifetime", "region_lock_lifetime",
    "log_enabled", "factory", "regions",
))
REGION_KEYS = frozenset(("type", "lifetime", "lock_path", "lock_lifetime", "cache_driver"))
REGION_TYPES = ("default", "filelock")


def parse_proxy_mode(value: Any) -> Union[bool, int]:
    """
    Normalize ``auto_generate_proxy_classes``.

    Booleans and integers 0-4 are kept; mode names map to their integer.

    Raises:
        InvalidArgumentError: Unrecognized value
    """
    path = ("orm", "auto_generate_proxy_classes")
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if AUTOGENERATE_NEVER <= value <= AUTOGENERATE_FILE_NOT_EXISTS_OR_CHANGED:
            return value
    elif isinstance(value, str) and value.lower() in PROXY_MODES:
        return PROXY_MODES[value.lower()]
    raise InvalidArgumentError(
        f'Invalid auto generate mode "{value}" specified. '
        f"Expected a boolean, an integer between 0 and 4, or one of: {', '.join(PROXY_MODES)}",
        path=path,
        value=value,
    )


@dataclass(frozen=True)
class RegionDescriptor:
    """Named second-level cache region."""
    name: str
    type: str = "default"
    lifetime: int = 0
    lock_path: str = "%kernel.cache_dir%/ormbridge/orm/slc/filelock"
    lock_lifetime: int = 60
    cache_driver: Any = None


@dataclass(frozen=True)
class SecondLevelCacheDescriptor:
    """Second-level cache settings of one entity manager."""
    enabled: bool = True
    region_cache_driver: Any = None
    region_lifetime: int = 3600
    region_lock_lifetime: int = 60
    log_enabled: bool = True
    factory: Optional[str] = None
    regions: Tuple[RegionDescriptor, ...] = ()


@dataclass(frozen=True)
class EntityManagerDescriptor:
    """Fully defaulted entity manager configuration."""
    name: str
    connection: str
    mappings: Dict[str, Any] = field(default_factory=dict)
    auto_mapping: bool = False
    metadata_cache_driver: Any = None
    query_cache_driver: Any = None
    result_cache_driver: Any = None
    naming_strategy: str = DEFAULT_NAMING_STRATEGY
    quote_strategy: str = DEFAULT_QUOTE_STRATEGY
    entity_listener_resolver: Optional[str] = None
    class_metadata_factory_name: str = param(f"{ROOT}.orm.class_metadata_factory.class")
    default_repository_class: str = param(f"{ROOT}.orm.entity_repository.class")
    second_level_cache: Optional[SecondLevelCacheDescriptor] = None

    def cache_driver(self, kind: str) -> Any:
        return getattr(self, f"{kind}_cache_driver")


@dataclass(frozen=True)
class ResolvedManagers:
    """Ordered entity managers plus orm-wide proxy settings."""
    managers: Dict[str, EntityManagerDescriptor]
    default_entity_manager: str
    auto_generate_proxy_classes: Union[bool, int] = False
    proxy_dir: Optional[str] = None
    proxy_namespace: Optional[str] = None

    def __iter__(self):
        return iter(self.managers.values())

    def __contains__(self, name: str) -> bool:
        return name in self.managers


class EntityManagerResolver:
    """
    Expand the merged ``orm`` section.

    Without an ``entity_managers`` key, the manager keys at the ``orm``
    level describe one manager named after ``default_entity_manager``
    (or ``"default"``).
    """

    def resolve(self, orm: Mapping[str, Any], connections: ResolvedConnections) -> ResolvedManagers:
        orm = dict(orm or {})
        unknown = set(orm) - _ORM_KEYS - MANAGER_KEYS
        if unknown:
            raise ValidationError(("orm", sorted(unknown)[0]), "unrecognized option")

        explicit_default = orm.get("default_entity_manager")
        if explicit_default is not None and not isinstance(explicit_default, str):
            raise ValidationError(("orm", "default_entity_manager"), "must be a string")

        raw_managers = orm.get("entity_managers")
        if raw_managers is None:
            shorthand = {key: value for key, value in orm.items() if key in MANAGER_KEYS}
            raw_managers = {explicit_default or "default": shorthand}
        elif not isinstance(raw_managers, Mapping):
            raise ValidationError(("orm", "entity_managers"), "must be a map of entity manager name to options")
        else:
            stray = [key for key in orm if key in MANAGER_KEYS]
            if stray:
                raise ValidationError(
                    ("orm", stray[0]),
                    "entity manager options cannot be combined with \"entity_managers\"",
                )

        managers: Dict[str, EntityManagerDescriptor] = {}
        for name, options in raw_managers.items():
            managers[name] = self.resolve_manager(name, options, connections)

        if not managers:
            raise ConfigurationError(
                "At least one entity manager must be configured.",
                path=("orm", "entity_managers"),
            )

        if explicit_default is not None:
            if explicit_default not in managers:
                raise ConfigurationError(
                    f'The default entity manager "{explicit_default}" is not configured. '
                    f"Available entity managers: {', '.join(managers)}",
                    path=("orm", "default_entity_manager"),
                )
            default = explicit_default
        else:
            default = "default" if "default" in managers else next(iter(managers))

        proxy_mode = orm.get("auto_generate_proxy_classes")
        resolved = ResolvedManagers(
            managers=managers,
            default_entity_manager=default,
            auto_generate_proxy_classes=False if proxy_mode is None else parse_proxy_mode(proxy_mode),
            proxy_dir=self._optional_str(orm, "proxy_dir"),
            proxy_namespace=self._optional_str(orm, "proxy_namespace"),
        )
        logger.debug("Resolved %d entity manager(s), default '%s'", len(managers), default)
        return resolved

    def resolve_manager(
        self,
        name: str,
        options: Optional[Mapping[str, Any]],
        connections: ResolvedConnections,
    ) -> EntityManagerDescriptor:
        """Apply defaults to one entity manager and check its connection."""
        path = ("orm", "entity_managers", name)
        options = dict(options or {})
        unknown = set(options) - MANAGER_KEYS
        if unknown:
            raise ValidationError(path + (sorted(unknown)[0],), "unrecognized entity manager option")

        connection = options.pop("connection", None) or connections.default_connection
        if connection not in connections:
            raise ConfigurationError(
                f'Entity manager "{name}" uses connection "{connection}" which is not configured. '
                f"Available connections: {', '.join(connections.names())}",
                path=path + ("connection",),
            )

        auto_mapping = options.pop("auto_mapping", None)
        if auto_mapping is not None and not isinstance(auto_mapping, bool):
            raise ValidationError(path + ("auto_mapping",), "expected a boolean")

        mappings = options.pop("mappings", None) or {}
        if not isinstance(mappings, Mapping):
            raise ValidationError(path + ("mappings",), "mappings must be a map of bundle name to options")

        second_level_cache = self._second_level_cache(path, options.pop("second_level_cache", None))

        values = {key: value for key, value in options.items() if value is not None}
        for key in ("naming_strategy", "quote_strategy", "entity_listener_resolver",
                    "class_metadata_factory_name", "default_repository_class"):
            if key in values and not isinstance(values[key], str):
                raise ValidationError(path + (key,), "expected a string")

        return EntityManagerDescriptor(
            name=name,
            connection=connection,
            mappings=dict(mappings),
            auto_mapping=bool(auto_mapping),
            second_level_cache=second_level_cache,
            **values,
        )

    def _second_level_cache(self, path: tuple, raw: Any) -> Optional[SecondLevelCacheDescriptor]:
        if raw is None:
            return None
        path = path + ("second_level_cache",)
        if isinstance(raw, bool):
            raw = {"enabled": raw}
        if not isinstance(raw, Mapping):
            raise ValidationError(path, "expected a map")
        unknown = set(raw) - SECOND_LEVEL_CACHE_KEYS
        if unknown:
            raise ValidationError(path + (sorted(unknown)[0],), "unrecognized second-level cache option")

        enabled = raw.get("enabled", True)
        if not enabled:
            return None

        region_lifetime = self._int(path, raw, "region_lifetime", 3600)
        region_lock_lifetime = self._int(path, raw, "region_lock_lifetime", 60)

        regions = []
        for region_name, options in (raw.get("regions") or {}).items():
            region_path = path + ("regions", region_name)
            options = options or {}
            if not isinstance(options, Mapping):
                raise ValidationError(region_path, "expected a map")
            unknown = set(options) - REGION_KEYS
            if unknown:
                raise ValidationError(region_path + (sorted(unknown)[0],), "unrecognized region option")
            region_type = options.get("type") or "default"
            if region_type not in REGION_TYPES:
                raise InvalidArgumentError(
                    f'Unknown region type "{region_type}" for region "{region_name}". '
                    f"Expected one of: {', '.join(REGION_TYPES)}",
                    path=region_path + ("type",),
                    value=region_type,
                )
            regions.append(RegionDescriptor(
                name=region_name,
                type=region_type,
                lifetime=self._int(region_path, options, "lifetime", region_lifetime),
                lock_path=options.get("lock_path") or RegionDescriptor.lock_path,
                lock_lifetime=self._int(region_path, options, "lock_lifetime", region_lock_lifetime),
                cache_driver=options.get("cache_driver"),
            ))

        log_enabled = raw.get("log_enabled", True)
        if not isinstance(log_enabled, bool):
            raise ValidationError(path + ("log_enabled",), "expected a boolean")

        return SecondLevelCacheDescriptor(
            enabled=True,
            region_cache_driver=raw.get("region_cache_driver"),
            region_lifetime=region_lifetime,
            region_lock_lifetime=region_lock_lifetime,
            log_enabled=log_enabled,
            factory=raw.get("factory"),
            regions=tuple(regions),
        )

    @staticmethod
    def _int(path: tuple, raw: Mapping[str, Any], key: str, default: int) -> int:
        value = raw.get(key)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(path + (key,), "expected an integer")
        return value

    @staticmethod
    def _optional_str(raw: Mapping[str, Any], key: str) -> Optional[str]:
        value = raw.get(key)
        if value is not None and not isinstance(value, str):
            raise ValidationError(("orm", key), "expected a string")
        return value
