"""
ormbridge faults - Domain-specific fault types.

Every fault raised while resolving a configuration tree is a
``ConfigFault``. The three concrete kinds map to how the input is wrong:

- ValidationError: structurally malformed or type-mismatched input
- ConfigurationError: semantically invalid references
- InvalidArgumentError: unrecognized enum value or cache type
"""

from typing import Any, Sequence, Union

from .core import Fault, FaultDomain


KeyPath = Union[str, Sequence[str]]


def format_path(path: KeyPath) -> str:
    """Render a key path as a dotted string (``dbal.connections.default``)."""
    if isinstance(path, str):
        return path
    return ".".join(str(part) for part in path if part != "")


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for faults about the configuration tree itself."""


class ValidationError(ConfigFault):
    """Configuration tree is structurally malformed or has a wrong type."""

    def __init__(self, path: KeyPath, reason: str, **kwargs):
        key = format_path(path)
        super().__init__(
            code="CONFIG_VALIDATION",
            message=f"Invalid configuration for path \"{key}\": {reason}" if key
            else f"Invalid configuration: {reason}",
            metadata={"path": key, "reason": reason, **kwargs.get("metadata", {})},
        )
        self.path = key
        self.reason = reason


class ConfigurationError(ConfigFault):
    """Configuration references something that does not exist or conflicts."""

    def __init__(self, message: str, *, path: KeyPath = "", **kwargs):
        key = format_path(path)
        super().__init__(
            code=kwargs.get("code", "CONFIG_INVALID_REFERENCE"),
            message=message,
            domain=kwargs.get("domain", FaultDomain.CONFIG),
            metadata={"path": key, **kwargs.get("metadata", {})},
        )
        self.path = key


class InvalidArgumentError(ConfigFault, ValueError):
    """A configured value is not one of the recognized choices."""

    def __init__(self, message: str, *, path: KeyPath = "", value: Any = None, **kwargs):
        key = format_path(path)
        super().__init__(
            code=kwargs.get("code", "CONFIG_INVALID_ARGUMENT"),
            message=message,
            domain=kwargs.get("domain", FaultDomain.CONFIG),
            metadata={"path": key, "value": value, **kwargs.get("metadata", {})},
        )
        self.path = key
        self.value = value


# ============================================================================
# CACHE Faults
# ============================================================================

class UnknownCacheTypeFault(InvalidArgumentError):
    """Cache spec names a type no backend exists for."""

    def __init__(self, cache_type: Any, cache_name: str, entity_manager: str):
        super().__init__(
            f'Unknown cache of type "{cache_type}" configured for cache '
            f'"{cache_name}" in entity manager "{entity_manager}"',
            path=("orm", "entity_managers", entity_manager, f"{cache_name}_driver"),
            value=cache_type,
            code="CACHE_TYPE_UNKNOWN",
            domain=FaultDomain.CACHE,
            metadata={"cache": cache_name, "entity_manager": entity_manager},
        )
        self.cache_type = cache_type
        self.cache_name = cache_name
        self.entity_manager = entity_manager


# ============================================================================
# MAPPING Faults
# ============================================================================

class MappingConflictFault(ConfigurationError):
    """A bundle is claimed by more than one entity manager."""

    def __init__(self, bundle: str, managers: Sequence[str]):
        super().__init__(
            f"Bundle \"{bundle}\" is mapped by more than one entity manager: "
            + ", ".join(f'"{name}"' for name in managers),
            path=("orm", "entity_managers", managers[-1], "mappings", bundle),
            code="MAPPING_CONFLICT",
            domain=FaultDomain.MAPPING,
            metadata={"bundle": bundle, "entity_managers": list(managers)},
        )
        self.bundle = bundle
        self.managers = list(managers)
