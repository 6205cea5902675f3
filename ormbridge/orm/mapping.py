"""
Metadata mapping resolution.

Decides which bundle directories each entity manager reads mapping
metadata from, and with which driver (annotation, xml, yml, php).

Resolution rules:
- explicit ``mappings`` entries always win;
- the single entity manager with ``auto_mapping`` gets every registered
  bundle no other manager claims, in registry order;
- a bundle mapping without a type is detected by probing the bundle's
  conventional sub-paths (xml files, then yml files, then the entity
  package for annotations);
- alias defaults to the bundle name, prefix to ``<namespace>.entity``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..bundles import Bundle, BundleRegistry
from ..di.definitions import MethodCall, Reference, ServiceNode
from ..faults import ConfigurationError, InvalidArgumentError, MappingConflictFault, ValidationError
from ..parameters import ANNOTATION_READER_ID, ROOT, metadata_driver_id, param

logger = logging.getLogger("ormbridge.orm.mapping")

DRIVER_TYPES = ("annotation", "xml", "yml", "php")
_TYPE_ALIASES = {"yaml": "yml"}
MAPPING_KEYS = frozenset(("type", "dir", "prefix", "alias", "is_bundle", "mapping"))

# Conventional locations inside a bundle root
CONFIG_SUBDIR = Path("resources") / "config" / "orm"
ENTITY_SUBDIR = Path("entity")

_FILE_PATTERNS = {
    "xml": ("*.orm.xml",),
    "yml": ("*.orm.yml", "*.orm.yaml"),
}


@dataclass(frozen=True)
class MappingDescriptor:
    """Normalized mapping entry, before directory resolution."""
    name: str
    type: Optional[str] = None
    dir: Optional[str] = None
    prefix: Optional[str] = None
    alias: Optional[str] = None
    is_bundle: Optional[bool] = None
    auto: bool = False


@dataclass(frozen=True)
class ResolvedMapping:
    """Mapping with a concrete driver type and directory."""
    name: str
    type: str
    dir: Path
    prefix: str
    alias: str
    is_bundle: bool = True
    auto: bool = False


@dataclass(frozen=True)
class ManagerMappings:
    """All resolved mappings of one entity manager, in declaration order."""
    entity_manager: str
    mappings: Tuple[ResolvedMapping, ...] = ()

    @property
    def namespaces(self) -> Dict[str, str]:
        """Alias -> entity namespace map."""
        return {mapping.alias: mapping.prefix for mapping in self.mappings}

    def driver_types(self) -> List[str]:
        """Driver types in first-use order."""
        return list(dict.fromkeys(mapping.type for mapping in self.mappings))

    def driver_calls(self) -> Tuple[MethodCall, ...]:
        """``add_driver(driver, namespace)`` calls for the driver chain."""
        return tuple(
            MethodCall("add_driver", (
                Reference(metadata_driver_id(self.entity_manager, mapping.type)),
                mapping.prefix,
            ))
            for mapping in self.mappings
        )

    def build_nodes(self) -> List[ServiceNode]:
        """Driver chain node followed by one node per driver type."""
        chain = ServiceNode(
            id=metadata_driver_id(self.entity_manager),
            target_type=param(f"{ROOT}.orm.metadata.driver_chain.class"),
            method_calls=self.driver_calls(),
        )
        nodes = [chain]
        for driver_type in self.driver_types():
            mappings = [m for m in self.mappings if m.type == driver_type]
            if driver_type == "annotation":
                args: tuple = (Reference(ANNOTATION_READER_ID), [str(m.dir) for m in mappings])
            elif driver_type == "php":
                args = ([str(m.dir) for m in mappings],)
            else:
                args = ({str(m.dir): m.prefix for m in mappings},)
            nodes.append(ServiceNode(
                id=metadata_driver_id(self.entity_manager, driver_type),
                target_type=param(f"{ROOT}.orm.metadata.{driver_type}.class"),
                args=args,
            ))
        return nodes


class MappingResolver:
    """
    Assign bundle mappings to entity managers.

    Args:
        bundles: Read-only name -> Bundle map supplied by the host
        project_dir: Base for relative ``dir`` of non-bundle mappings
    """

    def __init__(self, bundles: Optional[Mapping[str, Bundle]] = None, project_dir: Optional[Path] = None):
        if not isinstance(bundles, BundleRegistry):
            bundles = BundleRegistry(bundles)
        self.bundles: Mapping[str, Bundle] = bundles
        self.project_dir = Path(project_dir) if project_dir is not None else None

    def resolve(self, managers: Mapping[str, Mapping[str, Any]]) -> Dict[str, ManagerMappings]:
        """
        Resolve mappings for every entity manager.

        Args:
            managers: Entity manager name -> {"mappings": ..., "auto_mapping": bool}

        Raises:
            ConfigurationError: auto_mapping on several managers, a bundle
                claimed twice, unknown bundle or missing directory
        """
        declared: Dict[str, List[MappingDescriptor]] = {
            name: self._normalize(name, options.get("mappings"))
            for name, options in managers.items()
        }

        auto_managers = [name for name, options in managers.items() if options.get("auto_mapping")]
        if len(auto_managers) > 1:
            raise ConfigurationError(
                'You cannot enable "auto_mapping" on more than one entity manager at the same time '
                f"(found on: {', '.join(auto_managers)}).",
                path=("orm", "entity_managers", auto_managers[1], "auto_mapping"),
            )

        claimed: Dict[str, str] = {}
        for manager, descriptors in declared.items():
            for descriptor in descriptors:
                if not descriptor.is_bundle:
                    continue
                if descriptor.name in claimed:
                    raise MappingConflictFault(descriptor.name, [claimed[descriptor.name], manager])
                claimed[descriptor.name] = manager

        if auto_managers:
            manager = auto_managers[0]
            for bundle_name in self.bundles:
                if bundle_name not in claimed:
                    declared[manager].append(
                        MappingDescriptor(name=bundle_name, is_bundle=True, auto=True)
                    )
                    claimed[bundle_name] = manager

        result: Dict[str, ManagerMappings] = {}
        for manager, descriptors in declared.items():
            resolved: List[ResolvedMapping] = []
            aliases: Dict[str, str] = {}
            for descriptor in descriptors:
                mapping = self._resolve_descriptor(manager, descriptor)
                if mapping is None:
                    continue
                if mapping.alias in aliases:
                    raise ConfigurationError(
                        f'Alias "{mapping.alias}" is used by mappings "{aliases[mapping.alias]}" '
                        f'and "{mapping.name}" in entity manager "{manager}"',
                        path=("orm", "entity_managers", manager, "mappings", mapping.name, "alias"),
                    )
                aliases[mapping.alias] = mapping.name
                resolved.append(mapping)
            result[manager] = ManagerMappings(entity_manager=manager, mappings=tuple(resolved))
            logger.debug(
                "Entity manager '%s' maps: %s",
                manager, ", ".join(f"{m.name}({m.type})" for m in resolved) or "<nothing>",
            )
        return result

    def _normalize(self, manager: str, raw: Any) -> List[MappingDescriptor]:
        path = ("orm", "entity_managers", manager, "mappings")
        if raw is None:
            return []
        if not isinstance(raw, Mapping):
            raise ValidationError(path, "mappings must be a map of bundle name to options")

        descriptors = []
        for name, options in raw.items():
            entry_path = path + (name,)
            if options is None:
                options = {}
            if isinstance(options, bool):
                options = {"mapping": options}
            if not isinstance(options, Mapping):
                raise ValidationError(entry_path, "mapping options must be a map")
            unknown = set(options) - MAPPING_KEYS
            if unknown:
                raise ValidationError(entry_path + (sorted(unknown)[0],), "unrecognized mapping option")
            if options.get("mapping", True) is False:
                continue

            mapping_type = options.get("type")
            if mapping_type is not None:
                mapping_type = _TYPE_ALIASES.get(mapping_type, mapping_type)
                if mapping_type == "auto":
                    mapping_type = None
                elif mapping_type not in DRIVER_TYPES:
                    raise InvalidArgumentError(
                        f'Unknown mapping type "{options.get("type")}" for mapping "{name}" '
                        f'in entity manager "{manager}". '
                        f"Expected one of: {', '.join(DRIVER_TYPES + ('auto',))}",
                        path=entry_path + ("type",),
                        value=options.get("type"),
                    )

            is_bundle = options.get("is_bundle")
            if is_bundle is None:
                is_bundle = name in self.bundles
            elif is_bundle and name not in self.bundles:
                raise ConfigurationError(
                    f'Bundle "{name}" does not exist or it is not enabled.',
                    path=entry_path,
                )

            if not is_bundle:
                missing = [key for key, value in (("type", mapping_type), ("dir", options.get("dir")),
                                                  ("prefix", options.get("prefix"))) if not value]
                if missing and options.get("is_bundle") is None and not options.get("dir"):
                    # Looks like a bundle reference, not a plain directory mapping
                    raise ConfigurationError(
                        f'Bundle "{name}" does not exist or it is not enabled.',
                        path=entry_path,
                    )
                if missing:
                    raise ValidationError(
                        entry_path + (missing[0],),
                        'mappings outside a bundle require "type", "dir" and "prefix"',
                    )

            descriptors.append(MappingDescriptor(
                name=name,
                type=mapping_type,
                dir=options.get("dir"),
                prefix=options.get("prefix"),
                alias=options.get("alias"),
                is_bundle=bool(is_bundle),
            ))
        return descriptors

    def _resolve_descriptor(self, manager: str, descriptor: MappingDescriptor) -> Optional[ResolvedMapping]:
        path = ("orm", "entity_managers", manager, "mappings", descriptor.name)

        if not descriptor.is_bundle:
            directory = Path(descriptor.dir)
            if not directory.is_absolute() and self.project_dir is not None:
                directory = self.project_dir / directory
            self._require_dir(directory, path)
            return ResolvedMapping(
                name=descriptor.name,
                type=descriptor.type,
                dir=directory,
                prefix=descriptor.prefix,
                alias=descriptor.alias or descriptor.name,
                is_bundle=False,
            )

        bundle = self.bundles[descriptor.name]
        if descriptor.dir:
            directory = Path(descriptor.dir)
            if not directory.is_absolute():
                directory = bundle.path / directory
            self._require_dir(directory, path + ("dir",))
            mapping_type = descriptor.type or self._detect_in(directory)
        elif descriptor.type:
            mapping_type = descriptor.type
            directory = bundle.path / (ENTITY_SUBDIR if mapping_type == "annotation" else CONFIG_SUBDIR)
            self._require_dir(directory, path)
        else:
            detected = self.detect(bundle)
            if detected is None:
                log = logger.debug if descriptor.auto else logger.warning
                log(
                    "No mapping information found for bundle '%s' (entity manager '%s'); skipped",
                    bundle.name, manager,
                )
                return None
            mapping_type, directory = detected

        if mapping_type is None:
            raise ConfigurationError(
                f'Could not detect the mapping type of "{directory}" for bundle "{bundle.name}" '
                f'in entity manager "{manager}"; set "type" explicitly.',
                path=path + ("type",),
            )

        return ResolvedMapping(
            name=descriptor.name,
            type=mapping_type,
            dir=directory,
            prefix=descriptor.prefix or bundle.entity_namespace,
            alias=descriptor.alias or bundle.name,
            is_bundle=True,
            auto=descriptor.auto,
        )

    def detect(self, bundle: Bundle) -> Optional[Tuple[str, Path]]:
        """Probe a bundle's conventional sub-paths: xml, then yml, then annotation."""
        config_dir = bundle.path / CONFIG_SUBDIR
        found = self._detect_files(config_dir)
        if found is not None:
            return found, config_dir
        entity_dir = bundle.path / ENTITY_SUBDIR
        if entity_dir.is_dir():
            return "annotation", entity_dir
        return None

    def _detect_in(self, directory: Path) -> Optional[str]:
        found = self._detect_files(directory)
        if found is not None:
            return found
        return "annotation" if any(directory.glob("*.py")) else None

    def _detect_files(self, directory: Path) -> Optional[str]:
        if not directory.is_dir():
            return None
        for driver_type in ("xml", "yml"):
            for pattern in _FILE_PATTERNS[driver_type]:
                if any(directory.glob(pattern)):
                    return driver_type
        return None

    def _require_dir(self, directory: Path, path: tuple) -> None:
        if not directory.is_dir():
            raise ConfigurationError(
                f'Specified non-existing directory "{directory}" as mapping source.',
                path=path,
                metadata={"dir": str(directory)},
            )
