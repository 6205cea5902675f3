"""
Config system - layered configuration fragments with strict merging.

Fragments come from files, ``.env`` files, environment variables and
manual overrides; ``ConfigMerger`` folds them into one tree.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence
from pathlib import Path
import json
import logging
import os

from .dbal.connections import STRING_KEYS
from .faults import ValidationError

logger = logging.getLogger("ormbridge.config")


def _kind(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        return "map"
    if isinstance(value, (list, tuple)):
        return "sequence"
    return "scalar"


class ConfigMerger:
    """
    Merge ordered configuration fragments into one tree.

    Rules, applied key by key:
    - scalars: the latest fragment wins
    - maps: merged recursively, keys keep first-seen order
    - sequences: replaced by the latest non-empty occurrence
    - ``None`` is compatible with every kind and overrides when later

    Mixing kinds for one key (scalar vs map, map vs sequence, ...) raises
    ``ValidationError`` naming the key path.
    """

    def merge(self, fragments: Sequence[Optional[Mapping[str, Any]]]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for index, fragment in enumerate(fragments):
            if fragment is None:
                continue
            if not isinstance(fragment, Mapping):
                raise ValidationError(
                    "",
                    f"fragment #{index} must be a mapping, got {type(fragment).__name__}",
                )
            merged = self._merge_maps(merged, fragment, ())
        return merged

    def _merge_maps(self, target: Mapping[str, Any], source: Mapping[str, Any], path: tuple) -> Dict[str, Any]:
        result = {key: _copy(value) for key, value in target.items()}
        for key, value in source.items():
            if not isinstance(key, str):
                raise ValidationError(path, f"keys must be strings, got {key!r}")
            if key not in result:
                result[key] = _copy(value)
                continue
            result[key] = self._merge_values(result[key], value, path + (key,))
        return result

    def _merge_values(self, current: Any, incoming: Any, path: tuple) -> Any:
        current_kind = _kind(current)
        incoming_kind = _kind(incoming)

        if current_kind == "null" or incoming_kind == "null":
            return _copy(incoming)

        if current_kind != incoming_kind:
            raise ValidationError(
                path,
                f"cannot merge {incoming_kind} into {current_kind}",
            )

        if current_kind == "map":
            return self._merge_maps(current, incoming, path)
        if current_kind == "sequence":
            # Empty sequences never erase earlier entries
            return _copy(incoming) if incoming else current
        return incoming


def _copy(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _copy(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_copy(item) for item in value]
    return value


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files
    """

    def __init__(self, env_prefix: str = "ORMBRIDGE_"):
        self.env_prefix = env_prefix
        self.fragments: List[Dict[str, Any]] = []
        self.config_data: Dict[str, Any] = {}
        self._merger = ConfigMerger()

    @classmethod
    def load(
        cls,
        paths: Optional[List[str]] = None,
        env_prefix: str = "ORMBRIDGE_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Merge order (later overrides earlier):
        1. Config files (YAML or JSON, glob patterns supported)
        2. .env file (only keys carrying the prefix)
        3. Environment variables (ORMBRIDGE_* prefix)
        4. Manual overrides

        Args:
            paths: List of config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader.add_fragment(overrides, source="overrides")

        return loader

    def add_fragment(self, fragment: Optional[Mapping[str, Any]], source: str = "<memory>") -> None:
        """Append one fragment and re-merge."""
        if fragment is None:
            return
        if not isinstance(fragment, Mapping):
            raise ValidationError("", f"{source} must contain a mapping, got {type(fragment).__name__}")
        self.fragments.append(_copy(fragment))
        self.config_data = self._merger.merge(self.fragments)
        logger.debug("Merged configuration fragment from %s", source)

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matches = sorted(glob(pattern))
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ValidationError("", f"configuration file '{pattern}' does not exist")

        for path_str in matches:
            path = Path(path_str)

            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                logger.warning("Ignoring configuration file with unknown suffix: %s", path)

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as exc:
                raise ValidationError("", f"{path}: {exc}") from exc
        self.add_fragment(data, source=str(path))

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ValidationError("", f"{path}: {exc}") from exc
        if data:
            self.add_fragment(data, source=str(path))

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        from dotenv import dotenv_values

        env_path = Path(path)
        if not env_path.exists():
            return

        fragment: Dict[str, Any] = {}
        for key, value in dotenv_values(env_path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(fragment, key, value)
        if fragment:
            self.add_fragment(fragment, source=str(env_path))

    def _load_from_env(self):
        """Load config from environment variables."""
        fragment: Dict[str, Any] = {}
        for key, value in sorted(os.environ.items()):
            if key.startswith(self.env_prefix):
                self._set_nested(fragment, key, value)
        if fragment:
            self.add_fragment(fragment, source="environment")

    def _set_nested(self, target: Dict[str, Any], key: str, value: str):
        """Convert ORMBRIDGE_DBAL__CONNECTIONS__DEFAULT__HOST to nested dict."""
        key = key[len(self.env_prefix):]

        # Split by double underscore for nested keys
        parts = key.lower().split("__")

        current = target
        for depth, part in enumerate(parts[:-1]):
            existing = current.setdefault(part, {})
            if not isinstance(existing, dict):
                raise ValidationError(
                    parts[:depth + 1], f"{self.env_prefix}{key} nests under a scalar value",
                )
            current = existing

        leaf = parts[-1]
        if isinstance(current.get(leaf), dict):
            raise ValidationError(parts, f"{self.env_prefix}{key} sets a scalar where nested keys were given")
        # Text settings keep their raw form
        current[leaf] = value if leaf in STRING_KEYS else self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False
        if value.lower() in ("null", "~"):
            return None

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current: Any = self.config_data

        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return _copy(self.config_data)
