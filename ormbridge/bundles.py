"""
Bundle registry - the modules a host application declares.

Each bundle has a dotted namespace and a filesystem root. The registry is
an explicit, read-only, ordered map handed to the mapping resolver; its
order is the declaration order auto-mapping follows.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Iterable, Iterator, Mapping, Tuple, Union

from .faults import ValidationError


@dataclass(frozen=True)
class Bundle:
    """A declared module: name, dotted namespace and root directory."""
    name: str
    namespace: str
    path: Path

    def __post_init__(self):
        object.__setattr__(self, "path", Path(self.path))

    @property
    def entity_namespace(self) -> str:
        """Conventional namespace holding the bundle's entities."""
        return f"{self.namespace}.entity"


BundleSpec = Union[Bundle, str, Path, Tuple[str, Union[str, Path]]]


class BundleRegistry(Mapping[str, Bundle]):
    """Ordered, read-only name -> Bundle map."""

    def __init__(self, bundles: Union[Mapping[str, BundleSpec], Iterable[Bundle], None] = None):
        items: dict[str, Bundle] = {}
        if isinstance(bundles, Mapping):
            for name, spec in bundles.items():
                if isinstance(spec, Bundle):
                    items[name] = spec
                elif isinstance(spec, (str, PurePath)):
                    # Bare root: the bundle name doubles as its namespace
                    items[name] = Bundle(name=name, namespace=name, path=Path(spec))
                elif isinstance(spec, (tuple, list)) and len(spec) == 2:
                    namespace, path = spec
                    items[name] = Bundle(name=name, namespace=namespace, path=Path(path))
                else:
                    raise ValidationError(
                        ("bundles", name), f"expected a Bundle, a root path or (namespace, path), got {spec!r}",
                    )
        elif bundles is not None:
            for bundle in bundles:
                items[bundle.name] = bundle
        self._bundles = items

    @classmethod
    def from_specs(cls, specs: Iterable[str]) -> "BundleRegistry":
        """
        Parse ``NAME=NAMESPACE:PATH`` strings (CLI form).

        Example:
            >>> BundleRegistry.from_specs(["Blog=app.blog:src/blog"])
        """
        bundles = []
        for spec in specs:
            name, sep, rest = spec.partition("=")
            namespace, sep2, path = rest.partition(":")
            if not sep or not sep2 or not name or not namespace or not path:
                raise ValidationError("bundles", f"expected NAME=NAMESPACE:PATH, got {spec!r}")
            bundles.append(Bundle(name=name, namespace=namespace, path=Path(path)))
        return cls(bundles)

    def __getitem__(self, name: str) -> Bundle:
        return self._bundles[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._bundles)

    def __len__(self) -> int:
        return len(self._bundles)

    def __repr__(self) -> str:
        return f"BundleRegistry({list(self._bundles)})"
