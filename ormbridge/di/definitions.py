"""
Service definition value types.

A resolved configuration is expressed as immutable service nodes that
reference each other by id. Nodes are created once during resolution and
never mutated afterwards; "adding" a method call produces a new node.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True, slots=True)
class Reference:
    """Reference to another service (node or alias) by id."""
    id: str

    def __str__(self) -> str:
        return self.id


@dataclass(frozen=True, slots=True)
class Alias:
    """Alternative id pointing at another service."""
    target: str
    public: bool = False

    def __str__(self) -> str:
        return self.target


@dataclass(frozen=True, slots=True)
class MethodCall:
    """Setter call applied to a service after construction."""
    name: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "args", freeze(self.args))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "args": [_serialize(arg) for arg in self.args]}


@dataclass(frozen=True, slots=True)
class ServiceNode:
    """
    Compact, serializable service definition.

    Attributes:
        id: Unique service id ("" for inline nodes used as arguments)
        target_type: Dotted type name or ``%parameter%``; None lets the
            factory decide
        args: Ordered constructor arguments
        method_calls: Ordered setter calls
        public: Whether the host container exposes the id
        factory: ``(factory, method)`` pair; factory is a Reference or a
            type name
        tags: Free-form tags for the host container
    """
    id: str
    target_type: Optional[str] = None
    args: Tuple[Any, ...] = ()
    method_calls: Tuple[MethodCall, ...] = ()
    public: bool = False
    factory: Optional[Tuple[Any, str]] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Nested maps and sequences become read-only copies
        object.__setattr__(self, "args", freeze(self.args))

    @classmethod
    def inline(cls, target_type: str, *args: Any) -> "ServiceNode":
        """Anonymous node passed as an argument of another node."""
        return cls(id="", target_type=target_type, args=tuple(args))

    def with_call(self, name: str, *args: Any) -> "ServiceNode":
        """Return a copy with one more method call appended."""
        return replace(self, method_calls=self.method_calls + (MethodCall(name, tuple(args)),))

    def with_args(self, *args: Any) -> "ServiceNode":
        return replace(self, args=tuple(args))

    def with_target_type(self, target_type: Optional[str]) -> "ServiceNode":
        return replace(self, target_type=target_type)

    def calls_named(self, name: str) -> Tuple[MethodCall, ...]:
        """All method calls with the given name, in order."""
        return tuple(call for call in self.method_calls if call.name == name)

    def references(self) -> Tuple[str, ...]:
        """Ids of every service referenced by args, calls and factory."""
        found: list[str] = []
        _collect_references(self.args, found)
        for call in self.method_calls:
            _collect_references(call.args, found)
        if self.factory is not None:
            _collect_references(self.factory, found)
        return tuple(dict.fromkeys(found))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON dumps."""
        return {
            "id": self.id,
            "class": self.target_type,
            "arguments": [_serialize(arg) for arg in self.args],
            "calls": [call.to_dict() for call in self.method_calls],
            "public": self.public,
            "factory": _serialize(list(self.factory)) if self.factory else None,
            "tags": list(self.tags),
        }


def freeze(value: Any) -> Any:
    """Read-only copy of a value: maps become proxies, sequences tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def _collect_references(value: Any, found: list) -> None:
    if isinstance(value, Reference):
        found.append(value.id)
    elif isinstance(value, ServiceNode):
        # Inline nodes contribute their own references
        found.extend(value.references())
    elif isinstance(value, Mapping):
        for item in value.values():
            _collect_references(item, found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_references(item, found)


def _serialize(value: Any) -> Any:
    if isinstance(value, Reference):
        return {"$ref": value.id}
    if isinstance(value, ServiceNode):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value
