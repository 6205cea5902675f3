"""
Service graph and cycle detection.

``ServiceGraph`` is what a resolution produces: nodes keyed by id,
aliases and a flat parameter map. ``DependencyGraph`` turns node
references into labelled edges for cycle checks, DOT and tree exports.
"""

import difflib
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set

from .definitions import Alias, ServiceNode, _collect_references, _serialize
from .errors import (
    DependencyCycleError,
    DuplicateServiceError,
    MissingDependencyError,
    ParameterNotFoundError,
    ServiceNotFoundError,
)

_PARAM_RE = re.compile(r"%%|%([^%\s]+)%")
_WHOLE_PARAM_RE = re.compile(r"^%([^%\s]+)%$")


class ServiceGraph:
    """
    Named service graph emitted by a resolution.

    Nodes are immutable; the graph only accumulates them. Replacing a node
    (e.g. after appending method calls) must be explicit.
    """

    def __init__(self, parameters: Optional[Dict[str, Any]] = None):
        self.nodes: Dict[str, ServiceNode] = {}
        self.aliases: Dict[str, Alias] = {}
        self.parameters: Dict[str, Any] = dict(parameters or {})

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add(self, node: ServiceNode) -> ServiceNode:
        """Add a new node; ids are unique across nodes and aliases."""
        if node.id in self.nodes or node.id in self.aliases:
            raise DuplicateServiceError(node.id)
        self.nodes[node.id] = node
        return node

    def replace(self, node: ServiceNode) -> ServiceNode:
        """Swap an existing node for an updated copy."""
        if node.id not in self.nodes:
            raise ServiceNotFoundError(node.id, self._candidates(node.id))
        self.nodes[node.id] = node
        return node

    def has_node(self, service_id: str) -> bool:
        return service_id in self.nodes

    def get_node(self, service_id: str) -> ServiceNode:
        try:
            return self.nodes[service_id]
        except KeyError:
            raise ServiceNotFoundError(service_id, self._candidates(service_id)) from None

    def find_node(self, service_id: str) -> ServiceNode:
        """Get a node by id, following aliases."""
        return self.get_node(self.resolve_id(service_id))

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def set_alias(self, alias_id: str, target: str, public: bool = False) -> Alias:
        if alias_id in self.nodes:
            raise DuplicateServiceError(alias_id)
        alias = Alias(target=target, public=public)
        self.aliases[alias_id] = alias
        return alias

    def has_alias(self, alias_id: str) -> bool:
        return alias_id in self.aliases

    def get_alias(self, alias_id: str) -> Alias:
        try:
            return self.aliases[alias_id]
        except KeyError:
            raise ServiceNotFoundError(alias_id, self._candidates(alias_id)) from None

    def has(self, service_id: str) -> bool:
        return service_id in self.nodes or service_id in self.aliases

    def resolve_id(self, service_id: str) -> str:
        """Follow alias chains down to a node id."""
        seen: List[str] = []
        while service_id in self.aliases:
            if service_id in seen:
                raise DependencyCycleError(seen + [service_id])
            seen.append(service_id)
            service_id = self.aliases[service_id].target
        return service_id

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def set_parameter(self, name: str, value: Any) -> None:
        self.parameters[name] = value

    def has_parameter(self, name: str) -> bool:
        return name in self.parameters

    def get_parameter(self, name: str) -> Any:
        try:
            return self.parameters[name]
        except KeyError:
            raise ParameterNotFoundError(name) from None

    def resolve_value(self, value: Any, extra: Optional[Dict[str, Any]] = None) -> Any:
        """
        Replace ``%name%`` placeholders with parameter values.

        A string that is exactly one placeholder resolves to the raw value
        (keeping its type); embedded placeholders are formatted into the
        string. ``%%`` escapes a literal percent sign.

        Args:
            value: Scalar, string, list or dict to resolve
            extra: Host parameters (e.g. ``kernel.cache_dir``) consulted
                after the graph's own
        """
        params = dict(extra or {})
        params.update(self.parameters)
        return self._resolve(value, params, ())

    def _resolve(self, value: Any, params: Dict[str, Any], stack: tuple) -> Any:
        if isinstance(value, Mapping):
            return {key: self._resolve(item, params, stack) for key, item in value.items()}
        if isinstance(value, list):
            return [self._resolve(item, params, stack) for item in value]
        if isinstance(value, tuple):
            return tuple(self._resolve(item, params, stack) for item in value)
        if not isinstance(value, str):
            return value

        whole = _WHOLE_PARAM_RE.match(value)
        if whole:
            return self._lookup(whole.group(1), params, stack)

        def substitute(match: "re.Match") -> str:
            if match.group(0) == "%%":
                return "%"
            return str(self._lookup(match.group(1), params, stack))

        return _PARAM_RE.sub(substitute, value)

    def _lookup(self, name: str, params: Dict[str, Any], stack: tuple) -> Any:
        if name not in params:
            raise ParameterNotFoundError(name)
        if name in stack:
            raise DependencyCycleError(list(stack) + [name])
        return self._resolve(params[name], params, stack + (name,))

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def validate(self, external: Iterable[str] = ()) -> None:
        """
        Check every reference resolves and nodes form no cycle.

        Args:
            external: Ids the host container provides itself
                (``service_container``, cache pools, ...)

        Raises:
            MissingDependencyError: A node references an unknown id
            DependencyCycleError: Nodes reference each other in a loop
        """
        known = set(external)
        for node in self.nodes.values():
            for dep in node.references():
                if not self.has(dep) and dep not in known:
                    raise MissingDependencyError(node.id, dep)
        for alias_id, alias in self.aliases.items():
            if not self.has(alias.target) and alias.target not in known:
                raise MissingDependencyError(alias_id, alias.target)

        cycle = self.dependency_graph().find_cycle()
        if cycle:
            raise DependencyCycleError(cycle)

    def dependency_graph(self) -> "DependencyGraph":
        return DependencyGraph(self)

    def __iter__(self) -> Iterator[ServiceNode]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, service_id: str) -> bool:
        return self.has(service_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize nodes, aliases and parameters (emission order kept)."""
        return {
            "services": {sid: node.to_dict() for sid, node in self.nodes.items()},
            "aliases": {
                aid: {"target": alias.target, "public": alias.public}
                for aid, alias in self.aliases.items()
            },
            "parameters": _serialize(self.parameters),
        }

    def _candidates(self, service_id: str) -> List[str]:
        return difflib.get_close_matches(
            service_id, list(self.nodes) + list(self.aliases), n=3, cutoff=0.6
        )


@dataclass(frozen=True)
class Edge:
    """One reference held by a node."""
    source: str
    target: str
    # "arg", "factory" or the name of the setter carrying the reference
    via: str = "arg"
    # Id as written when the reference goes through an alias
    alias: Optional[str] = None


class DependencyGraph:
    """
    Reference edges between the nodes of a ServiceGraph.

    Each edge remembers where the reference sits (constructor argument,
    factory or setter call) and which alias it went through, so the
    exports show how the host container wires every service.
    """

    def __init__(self, graph: ServiceGraph):
        self.graph = graph
        self.edges: Dict[str, List[Edge]] = {
            node.id: self._edges_of(node) for node in graph
        }

    def _edges_of(self, node: ServiceNode) -> List[Edge]:
        sources: List[tuple] = [("arg", node.args)]
        if node.factory is not None:
            sources.append(("factory", node.factory))
        sources.extend((call.name, call.args) for call in node.method_calls)

        edges = []
        for via, value in sources:
            found: List[str] = []
            _collect_references(value, found)
            for ref in dict.fromkeys(found):
                edges.append(self._edge(node.id, ref, via))
        return edges

    def _edge(self, source: str, ref: str, via: str) -> Edge:
        if not self.graph.has_alias(ref):
            return Edge(source, ref, via)
        try:
            target = self.graph.resolve_id(ref)
        except DependencyCycleError:
            # Alias loops surface in validate()
            target = ref
        return Edge(source, target, via, alias=ref)

    def dependencies(self, service_id: str) -> List[str]:
        """Resolved ids of the nodes ``service_id`` references."""
        return [edge.target for edge in self.edges.get(service_id, ()) if edge.target in self.edges]

    def find_cycle(self) -> Optional[List[str]]:
        """
        First reference loop, walking nodes in emission order.

        Returns:
            Closed path such as ``["a", "b", "a"]``, or None
        """
        done: Set[str] = set()
        for start in self.edges:
            if start in done:
                continue
            path = [start]
            pending = [iter(self.dependencies(start))]
            while pending:
                dep = next(pending[-1], None)
                if dep is None:
                    pending.pop()
                    done.add(path.pop())
                elif dep in path:
                    return path[path.index(dep):] + [dep]
                elif dep not in done:
                    path.append(dep)
                    pending.append(iter(self.dependencies(dep)))
        return None

    def export_dot(self) -> str:
        """
        Export nodes, aliases and references as Graphviz DOT.

        Public nodes are filled, aliases are ellipses pointing at their
        target, setter and factory edges carry a label and references to
        ids outside the graph are dashed.
        """
        lines = [
            "digraph ServiceGraph {",
            "  rankdir=LR;",
            "  node [shape=box];",
        ]
        for service_id, node in self.graph.nodes.items():
            label = node.target_type or "<factory>"
            color = "lightblue" if node.public else "white"
            lines.append(f'  "{service_id}" [label="{service_id}\\n({label})" fillcolor="{color}" style=filled];')

        for alias_id, alias in self.graph.aliases.items():
            style = "solid" if alias.public else "dashed"
            lines.append(f'  "{alias_id}" [shape=ellipse style={style}];')
            lines.append(f'  "{alias_id}" -> "{alias.target}" [arrowhead=empty];')

        for edges in self.edges.values():
            for edge in edges:
                attrs = []
                if edge.via != "arg":
                    attrs.append(f'label="{edge.via}"')
                if not self.graph.has(edge.alias or edge.target):
                    attrs.append("style=dashed")
                suffix = f" [{' '.join(attrs)}]" if attrs else ""
                lines.append(f'  "{edge.source}" -> "{edge.alias or edge.target}"{suffix};')

        lines.append("}")
        return "\n".join(lines)

    def get_tree_view(self, root: Optional[str] = None) -> str:
        """
        Render references as an indented tree.

        Setter and factory references are prefixed with where they sit;
        references made through an alias read ``alias -> target``.

        Args:
            root: Start from this id (aliases are followed); None renders
                every node no other node references
        """
        if root is not None:
            roots = [self.graph.resolve_id(root)]
        else:
            referenced = {edge.target for edges in self.edges.values() for edge in edges}
            roots = [service_id for service_id in self.edges if service_id not in referenced]

        lines: List[str] = []
        for service_id in roots:
            lines.append(f"├── {self._describe(service_id)}")
            self._render_children(service_id, "│   ", {service_id}, lines)
        return "\n".join(lines)

    def _render_children(self, service_id: str, prefix: str, visiting: Set[str], lines: List[str]) -> None:
        edges = self.edges.get(service_id, [])
        for i, edge in enumerate(edges):
            is_last = i == len(edges) - 1
            label = self._describe(edge.target)
            if edge.alias:
                label = f"{edge.alias} -> {label}"
            if edge.via != "arg":
                label = f"{edge.via}: {label}"
            circular = edge.target in visiting
            if circular:
                label += " (circular)"
            lines.append(f"{prefix}{'└── ' if is_last else '├── '}{label}")
            if not circular and edge.target in self.edges:
                child_prefix = prefix + ("    " if is_last else "│   ")
                self._render_children(edge.target, child_prefix, visiting | {edge.target}, lines)

    def _describe(self, service_id: str) -> str:
        node = self.graph.nodes.get(service_id)
        if node is None:
            return f"{service_id} (external)"
        return f"{service_id} ({node.target_type or 'factory'})"
