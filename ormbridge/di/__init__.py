"""
ormbridge service graph primitives.

Immutable service nodes, references and aliases, plus the graph that
collects them and the analysis used to validate it.
"""

from .definitions import (
    Alias,
    MethodCall,
    Reference,
    ServiceNode,
)

from .graph import (
    DependencyGraph,
    Edge,
    ServiceGraph,
)

from .errors import (
    GraphError,
    DuplicateServiceError,
    ServiceNotFoundError,
    ParameterNotFoundError,
    MissingDependencyError,
    DependencyCycleError,
)

__all__ = [
    "Alias",
    "MethodCall",
    "Reference",
    "ServiceNode",
    "DependencyGraph",
    "Edge",
    "ServiceGraph",
    "GraphError",
    "DuplicateServiceError",
    "ServiceNotFoundError",
    "ParameterNotFoundError",
    "MissingDependencyError",
    "DependencyCycleError",
]
