"""
Graph-specific error types with rich diagnostics.
"""

from typing import List, Optional

from ..faults.core import Fault, FaultDomain


class GraphError(Fault):
    """Base exception for service graph errors."""

    def __init__(self, code: str, message: str, metadata: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            domain=FaultDomain.GRAPH,
            metadata=metadata,
        )


class DuplicateServiceError(GraphError):
    """A node id was emitted twice."""

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(
            "SERVICE_DUPLICATE",
            f"Service '{service_id}' is already defined in the graph",
            {"service_id": service_id},
        )


class ServiceNotFoundError(GraphError):
    """Service id is neither a node nor an alias."""

    def __init__(self, service_id: str, candidates: Optional[List[str]] = None):
        self.service_id = service_id
        self.candidates = candidates or []

        msg = f"No service found for id={service_id}"
        if self.candidates:
            msg += "\n\nDid you mean:"
            for candidate in self.candidates:
                msg += f"\n  - {candidate}"

        super().__init__("SERVICE_NOT_FOUND", msg, {"service_id": service_id})


class ParameterNotFoundError(GraphError):
    """A ``%name%`` placeholder names an undefined parameter."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            "PARAMETER_NOT_FOUND",
            f"You have requested a non-existent parameter '{name}'",
            {"parameter": name},
        )


class MissingDependencyError(GraphError):
    """A node references a service nobody provides."""

    def __init__(self, service_id: str, dependency_id: str):
        self.service_id = service_id
        self.dependency_id = dependency_id

        msg = (
            f"Missing dependency: Service '{service_id}' "
            f"requires '{dependency_id}' but it is not defined\n"
        )
        msg += "\nSuggested fixes:"
        msg += f"\n  1. Declare '{dependency_id}' as a host service"
        msg += "\n  2. Check for typos in pool / service cache ids"

        super().__init__(
            "SERVICE_DEPENDENCY_MISSING",
            msg,
            {"service_id": service_id, "dependency_id": dependency_id},
        )


class DependencyCycleError(GraphError):
    """Circular reference between nodes."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle

        msg = "Detected dependency cycle:"
        for i, service_id in enumerate(cycle):
            arrow = " -> " if i < len(cycle) - 1 else ""
            msg += f"\n  {service_id}{arrow}"

        super().__init__("SERVICE_DEPENDENCY_CYCLE", msg, {"cycle": list(cycle)})
