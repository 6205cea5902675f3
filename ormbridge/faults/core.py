"""
ormbridge faults - base fault type.

Every error raised while resolving a configuration is a ``Fault``: a
stable code, a message, the area of the resolver it came from and the
offending key path or ids in ``metadata``. Resolution never recovers from
a fault, so faults carry no severity or retry hints.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class FaultDomain(str, Enum):
    """Area of the resolver a fault comes from."""

    CONFIG = "config"    # merging and validating the tree
    GRAPH = "graph"      # node, alias and parameter bookkeeping
    CACHE = "cache"      # cache backend selection
    MAPPING = "mapping"  # bundle assignment and driver detection


class Fault(Exception):
    """
    Structured resolution error.

    Attributes:
        code: Stable machine-readable identifier (e.g. "CONFIG_VALIDATION")
        message: Human-readable summary
        domain: FaultDomain the fault belongs to
        metadata: Key path, offending value, service ids

    Example:
        ```python
        raise Fault(
            "CONNECTION_UNKNOWN",
            "Connection 'replica' is not declared",
            metadata={"path": "dbal.default_connection"},
        )
        ```
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        domain: FaultDomain = FaultDomain.CONFIG,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.domain = FaultDomain(domain)
        self.metadata = dict(metadata or {})

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, domain={self.domain.value!r})"

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form: code, message, domain and metadata."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "metadata": self.metadata,
        }
