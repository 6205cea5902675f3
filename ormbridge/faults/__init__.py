"""
ormbridge faults - structured errors raised during resolution.

All faults are raised synchronously and propagate to the caller; there is
no partial-success mode.
"""

from .core import (
    Fault,
    FaultDomain,
)

from .domains import (
    ConfigFault,
    ValidationError,
    ConfigurationError,
    InvalidArgumentError,
    UnknownCacheTypeFault,
    MappingConflictFault,
    format_path,
)

__all__ = [
    "Fault",
    "FaultDomain",
    "ConfigFault",
    "ValidationError",
    "ConfigurationError",
    "InvalidArgumentError",
    "UnknownCacheTypeFault",
    "MappingConflictFault",
    "format_path",
]
