"""
ormbridge - declarative DBAL/ORM configuration resolved into a service graph.

Complete integration of:
- Config: layered fragments (YAML, JSON, .env, environment) with strict merging
- DBAL: connection descriptors, sharding, connection services
- ORM: entity managers, cache backends, mapping drivers, second-level cache
- DI: immutable service nodes, aliases and parameters with validation
- Faults: structured errors naming the offending key path
"""

__version__ = "0.3.0"

# ============================================================================
# Core
# ============================================================================

from .config import ConfigLoader, ConfigMerger
from .config_builders import BundleConfiguration, Connection, EntityManager
from .bundles import Bundle, BundleRegistry
from .extension import OrmExtension, load

# ============================================================================
# Service graph
# ============================================================================

from .di import (
    Alias,
    MethodCall,
    Reference,
    ServiceGraph,
    ServiceNode,
)

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    ConfigFault,
    ValidationError,
    ConfigurationError,
    InvalidArgumentError,
)

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigMerger",
    "BundleConfiguration",
    "Connection",
    "EntityManager",
    "Bundle",
    "BundleRegistry",
    "OrmExtension",
    "load",
    "Alias",
    "MethodCall",
    "Reference",
    "ServiceGraph",
    "ServiceNode",
    "Fault",
    "ConfigFault",
    "ValidationError",
    "ConfigurationError",
    "InvalidArgumentError",
]
