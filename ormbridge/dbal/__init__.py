"""
ormbridge DBAL layer - connection descriptors and their service nodes.
"""

from .connections import (
    CONNECTION_DEFAULTS,
    ConnectionDescriptor,
    ConnectionResolver,
    ResolvedConnections,
    ShardDescriptor,
)

__all__ = [
    "CONNECTION_DEFAULTS",
    "ConnectionDescriptor",
    "ConnectionResolver",
    "ResolvedConnections",
    "ShardDescriptor",
]
