"""
ormbridge Testing - helpers for asserting on resolved service graphs.

Usage:
    from ormbridge.testing import GraphAssertions, make_registry

    class TestMyConfig(GraphAssertions):
        def test_default_connection(self, tmp_path):
            graph = OrmExtension().load([...], bundles=make_registry(tmp_path))
            self.assert_alias_target(graph, "database_connection", "ormbridge.dbal.default_connection")

Pytest fixtures (``extension``, ``bundle_factory``, ``registry_factory``)
live in ``ormbridge.testing.fixtures``.
"""

from .assertions import GraphAssertions
from .bundles import LAYOUTS, make_bundle, make_registry

__all__ = [
    "GraphAssertions",
    "LAYOUTS",
    "make_bundle",
    "make_registry",
]
