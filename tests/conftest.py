"""
Shared test fixtures and helpers for the ormbridge test suite.
"""

import pytest

from ormbridge.config_builders import BundleConfiguration
from ormbridge.extension import OrmExtension
from ormbridge.testing import make_registry

# Import fixtures so pytest can discover them
from ormbridge.testing.fixtures import (  # noqa: F401
    extension,
    bundle_factory,
    registry_factory,
)


# ============================================================================
# Graph Helpers
# ============================================================================

@pytest.fixture
def load_graph(tmp_path):
    """
    Resolve fragments against fixture bundles.

    Usage::

        graph = load_graph([config], bundles=("XmlBundle",))
    """
    def loader(fragments, bundles=("YamlBundle",), vendor=None, services=None):
        registry = make_registry(tmp_path, bundles, vendor=vendor)
        return OrmExtension().load(fragments, bundles=registry, services=services)
    return loader


@pytest.fixture
def base_config():
    """One default connection plus one default manager mapping YamlBundle."""
    return BundleConfiguration.with_base_values().build()
