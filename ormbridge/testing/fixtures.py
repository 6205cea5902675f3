"""
ormbridge Testing - Pytest Fixtures.

Import the fixtures in your ``conftest.py``::

    from ormbridge.testing.fixtures import *  # noqa: F401,F403
"""

from __future__ import annotations

import pytest

from ..extension import OrmExtension
from .bundles import make_bundle, make_registry


@pytest.fixture
def extension():
    """A fresh :class:`OrmExtension`."""
    return OrmExtension()


@pytest.fixture
def bundle_factory(tmp_path):
    """Callable creating bundle directories under ``tmp_path``."""
    def factory(name, layout=None, vendor=None):
        return make_bundle(tmp_path, name, layout=layout, vendor=vendor)
    return factory


@pytest.fixture
def registry_factory(tmp_path):
    """Callable creating a BundleRegistry of fixture bundles."""
    def factory(*names, vendor=None):
        return make_registry(tmp_path, names or ("YamlBundle",), vendor=vendor)
    return factory
