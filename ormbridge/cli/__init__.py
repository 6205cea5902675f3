"""
ormbridge CLI - inspect the service graph a configuration resolves to.

Usage:
    ormbridge check config/*.yaml --bundle Blog=app.blog:src/blog
    ormbridge tree config/ormbridge.yaml --root ormbridge.orm.default_entity_manager
    ormbridge graph config/ormbridge.yaml > services.dot
    ormbridge dump config/ormbridge.yaml --output services.json
"""

__version__ = "0.3.0"
__cli_name__ = "ormbridge"


def main():
    """Wrapper to avoid eager import of __main__ which causes warnings with -m."""
    from .__main__ import main as _main
    return _main()
