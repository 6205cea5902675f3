"""ormbridge CLI - Main Entry Point.

Commands:
    check - Resolve and validate a configuration
    tree  - Print the dependency tree of a service
    graph - Export the service graph as DOT
    dump  - Export the service graph as JSON
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __version__, __cli_name__
from .utils.colors import (
    success, error, info, dim, bold,
    banner, section, kv, bullet, table,
    _CHECK, _CROSS,
)
from ..bundles import BundleRegistry
from ..config import ConfigLoader
from ..di.graph import ServiceGraph
from ..extension import EXTERNAL_SERVICES, OrmExtension
from ..faults import Fault
from ..parameters import DATABASE_CONNECTION_ALIAS, DEFAULT_ENTITY_MANAGER_ALIAS, ROOT


class OrmBridgeGroup(click.Group):
    """Click group subclass with branded help output."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        if ctx.parent is None:
            banner("ormbridge", subtitle=f"v{__version__}  {_CHECK}  service graph resolver")
            click.echo()
        super().format_help(ctx, formatter)


@click.group(cls=OrmBridgeGroup)
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--verbose', '-v', is_flag=True, help='Log every emitted service')
@click.option('--quiet', '-q', is_flag=True, help='Minimal output')
@click.pass_context
def cli(ctx, verbose: bool, quiet: bool):
    """Resolve DBAL/ORM configuration into a service graph.

    \b
    Quick start:
      ormbridge check config/ormbridge.yaml --bundle Blog=app.blog:src/blog
      ormbridge graph config/ormbridge.yaml > services.dot
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def graph_options(func):
    """Options shared by every command that resolves a graph."""
    options = [
        click.argument('configs', nargs=-1, required=True),
        click.option('--bundle', '-b', 'bundles', multiple=True, metavar='NAME=NAMESPACE:PATH',
                     help='Declare a bundle (repeatable, order matters)'),
        click.option('--service', '-s', 'services', multiple=True, metavar='ID',
                     help='Service id the host provides (enables cache reference checks)'),
        click.option('--env-file', type=click.Path(exists=True, dir_okay=False), help='.env file to load'),
        click.option('--env-prefix', default='ORMBRIDGE_', show_default=True, help='Environment variable prefix'),
        click.option('--project-dir', type=click.Path(file_okay=False), help='Base of non-bundle mapping dirs'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _resolve(
    configs: Tuple[str, ...],
    bundles: Tuple[str, ...],
    services: Tuple[str, ...],
    env_file: Optional[str],
    env_prefix: str,
    project_dir: Optional[str],
) -> ServiceGraph:
    loader = ConfigLoader.load(paths=list(configs), env_prefix=env_prefix, env_file=env_file)
    return OrmExtension().load(
        loader.fragments,
        bundles=BundleRegistry.from_specs(bundles),
        services=list(services) if services else None,
        project_dir=Path(project_dir) if project_dir else None,
    )


def _fail(what: str, exc: Exception) -> None:
    error(f"  {_CROSS} {what}: {exc}")
    path = exc.metadata.get("path") if isinstance(exc, Fault) else getattr(exc, "filename", None)
    if path:
        dim(f"    at {path}")
    sys.exit(1)


# ============================================================================
# Commands
# ============================================================================

@cli.command('check')
@graph_options
@click.pass_context
def check(ctx, configs, bundles, services, env_file, env_prefix, project_dir):
    """
    Resolve a configuration and validate the resulting graph.

    Examples:
      ormbridge check config/ormbridge.yaml
      ormbridge check config/*.yaml -b Blog=app.blog:src/blog -s cache.app
    """
    try:
        graph = _resolve(configs, bundles, services, env_file, env_prefix, project_dir)
        graph.validate(external=EXTERNAL_SERVICES + tuple(services))
    except (Fault, OSError) as exc:
        _fail("Invalid configuration", exc)

    if ctx.obj['quiet']:
        return

    click.echo()
    success(f"  {_CHECK} Configuration resolved")
    kv("Services", str(len(graph.nodes)))
    kv("Aliases", str(len(graph.aliases)))
    kv("Parameters", str(len(graph.parameters)))

    connections = graph.get_parameter(f"{ROOT}.connections") if graph.has_parameter(f"{ROOT}.connections") else {}
    if connections:
        click.echo()
        section("Connections")
        default = graph.get_alias(DATABASE_CONNECTION_ALIAS).target
        rows = []
        for name, service_id in connections.items():
            params = graph.get_node(service_id).args[0]
            marker = "*" if service_id == default else ""
            rows.append((f"{name}{marker}", service_id, params.get("driver", "")))
        table(["Name", "Service", "Driver"], rows)

    managers = graph.get_parameter(f"{ROOT}.entity_managers") if graph.has_parameter(f"{ROOT}.entity_managers") else {}
    if managers:
        click.echo()
        section("Entity managers")
        default = graph.get_alias(DEFAULT_ENTITY_MANAGER_ALIAS).target
        for name, service_id in managers.items():
            marker = " (default)" if service_id == default else ""
            bullet(f"{bold(name)}{marker} {service_id}")
    click.echo()


@cli.command('tree')
@graph_options
@click.option('--root', '-r', 'root', help='Start from this service (aliases are followed)')
def tree(configs, bundles, services, env_file, env_prefix, project_dir, root):
    """Print the dependency tree of the resolved graph."""
    try:
        graph = _resolve(configs, bundles, services, env_file, env_prefix, project_dir)
        root_id = graph.resolve_id(root) if root else None
        if root_id is not None:
            graph.get_node(root_id)
    except (Fault, OSError) as exc:
        _fail("Cannot build tree", exc)
    click.echo(graph.dependency_graph().get_tree_view(root_id))


@cli.command('graph')
@graph_options
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write DOT to a file')
@click.pass_context
def graph_cmd(ctx, configs, bundles, services, env_file, env_prefix, project_dir, output):
    """Export the resolved graph in Graphviz DOT format."""
    try:
        graph = _resolve(configs, bundles, services, env_file, env_prefix, project_dir)
    except (Fault, OSError) as exc:
        _fail("Cannot build graph", exc)

    dot = graph.dependency_graph().export_dot()
    if output:
        Path(output).write_text(dot)
        if not ctx.obj['quiet']:
            info(f"  {_CHECK} Wrote {output}")
    else:
        click.echo(dot)


@cli.command('dump')
@graph_options
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write JSON to a file')
@click.option('--only', 'service_id', metavar='ID', help='Dump a single service (aliases are followed)')
@click.pass_context
def dump(ctx, configs, bundles, services, env_file, env_prefix, project_dir, output, service_id):
    """Export the resolved graph (or one service) as JSON."""
    try:
        graph = _resolve(configs, bundles, services, env_file, env_prefix, project_dir)
        data = graph.find_node(service_id).to_dict() if service_id else graph.to_dict()
    except (Fault, OSError) as exc:
        _fail("Cannot dump graph", exc)

    text = json.dumps(data, indent=2, default=str)
    if output:
        Path(output).write_text(text + "\n")
        if not ctx.obj['quiet']:
            info(f"  {_CHECK} Wrote {output}")
    else:
        click.echo(text)


def main():
    """Entry point for `ormbridge` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
