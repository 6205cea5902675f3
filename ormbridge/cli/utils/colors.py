"""
ormbridge CLI - output helpers.

Styled output primitives built on Click:

    success(), error(), warning(), info(), dim(), bold()
    banner(), section(), kv(), table(), bullet()

click.style handles NO_COLOR / TERM=dumb.
"""

from __future__ import annotations

import shutil
from typing import Optional, Sequence

import click

_TERM_WIDTH: Optional[int] = None


def _tw() -> int:
    """Terminal width, cached and clamped to a sane range."""
    global _TERM_WIDTH
    if _TERM_WIDTH is None:
        _TERM_WIDTH = max(40, min(shutil.get_terminal_size((80, 24)).columns, 120))
    return _TERM_WIDTH


def success(message: str) -> None:
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    """Print error message in red, on stderr."""
    click.echo(click.style(message, fg="red"), err=True)


def warning(message: str) -> None:
    click.echo(click.style(message, fg="yellow"), err=True)


def info(message: str) -> None:
    click.echo(click.style(message, fg="cyan"))


def dim(message: str) -> None:
    click.echo(click.style(message, dim=True))


def bold(message: str) -> str:
    """Return bold-styled text (does not echo)."""
    return click.style(message, bold=True)


_H_TL = "\u250f"   # ┏
_H_TR = "\u2513"   # ┓
_H_BL = "\u2517"   # ┗
_H_BR = "\u251b"   # ┛
_H_H = "\u2501"    # ━
_H_V = "\u2503"    # ┃
_L_H = "\u2500"    # ─

_BULLET = "\u2022"  # •
_CHECK = "\u2713"   # ✓
_CROSS = "\u2717"   # ✗


def banner(title: str, subtitle: str = "", *, width: Optional[int] = None, fg: str = "cyan") -> None:
    """Print a bordered banner with centred title."""
    w = width or min(_tw(), 60)
    inner = w - 2
    click.echo(click.style(f"{_H_TL}{_H_H * inner}{_H_TR}", fg=fg))
    click.echo(click.style(f"{_H_V}{title.center(inner)}{_H_V}", fg=fg, bold=True))
    if subtitle:
        click.echo(click.style(f"{_H_V}{subtitle.center(inner)}{_H_V}", fg=fg))
    click.echo(click.style(f"{_H_BL}{_H_H * inner}{_H_BR}", fg=fg))


def section(title: str, *, width: Optional[int] = None, fg: str = "cyan") -> None:
    """
    Print a section header with a ruled line.

        ── Connections ────────────────────────────
    """
    w = width or _tw()
    dashes = max(4, w - len(title) - 6)
    click.echo(click.style(f"{_L_H}{_L_H} {title} {_L_H * dashes}", fg=fg, bold=True))


def kv(key: str, value: str, *, key_width: int = 20, indent: int = 2) -> None:
    """
    Print an aligned key-value pair.

        Services:         42
    """
    k = click.style(f"{key}:", fg="white")
    v = click.style(str(value), fg="cyan")
    padding = " " * max(1, key_width - len(key) - 1)
    click.echo(f"{' ' * indent}{k}{padding}{v}")


def bullet(text: str, *, indent: int = 2, fg: str = "white") -> None:
    click.echo(f"{' ' * indent}{click.style(_BULLET, fg='cyan')} {click.style(text, fg=fg)}")


def table(
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    *,
    header_fg: str = "cyan",
    indent: int = 2,
) -> None:
    """
    Print a minimal aligned table.

        Name        Service                          Driver
        ─────────── ──────────────────────────────── ─────────
        default     ormbridge.dbal.default_connection pdo_mysql
    """
    prefix = " " * indent
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[:len(headers)]):
            widths[i] = max(widths[i], len(str(cell)))
    widths = [w + 2 for w in widths]

    click.echo(prefix + click.style("".join(h.ljust(widths[i]) for i, h in enumerate(headers)), fg=header_fg, bold=True))
    click.echo(prefix + click.style("".join(_L_H * w for w in widths), dim=True))
    for row in rows:
        click.echo(prefix + "".join(str(cell).ljust(widths[i]) for i, cell in enumerate(row[:len(headers)])))
