# src/boltzmann_brain/console.py

"""
Console output for the pipeline and the command line front-end.

Everything goes to stderr so that stdout stays reserved for the JSON
documents written by the ``tune`` and ``sample`` commands.
"""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

__all__ = ["console", "info", "warn", "hint", "error", "set_quiet", "is_quiet"]

_THEME = Theme({
    "ok": "bold green",
    "info": "bold cyan",
    "warn": "bold yellow",
    "err": "bold red",
    "hint": "magenta",
    "dim": "dim",
})

console = Console(stderr=True, theme=_THEME, highlight=False)

_quiet = False


def set_quiet(quiet: bool) -> None:
    """Silence ``info``/``hint`` output (warnings and errors are always shown)."""
    global _quiet
    _quiet = bool(quiet)


def is_quiet() -> bool:
    return _quiet


def _emit(tag: str, style: str, msg: str) -> None:
    console.print(f"[{style}]{escape('[' + tag + ']')}[/{style}] {escape(msg)}", soft_wrap=True)


def info(msg: str) -> None:
    if not _quiet:
        _emit("info", "info", msg)


def hint(msg: str) -> None:
    if not _quiet:
        _emit("hint", "hint", msg)


def warn(msg: str) -> None:
    _emit("warning", "warn", msg)


def error(msg: str) -> None:
    _emit("error", "err", msg)
