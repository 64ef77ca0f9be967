"""Command line interface for local and remote cross-validation runs."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    # ``cli.app`` must stay the module (tests patch ``cli.app.ApiClient``), so the
    # Typer instance is not re-exported here.
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)


__all__ = []
