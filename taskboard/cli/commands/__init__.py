"""
FILE: taskboard/cli/commands/__init__.py
PURPOSE: CLI command modules
"""

# Export all command handlers for easy importing
from .tasks import (
    add,
    ls,
    show,
    mv,
    rm,
    edit,
    check,
)
from .dependencies import (
    depend,
    undepend,
    history,
)
from .reference import (
    statuses,
    priorities,
    types,
    repair,
)
from .system import (
    version,
    help,
    serve,
)

__all__ = [
    "add",
    "ls",
    "show",
    "mv",
    "rm",
    "edit",
    "check",
    "depend",
    "undepend",
    "history",
    "statuses",
    "priorities",
    "types",
    "repair",
    "version",
    "help",
    "serve",
]
