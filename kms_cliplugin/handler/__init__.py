"""
Helpers for writing plugin programs.
"""

from .command import make_plugin_command, run_plugin
from .dispatch import METHOD_HANDLERS, dispatch, get_plugin_args, write_response

__all__ = [
    "get_plugin_args",
    "dispatch",
    "write_response",
    "run_plugin",
    "make_plugin_command",
    "METHOD_HANDLERS",
]
