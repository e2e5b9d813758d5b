"""Terminal front end: the full-screen view and the command-line entry point."""

from .app import LivecmdCLI, emit_output, main
from .view import SessionView

__all__ = ["LivecmdCLI", "SessionView", "emit_output", "main"]
