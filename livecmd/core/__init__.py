"""Edit buffer, command runner and the session orchestrator."""

from .buffer import EditBuffer
from .orchestrator import Orchestrator, Renderer, ViewState
from .runner import CommandRunner, ManagedProcess
from .session_log import SessionLogger

__all__ = [
    "CommandRunner",
    "EditBuffer",
    "ManagedProcess",
    "Orchestrator",
    "Renderer",
    "SessionLogger",
    "ViewState",
]
