from __future__ import annotations

import argparse
import asyncio
import errno
import sys
from typing import Any, Optional, TextIO

from prompt_toolkit.input import Input
from prompt_toolkit.output import Output
from rich.console import Console
from rich.panel import Panel

from ..config import ConfigManager, LivecmdPaths
from ..core.orchestrator import Orchestrator
from ..core.runner import CommandRunner
from ..core.session_log import SessionLogger, log_exception, set_active_logger
from .view import SessionView


class LivecmdCLI:
    """One interactive session: the full-screen view plus its orchestrator."""

    def __init__(
        self,
        *,
        input: Optional[Input] = None,
        output: Optional[Output] = None,
        runner: Optional[CommandRunner] = None,
    ) -> None:
        self.events: asyncio.Queue[Any] = asyncio.Queue()
        self.view = SessionView(self.events, input=input, output=output)
        self.orchestrator = Orchestrator(self.events, self.view, runner=runner)

    async def run(self) -> str | None:
        return await self.view.run(self.orchestrator.run)


def emit_output(output: str | None, stream: TextIO | None = None) -> None:
    """Print committed output verbatim; aborted or empty sessions print nothing."""
    if not output:
        return
    stream = stream or sys.stdout
    stream.write(output)
    stream.flush()


def _report_fatal(exc: BaseException) -> None:
    log_exception("cli", exc)
    console = Console(stderr=True)
    console.print(Panel(f"{type(exc).__name__}: {exc}", title="livecmd", border_style="red"))


def main() -> None:
    parser = argparse.ArgumentParser(
        description="livecmd - rerun a shell command on every keystroke and preview its output"
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version and exit")
    parser.add_argument(
        "--debug",
        nargs="?",
        const="all",
        default=None,
        metavar="SELECTION",
        help="Write a session log under ~/.livecmd/logs "
        "(session, error, warn, info, debug or all; default: all)",
    )
    args = parser.parse_args()
    if args.version:
        from livecmd import __version__

        print(f"livecmd {__version__}")
        return

    paths = LivecmdPaths()
    settings = ConfigManager(paths).load(debug_override=args.debug)
    logger = SessionLogger(paths, settings.debug)
    set_active_logger(logger)
    try:
        output = asyncio.run(LivecmdCLI().run())
        emit_output(output)
    except BrokenPipeError:
        return
    except KeyboardInterrupt:
        return
    except OSError as exc:
        if exc.errno == errno.EPIPE:
            return
        _report_fatal(exc)
        raise SystemExit(1) from exc
    except Exception as exc:  # noqa: BLE001
        _report_fatal(exc)
        raise SystemExit(1) from exc
    finally:
        set_active_logger(None)
        logger.close()


if __name__ == "__main__":
    main()
