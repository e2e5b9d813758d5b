"""Command runner actor.

The runner owns zero or one managed process. It reads ``RunText`` and
``Terminate`` commands from a single-slot queue and writes one ``Result`` per
finished process to another single-slot queue. A process that is superseded by
a newer command is killed before its replacement is spawned and is reaped in
the background, so at most one managed process is ever live.
"""

from __future__ import annotations

import asyncio
import os
import signal
from contextlib import suppress

from .messages import (
    Command,
    Empty,
    Result,
    Terminate,
    describe_result,
    result_from_output,
)
from .session_log import log_debug, log_event, log_warn

SOURCE = "runner"


class ManagedProcess:
    """A shell child running in its own process group."""

    def __init__(self, proc: asyncio.subprocess.Process, command: str) -> None:
        self.proc = proc
        self.command = command
        self.completion: asyncio.Task[tuple[bytes, bytes]] = asyncio.ensure_future(
            self._collect()
        )

    @classmethod
    async def spawn(cls, command: str) -> "ManagedProcess":
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        return cls(proc, command)

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def alive(self) -> bool:
        return self.proc.returncode is None

    async def _collect(self) -> tuple[bytes, bytes]:
        # stdin stays open: a command reading it blocks until superseded.
        assert self.proc.stdout is not None and self.proc.stderr is not None
        stdout, stderr = await asyncio.gather(
            self.proc.stdout.read(), self.proc.stderr.read()
        )
        await self.proc.wait()
        return stdout, stderr

    def result(self) -> Result:
        try:
            stdout, stderr = self.completion.result()
        except OSError as exc:
            log_warn(SOURCE, "runner.read_failed", {"pid": self.pid, "error": str(exc)})
            return Empty()
        finally:
            self._close_stdin()
        return result_from_output(stdout, stderr)

    def terminate(self) -> None:
        """Kill the process group; does not wait for the exit.

        The group is signalled even after the shell itself has exited:
        background children can still hold the output pipes open.
        """
        self.completion.cancel()
        with suppress(ProcessLookupError, PermissionError):
            os.killpg(self.pid, signal.SIGKILL)

    async def reap(self) -> None:
        with suppress(asyncio.CancelledError, OSError):
            await self.completion
        await self.proc.wait()
        self._close_stdin()

    def _close_stdin(self) -> None:
        if self.proc.stdin is not None:
            self.proc.stdin.close()


class CommandRunner:
    """Actor that executes the latest command text and reports its output."""

    def __init__(
        self,
        commands: asyncio.Queue[Command] | None = None,
        results: asyncio.Queue[Result] | None = None,
    ) -> None:
        self.commands: asyncio.Queue[Command] = (
            commands if commands is not None else asyncio.Queue(maxsize=1)
        )
        self.results: asyncio.Queue[Result] = (
            results if results is not None else asyncio.Queue(maxsize=1)
        )
        self.process: ManagedProcess | None = None
        self.spawn_count = 0
        self._next_command: asyncio.Future[Command] | None = None
        self._reapers: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self.process is not None

    async def run(self) -> None:
        log_event(SOURCE, "runner.start")
        try:
            while True:
                command = await self._step()
                if command is None:
                    continue
                if isinstance(command, Terminate):
                    log_event(SOURCE, "runner.terminate")
                    return
                await self._run_text(command.text)
        finally:
            await self._shutdown()

    async def _step(self) -> Command | None:
        """Wait for the next command or the current process, whichever is first.

        Returns the command, or None after a completed process has been
        reported. A command that is ready together with a completion wins and
        the stale completion is discarded.
        """
        intake = self._intake()
        waiters: set[asyncio.Future] = {intake}
        if self.process is not None:
            waiters.add(self.process.completion)
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        if intake.done():
            self._next_command = None
            return intake.result()
        process = self.process
        assert process is not None
        self.process = None
        await self._emit(process.result())
        return None

    def _intake(self) -> asyncio.Future[Command]:
        if self._next_command is None:
            self._next_command = asyncio.ensure_future(self.commands.get())
        return self._next_command

    async def _run_text(self, text: str) -> None:
        self._supersede()
        if not text.strip():
            log_debug(SOURCE, "runner.empty_command")
            await self._emit(Empty())
            return
        try:
            process = await ManagedProcess.spawn(text)
        except (OSError, ValueError) as exc:
            log_warn(SOURCE, "runner.spawn_failed", {"command": text, "error": str(exc)})
            await self._emit(Empty())
            return
        self.process = process
        self.spawn_count += 1
        log_event(SOURCE, "runner.spawn", {"command": text, "pid": process.pid})

    def _supersede(self) -> None:
        process = self.process
        if process is None:
            return
        self.process = None
        log_debug(SOURCE, "runner.superseded", {"command": process.command, "pid": process.pid})
        process.terminate()
        reaper = asyncio.ensure_future(process.reap())
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)

    async def _emit(self, result: Result) -> None:
        """Publish a result unless a newer command shows up first."""
        log_event(SOURCE, "runner.result", describe_result(result))
        if not self.results.full():
            self.results.put_nowait(result)
            return
        put = asyncio.ensure_future(self.results.put(result))
        await asyncio.wait({put, self._intake()}, return_when=asyncio.FIRST_COMPLETED)
        if put.done():
            return
        put.cancel()
        with suppress(asyncio.CancelledError):
            await put
        log_debug(SOURCE, "runner.result_dropped", describe_result(result))

    async def _shutdown(self) -> None:
        if self._next_command is not None:
            self._next_command.cancel()
            self._next_command = None
        self._supersede()
        if self._reapers:
            await asyncio.gather(*self._reapers)
