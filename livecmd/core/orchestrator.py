from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from ..errors import ChannelClosedError
from .buffer import EditBuffer
from .keys import action_for_key
from .messages import (
    Abort,
    Action,
    Command,
    Commit,
    CursorLeft,
    CursorRight,
    DeleteBack,
    Insert,
    Result,
    RunText,
    Terminate,
    Text,
    Undecodable,
)
from .runner import CommandRunner
from .session_log import log_event, log_exception

SOURCE = "session"


@dataclass(frozen=True)
class ViewState:
    cursor: int
    text: str
    output: str = ""
    error: str = ""


class Renderer(Protocol):
    def draw(self, state: ViewState) -> None: ...


class Orchestrator:
    """Event loop merging input events and runner results into redraws.

    ``events`` carries raw input events (prompt_toolkit key presses in the
    terminal UI); ``to_action`` turns each one into an action or None.
    ``run()`` returns the committed output, or None when the session was
    aborted.
    """

    def __init__(
        self,
        events: asyncio.Queue[Any],
        renderer: Renderer,
        *,
        runner: Optional[CommandRunner] = None,
        to_action: Callable[[Any], Optional[Action]] = action_for_key,
    ) -> None:
        self.events = events
        self.renderer = renderer
        self.runner = runner if runner is not None else CommandRunner()
        self.to_action = to_action
        self.buffer = EditBuffer()
        self.output = ""
        self.error = ""
        self.session_output: str | None = None
        self._runner_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ViewState:
        return ViewState(self.buffer.cursor, self.buffer.text, self.output, self.error)

    def redraw(self) -> None:
        self.renderer.draw(self.state)

    async def run(self) -> str | None:
        log_event(SOURCE, "session.start")
        self._runner_task = asyncio.ensure_future(self.runner.run())
        event_task: asyncio.Future[Any] | None = None
        result_task: asyncio.Future[Result] | None = None
        finished = False
        try:
            self.redraw()
            while not finished:
                if event_task is None:
                    event_task = asyncio.ensure_future(self.events.get())
                if result_task is None:
                    result_task = asyncio.ensure_future(self.runner.results.get())
                done, _ = await asyncio.wait(
                    {event_task, result_task, self._runner_task},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if self._runner_task in done:
                    self._raise_runner_gone()
                if result_task in done:
                    self.apply_result(result_task.result())
                    result_task = None
                    self.redraw()
                if event_task in done:
                    event = event_task.result()
                    event_task = None
                    finished = await self.handle(self.to_action(event))
                    self.redraw()
        finally:
            for task in (event_task, result_task):
                if task is not None:
                    task.cancel()
            await self._stop_runner(graceful=finished)
        log_event(
            SOURCE,
            "session.end",
            {"outcome": "commit" if self.session_output is not None else "abort"},
        )
        return self.session_output

    async def handle(self, action: Action | None) -> bool:
        """Apply one action; returns True once the session is over."""
        if isinstance(action, Commit):
            self.session_output = self.output
            await self._send(Terminate())
            return True
        if isinstance(action, Abort):
            self.session_output = None
            await self._send(Terminate())
            return True
        if isinstance(action, CursorLeft):
            self.buffer.move_left()
        elif isinstance(action, CursorRight):
            self.buffer.move_right()
        elif isinstance(action, DeleteBack):
            if self.buffer.delete_back():
                await self._send(RunText(self.buffer.text))
        elif isinstance(action, Insert):
            self.buffer.insert(action.char)
            await self._send(RunText(self.buffer.text))
        return False

    def apply_result(self, result: Result) -> None:
        if isinstance(result, Text):
            self.output, self.error = result.text, ""
        elif isinstance(result, Undecodable):
            self.output, self.error = "", f"Non-UTF-8 {result.stream}"
        else:
            self.output, self.error = "", ""

    async def _send(self, command: Command) -> None:
        runner_task = self._runner_task
        assert runner_task is not None
        if runner_task.done():
            self._raise_runner_gone()
        put = asyncio.ensure_future(self.runner.commands.put(command))
        try:
            await asyncio.wait({put, runner_task}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            put.cancel()
            raise
        if not put.done():
            put.cancel()
            self._raise_runner_gone()

    def _raise_runner_gone(self) -> None:
        task = self._runner_task
        cause = None
        if task is not None and task.done() and not task.cancelled():
            cause = task.exception()
        raise ChannelClosedError("command runner stopped while the session was active") from cause

    async def _stop_runner(self, *, graceful: bool) -> None:
        task = self._runner_task
        if task is None:
            return
        if not graceful and not task.done():
            task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            log_exception("runner", task.exception())  # type: ignore[arg-type]
