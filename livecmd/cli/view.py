from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from prompt_toolkit.application import Application
from prompt_toolkit.data_structures import Point
from prompt_toolkit.filters import Condition
from prompt_toolkit.input import Input
from prompt_toolkit.key_binding import KeyBindings, KeyPress
from prompt_toolkit.key_binding.key_processor import KeyPressEvent
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import Layout
from prompt_toolkit.layout.containers import ConditionalContainer, HSplit, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.output import Output
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import Frame

from ..core.keys import BOUND_KEYS
from ..core.orchestrator import ViewState

STYLE = Style.from_dict(
    {
        "frame.border": "#8a8a8a",
        "frame.label": "bold",
        "error-pane": "#ff5f5f",
        "error-pane frame.border": "#ff5f5f",
    }
)


class SessionView:
    """Full-screen Input/Output/Error panes driven by ``draw()``.

    Key presses are not interpreted here: every one is pushed onto ``events``
    for the orchestrator. Running the view through ``run()`` acquires the
    alternate screen, raw mode and mouse capture; prompt_toolkit releases them
    on every exit path.
    """

    def __init__(
        self,
        events: asyncio.Queue[Any],
        *,
        input: Optional[Input] = None,
        output: Optional[Output] = None,
    ) -> None:
        self.events = events
        self.state = ViewState(cursor=0, text="")
        self.input_control = FormattedTextControl(
            lambda: self.state.text,
            focusable=True,
            show_cursor=True,
            get_cursor_position=lambda: Point(x=self.state.cursor, y=0),
        )
        input_window = Window(self.input_control, height=1)
        output_window = Window(FormattedTextControl(lambda: self.state.output))
        error_window = Window(FormattedTextControl(lambda: self.state.error), height=1)
        has_error = Condition(lambda: bool(self.state.error))
        root = HSplit(
            [
                Frame(input_window, title="Input"),
                Frame(output_window, title="Output"),
                ConditionalContainer(
                    Frame(error_window, title="Error", style="class:error-pane"),
                    filter=has_error,
                ),
            ]
        )
        self.app: Application[str | None] = Application(
            layout=Layout(root, focused_element=input_window),
            key_bindings=self._key_bindings(),
            full_screen=True,
            mouse_support=True,
            style=STYLE,
            input=input,
            output=output,
        )

    def draw(self, state: ViewState) -> None:
        self.state = state
        self.app.invalidate()

    async def run(self, session: Callable[[], Awaitable[str | None]]) -> str | None:
        """Run ``session`` while the terminal is held; return what it returns."""

        async def drive() -> None:
            try:
                result = await session()
            except Exception as exc:  # noqa: BLE001
                self.app.exit(exception=exc)
                return
            self.app.exit(result=result)

        return await self.app.run_async(
            pre_run=lambda: self.app.create_background_task(drive())
        )

    def _key_bindings(self) -> KeyBindings:
        bindings = KeyBindings()

        def _forward(event: KeyPressEvent) -> None:
            for key_press in event.key_sequence:
                if key_press.key == Keys.BracketedPaste:
                    for ch in key_press.data:
                        self.events.put_nowait(KeyPress(ch, ch))
                else:
                    self.events.put_nowait(key_press)

        # Explicit keys outrank the default bindings that would swallow them.
        for key in BOUND_KEYS:
            bindings.add(key, eager=True)(_forward)
        bindings.add(Keys.BracketedPaste)(_forward)
        bindings.add(Keys.Any)(_forward)
        return bindings
