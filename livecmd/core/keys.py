"""Translate raw prompt_toolkit key presses into edit actions."""

from __future__ import annotations

from prompt_toolkit.key_binding import KeyPress
from prompt_toolkit.keys import Keys

from .messages import Abort, Action, Commit, CursorLeft, CursorRight, DeleteBack, Insert

KEY_ACTIONS: dict[Keys, Action] = {
    Keys.Enter: Commit(),
    Keys.Escape: Abort(),
    Keys.ControlC: Abort(),
    Keys.Left: CursorLeft(),
    Keys.Right: CursorRight(),
    Keys.Backspace: DeleteBack(),
}

# Keys the session view binds explicitly; everything else arrives via "<any>".
BOUND_KEYS = ("enter", "escape", "c-c", "left", "right", "backspace")


def action_for_key(key_press: KeyPress) -> Action | None:
    key = key_press.key
    if isinstance(key, Keys):
        return KEY_ACTIONS.get(key)
    if len(key) == 1 and key.isprintable():
        return Insert(key)
    return None
