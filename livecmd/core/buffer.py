from __future__ import annotations

from dataclasses import dataclass


@dataclass
class EditBuffer:
    """Single-line text buffer with a cursor kept in ``0..len(text)``."""

    text: str = ""
    cursor: int = 0

    def __post_init__(self) -> None:
        self.cursor = max(0, min(self.cursor, len(self.text)))

    def insert(self, ch: str) -> bool:
        self.text = self.text[: self.cursor] + ch + self.text[self.cursor :]
        self.cursor += len(ch)
        return True

    def delete_back(self) -> bool:
        if self.cursor == 0:
            return False
        self.text = self.text[: self.cursor - 1] + self.text[self.cursor :]
        self.cursor -= 1
        return True

    def move_left(self) -> None:
        if self.cursor > 0:
            self.cursor -= 1

    def move_right(self) -> None:
        if self.cursor < len(self.text):
            self.cursor += 1
