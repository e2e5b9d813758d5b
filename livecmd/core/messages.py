"""Messages exchanged between the orchestrator and the command runner."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

Stream = Literal["stdout", "stderr"]


# Actions: one per recognized input event.


@dataclass(frozen=True)
class Commit:
    pass


@dataclass(frozen=True)
class Abort:
    pass


@dataclass(frozen=True)
class CursorLeft:
    pass


@dataclass(frozen=True)
class CursorRight:
    pass


@dataclass(frozen=True)
class DeleteBack:
    pass


@dataclass(frozen=True)
class Insert:
    char: str


Action = Union[Commit, Abort, CursorLeft, CursorRight, DeleteBack, Insert]


# Commands: orchestrator -> runner.


@dataclass(frozen=True)
class RunText:
    text: str


@dataclass(frozen=True)
class Terminate:
    pass


Command = Union[RunText, Terminate]


# Results: runner -> orchestrator, one per finished process.


@dataclass(frozen=True)
class Empty:
    """The process produced nothing, or never started."""


@dataclass(frozen=True)
class Text:
    text: str
    stream: Stream = "stdout"


@dataclass(frozen=True)
class Undecodable:
    """The captured bytes on ``stream`` are not valid UTF-8."""

    stream: Stream = "stdout"


Result = Union[Empty, Text, Undecodable]


def result_from_output(stdout: bytes, stderr: bytes) -> Result:
    """Pick stdout, falling back to stderr, and decode it strictly."""
    for stream, data in (("stdout", stdout), ("stderr", stderr)):
        if not data:
            continue
        try:
            return Text(data.decode("utf-8"), stream)  # type: ignore[arg-type]
        except UnicodeDecodeError:
            return Undecodable(stream)  # type: ignore[arg-type]
    return Empty()


def describe_result(result: Result) -> dict[str, object]:
    if isinstance(result, Text):
        return {"kind": "text", "stream": result.stream, "length": len(result.text)}
    if isinstance(result, Undecodable):
        return {"kind": "undecodable", "stream": result.stream}
    return {"kind": "empty"}
