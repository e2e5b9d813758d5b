"""Exceptions raised by livecmd."""


class LivecmdError(Exception):
    """Base class for livecmd failures."""


class ChannelClosedError(LivecmdError):
    """The peer on the other side of a message channel is gone.

    This is never a user-facing condition: it means the command runner task
    stopped while the session still expected it to be alive.
    """
