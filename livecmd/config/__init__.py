"""Configuration package."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .manager import ConfigManager, LivecmdSettings
    from .paths import LivecmdPaths

__all__ = ["ConfigManager", "LivecmdSettings", "LivecmdPaths"]


def __getattr__(name: str) -> Any:
    if name in {"ConfigManager", "LivecmdSettings"}:
        from .manager import ConfigManager, LivecmdSettings

        return {"ConfigManager": ConfigManager, "LivecmdSettings": LivecmdSettings}[name]
    if name == "LivecmdPaths":
        from .paths import LivecmdPaths

        return LivecmdPaths
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
