from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .paths import LivecmdPaths

DEBUG_ENV_VAR = "LIVECMD_DEBUG"

DEFAULT_CONFIG: Dict[str, Any] = {
    "debug": None,
}


@dataclass(frozen=True)
class LivecmdSettings:
    debug: Any = None


class ConfigManager:
    """Resolves livecmd settings from defaults, the config file and the environment."""

    def __init__(
        self,
        paths: Optional[LivecmdPaths] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.paths = paths or LivecmdPaths()
        self.environ = os.environ if environ is None else environ

    def load(self, *, debug_override: Any = None) -> LivecmdSettings:
        """Merge settings; later sources win: defaults, file, env, CLI flag."""
        data = dict(DEFAULT_CONFIG)
        data.update(self._file_config())
        env_debug = self.environ.get(DEBUG_ENV_VAR)
        if env_debug is not None and env_debug.strip():
            data["debug"] = env_debug.strip()
        if debug_override is not None:
            data["debug"] = debug_override
        return LivecmdSettings(debug=data.get("debug"))

    def _file_config(self) -> Dict[str, Any]:
        raw = self._read_json(self.paths.config_file)
        if not isinstance(raw, dict):
            return {}
        return {key: raw[key] for key in DEFAULT_CONFIG if key in raw}

    def _read_json(self, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
