from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class LivecmdPaths:
    """Centralizes filesystem paths used by livecmd."""

    home: Path = field(default_factory=lambda: Path.home())

    @property
    def livecmd_dir(self) -> Path:
        return self.home / ".livecmd"

    @property
    def config_file(self) -> Path:
        return self.livecmd_dir / "livecmd.json"

    @property
    def logs_dir(self) -> Path:
        return self.livecmd_dir / "logs"
