"""Runtime configuration read from the environment (and a .env file)."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


# Default storage location
DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"
LIBRARY_FILENAME = "library.json"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Application settings."""
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "INFO"
    ifra_warning_ratio: float = 0.9  # warn when within 10% of the IFRA limit
    autosave: bool = True

    @property
    def library_path(self) -> Path:
        """Path to the JSON library file."""
        return self.data_dir / LIBRARY_FILENAME

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from FFRAGRANCE_* environment variables."""
        data_dir = os.getenv("FFRAGRANCE_DATA_DIR")
        return cls(
            data_dir=Path(data_dir) if data_dir else DEFAULT_DATA_DIR,
            log_level=os.getenv("FFRAGRANCE_LOG_LEVEL", "INFO").upper(),
            ifra_warning_ratio=float(os.getenv("FFRAGRANCE_IFRA_WARNING_RATIO", "0.9")),
            autosave=_env_bool(os.getenv("FFRAGRANCE_AUTOSAVE", "true")),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings.

    Returns:
        The cached Settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
