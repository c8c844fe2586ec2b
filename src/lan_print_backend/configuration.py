from __future__ import annotations

import os
import platform
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

# Load environment variables from .env file
load_dotenv()

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:3]]

BACKENDS = ("windows", "cups")


def _config_path() -> Path:
    explicit = os.environ.get("PRINT_CONFIG_PATH")
    if explicit:
        return Path(explicit)
    path = next((candidate for candidate in _CANDIDATE_CONFIG_PATHS if candidate.exists()), None)
    if path is None:  # pragma: no cover - fail fast in broken installs
        raise FileNotFoundError("Default config.yaml could not be located next to the lan_print_backend package.")
    return path


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    config_path = _config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found at {config_path}")
    return OmegaConf.load(config_path)


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Build the runtime settings: packaged defaults merged with ``overrides``.

    Environment interpolations are resolved here so later reads see plain
    values. Unknown override keys raise, because the base is in struct mode.
    """
    base = OmegaConf.create(OmegaConf.to_container(_load_default_config(), resolve=True))
    OmegaConf.set_struct(base, True)

    merged = DictConfig(OmegaConf.merge(base, OmegaConf.create(overrides or {})))
    return merged


def resolve_backend(name: str) -> str:
    """Map the configured backend (``auto`` included) to a concrete one."""
    name = (name or "auto").lower()
    if name == "auto":
        return "windows" if platform.system() == "Windows" else "cups"
    if name not in BACKENDS:
        raise ValueError(f"Unknown printing backend '{name}', expected one of: auto, {', '.join(BACKENDS)}")
    return name
