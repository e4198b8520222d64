"""Global switch for progress bars, with an environment variable override."""

import os
from typing import Final

from tqdm.auto import tqdm

DISABLE_ENV_VAR: Final[str] = "RANKBPE_DISABLE_PROGRESS"

_enabled: bool = True


def enable_progress() -> None:
    """Enable progress indicators for all rankbpe operations."""
    global _enabled
    _enabled = True


def disable_progress() -> None:
    """Disable progress indicators for all rankbpe operations."""
    global _enabled
    _enabled = False


def _is_enabled() -> bool:
    """Check if progress is enabled (respects env var override)."""
    if os.environ.get(DISABLE_ENV_VAR, "").strip() == "1":
        return False
    return _enabled


def progress_bar(total: int, desc: str, show_progress: bool = True) -> tqdm:
    """Return a tqdm bar that stays silent unless both the caller and the global switch allow it."""
    return tqdm(
        total=total,
        desc=desc,
        unit="merge",
        disable=not (show_progress and _is_enabled()),
        leave=False,
    )
