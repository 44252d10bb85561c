"""Path helpers shared by the local filesystem tools."""

from pathlib import Path


def expand_path(path: str) -> Path:
    """Expand `~` and make the path absolute (relative to the cwd)."""
    return Path(path).expanduser().absolute()
