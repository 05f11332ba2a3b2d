"""Static file retrieval."""
from __future__ import annotations

from pathlib import Path


class FileRetrievalError(RuntimeError):
    """Raised when a file is absent or cannot be read."""


def read_file(path: str) -> bytes:
    """Return the bytes of ``path``."""

    try:
        return Path(path).read_bytes()
    except (OSError, ValueError) as exc:
        raise FileRetrievalError(f"{path}: {exc}") from exc
