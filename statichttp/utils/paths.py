"""Request path helpers."""
from __future__ import annotations

import re
from urllib.parse import unquote

_SEPARATORS = re.compile(r"[\\/]")


def resolve_static_path(request_path: str, static_root: str, index_document: str) -> str | None:
    """Map a request path onto the static root.

    ``/`` maps to the index document; any other path is appended to
    ``static_root``. Returns ``None`` for paths that do not start with ``/``.
    """

    path = unquote(request_path.split("?", 1)[0].split("#", 1)[0])
    if not path.startswith("/"):
        return None
    if path == "/":
        return f"{static_root}/{index_document}"
    return f"{static_root}{path}"


def has_parent_reference(path: str) -> bool:
    """Return ``True`` when any component of ``path`` is ``..``."""

    return any(part == ".." for part in _SEPARATORS.split(path))
