"""Utility helpers."""
from .mime import content_type_for  # noqa: F401
from .paths import has_parent_reference, resolve_static_path  # noqa: F401
