"""File inclusion policy."""

from pgtypegen.files.discovery import discover, matches_any

__all__ = ["discover", "matches_any"]
