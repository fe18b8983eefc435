"""Query text normalization."""

from pgtypegen.query.normalize import count_statements, normalize, strip_terminators

__all__ = ["count_statements", "normalize", "strip_terminators"]
