"""Source patching: byte-span edits, annotations and declaration blocks."""

from pgtypegen.patch.edits import TextEdit, apply_edits, write_atomic
from pgtypegen.patch.patcher import (
    PatchPlan,
    PlacementPolicy,
    apply_plan,
    inline_placement,
    plan_patch,
    sibling_placement,
)

__all__ = [
    "PatchPlan",
    "PlacementPolicy",
    "TextEdit",
    "apply_edits",
    "apply_plan",
    "inline_placement",
    "plan_patch",
    "sibling_placement",
    "write_atomic",
]
