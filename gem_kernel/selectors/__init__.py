"""Selectors for the gem kernel (read side)."""

from gem_kernel.selectors.activity_selector import ActivityEntryDTO, ActivitySelector

__all__ = [
    "ActivityEntryDTO",
    "ActivitySelector",
]
