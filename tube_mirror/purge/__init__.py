"""Deletion of mirrored videos selected through the delete directory."""

from tube_mirror.purge.deleter import DeletionStats, Deleter

__all__ = [
    "Deleter",
    "DeletionStats",
]
