"""Checkpoint persistence."""

from flashpermit.checkpoint.service import CheckpointStore

__all__ = ['CheckpointStore']
