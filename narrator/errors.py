"""
Narration Pipeline Errors

One small hierarchy for every failure the pipeline distinguishes.
Which of these cross a component boundary is decided by the component:
the move extractor swallows InputError into ``is_valid=False``, the cache
layer reports CacheIOError as a soft failure, and the replay controller
downgrades SynthesisError to a silent advance and raises StateError
when asked to replay from an unusable position.
"""

from __future__ import annotations

from typing import Optional


class NarrationError(Exception):
    """Base class for all narration pipeline errors."""


class InputError(NarrationError):
    """Malformed PGN or other unusable input."""


class SynthesisError(NarrationError):
    """The speech vendor (or the network path to it) failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CacheIOError(NarrationError):
    """Local persistence failed. Never fatal to the caller."""


class StateError(NarrationError):
    """The replay session cannot be set up as requested (e.g. an invalid starting FEN)."""
