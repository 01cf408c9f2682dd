"""
Shared FastAPI dependencies.

Routes receive the narration engine through ``Depends(get_engine)`` so that
tests can swap in an engine with fake collaborators via
``app.dependency_overrides``.
"""

from functools import lru_cache

from narrator.config import get_settings
from narrator.pipeline import NarrationEngine, build_engine


@lru_cache()
def _default_engine() -> NarrationEngine:
    return build_engine(get_settings())


def get_engine() -> NarrationEngine:
    return _default_engine()
