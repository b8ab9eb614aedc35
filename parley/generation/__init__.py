"""
Generation orchestration and conversation naming.
"""

from parley.generation.controller import (
    STOPPED_SUFFIX,
    GenerationController,
    create_controller,
    format_error,
)
from parley.generation.naming import ThreadNamingService, clean_title, fallback_title

__all__ = [
    "GenerationController",
    "create_controller",
    "STOPPED_SUFFIX",
    "format_error",
    "ThreadNamingService",
    "clean_title",
    "fallback_title",
]
