"""
Module info — Static default-export detection for combined modules.

Usage:
    signal = await detect_module_default_export("/app/src/button.tsx")
    signal   # ModuleDefaultSignal.HAS_DEFAULT
"""

import logging
import os

from .parsing.languages.script import analyze_module
from .query import ModuleDefaultSignal
from .utils import read_text_async

logger = logging.getLogger(__name__)

DETECTABLE_EXTENSIONS = frozenset({".js", ".jsx", ".ts", ".tsx", ".mjs", ".mts", ".cjs", ".cts"})


async def detect_module_default_export(path: str) -> ModuleDefaultSignal:
    """
    Whether a script module has a default export.

    Unreadable files, unknown extensions and a missing grammar all yield
    ``UNKNOWN``, which callers treat as "assume a default exists".
    """
    if os.path.splitext(path)[1] not in DETECTABLE_EXTENSIONS:
        return ModuleDefaultSignal.UNKNOWN
    try:
        source = await read_text_async(path)
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Default export detection skipped for %s: %s", path, exc)
        return ModuleDefaultSignal.UNKNOWN
    return analyze_module(source, path).default_signal
