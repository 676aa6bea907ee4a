"""
Parsing module — Dialect routing and tree-sitter access.

This module provides the foundation for reading sources of every dialect:
- DialectConfig: Per-extension parsing rules
- DialectRegistry: Extension-based routing (longest suffix wins)
- treesitter: Lazy grammar loading and node helpers

Usage:
    from knighted_css.parsing import default_registry

    registry = default_registry()
    registry.get_config("theme.css.ts").dialect   # Dialect.VANILLA
    registry.get_config("app.ts").is_script       # True
"""

from .config import Dialect, DialectConfig
from .registry import DialectRegistry


def default_registry() -> DialectRegistry:
    """Registry with every built-in style dialect and script language."""
    from .languages import SCRIPT_CONFIGS, STYLE_CONFIGS

    registry = DialectRegistry()
    for config in STYLE_CONFIGS + SCRIPT_CONFIGS:
        registry.register(config)
    return registry


__all__ = [
    'Dialect',
    'DialectConfig',
    'DialectRegistry',
    'default_registry',
]
