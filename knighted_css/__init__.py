"""
knighted_css — CSS extraction for JavaScript/TypeScript module graphs

Walks a module graph from an entry, compiles every stylesheet it reaches
(CSS, Sass/SCSS, Less, vanilla-extract ``.css.ts``) and hands the result to
bundlers as a ``knightedCss`` string export.

Usage:
    from knighted_css import css, css_with_meta

    text = await css("src/button.tsx", cwd="/app")
    result = await css_with_meta("src/button.tsx", auto_stable=True)
    result.css, result.files

    # Bundler side
    from knighted_css import loader, bridge, LoaderContext
    source = await loader.load(LoaderContext(resource_path=...), source)
"""

__version__ = "0.1.0"

# Extraction
from .css import css, css_with_meta, CompileResult
from .config import (
    CssOptions, LoaderOptions, TransformOptions, AutoStableConfig, SpecificityBoost,
    ModuleGraphOptions, ConfigManager, DEFAULT_EXPORT_NAME,
)
from .errors import KnightedCssError, ResolutionError, MissingPeerError, UnsupportedPeerError, CompileError

# Stable selectors
from .stable import (
    stable_token, stable_class, stable_selector, stable_class_name,
    create_stable_class_factory, resolve_stable_namespace,
)
from .literal import StableSelectorsLiteral, build_stable_selectors_literal, collect_stable_selectors

# Loader protocol
from . import bridge, loader
from .loader import LoaderContext
from .query import (
    QueryFlagSet, ModuleDefaultSignal, SelectorVariant, parse_flags, build_sanitized_query,
    should_emit_combined_default, determine_selector_variant, variant_exports,
)

__all__ = [
    # Extraction
    'css', 'css_with_meta', 'CompileResult',
    'CssOptions', 'LoaderOptions', 'TransformOptions', 'AutoStableConfig', 'SpecificityBoost',
    'ModuleGraphOptions', 'ConfigManager', 'DEFAULT_EXPORT_NAME',
    'KnightedCssError', 'ResolutionError', 'MissingPeerError', 'UnsupportedPeerError', 'CompileError',
    # Stable selectors
    'stable_token', 'stable_class', 'stable_selector', 'stable_class_name',
    'create_stable_class_factory', 'resolve_stable_namespace',
    'StableSelectorsLiteral', 'build_stable_selectors_literal', 'collect_stable_selectors',
    # Loader protocol
    'bridge', 'loader', 'LoaderContext',
    'QueryFlagSet', 'ModuleDefaultSignal', 'SelectorVariant', 'parse_flags', 'build_sanitized_query',
    'should_emit_combined_default', 'determine_selector_variant', 'variant_exports',
]
