"""
CSS extraction — ``css`` and ``css_with_meta``.

Pipeline for one invocation:

    1. walk the module graph from the entry (GraphWalker)
    2. compile each style unit accepted by the filter, once (CompileCache)
    3. join the chunks with newlines
    4. stylesheet pipeline: auto-stable + specificity + caller visitor,
       CSS Modules, minify
    5. string specificity boost when the pipeline is off

Usage:
    from knighted_css import css, css_with_meta

    text = await css("src/index.ts", cwd="/app", auto_stable=True)
    result = await css_with_meta("src/card.module.css", transform={"css_modules": True})
    result.css, result.files, result.exports
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .autostable import build_auto_stable_visitor, stabilize_exports
from .compilers import compile_file
from .config import CssOptions, TransformOptions, normalize_transform
from .graph import CompileCache, GraphWalker
from .parsing import DialectRegistry, default_registry
from .selectors import compose_visitors
from .specificity import apply_string_specificity_boost, build_specificity_visitor
from .stylesheet import transform_stylesheet

logger = logging.getLogger(__name__)

OptionsLike = Union[CssOptions, Dict[str, Any], None]


@dataclass
class CompileResult:
    """
    Compiled CSS and the files that produced it.

    Attributes:
        css: Concatenated, post-processed CSS
        files: Every visited file, in visit order
        exports: CSS Modules class map when CSS Modules are enabled
    """
    css: str
    files: List[str] = field(default_factory=list)
    exports: Optional[Dict[str, str]] = None


def coerce_options(options: OptionsLike = None, **overrides: Any) -> CssOptions:
    """Build CssOptions from a dataclass, a dict and/or keyword overrides."""
    if isinstance(options, CssOptions):
        if not overrides:
            return options
        data = {name: getattr(options, name) for name in CssOptions.__dataclass_fields__}
    else:
        data = dict(options or {})
    data.update(overrides)
    return CssOptions.from_dict(data)


def _pipeline_options(options: CssOptions) -> Optional[TransformOptions]:
    """Transform options, forced on when auto-stable needs selector access."""
    transform = normalize_transform(options.transform)
    if transform is None and options.auto_stable:
        transform = TransformOptions()
    return transform


async def css_with_meta(entry: str, options: OptionsLike = None, **overrides: Any) -> CompileResult:
    """
    Extract and compile every style dependency of an entry.

    Args:
        entry: Entry module (script or style), relative to cwd or absolute
        options: CssOptions or dict
        **overrides: Individual CssOptions fields

    Returns:
        CompileResult

    Raises:
        ValueError: If the options are invalid
        ResolutionError: If the entry or a relative import cannot be found
        MissingPeerError: If a dialect's compiler is not installed
        UnsupportedPeerError: If a compiler exposes no known API
    """
    opts = coerce_options(options, **overrides)
    error = opts.validate()
    if error:
        raise ValueError(error)

    registry: DialectRegistry = default_registry()
    graph = await GraphWalker(opts, registry).walk(entry)

    cache = CompileCache()
    file_filter = opts.file_filter

    async def compile_unit(path: str) -> str:
        return await compile_file(path, opts.cwd, opts.peer_resolver, opts.resolver, registry)

    chunks = []
    for path in graph.styles:
        if not file_filter(path):
            logger.debug("Filter excluded %s", path)
            continue
        chunk = await cache.get_or_compile(path, compile_unit)
        if chunk:
            chunks.append(chunk)
    output = "\n".join(chunks)

    exports: Optional[Dict[str, str]] = None
    transform = _pipeline_options(opts)
    if transform is not None:
        visitor = compose_visitors([
            build_auto_stable_visitor(opts.auto_stable),
            build_specificity_visitor(opts.specificity_boost),
            transform.visitor,
        ])
        result = transform_stylesheet(
            output,
            visitor=visitor,
            css_modules=transform.css_modules,
            filename=transform.filename,
            minify=transform.minify,
        )
        output = result.code
        if result.exports is not None:
            exports = stabilize_exports(result.exports, opts.auto_stable)
    else:
        boost = opts.specificity_boost
        if boost is not None and boost.strategy and boost.visitor is None:
            output = apply_string_specificity_boost(output, boost)

    return CompileResult(css=output, files=graph.files, exports=exports)


async def css(entry: str, options: OptionsLike = None, **overrides: Any) -> str:
    """Compiled CSS of an entry; see ``css_with_meta``."""
    result = await css_with_meta(entry, options, **overrides)
    return result.css
