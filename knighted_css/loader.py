"""
Loader — Bundler loader entry points for ``?knighted-css`` resources.

The host bundler owns the loader lifecycle; it is represented here only by
a LoaderContext value. Two entry points:

    load(ctx, source)              source + ``export const knightedCss = "..."``
    pitch(ctx, remaining_request)  combined proxy module for ``&combined``,
                                   None otherwise (normal loading continues)

Options come from ``ctx.options``: a LoaderOptions, or a dict layered over
the project config (knighted-css.yaml) and environment by ConfigManager.

Usage:
    ctx = LoaderContext(resource_path="/app/src/button.tsx",
                        resource_query="?knighted-css&combined",
                        root_context="/app")
    module_source = await pitch(ctx, "/app/src/button.tsx")
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .codegen import (
    CSS_MODULES_EXPORT_NAME,
    build_combined_module,
    build_css_injection,
    build_css_modules_export,
    build_proxy_request,
)
from .config import ConfigManager, LoaderOptions
from .css import CompileResult, css_with_meta
from .literal import build_stable_selectors_literal
from .module_info import detect_module_default_export
from .query import (
    CSS_TS_SUFFIXES,
    STABLE_SELECTORS_EXPORT_NAME,
    QueryFlagSet,
    parse_flags,
    should_emit_combined_default,
)
from .stable import resolve_stable_namespace
from .utils import maybe_await, read_text_async

logger = logging.getLogger(__name__)

_JS_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
_TS_RESOURCE = re.compile(r"\.[cm]?tsx?$")

_RESERVED_WORDS = frozenset({
    "arguments", "await", "break", "case", "catch", "class", "const", "continue",
    "debugger", "default", "delete", "do", "else", "enum", "eval", "export",
    "extends", "false", "finally", "for", "function", "if", "implements", "import",
    "in", "instanceof", "interface", "let", "new", "null", "package", "private",
    "protected", "public", "return", "static", "super", "switch", "this", "throw",
    "true", "try", "typeof", "var", "void", "while", "with", "yield",
})

# Bindings the generated modules declare themselves.
_GENERATED_EXPORTS = frozenset({CSS_MODULES_EXPORT_NAME, STABLE_SELECTORS_EXPORT_NAME})
_INTERNAL_PREFIX = "__knighted"

Source = Union[str, bytes]


def is_valid_identifier(name: str) -> bool:
    """True for names usable as an ES module binding (reserved words excluded)."""
    return bool(_JS_IDENTIFIER.match(name)) and name not in _RESERVED_WORDS


def is_generated_binding(name: str) -> bool:
    return name in _GENERATED_EXPORTS or name.startswith(_INTERNAL_PREFIX)


@dataclass
class LoaderContext:
    """
    The slice of a bundler loader context this package reads.

    Attributes:
        resource_path: Absolute path of the module being loaded
        resource_query: Query string including ``?``
        root_context: Project root; default cwd for extraction
        context: Directory of the module (for request building)
        options: LoaderOptions or a dict of loader options
        add_dependency: Registers a file as a build dependency
        emit_warning: Diagnostic sink; warnings go to the logger without it
        raw_request: Request as written by the importer, if known
        contextify: Host ``(context, request) -> request`` function
        read_file: Host file reader (sync or async); direct reads otherwise
    """
    resource_path: str
    resource_query: str = ""
    root_context: Optional[str] = None
    context: Optional[str] = None
    options: Union[LoaderOptions, Dict[str, Any], None] = None
    add_dependency: Optional[Callable[[str], None]] = None
    emit_warning: Optional[Callable[[str], None]] = None
    raw_request: Optional[str] = None
    contextify: Optional[Callable[[str, str], str]] = None
    read_file: Optional[Callable[[str], Union[Source, Awaitable[Source]]]] = None

    @property
    def flags(self) -> QueryFlagSet:
        return parse_flags(self.resource_query)

    def warn(self, message: str) -> None:
        if self.emit_warning is not None:
            self.emit_warning(message)
        else:
            logger.warning(message)

    def depend(self, path: str) -> None:
        if self.add_dependency is not None:
            self.add_dependency(path)

    def loader_options(self) -> LoaderOptions:
        if isinstance(self.options, LoaderOptions):
            return self.options
        project_dir = Path(self.root_context) if self.root_context else Path.cwd()
        return ConfigManager(project_dir).load(self.options or {})

    async def read_resource(self) -> str:
        if self.read_file is None:
            return await read_text_async(self.resource_path)
        data = await maybe_await(self.read_file(self.resource_path))
        return data.decode("utf-8") if isinstance(data, bytes) else data


# =============================================================================
# Helpers
# =============================================================================

def resolve_export_name(ctx: LoaderContext, options: LoaderOptions) -> str:
    """
    Per-request ``exportName`` when usable, else the configured name.

    Reserved words and names the generated module already binds are
    rejected with a warning.
    """
    requested = ctx.flags.export_name
    if requested:
        if not is_valid_identifier(requested):
            ctx.warn(f'Ignoring invalid exportName "{requested}" for {ctx.resource_path}.')
        elif is_generated_binding(requested):
            ctx.warn(
                f'Ignoring exportName "{requested}" for {ctx.resource_path}: '
                "the name is already used by a generated export."
            )
        else:
            return requested
    return options.export_name


async def extract_css(ctx: LoaderContext, options: LoaderOptions) -> CompileResult:
    """Compile the resource's CSS and register every file as a dependency."""
    result = await css_with_meta(ctx.resource_path, options.css)
    for path in dict.fromkeys([ctx.resource_path, *result.files]):
        ctx.depend(path)
    return result


def stable_selectors_literal(ctx: LoaderContext, options: LoaderOptions, css: str) -> Optional[str]:
    flags = ctx.flags
    if not flags.stable_requested:
        return None
    if flags.stable_namespace is not None:
        namespace = flags.stable_namespace
    else:
        namespace = resolve_stable_namespace(options.stable_namespace)
    target = "ts" if _TS_RESOURCE.search(ctx.resource_path) else "js"
    return build_stable_selectors_literal(
        css,
        namespace,
        ctx.resource_path,
        ctx.warn,
        target=target,
    ).literal


def css_modules_map(options: LoaderOptions, result: CompileResult) -> Optional[Dict[str, str]]:
    if not options.emit_css_modules or result.exports is None:
        return None
    return result.exports


# =============================================================================
# Entry Points
# =============================================================================

async def load(ctx: LoaderContext, source: Optional[Source] = None) -> str:
    """
    Append the compiled CSS export to a module's source.

    CSS-in-TS resources are replaced with the exports and an empty default.
    Without ``source`` the resource is read through the context.
    """
    options = ctx.loader_options()
    export_name = resolve_export_name(ctx, options)
    result = await extract_css(ctx, options)

    injection = build_css_injection(result.css, export_name)
    modules = css_modules_map(options, result)
    if modules is not None:
        injection += build_css_modules_export(modules) + "\n"
    literal = stable_selectors_literal(ctx, options, result.css)
    if literal:
        injection += literal

    if ctx.resource_path.endswith(CSS_TS_SUFFIXES):
        return f"{injection}export default {{}};\n"
    if source is None:
        text = await ctx.read_resource()
    else:
        text = source.decode("utf-8") if isinstance(source, bytes) else source
    return f"{text}{injection}"


async def pitch(ctx: LoaderContext, remaining_request: Optional[str] = None) -> Optional[str]:
    """
    Build the combined module for ``&combined`` requests.

    Args:
        ctx: Loader context
        remaining_request: Loader chain after this one; the combined module
            re-imports the resource through the normal chain instead

    Returns:
        Module source, or None when the request is not combined
    """
    flags = ctx.flags
    if not flags.combined:
        return None

    options = ctx.loader_options()
    export_name = resolve_export_name(ctx, options)
    request = build_proxy_request(
        ctx.resource_path,
        flags.sanitized_query,
        context=ctx.context or ctx.root_context or os.getcwd(),
        raw_request=ctx.raw_request,
        contextify=ctx.contextify,
    )
    detection = await detect_module_default_export(ctx.resource_path)
    emit_default = should_emit_combined_default(detection, request, flags.skip_synthetic_default)
    result = await extract_css(ctx, options)

    return build_combined_module(
        request,
        result.css,
        export_name=export_name,
        emit_default=emit_default,
        css_modules=css_modules_map(options, result),
        stable_selectors_literal=stable_selectors_literal(ctx, options, result.css),
    )
