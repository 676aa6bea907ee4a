"""
Bridge loader — ``knightedCss`` for stylesheets owned by another CSS loader.

When an existing loader chain (css-loader and friends) already handles a
stylesheet, the bridge does not compile anything. Its pitch returns a proxy
module that imports the upstream module and re-exports its CSS text and
CSS Modules map:

    stylesheet resource   build_bridge_module (upstream + locals request)
    script + &combined    build_combined_js_bridge_module over the script's
                          ``*.module.(css|scss|sass|less)`` imports

Usage:
    ctx = LoaderContext(resource_path="/app/src/card.module.css",
                        resource_query="?knighted-css&combined")
    module_source = await pitch(ctx, "css-loader!/app/src/card.module.css")
"""

import logging
import os
import re
from typing import List, Optional

from .codegen import (
    build_bridge_module,
    build_combined_js_bridge_module,
    build_proxy_request,
    build_upstream_request,
)
from .loader import LoaderContext, Source, resolve_export_name
from .query import MARKER_QUERY_FLAG, ModuleDefaultSignal, should_emit_combined_default

logger = logging.getLogger(__name__)

TYPES_WARNING = 'The bridge loader does not generate stableSelectors. Remove the "types" query flag.'

_CSS_MODULE_IMPORT = re.compile(
    r"""(?:import|export)\s+(?:[^'"\n]+\s+from\s+)?['"]"""
    r"""([^'"\n]+?\.module\.(?:css|scss|sass|less)(?:\?[^'"\n]+)?)['"]"""
)
_JS_LIKE = re.compile(r"\.[cm]?[jt]sx?$")


def collect_css_module_requests(source: str) -> List[str]:
    """CSS Modules specifiers imported or re-exported by a script, deduplicated in order."""
    return list(dict.fromkeys(match.group(1) for match in _CSS_MODULE_IMPORT.finditer(source)))


def build_bridge_css_request(specifier: str) -> str:
    """Add the ``knighted-css`` marker to a stylesheet specifier."""
    if MARKER_QUERY_FLAG in specifier:
        return specifier
    resource, _, query = specifier.partition("?")
    if query:
        return f"{resource}?{query}&{MARKER_QUERY_FLAG}"
    return f"{specifier}?{MARKER_QUERY_FLAG}"


def is_js_like_resource(resource_path: str) -> bool:
    return bool(_JS_LIKE.search(resource_path))


async def load(ctx: LoaderContext, source: Source) -> Source:
    """Normal phase: the bridge leaves sources untouched."""
    return source


async def pitch(ctx: LoaderContext, remaining_request: Optional[str] = None) -> str:
    """
    Build the bridge proxy module.

    Args:
        ctx: Loader context
        remaining_request: Loader chain after the bridge; imported with
            normal loaders disabled to reach the upstream CSS module

    Returns:
        Module source
    """
    flags = ctx.flags
    options = ctx.loader_options()
    export_name = resolve_export_name(ctx, options)
    upstream_request = build_upstream_request(remaining_request)

    if flags.types_requested:
        ctx.warn(TYPES_WARNING)

    if is_js_like_resource(ctx.resource_path) and flags.combined:
        source = await ctx.read_resource()
        css_requests = [build_bridge_css_request(request) for request in collect_css_module_requests(source)]
        logger.debug("Bridging %d CSS Modules imports of %s", len(css_requests), ctx.resource_path)
        return build_combined_js_bridge_module(
            upstream_request,
            css_requests,
            emit_default=False,
            export_name=export_name,
        )

    locals_request = build_proxy_request(
        ctx.resource_path,
        flags.sanitized_query,
        context=ctx.context or ctx.root_context or os.getcwd(),
        raw_request=ctx.raw_request,
        contextify=ctx.contextify,
    )
    emit_default = False
    if flags.combined:
        emit_default = should_emit_combined_default(
            ModuleDefaultSignal.UNKNOWN,
            locals_request,
            flags.skip_synthetic_default,
        )
    return build_bridge_module(
        locals_request,
        upstream_request or locals_request,
        combined=flags.combined,
        emit_default=emit_default,
        emit_css_modules=options.emit_css_modules,
        export_name=export_name,
    )
