"""
Stable-selector literal — ``export const stableSelectors = ...`` source text.

Scans compiled CSS for classes carrying the ``<namespace>-`` prefix and
renders the token -> class map as a frozen object literal:

    export const stableSelectors = Object.freeze({
      "button": "knighted-button"
    }) as const;

Usage:
    result = build_stable_selectors_literal(css, "knighted", path, warn)
    result.literal        # source text to splice into a module
    result.selector_map   # read-only {"button": "knighted-button"}
"""

import json
import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional

from .parsing.treesitter import node_text, parse, walk
from .query import STABLE_SELECTORS_EXPORT_NAME

logger = logging.getLogger(__name__)

LITERAL_TARGETS = ("ts", "js")


@dataclass(frozen=True)
class StableSelectorsLiteral:
    literal: str
    selector_map: Mapping[str, str]


def _token_pattern(namespace: str) -> "re.Pattern":
    return re.compile(rf"\.{re.escape(namespace)}-([A-Za-z0-9_-]+)")


def _collect_from_ast(css: str, namespace: str) -> Optional[Dict[str, str]]:
    source = css.encode("utf-8")
    tree = parse("css", source)
    if tree is None:
        return None
    class_pattern = re.compile(rf"{re.escape(namespace)}-([A-Za-z0-9_-]+)")
    tokens: Dict[str, str] = {}
    for node in walk(tree.root_node):
        if node.type != "class_name" or node.parent is None or node.parent.type != "class_selector":
            continue
        match = class_pattern.fullmatch(node_text(node, source))
        if match:
            tokens.setdefault(match.group(1), f"{namespace}-{match.group(1)}")
    return tokens


def _collect_by_regex(css: str, namespace: str) -> Dict[str, str]:
    tokens: Dict[str, str] = {}
    for match in _token_pattern(namespace).finditer(css):
        tokens.setdefault(match.group(1), f"{namespace}-{match.group(1)}")
    return tokens


def collect_stable_selectors(css: str, namespace: str) -> Mapping[str, str]:
    """
    Map every ``<namespace>-<token>`` class in the CSS to its full class.

    Entries are in order of first appearance. The tree-sitter CSS grammar is
    used when available, a regex scan otherwise.

    Returns:
        Read-only mapping token -> class
    """
    if not namespace:
        return MappingProxyType({})
    tokens = _collect_from_ast(css, namespace)
    if tokens is None:
        logger.debug("CSS grammar unavailable, scanning stable selectors by regex")
        tokens = _collect_by_regex(css, namespace)
    return MappingProxyType(tokens)


def format_stable_selector_map(selector_map: Mapping[str, str]) -> str:
    if not selector_map:
        return "Object.freeze({})"
    lines = [f"  {json.dumps(token)}: {json.dumps(value)}" for token, value in selector_map.items()]
    return "Object.freeze({\n" + ",\n".join(lines) + "\n})"


def _finalize(selector_map: Mapping[str, str], target: str) -> StableSelectorsLiteral:
    suffix = " as const" if target == "ts" else ""
    literal = f"export const {STABLE_SELECTORS_EXPORT_NAME} = {format_stable_selector_map(selector_map)}{suffix};\n"
    return StableSelectorsLiteral(literal=literal, selector_map=selector_map)


def build_stable_selectors_literal(
    css: str,
    namespace: str,
    resource_path: str,
    emit_warning: Callable[[str], None],
    target: str = "ts",
) -> StableSelectorsLiteral:
    """
    Build the ``stableSelectors`` export for a module.

    A blank namespace is a misconfiguration: the map is empty and exactly
    one warning goes to ``emit_warning``.

    Args:
        css: Compiled CSS
        namespace: Stable namespace
        resource_path: Module path used in warnings
        emit_warning: Diagnostic sink
        target: "ts" adds an ``as const`` annotation, "js" does not

    Returns:
        StableSelectorsLiteral
    """
    if target not in LITERAL_TARGETS:
        raise ValueError(f"Unknown literal target '{target}'. Valid: {', '.join(LITERAL_TARGETS)}")

    trimmed = (namespace or "").strip()
    if not trimmed:
        emit_warning(
            f'stableSelectors requested for {resource_path} but "stableNamespace" '
            "resolved to an empty value."
        )
        return _finalize(MappingProxyType({}), target)

    selector_map = collect_stable_selectors(css, trimmed)
    if not selector_map:
        emit_warning(
            f"stableSelectors requested for {resource_path} but no selectors matched "
            f'namespace "{trimmed}".'
        )
    return _finalize(selector_map, target)
