"""
Stylesheet pipeline — Rule visitors, CSS Modules and minification.

Runs once over the fully concatenated stylesheet:

    1. parse with the tree-sitter CSS grammar
    2. hand each rule's selector list to the composed rule visitor
    3. CSS Modules: hash local classes, drop ``composes``, collect exports
    4. splice the rewritten selector lists back into the source
    5. minify (cssutils)

Declarations, comments and at-rule preludes are copied through untouched.
Rules whose prelude is not exactly one parsed selector list (nested ``&``
selectors the grammar cannot read, for instance) are left as they are.

Usage:
    result = transform_stylesheet(css, visitor=visitor, css_modules=True)
    result.code       # rewritten CSS
    result.exports    # {"button": [("button", "a1b2c3_button")], ...}
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

import cssutils
import xxhash

from .config import DEFAULT_OUTPUT_FILENAME
from .errors import KnightedCssError
from .parsing.treesitter import node_text, parse, walk
from .selectors import RuleVisitor, Selector, selectors_from_list

if TYPE_CHECKING:
    from tree_sitter import Node

logger = logging.getLogger(__name__)

# local name -> [(local, emitted class)], own class first
ModuleExports = Dict[str, List[Tuple[str, str]]]


@dataclass
class TransformResult:
    """Output of the stylesheet pipeline."""
    code: str
    exports: Optional[ModuleExports] = None


def module_class_hasher(filename: str) -> Callable[[str], str]:
    """
    Name generator for CSS Modules classes: ``<hash>_<local>``.

    The hash derives from the filename; a leading digit gets an underscore
    so the result stays a valid class name.
    """
    digest = xxhash.xxh32_hexdigest(filename.encode("utf-8"))[:6]
    prefix = f"_{digest}" if digest[0].isdigit() else digest

    def rename(local: str) -> str:
        return f"{prefix}_{local}"

    return rename


def minify_css(css: str) -> str:
    """Minify CSS with cssutils, restoring its log level and serializer defaults afterwards."""
    level = cssutils.log.getEffectiveLevel()
    cssutils.log.setLevel(logging.FATAL)
    cssutils.ser.prefs.useMinified()
    try:
        sheet = cssutils.parseString(css, validate=False)
        return sheet.cssText.decode("utf-8")
    finally:
        cssutils.ser.prefs.useDefaults()
        cssutils.log.setLevel(level)


# =============================================================================
# CSS Modules
# =============================================================================

def _declaration_parts(node: "Node", source: bytes) -> Tuple[str, str]:
    """(property, value) of a declaration node."""
    prop = ""
    value_start = None
    value_end = node.end_byte
    for child in node.children:
        if child.type == "property_name":
            prop = node_text(child, source).strip()
        elif child.type == ":" and value_start is None:
            value_start = child.end_byte
        elif child.type == ";":
            value_end = child.start_byte
    if value_start is None:
        return prop, ""
    return prop, source[value_start:value_end].decode("utf-8").strip()


def _removal_span(node: "Node", source: bytes) -> Tuple[int, int]:
    """Span of a declaration plus its trailing blanks; a whole line when it stands alone."""
    start, end = node.start_byte, node.end_byte
    while source[end:end + 1] in (b" ", b"\t"):
        end += 1
    line_start = source.rfind(b"\n", 0, start) + 1
    if source[end:end + 1] == b"\n" and not source[line_start:start].strip():
        return line_start, end + 1
    return start, end


def _single_class(selector: Selector) -> Optional[str]:
    classes = selector.class_tokens()
    if len(classes) == 1 and selector.normalized() == f".{classes[0].value}":
        return classes[0].value
    return None


def _parse_composes(value: str) -> Tuple[List[str], str]:
    """``a b from global`` -> (["a", "b"], "global")"""
    names, _, origin = value.partition(" from ")
    return names.split(), origin.strip().strip("'\"")


class _ModuleCollector:
    """Accumulates CSS Modules locals and their compositions for one stylesheet."""

    def __init__(self, rename: Callable[[str], str]):
        self.rename = rename
        self.locals: Dict[str, None] = {}
        self.composes: Dict[str, List[Tuple[str, str]]] = {}

    def add_rule(self, selectors: List[Selector]) -> None:
        for selector in selectors:
            for token in selector.class_tokens():
                if token.scoped:
                    self.locals.setdefault(token.value)

    def add_composes(self, selectors: List[Selector], value: str) -> None:
        names, origin = _parse_composes(value)
        targets = [name for name in map(_single_class, selectors) if name]
        if not targets:
            logger.debug("Ignoring composes outside a single-class rule: %s", value)
        for target in targets:
            self.composes.setdefault(target, []).extend((name, origin) for name in names)

    def _expand(self, local: str, seen: set) -> List[Tuple[str, str]]:
        classes = [(local, self.rename(local))]
        for name, origin in self.composes.get(local, []):
            if origin == "global":
                classes.append((name, name))
            elif name not in seen:
                seen.add(name)
                classes.extend(self._expand(name, seen))
        return classes

    def exports(self) -> ModuleExports:
        return {local: self._expand(local, {local}) for local in self.locals}


# =============================================================================
# Pipeline
# =============================================================================

def _child(node: "Node", node_type: str) -> Optional["Node"]:
    return next((c for c in node.children if c.type == node_type), None)


def _rule_selectors(node: "Node", source: bytes) -> Optional["Node"]:
    """
    The rule's ``selectors`` node when it is the rule's entire prelude.

    The grammar reports nested selectors it cannot read (``.b &``) as an
    ERROR sibling of ``selectors``; splicing such a rule would drop the
    unparsed part.
    """
    selectors_node = _child(node, "selectors")
    block = _child(node, "block")
    if selectors_node is None or block is None:
        return None
    if any(child.has_error for child in node.children if child.type != "block"):
        return None
    before = source[node.start_byte:selectors_node.start_byte]
    between = source[selectors_node.end_byte:block.start_byte]
    if before.strip() or between.strip():
        return None
    return selectors_node


def transform_stylesheet(
    css: str,
    visitor: Optional[RuleVisitor] = None,
    css_modules: bool = False,
    filename: Optional[str] = None,
    minify: bool = False,
) -> TransformResult:
    """
    Run the stylesheet pipeline over compiled CSS.

    Args:
        css: Concatenated CSS text
        visitor: Composed rule visitor (may be None)
        css_modules: Hash local classes and collect exports
        filename: Name hashed into CSS Modules classes
        minify: Minify the result

    Returns:
        TransformResult with the rewritten CSS and, for CSS Modules, exports

    Raises:
        KnightedCssError: If the tree-sitter CSS grammar is unavailable
    """
    source = css.encode("utf-8")
    tree = parse("css", source)
    if tree is None:
        raise KnightedCssError(
            "The tree-sitter CSS grammar is unavailable. "
            "Install tree-sitter-language-pack to transform stylesheets."
        )

    rename = module_class_hasher(filename or DEFAULT_OUTPUT_FILENAME) if css_modules else None
    collector = _ModuleCollector(rename) if rename else None
    edits: List[Tuple[int, int, bytes]] = []

    for node in walk(tree.root_node):
        if node.type != "rule_set":
            continue
        selectors_node = _rule_selectors(node, source)
        if selectors_node is None:
            logger.debug("Leaving rule untouched: %s", node_text(node, source).split("{", 1)[0].strip())
            continue

        original = selectors_from_list(selectors_node, source, scoped=css_modules)
        updated = visitor(list(original)) if visitor is not None else original

        if collector is not None:
            collector.add_rule(original)
            block = _child(node, "block")
            for declaration in (block.children if block is not None else []):
                if declaration.type != "declaration":
                    continue
                prop, value = _declaration_parts(declaration, source)
                if prop == "composes":
                    collector.add_composes(original, value)
                    edits.append((*_removal_span(declaration, source), b""))

        if css_modules or updated != original:
            text = ", ".join(s.render(rename, unwrap_global=css_modules) for s in updated)
            edits.append((selectors_node.start_byte, selectors_node.end_byte, text.encode("utf-8")))

    for start, end, replacement in sorted(edits, key=lambda edit: edit[0], reverse=True):
        source = source[:start] + replacement + source[end:]

    code = source.decode("utf-8")
    if minify:
        code = minify_css(code)
    return TransformResult(code=code, exports=collector.exports() if collector else None)
