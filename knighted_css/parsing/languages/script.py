"""
Script language configuration and static module analysis.

Defines the JavaScript/TypeScript configs and ``analyze_module``, which
reads a module's static imports and classifies its default export.

Imports collected, in source order:
- ``import ... from 'x'`` and side-effect ``import 'x'`` (not ``import type``)
- ``export ... from 'x'`` and ``export * from 'x'``
- TypeScript ``import x = require('x')``
- ``import('x')`` and ``require('x')`` with a literal argument

Default export signal:
- has-default: ``export default``, ``export { x as default }``,
  ``export * as default from``, TypeScript ``export =``
- no-default: the module exports, but none of the above
- unknown: no exports at all, or the source could not be parsed
"""

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..config import Dialect, DialectConfig
from ..treesitter import node_text, parse, string_value, walk
from ...query import ModuleDefaultSignal
from ...resolver import normalize_specifier

if TYPE_CHECKING:
    from tree_sitter import Node, Tree


JAVASCRIPT_CONFIG = DialectConfig(
    name="JavaScript",
    tree_sitter_name="javascript",
    extensions={".js", ".jsx", ".mjs", ".cjs"},
    is_script=True,
)

TYPESCRIPT_CONFIG = DialectConfig(
    name="TypeScript",
    tree_sitter_name="typescript",
    extensions={".ts", ".mts", ".cts"},
    is_script=True,
)

TSX_CONFIG = DialectConfig(
    name="TSX",
    tree_sitter_name="tsx",
    extensions={".tsx"},
    is_script=True,
)

VANILLA_CONFIG = DialectConfig(
    name="Vanilla Extract",
    tree_sitter_name="typescript",
    extensions={".css.ts"},
    dialect=Dialect.VANILLA,
    is_script=True,
)

# Grammar to retry with when the primary grammar reports syntax errors
_FALLBACK_GRAMMARS = {
    "typescript": "tsx",
    "javascript": "tsx",
    "tsx": "typescript",
}


@dataclass
class ModuleAnalysis:
    """Static facts about one script module."""
    imports: List[str] = field(default_factory=list)
    default_signal: ModuleDefaultSignal = ModuleDefaultSignal.UNKNOWN


def grammar_for(path: str) -> str:
    """Tree-sitter grammar for a script path."""
    lower = path.lower()
    if lower.endswith(".tsx"):
        return "tsx"
    if lower.endswith((".ts", ".mts", ".cts")):
        return "typescript"
    return "javascript"


def parse_script(source: bytes, path: str) -> Optional["Tree"]:
    """
    Parse a script, retrying with a sibling grammar on syntax errors.

    Returns:
        Tree, or None when tree-sitter is unavailable
    """
    primary = grammar_for(path)
    tree = parse(primary, source)
    if tree is None or not tree.root_node.has_error:
        return tree
    retry = parse(_FALLBACK_GRAMMARS[primary], source)
    if retry is not None and not retry.root_node.has_error:
        return retry
    return tree


def _has_keyword(node: "Node", keyword: str) -> bool:
    return any(not child.is_named and child.type == keyword for child in node.children)


def _module_source(node: "Node", source: bytes) -> Optional[str]:
    target = node.child_by_field_name("source")
    if target is None:
        for child in node.children:
            if child.type == "import_require_clause":
                target = child.child_by_field_name("source")
                break
    return string_value(target, source) if target is not None else None


def _call_specifier(node: "Node", source: bytes) -> Optional[str]:
    function = node.child_by_field_name("function")
    if function is None:
        return None
    if function.type != "import" and not (
        function.type == "identifier" and node_text(function, source) == "require"
    ):
        return None
    arguments = node.child_by_field_name("arguments")
    if arguments is None or arguments.named_child_count == 0:
        return None
    return string_value(arguments.named_children[0], source)


def _exports_default(node: "Node", source: bytes) -> bool:
    if _has_keyword(node, "default") or _has_keyword(node, "="):
        return True
    for child in walk(node):
        if child.type == "export_specifier":
            alias = child.child_by_field_name("alias") or child.child_by_field_name("name")
            if alias is not None and node_text(alias, source) == "default":
                return True
        elif child.type == "namespace_export":
            if node_text(child, source).split()[-1] == "default":
                return True
    return False


def collect_imports(tree: "Tree", source: bytes) -> Tuple[List[str], ModuleDefaultSignal]:
    """
    Walk a parsed module for import specifiers and its default signal.

    Returns:
        (normalized specifiers in source order, default signal)
    """
    imports: List[str] = []
    has_exports = False
    has_default = False

    for node in walk(tree.root_node):
        raw: Optional[str] = None
        if node.type == "import_statement":
            if _has_keyword(node, "type"):
                continue
            raw = _module_source(node, source)
        elif node.type == "export_statement":
            has_exports = True
            has_default = has_default or _exports_default(node, source)
            if not _has_keyword(node, "type"):
                raw = _module_source(node, source)
        elif node.type == "call_expression":
            raw = _call_specifier(node, source)
        if raw:
            specifier = normalize_specifier(raw)
            if specifier:
                imports.append(specifier)

    if has_default:
        signal = ModuleDefaultSignal.HAS_DEFAULT
    elif has_exports:
        signal = ModuleDefaultSignal.NO_DEFAULT
    else:
        signal = ModuleDefaultSignal.UNKNOWN
    return imports, signal


def analyze_module(source: str, path: str) -> ModuleAnalysis:
    """
    Analyze a script module's imports and default export.

    Args:
        source: Module source text
        path: File path (selects the grammar)

    Returns:
        ModuleAnalysis; empty with an unknown signal if unparseable
    """
    data = source.encode("utf-8")
    tree = parse_script(data, PurePath(path).name)
    if tree is None:
        return ModuleAnalysis()
    imports, signal = collect_imports(tree, data)
    return ModuleAnalysis(imports=imports, default_signal=signal)
