"""
Tree-sitter access — Lazy grammar loading and node helpers.

Grammars come from tree-sitter-language-pack. Parsers are created on first
use and reused; they hold no per-document state between ``parse`` calls.

Usage:
    tree = parse("css", ".card { color: red }")
    for node in walk(tree.root_node):
        if node.type == "class_name":
            print(node_text(node, source))
"""

import re
from typing import TYPE_CHECKING, Dict, Iterator, Optional, Union

if TYPE_CHECKING:
    from tree_sitter import Node, Parser, Tree

# Lazy import for the language pack to allow graceful degradation
_language_pack_available = None
_parsers: Dict[str, "Parser"] = {}

_ESCAPE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPE_CHARS = {"n": "\n", "t": "\t", "r": "\r", "\n": ""}


def _check_language_pack() -> bool:
    """Check if tree-sitter-language-pack is available."""
    global _language_pack_available
    if _language_pack_available is None:
        try:
            import tree_sitter_language_pack  # noqa: F401
            _language_pack_available = True
        except ImportError:
            _language_pack_available = False
    return _language_pack_available


def is_available() -> bool:
    return _check_language_pack()


def get_parser(tree_sitter_name: str) -> Optional["Parser"]:
    """
    Get tree-sitter parser for a grammar (lazy-loaded).

    Args:
        tree_sitter_name: Grammar name (e.g., "css", "typescript", "tsx")

    Returns:
        Parser instance or None if not available
    """
    if tree_sitter_name in _parsers:
        return _parsers[tree_sitter_name]

    if not _check_language_pack():
        return None

    from tree_sitter_language_pack import get_parser as load_parser
    try:
        parser = load_parser(tree_sitter_name)
    except Exception:
        return None
    _parsers[tree_sitter_name] = parser
    return parser


def parse(tree_sitter_name: str, source: Union[str, bytes]) -> Optional["Tree"]:
    """Parse source with the named grammar; None when the grammar is unavailable."""
    parser = get_parser(tree_sitter_name)
    if parser is None:
        return None
    data = source.encode("utf-8") if isinstance(source, str) else source
    return parser.parse(data)


def node_text(node: "Node", source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8")


def walk(node: "Node") -> Iterator["Node"]:
    """Pre-order traversal of a subtree."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def string_value(node: "Node", source: bytes) -> Optional[str]:
    """
    Literal value of a JS/TS string node.

    Only plain strings and substitution-free template strings qualify.
    """
    if node.type == "string":
        text = node_text(node, source)
        return unescape(text[1:-1]) if len(text) >= 2 else None
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
        return unescape(node_text(node, source)[1:-1])
    return None


def unescape(text: str) -> str:
    """Resolve backslash escapes in a JS string body."""
    return _ESCAPE.sub(lambda m: _ESCAPE_CHARS.get(m.group(1), m.group(1)), text)
