"""
Selectors — Token model of CSS selectors built from the tree-sitter AST.

A Selector is an immutable tuple of tokens:

    class    a class name atom (the ``.`` is a separate text token)
    global   a whole ``:global(...)`` component, opaque to rewrites
    text     any other source fragment (combinators, pseudos, tags, ...)
    space    whitespace between fragments, normalized to one space

Visitors are pure functions over a rule's selector list, so they compose
by plain sequential application:

    visitor = compose_visitors([boost, auto_stable])
    new_selectors = visitor(selectors)
"""

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

from .parsing.treesitter import node_text

if TYPE_CHECKING:
    from tree_sitter import Node

CLASS = "class"
GLOBAL = "global"
TEXT = "text"
SPACE = "space"

# Tokens whose surrounding whitespace is not significant
_COMBINATORS = frozenset({">", "+", "~", ",", "(", ")"})
_GAP_RUNS = re.compile(r"\s+|\S+")

Renamer = Callable[[str], str]


@dataclass(frozen=True)
class SelectorToken:
    """
    One atom of a selector.

    Attributes:
        kind: class | global | text | space
        value: Class name, or the exact source text of the fragment
        scoped: Class is local to a CSS Module and renders hashed
        inner: For global tokens, the text inside ``:global(...)``
    """
    kind: str
    value: str
    scoped: bool = False
    inner: str = ""

    def render(self, rename: Optional[Renamer] = None, unwrap_global: bool = False) -> str:
        if self.kind == SPACE:
            return " "
        if self.kind == CLASS and self.scoped and rename is not None:
            return rename(self.value)
        if self.kind == GLOBAL and unwrap_global:
            return self.inner
        return self.value


@dataclass(frozen=True)
class Selector:
    """
    One complex selector of a rule's selector list.

    ``raw`` holds the original source text while the selector is unchanged;
    any rewrite produces a selector without it.
    """
    tokens: Tuple[SelectorToken, ...]
    raw: Optional[str] = None

    def with_tokens(self, tokens: Sequence[SelectorToken]) -> "Selector":
        return Selector(tokens=tuple(tokens))

    def class_tokens(self) -> List[SelectorToken]:
        return [token for token in self.tokens if token.kind == CLASS]

    def render(self, rename: Optional[Renamer] = None, unwrap_global: bool = False) -> str:
        """Serialize to CSS text; unchanged selectors keep their source text."""
        if self.raw is not None and rename is None and not unwrap_global:
            return self.raw
        return "".join(t.render(rename, unwrap_global) for t in self.tokens).strip()

    def normalized(self) -> str:
        """Whitespace-normalized text with local class names."""
        return "".join(t.render() for t in self.tokens).strip()

    def __str__(self) -> str:
        return self.render()

    def key(self) -> Tuple[Tuple[str, str, bool], ...]:
        """
        Structural identity used for de-duplication.

        Formatting differences (``a>b`` vs ``a > b``) do not affect the key.
        """
        tokens = self.tokens
        kept = []
        for index, token in enumerate(tokens):
            if token.kind == SPACE:
                before = tokens[index - 1] if index > 0 else None
                after = tokens[index + 1] if index + 1 < len(tokens) else None
                if before is None or after is None:
                    continue
                if before.value in _COMBINATORS or after.value in _COMBINATORS:
                    continue
            kept.append((token.kind, token.value, token.scoped))
        return tuple(kept)


RuleVisitor = Callable[[List[Selector]], List[Selector]]


def compose_visitors(visitors: Sequence[Optional[RuleVisitor]]) -> Optional[RuleVisitor]:
    """Apply visitors left to right; None entries are skipped."""
    active = [visitor for visitor in visitors if visitor is not None]
    if not active:
        return None
    if len(active) == 1:
        return active[0]

    def composed(selectors: List[Selector]) -> List[Selector]:
        for visitor in active:
            selectors = visitor(selectors)
        return selectors

    return composed


# =============================================================================
# Building from the tree-sitter AST
# =============================================================================

def _append(out: List[SelectorToken], token: SelectorToken) -> None:
    if token.kind == SPACE and (not out or out[-1].kind == SPACE):
        return
    out.append(token)


def _gap(text: str, out: List[SelectorToken]) -> None:
    for run in _GAP_RUNS.findall(text):
        if run.isspace():
            _append(out, SelectorToken(SPACE, " "))
        else:
            _append(out, SelectorToken(TEXT, run))


def _pseudo_name(node: "Node", source: bytes) -> Optional[str]:
    for child in node.children:
        if child.type == "class_name":
            return node_text(child, source)
    return None


def _flatten_range(
    node: "Node",
    children: Sequence["Node"],
    end: int,
    source: bytes,
    out: List[SelectorToken],
    scoped: bool,
) -> None:
    position = node.start_byte
    for child in children:
        if child.start_byte > position:
            _gap(source[position:child.start_byte].decode("utf-8"), out)
        _flatten(child, node.type, source, out, scoped)
        position = child.end_byte
    if end > position:
        _gap(source[position:end].decode("utf-8"), out)


def _flatten(
    node: "Node",
    parent_type: str,
    source: bytes,
    out: List[SelectorToken],
    scoped: bool,
) -> None:
    if node.type == "class_name" and parent_type == "class_selector":
        name = node_text(node, source)
        # Everything after a bare ``:global`` is global too
        if any(t.kind == GLOBAL and not t.inner for t in out):
            _append(out, SelectorToken(TEXT, name))
        else:
            _append(out, SelectorToken(CLASS, name, scoped=scoped))
        return

    colon = None
    if node.type == "pseudo_class_selector" and _pseudo_name(node, source) == "global":
        children = list(node.children)
        colon = next((i for i, child in enumerate(children) if child.type == ":"), None)
    if colon is not None:
        _flatten_range(node, children[:colon], children[colon].start_byte, source, out, scoped)
        text = source[children[colon].start_byte:node.end_byte].decode("utf-8")
        arguments = next((c for c in children if c.type == "arguments"), None)
        inner = node_text(arguments, source)[1:-1].strip() if arguments is not None else ""
        _append(out, SelectorToken(GLOBAL, text, inner=inner))
        return

    if node.child_count == 0 or node.type in ("string_value", "id_name", "tag_name"):
        _append(out, SelectorToken(TEXT, node_text(node, source)))
        return

    _flatten_range(node, node.children, node.end_byte, source, out, scoped)


def selector_from_node(node: "Node", source: bytes, scoped: bool = False) -> Selector:
    """
    Build a Selector from one selector node of a ``selectors`` list.

    Args:
        node: Selector AST node
        source: Source bytes the tree was parsed from
        scoped: Mark class atoms as CSS Module locals
    """
    tokens: List[SelectorToken] = []
    _flatten(node, "selectors", source, tokens, scoped)
    while tokens and tokens[-1].kind == SPACE:
        tokens.pop()
    while tokens and tokens[0].kind == SPACE:
        tokens.pop(0)
    return Selector(tokens=tuple(tokens), raw=node_text(node, source))


def selectors_from_list(node: "Node", source: bytes, scoped: bool = False) -> List[Selector]:
    """Build every selector of a ``selectors`` (comma list) node."""
    return [
        selector_from_node(child, source, scoped)
        for child in node.named_children
        if child.type != "comment"
    ]

