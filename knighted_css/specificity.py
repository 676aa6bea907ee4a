"""
Specificity boost — Raise the specificity of matched selectors.

Strategies:
    repeat-class   .card        ->  .card.card          (times=1)
    append-where   .card        ->  .card:where(.boost) (token="boost")

The visitor form runs inside the stylesheet pipeline; the string form is
used when the pipeline is disabled.
"""

import re
from typing import Callable, List, Optional, Pattern

from .config import SpecificityBoost
from .selectors import CLASS, TEXT, RuleVisitor, Selector, SelectorToken

_CLASS_PATTERN = re.compile(r"\.[A-Za-z0-9_-]+")
_PRELUDE = re.compile(r"([^{};]+)\{")


def _selector_matchers(boost: SpecificityBoost) -> List[Pattern]:
    return [
        re.compile(f"^{re.escape(m)}$") if isinstance(m, str) else m
        for m in boost.match
    ]


def _boost_tokens(boost: SpecificityBoost) -> Callable[[Selector], Optional[List[SelectorToken]]]:
    if boost.strategy == "repeat-class":
        times = max(1, boost.times)

        def repeat(selector: Selector) -> Optional[List[SelectorToken]]:
            classes = selector.class_tokens()
            if not classes:
                return None
            last = classes[-1]
            return list(selector.tokens) + [SelectorToken(TEXT, "."), last] * times

        return repeat

    token = boost.token.lstrip(".")

    def append_where(selector: Selector) -> Optional[List[SelectorToken]]:
        return list(selector.tokens) + [
            SelectorToken(TEXT, ":where("),
            SelectorToken(TEXT, "."),
            SelectorToken(CLASS, token),
            SelectorToken(TEXT, ")"),
        ]

    return append_where


def build_specificity_visitor(boost: Optional[SpecificityBoost]) -> Optional[RuleVisitor]:
    """
    Build the rule visitor for a boost config.

    A custom ``visitor`` wins over the built-in strategies.
    """
    if boost is None:
        return None
    if boost.visitor is not None:
        return boost.visitor
    if boost.strategy not in ("repeat-class", "append-where"):
        return None

    matchers = _selector_matchers(boost)
    apply = _boost_tokens(boost)

    def visitor(selectors: List[Selector]) -> List[Selector]:
        boosted = []
        for selector in selectors:
            text = selector.normalized()
            if matchers and not any(m.search(text) for m in matchers):
                boosted.append(selector)
                continue
            tokens = apply(selector)
            boosted.append(selector.with_tokens(tokens) if tokens is not None else selector)
        return boosted

    return visitor


def apply_string_specificity_boost(css: str, boost: SpecificityBoost) -> str:
    """
    Regex rendition of the boost for CSS that bypasses the pipeline.

    String matchers select class names (``card`` matches ``.card`` but not
    ``.card-title``); patterns are applied as given.
    """
    if boost.strategy == "repeat-class":
        times = max(1, boost.times)

        def rewrite(match: "re.Match") -> str:
            return match.group(0) * (times + 1)
    elif boost.strategy == "append-where":
        suffix = f":where(.{boost.token.lstrip('.')})"

        def rewrite(match: "re.Match") -> str:
            return f"{match.group(0)}{suffix}"
    else:
        return css

    matchers = [
        re.compile(rf"\.{re.escape(m.lstrip('.'))}(?![\w-])") if isinstance(m, str) else m
        for m in boost.match
    ] or [_CLASS_PATTERN]

    def boost_prelude(match: "re.Match") -> str:
        prelude = match.group(1)
        if prelude.lstrip().startswith("@"):
            return match.group(0)
        for matcher in matchers:
            prelude = matcher.sub(rewrite, prelude)
        return prelude + "{"

    return _PRELUDE.sub(boost_prelude, css)
