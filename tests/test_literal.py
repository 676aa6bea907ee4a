"""
Tests for the stable-selector literal generator.

Tests validate:
- Selector collection from compiled CSS (AST and regex paths)
- Discovery order
- Literal rendering per target
- Warnings for blank namespaces and empty results
"""

import re

import pytest

from knighted_css import literal
from knighted_css.literal import (
    build_stable_selectors_literal,
    collect_stable_selectors,
    format_stable_selector_map,
)

from tests.factories import requires_tree_sitter


CSS = """
.knighted-card, .card { color: red }
.knighted-title:hover .knighted-card { font-weight: bold }
.other-knighted-x { margin: 0 }
.acme-button { padding: 0 }
"""


class TestFormat:
    """Test map rendering."""

    def test_empty_map(self):
        """An empty map renders as an empty frozen object."""
        assert format_stable_selector_map({}) == "Object.freeze({})"

    def test_entries_keep_order(self):
        """Entries render in insertion order."""
        text = format_stable_selector_map({"b": "ns-b", "a": "ns-a"})

        assert text == 'Object.freeze({\n  "b": "ns-b",\n  "a": "ns-a"\n})'


class TestCollectByRegex:
    """Collection without a CSS grammar."""

    def test_regex_fallback(self, monkeypatch):
        """The regex scan is used when the grammar is unavailable."""
        monkeypatch.setattr(literal, "parse", lambda name, source: None)

        selectors = collect_stable_selectors(CSS, "knighted")

        assert list(selectors) == ["card", "title"]

    def test_blank_namespace_collects_nothing(self):
        """A blank namespace never matches."""
        assert dict(collect_stable_selectors(CSS, "")) == {}


@requires_tree_sitter
class TestCollectFromAst:
    """Collection through the tree-sitter CSS grammar."""

    def test_first_appearance_order(self):
        """Tokens are listed in the order they first appear."""
        selectors = collect_stable_selectors(CSS, "knighted")

        assert list(selectors.items()) == [
            ("card", "knighted-card"),
            ("title", "knighted-title"),
        ]

    def test_only_whole_class_names_match(self):
        """``other-knighted-x`` is not a knighted class."""
        selectors = collect_stable_selectors(CSS, "knighted")

        assert "x" not in selectors

    def test_ignores_declaration_values(self):
        """Class-like text outside selectors is not collected."""
        css = '.a { content: ".knighted-ghost" }\n.knighted-real { color: red }'

        assert list(collect_stable_selectors(css, "knighted")) == ["real"]

    def test_result_is_read_only(self):
        """The returned map cannot be mutated."""
        selectors = collect_stable_selectors(CSS, "acme")

        with pytest.raises(TypeError):
            selectors["new"] = "acme-new"

    def test_values_carry_namespace(self):
        """Every value is ``<namespace>-<key>``."""
        for key, value in collect_stable_selectors(CSS, "knighted").items():
            assert value == f"knighted-{key}"


class TestBuildLiteral:
    """Test build_stable_selectors_literal."""

    def test_blank_namespace_warns_once(self):
        """A blank namespace yields an empty frozen object and one warning."""
        warnings = []

        result = build_stable_selectors_literal(CSS, "   ", "/app/card.tsx", warnings.append)

        assert result.literal == "export const stableSelectors = Object.freeze({}) as const;\n"
        assert dict(result.selector_map) == {}
        assert len(warnings) == 1
        assert "/app/card.tsx" in warnings[0]
        assert "stableNamespace" in warnings[0]

    def test_js_target_has_no_annotation(self):
        """The js target drops the ``as const`` annotation."""
        warnings = []

        result = build_stable_selectors_literal("", "", "/app/card.js", warnings.append, target="js")

        assert result.literal == "export const stableSelectors = Object.freeze({});\n"

    def test_unknown_target_rejected(self):
        """Only the ts and js targets are accepted."""
        with pytest.raises(ValueError, match="Unknown literal target"):
            build_stable_selectors_literal(CSS, "knighted", "/a.ts", lambda message: None, target="py")

    def test_no_match_warns(self):
        """A namespace with no matching classes is reported."""
        warnings = []

        result = build_stable_selectors_literal(".card {}", "knighted", "/a.ts", warnings.append)

        assert dict(result.selector_map) == {}
        assert len(warnings) == 1
        assert 'namespace "knighted"' in warnings[0]

    def test_literal_lists_matches(self):
        """The namespace is trimmed and matching classes are listed."""
        warnings = []

        result = build_stable_selectors_literal(CSS, " acme ", "/a.ts", warnings.append)

        assert warnings == []
        assert dict(result.selector_map) == {"button": "acme-button"}
        assert re.search(r'"button": "acme-button"\n\}\) as const;\n$', result.literal)
