"""
Tests for the bridge loader.

The bridge never compiles CSS, so none of these tests need a compiler or
the tree-sitter grammars.
"""

import pytest

from knighted_css import bridge
from knighted_css.bridge import (
    TYPES_WARNING,
    build_bridge_css_request,
    collect_css_module_requests,
    is_js_like_resource,
)


class TestRequestHelpers:
    """Test specifier discovery and marking."""

    def test_collect_css_module_requests(self):
        """CSS Module specifiers are collected once each, plain CSS and type imports are not."""
        source = (
            "import styles from './button.module.css'\n"
            "import './reset.css'\n"
            "export { default as tokens } from \"./tokens.module.scss?inline\"\n"
            "import again from './button.module.css'\n"
            "import type { X } from './types'\n"
        )

        assert collect_css_module_requests(source) == [
            "./button.module.css",
            "./tokens.module.scss?inline",
        ]

    @pytest.mark.parametrize("specifier,expected", [
        ("./a.module.css", "./a.module.css?knighted-css"),
        ("./a.module.css?inline", "./a.module.css?inline&knighted-css"),
        ("./a.module.css?knighted-css", "./a.module.css?knighted-css"),
    ])
    def test_build_bridge_css_request(self, specifier, expected):
        """The marker query is appended once, after any existing query."""
        assert build_bridge_css_request(specifier) == expected

    @pytest.mark.parametrize("path,expected", [
        ("/a/b.tsx", True), ("/a/b.mjs", True), ("/a/b.cts", True), ("/a/b.css", False), ("/a/b.scss", False),
    ])
    def test_is_js_like_resource(self, path, expected):
        """Script extensions count as JS-like, style extensions do not."""
        assert is_js_like_resource(path) is expected


class TestStylesheetPitch:
    """Test bridge modules for stylesheets."""

    @pytest.fixture
    def card(self, project):
        project.write("src/card.module.css", ".card {}")
        return project

    @pytest.mark.asyncio
    async def test_plain_bridge(self, card):
        """A stylesheet bridge imports the locals and the upstream loader chain."""
        ctx = card.loader_context("src/card.module.css", "?knighted-css")

        code = await bridge.pitch(ctx, f"css-loader!{card.path('src/card.module.css')}")

        assert code.startswith(
            'import * as __knightedLocals from "./card.module.css";\n'
            f'import * as __knightedUpstream from "!!css-loader!{card.path("src/card.module.css")}";\n'
        )
        assert code.endswith("export default __knightedCss;")
        assert card.warnings == []

    @pytest.mark.asyncio
    async def test_combined_forwards_default(self, card):
        """combined re-exports the locals module and its default."""
        ctx = card.loader_context("src/card.module.css", "?knighted-css&combined&x=1")

        code = await bridge.pitch(ctx, "css-loader!./card.module.css")

        assert 'export * from "./card.module.css?x=1";' in code
        assert code.endswith("export default __knightedLocalsExport;")

    @pytest.mark.asyncio
    async def test_combined_named_only(self, card):
        """no-default drops the default export."""
        ctx = card.loader_context("src/card.module.css", "?knighted-css&combined&no-default")

        assert "export default" not in await bridge.pitch(ctx, "css-loader!./card.module.css")

    @pytest.mark.asyncio
    async def test_without_remaining_request(self, card):
        """The locals request doubles as the upstream request."""
        ctx = card.loader_context("src/card.module.css", "?knighted-css")

        code = await bridge.pitch(ctx)

        assert 'import * as __knightedUpstream from "./card.module.css";' in code

    @pytest.mark.asyncio
    async def test_types_flag_warns(self, card):
        """The types flag is reported and otherwise ignored."""
        ctx = card.loader_context("src/card.module.css", "?knighted-css&types")

        code = await bridge.pitch(ctx, "css-loader!./card.module.css")

        assert card.warnings == [TYPES_WARNING]
        assert "stableSelectors" not in code

    @pytest.mark.asyncio
    async def test_modules_export_option(self, card):
        """emit_css_modules=False omits the modules export."""
        ctx = card.loader_context("src/card.module.css", "?knighted-css", options={"emit_css_modules": False})

        assert "knightedCssModules" not in await bridge.pitch(ctx, "css-loader!./card.module.css")


class TestScriptPitch:
    """Test the combined bridge for scripts."""

    @pytest.mark.asyncio
    async def test_collects_module_imports(self, project):
        """A script bridge pulls knightedCss from each CSS Module it imports."""
        project.write("src/button.tsx", (
            "import styles from './button.module.css'\n"
            "import './global.css'\n"
            "export default function Button() {}\n"
        ))
        ctx = project.loader_context("src/button.tsx", "?knighted-css&combined&exportName=css")

        code = await bridge.pitch(ctx, "babel-loader!./button.tsx")

        assert 'from "./button.module.css?knighted-css";' in code
        assert "global.css" not in code
        assert "export const css = __knightedCss;" in code
        assert code.endswith('export * from "!!babel-loader!./button.tsx";')

    @pytest.mark.asyncio
    async def test_types_flag_warns_for_scripts(self, project):
        """Scripts also warn about the types flag."""
        project.write("src/button.tsx", "export const a = 1\n")
        ctx = project.loader_context("src/button.tsx", "?knighted-css&combined&types")

        await bridge.pitch(ctx, "babel-loader!./button.tsx")

        assert project.warnings == [TYPES_WARNING]

    @pytest.mark.asyncio
    async def test_script_without_combined_gets_stylesheet_bridge(self, project):
        """Without combined, a script request gets the stylesheet bridge."""
        project.write("src/button.tsx", "")
        ctx = project.loader_context("src/button.tsx", "?knighted-css")

        code = await bridge.pitch(ctx, "babel-loader!./button.tsx")

        assert code.startswith('import * as __knightedLocals from "./button.tsx";')


class TestLoad:
    """Test the normal phase."""

    @pytest.mark.asyncio
    async def test_passthrough(self, project):
        """The normal phase returns the source untouched."""
        ctx = project.loader_context("src/a.css", "?knighted-css")

        assert await bridge.load(ctx, b"raw") == b"raw"
