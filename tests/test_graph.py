"""
Tests for the module graph walker.

Tests validate:
- Style units are collected in import (cascade) order
- External, builtin and type-only imports are skipped
- Missing relative imports raise ResolutionError
- The filter decides whether node_modules scripts are walked
- ``@import`` chains are reported in ``files``
"""

import pytest

from knighted_css.config import CssOptions
from knighted_css.errors import ResolutionError
from knighted_css.graph import CompileCache, GraphWalker, is_node_builtin

from tests.factories import requires_tree_sitter


def walker(project, **kwargs):
    return GraphWalker(CssOptions(cwd=project.root, **kwargs))


@requires_tree_sitter
class TestWalkOrder:
    """Test depth-first collection order."""

    @pytest.mark.asyncio
    async def test_cascade_order(self, project):
        """Styles follow source order, depth first."""
        project.write("src/index.ts", (
            "import './a.css'\n"
            "import { Button } from './button'\n"
            "import './b.css'\n"
        ))
        project.write("src/button.tsx", "import './button.scss'\nexport const Button = () => null\n")
        project.write("src/a.css", ".a {}")
        project.write("src/button.scss", ".button {}")
        project.write("src/b.css", ".b {}")

        graph = await walker(project).walk("src/index.ts")

        assert graph.styles == [project.path(p) for p in ("src/a.css", "src/button.scss", "src/b.css")]
        assert graph.files == [project.path(p) for p in (
            "src/index.ts", "src/a.css", "src/button.tsx", "src/button.scss", "src/b.css",
        )]

    @pytest.mark.asyncio
    async def test_shared_dependency_once(self, project):
        """A style reached through two scripts is listed once, at its first visit."""
        project.write("src/index.ts", "import './a'\nimport './b'\n")
        project.write("src/a.ts", "import './shared.css'\n")
        project.write("src/b.ts", "import './shared.css'\nimport './b.css'\n")
        project.write("src/shared.css", "")
        project.write("src/b.css", "")

        graph = await walker(project).walk("src/index.ts")

        assert graph.styles == [project.path("src/shared.css"), project.path("src/b.css")]

    @pytest.mark.asyncio
    async def test_cycles_terminate(self, project):
        """Circular script imports terminate and keep post-order."""
        project.write("src/a.ts", "import './b'\nimport './a.css'\n")
        project.write("src/b.ts", "import './a'\nimport './b.css'\n")
        project.write("src/a.css", "")
        project.write("src/b.css", "")

        graph = await walker(project).walk("src/a.ts")

        assert graph.styles == [project.path("src/b.css"), project.path("src/a.css")]

    @pytest.mark.asyncio
    async def test_vanilla_after_its_imports(self, project):
        """A .css.ts module contributes after the styles it imports."""
        project.write("src/index.ts", "import './theme.css'\n")
        project.write("src/theme.css.ts", "import './reset.css'\nexport const x = 1\n")
        project.write("src/reset.css", "")

        graph = await walker(project).walk("src/index.ts")

        assert graph.styles == [project.path("src/reset.css"), project.path("src/theme.css.ts")]

    @pytest.mark.asyncio
    async def test_dynamic_and_require(self, project):
        """Dynamic import() and require() calls are followed."""
        project.write("src/index.js", (
            "const lazy = () => import('./lazy.css')\n"
            "const theme = require('./theme.less')\n"
        ))
        project.write("src/lazy.css", "")
        project.write("src/theme.less", "")

        graph = await walker(project).walk("src/index.js")

        assert graph.styles == [project.path("src/lazy.css"), project.path("src/theme.less")]

    @pytest.mark.asyncio
    async def test_reexports_walked(self, project):
        """export-from statements are walked like imports."""
        project.write("src/index.ts", "export * from './tokens'\n")
        project.write("src/tokens.ts", "import './tokens.css'\nexport const a = 1\n")
        project.write("src/tokens.css", "")

        graph = await walker(project).walk("src/index.ts")

        assert graph.styles == [project.path("src/tokens.css")]


@requires_tree_sitter
class TestSkippedImports:
    """Test imports that never reach the output."""

    @pytest.mark.asyncio
    async def test_builtins_and_types(self, project):
        """Node builtins and type-only imports are skipped."""
        project.write("src/index.ts", (
            "import fs from 'fs'\n"
            "import path from 'node:path'\n"
            "import type { Theme } from './types'\n"
            "import './a.css'\n"
        ))
        project.write("src/a.css", "")

        graph = await walker(project).walk("src/index.ts")

        assert graph.styles == [project.path("src/a.css")]

    @pytest.mark.asyncio
    async def test_missing_bare_package_is_external(self, project):
        """An unresolvable bare package is treated as external."""
        project.write("src/index.ts", "import 'not-installed'\nimport './a.css'\n")
        project.write("src/a.css", "")

        graph = await walker(project).walk("src/index.ts")

        assert graph.styles == [project.path("src/a.css")]

    @pytest.mark.asyncio
    async def test_missing_relative_raises(self, project):
        """An unresolvable relative import is an error naming the importer."""
        entry = project.write("src/index.ts", "import './missing.css'\n")

        with pytest.raises(ResolutionError, match=r'Unable to resolve "./missing.css" imported from'):
            await walker(project).walk(entry)

    @pytest.mark.asyncio
    async def test_resolver_false_marks_external(self, project):
        """A custom resolver returning False marks the import external."""
        project.write("src/index.ts", "import 'virtual:theme.css'\nimport './missing.css'\n")

        def resolver(specifier, cwd, importer):
            return False if importer else None

        graph = await walker(project, resolver=resolver).walk("src/index.ts")

        assert graph.styles == []

    @pytest.mark.asyncio
    async def test_resolver_alias(self, project):
        """A custom resolver can rewrite a specifier."""
        project.write("src/index.ts", "import '@styles/card.css'\n")
        card = project.write("styles/card.css", "")

        def resolver(specifier, cwd, importer):
            if specifier.startswith("@styles/"):
                return specifier.replace("@styles/", "styles/")
            return None

        graph = await walker(project, resolver=resolver).walk("src/index.ts")

        assert graph.styles == [card]

    @pytest.mark.parametrize("specifier,expected", [
        ("fs", True), ("fs/promises", True), ("lodash", False), ("./fs", False),
    ])
    def test_is_node_builtin(self, specifier, expected):
        """Builtins match with or without a subpath."""
        assert is_node_builtin(specifier) is expected


@requires_tree_sitter
class TestNodeModules:
    """Test package traversal and the filter."""

    @pytest.fixture
    def ui(self, project):
        project.add_package("ui", {"index.js": "import './ui.css'\n", "ui.css": ".ui {}"}, {"main": "index.js"})
        project.write("src/index.ts", "import 'ui'\nimport 'ui/ui.css'\n")
        return project

    @pytest.mark.asyncio
    async def test_scripts_skipped_by_default(self, ui):
        """The default filter keeps node_modules scripts out of the walk."""
        graph = await walker(ui).walk("src/index.ts")

        assert graph.styles == [ui.path("node_modules/ui/ui.css")]
        assert ui.path("node_modules/ui/index.js") not in graph.files

    @pytest.mark.asyncio
    async def test_filter_admits_package_scripts(self, ui):
        """A permissive filter lets the walk enter package scripts."""
        graph = await walker(ui, filter=lambda path: True).walk("src/index.ts")

        assert ui.path("node_modules/ui/index.js") in graph.files
        assert graph.styles == [ui.path("node_modules/ui/ui.css")]


class TestStyleEntries:
    """Style entries need no script grammar."""

    @pytest.mark.asyncio
    async def test_style_entry(self, project):
        """A stylesheet entry lists itself and the files it imports."""
        project.write("src/card.css", '@import "./base.css";\n.card {}')
        project.write("src/base.css", "")

        graph = await walker(project).walk("src/card.css")

        assert graph.styles == [project.path("src/card.css")]
        assert graph.files == [project.path("src/card.css"), project.path("src/base.css")]

    @pytest.mark.asyncio
    async def test_sass_partials_reported(self, project):
        """Sass partials, index files and pkg: imports are reported as files."""
        project.write("src/app.scss", "@use 'tokens';\n@import 'mixins', 'pkg:theme';\n")
        project.write("src/_tokens.scss", "")
        project.write("src/mixins/_index.scss", "")
        project.add_package("theme", {"theme.scss": ""}, {"sass": "theme.scss"})

        graph = await walker(project).walk("src/app.scss")

        assert graph.files == [
            project.path("src/app.scss"),
            project.path("src/_tokens.scss"),
            project.path("src/mixins/_index.scss"),
            project.path("node_modules/theme/theme.scss"),
        ]

    @pytest.mark.asyncio
    async def test_external_style_imports_ignored(self, project):
        """Remote @import URLs are not followed."""
        project.write("a.css", '@import url("https://fonts.example.com/x.css");')

        graph = await walker(project).walk("a.css")

        assert graph.files == [project.path("a.css")]

    @pytest.mark.asyncio
    async def test_missing_entry(self, project):
        """A missing entry raises ResolutionError."""
        with pytest.raises(ResolutionError, match='Unable to resolve "missing.ts"'):
            await walker(project).walk("missing.ts")


class TestCompileCache:
    """Test per-invocation compile memoization."""

    @pytest.mark.asyncio
    async def test_compiles_once(self):
        """The same path compiles once per cache."""
        calls = []

        async def compile_fn(path):
            calls.append(path)
            return f"/* {path} */"

        cache = CompileCache()
        first = await cache.get_or_compile("/a.css", compile_fn)
        second = await cache.get_or_compile("/a.css", compile_fn)

        assert first == second == "/* /a.css */"
        assert calls == ["/a.css"]
        assert "/a.css" in cache
        assert len(cache) == 1
