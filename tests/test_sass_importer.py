"""
Tests for the Sass importer: partial probing, ``pkg:`` URLs, alias
schemes and the per-API importer shapes.
"""

import asyncio
import logging
from pathlib import Path

import pytest

from knighted_css.sass_importer import (
    PkgResolver,
    SassImporter,
    ensure_sass_path,
    infer_sass_syntax,
    should_normalize_specifier,
)


@pytest.fixture
def theme(project):
    """Project with a Sass package and local partials."""
    project.add_package("theme", {"scss/theme.scss": "$brand: red;"}, {"sass": "scss/theme.scss"})
    project.write("styles/_tokens.scss", "$gap: 4px;")
    project.write("styles/mixins/_index.scss", "@mixin x {}")
    project.write("styles/app.scss", "@use 'tokens';")
    return project


class TestEnsureSassPath:
    """Test the Sass file lookup contract."""

    def test_existing_file(self, theme):
        """An existing file is returned unchanged."""
        path = theme.path("styles/app.scss")

        assert ensure_sass_path(path) == path

    def test_partial(self, theme):
        """``tokens.scss`` finds the ``_tokens.scss`` partial."""
        assert ensure_sass_path(theme.path("styles/tokens.scss")) == theme.path("styles/_tokens.scss")

    def test_index_partial(self, theme):
        """A directory name finds its ``_index`` partial."""
        assert ensure_sass_path(theme.path("styles/mixins.scss")) == theme.path("styles/mixins/_index.scss")

    def test_extensionless(self, theme):
        """Extensionless paths try each Sass extension."""
        assert ensure_sass_path(theme.path("styles/tokens")) == theme.path("styles/_tokens.scss")

    def test_missing(self, theme):
        """Nothing on disk gives None."""
        assert ensure_sass_path(theme.path("styles/nope.scss")) is None


class TestHelpers:
    """Test specifier classification."""

    @pytest.mark.parametrize("specifier,expected", [
        ("alias:tokens", True),
        ("~theme:colors", False),
        ("pkg:theme", True),
        ("sass:math", False),
        ("file:///a.scss", False),
        ("./tokens", False),
    ])
    def test_should_normalize(self, specifier, expected):
        """Only custom schemes and pkg: are normalized; sass: and file: are not."""
        assert should_normalize_specifier(specifier) is expected

    def test_syntax(self):
        """.sass is the indented syntax."""
        assert infer_sass_syntax("/a.sass") == "indented"
        assert infer_sass_syntax("/a.scss") == "scss"


class TestPkgResolver:
    """Test ``pkg:`` package lookup."""

    def test_sass_main_field(self, theme):
        """The package's ``sass`` field is used."""
        resolved = PkgResolver(theme.root).resolve("theme")

        assert resolved == str(theme.root / "node_modules/theme/scss/theme.scss")

    def test_exports_key_order(self, project):
        """Export map keys are tried in declared order, as in Node."""
        project.add_package("kit", {"kit.scss": "", "kit.js": ""}, {
            "exports": {".": {"import": "./kit.js", "sass": "./kit.scss"}},
        })

        assert PkgResolver(project.root).resolve("kit").endswith("kit.js")

    def test_unknown_package(self, project):
        """An uninstalled package gives None."""
        assert PkgResolver(project.root).resolve("nothing") is None


class TestSassImporter:
    """Test the importer shapes handed to Sass peers."""

    @pytest.mark.asyncio
    async def test_canonicalize_pkg(self, theme):
        """pkg: specifiers canonicalize to file URLs."""
        importer = SassImporter(theme.root, entry_path=theme.path("styles/app.scss"))

        url = await importer.canonicalize("pkg:theme", {"containing_url": None})

        assert url == (theme.root / "node_modules/theme/scss/theme.scss").as_uri()

    @pytest.mark.asyncio
    async def test_canonicalize_alias(self, theme):
        """Alias schemes go through the caller's resolver."""
        seen = []

        def resolver(specifier, cwd, importer):
            seen.append((specifier, importer))
            return "styles/tokens.scss"

        entry = theme.path("styles/app.scss")
        importer = SassImporter(theme.root, resolver=resolver, entry_path=entry)

        url = await importer.canonicalize("alias:tokens")

        assert url == Path(theme.path("styles/_tokens.scss")).as_uri()
        assert seen == [("alias:tokens", entry)]

    @pytest.mark.asyncio
    async def test_relative_to_containing_url(self, theme):
        """Plain specifiers resolve against the containing stylesheet."""
        importer = SassImporter(theme.root)
        context = {"containing_url": Path(theme.path("styles/app.scss")).as_uri()}

        url = await importer.canonicalize("mixins", context)

        assert url == Path(theme.path("styles/mixins/_index.scss")).as_uri()

    @pytest.mark.asyncio
    async def test_unknown_falls_through(self, theme):
        """None lets Sass use its own resolution."""
        importer = SassImporter(theme.root)

        assert await importer.canonicalize("./nope") is None

    @pytest.mark.asyncio
    async def test_load(self, theme):
        """load returns the contents with the inferred syntax."""
        importer = SassImporter(theme.root)

        result = await importer.load(Path(theme.path("styles/_tokens.scss")).as_uri())

        assert result == {"contents": "$gap: 4px;", "syntax": "scss"}

    @pytest.mark.asyncio
    async def test_legacy_done_callback(self, theme):
        """The legacy importer reports through the done callback."""
        importer = SassImporter(theme.root, entry_path=theme.path("styles/app.scss"))
        results = []

        returned = await importer.legacy("pkg:theme", "stdin", results.append)

        assert returned is None
        assert results == [{"file": str(theme.root / "node_modules/theme/scss/theme.scss")}]

    @pytest.mark.asyncio
    async def test_libsass_from_worker_thread(self, theme):
        """The libsass importer can be called from a worker thread once bound."""
        importer = SassImporter(theme.root)
        importer.bind_loop(asyncio.get_running_loop())

        result = await asyncio.to_thread(importer.libsass, "pkg:theme", None)

        assert result == [(str(theme.root / "node_modules/theme/scss/theme.scss"),)]

    def test_libsass_requires_loop(self, theme):
        """Calling the libsass importer before bind_loop is an error."""
        with pytest.raises(RuntimeError, match="bind_loop"):
            SassImporter(theme.root).libsass("pkg:theme")

    @pytest.mark.asyncio
    async def test_debug_logging_level(self, theme, monkeypatch, caplog):
        """KNIGHTED_CSS_DEBUG_SASS raises misses to info level."""
        monkeypatch.setenv("KNIGHTED_CSS_DEBUG_SASS", "1")
        importer = SassImporter(theme.root)

        with caplog.at_level(logging.INFO, logger="knighted_css.sass_importer"):
            await importer.canonicalize("pkg:missing")

        assert "Sass pkg resolver returned no result for pkg:missing" in caplog.text
