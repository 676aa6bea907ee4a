"""
Tests for compiler peers — loading, API probing and dialect dispatch.

No real compiler is needed: fake peers from tests.factories stand in for
the ``sass`` and ``lesscpy`` packages.
"""

import io
from types import SimpleNamespace

import pytest

from knighted_css.compilers import compile_file
from knighted_css.errors import CompileError, MissingPeerError, UnsupportedPeerError
from knighted_css.peers import (
    SassApi,
    SassPeer,
    call_legacy_render,
    load_peer,
    probe_sass_api,
    render_less,
    unwrap_namespace,
)

from tests.factories import legacy_sass_peer, modern_sass_peer, peer_resolver


# =============================================================================
# Loading
# =============================================================================

class TestLoadPeer:
    """Test peer import and namespace handling."""

    @pytest.mark.asyncio
    async def test_missing_peer(self):
        """A peer that cannot be imported raises MissingPeerError naming the package."""
        with pytest.raises(MissingPeerError, match='"sass" is not installed'):
            await load_peer("sass", "Sass", peer_resolver({}))

    @pytest.mark.asyncio
    async def test_async_resolver(self):
        """Async resolvers are awaited."""
        module = object()

        async def resolve(name):
            return module

        assert await load_peer("sass", "Sass", resolve) is module

    @pytest.mark.asyncio
    async def test_unrelated_import_error_propagates(self):
        """A peer that is installed but broken is not reported as missing."""
        def resolve(name):
            raise ModuleNotFoundError("No module named 'six'", name="six")

        with pytest.raises(ModuleNotFoundError):
            await load_peer("sass", "Sass", resolve)

    def test_unwrap_default_member(self):
        """A ``default`` member is unwrapped, anything else is returned as is."""
        inner = SimpleNamespace(render=lambda *a: None)

        assert unwrap_namespace({"default": inner}) is inner
        assert unwrap_namespace(inner) is inner


# =============================================================================
# Sass
# =============================================================================

class TestSassApiDetection:
    """Test API classification."""

    def test_shapes(self):
        """Each API shape is recognised, including none."""
        assert probe_sass_api(modern_sass_peer("")) is SassApi.MODERN
        assert probe_sass_api(legacy_sass_peer("")) is SassApi.LEGACY
        assert probe_sass_api(SimpleNamespace(compile=lambda **kw: "")) is SassApi.LIBSASS
        assert probe_sass_api(SimpleNamespace()) is SassApi.UNSUPPORTED

    def test_modern_preferred(self):
        """compile_async wins over render."""
        both = SimpleNamespace(compile_async=modern_sass_peer("").compile_async, render=lambda *a: None)

        assert probe_sass_api(both) is SassApi.MODERN


class TestSassCompile:
    """Test compiling through each API shape."""

    @pytest.mark.asyncio
    async def test_modern_options(self):
        """The modern API gets the path, load paths and importer list."""
        calls = []
        peer = SassPeer.probe(modern_sass_peer(".a{}", calls))

        css = await peer.compile("/app/a.scss", ["/app"], importer="IMPORTER")

        assert css == ".a{}"
        assert calls == [{
            "path": "/app/a.scss",
            "load_paths": ["/app"],
            "style": "expanded",
            "importers": ["IMPORTER"],
        }]

    @pytest.mark.asyncio
    async def test_legacy_render(self):
        """A render-only peer still produces CSS."""
        peer = SassPeer.probe(legacy_sass_peer(".legacy { color: red; }"))

        css = await peer.compile("/app/a.scss", ["/app"])

        assert css == ".legacy { color: red; }"

    @pytest.mark.asyncio
    async def test_legacy_error(self):
        """A Node-style error becomes a CompileError."""
        peer = SassPeer.probe(legacy_sass_peer(error={"message": "Undefined variable"}))

        with pytest.raises(CompileError, match="Undefined variable"):
            await peer.compile("/app/a.scss", [])

    @pytest.mark.asyncio
    async def test_neither_api(self):
        """A peer without compile_async or render is rejected by name."""
        peer = SassPeer.probe(SimpleNamespace(), "sass")

        with pytest.raises(UnsupportedPeerError, match="does not expose compile_async or render APIs"):
            await peer.compile("/app/a.scss", [])

    @pytest.mark.asyncio
    async def test_libsass_runs_in_thread(self):
        """libsass compile runs in a worker thread with an indexed importer."""
        seen = {}

        def compile_fn(**kwargs):
            seen.update(kwargs)
            return ".lib{}"

        peer = SassPeer.probe(SimpleNamespace(compile=compile_fn))
        css = await peer.compile("/app/a.scss", ["/app"], libsass_importer="IMP")

        assert css == ".lib{}"
        assert seen["filename"] == "/app/a.scss"
        assert seen["importers"] == [(0, "IMP")]

    @pytest.mark.asyncio
    async def test_callback_from_other_thread(self):
        """Callbacks delivered off the loop thread still settle the await."""
        import threading

        def render(options, callback):
            threading.Thread(target=callback, args=(None, {"css": "x"})).start()

        result = await call_legacy_render(render, {})

        assert result == {"css": "x"}


# =============================================================================
# Less
# =============================================================================

class TestLess:
    """Test Less rendering."""

    @pytest.mark.asyncio
    async def test_render_api(self):
        """A Less render API receives the source and file name."""
        seen = []

        def render(source, options):
            seen.append((source, options))
            return SimpleNamespace(css=".less{}")

        css = await render_less(SimpleNamespace(render=render), "@a: 1;", "/app/a.less")

        assert css == ".less{}"
        assert seen == [("@a: 1;", {"filename": "/app/a.less"})]

    @pytest.mark.asyncio
    async def test_compile_stream_api(self):
        """lesscpy-style compile receives a stream named after the source file."""
        names = []

        def compile_fn(stream, minify=False):
            assert isinstance(stream, io.StringIO)
            names.append(stream.name)
            return stream.read().replace("@c", "red")

        css = await render_less(SimpleNamespace(compile=compile_fn), "a { color: @c }", "/app/a.less")

        assert css == "a { color: red }"
        assert names == ["/app/a.less"]

    @pytest.mark.asyncio
    async def test_lesscpy_imports_relative_to_file(self, project, monkeypatch):
        """
        Sibling @imports resolve from the importing file, not the working
        directory.
        """
        lesscpy = pytest.importorskip("lesscpy")
        project.write("styles/vars.less", "@c: red;\n")
        path = project.write("styles/card.less", "@import 'vars.less';\n.card { color: @c; }\n")
        (project.root / "elsewhere").mkdir()
        monkeypatch.chdir(project.root / "elsewhere")

        css = await compile_file(path, project.root, peer_resolver({"lesscpy": lesscpy}))

        assert ".card" in css
        assert "red" in css

    @pytest.mark.asyncio
    async def test_unsupported(self):
        """A peer with neither render nor compile is rejected."""
        with pytest.raises(UnsupportedPeerError, match="render or compile"):
            await render_less(SimpleNamespace(), "", "/a.less")


# =============================================================================
# Dispatch
# =============================================================================

class TestCompileFile:
    """Test dialect dispatch by extension."""

    @pytest.mark.asyncio
    async def test_plain_css_read(self, project):
        """Plain CSS is read without any peer."""
        path = project.write("a.css", ".a { color: red }")

        assert await compile_file(path, project.root) == ".a { color: red }"

    @pytest.mark.asyncio
    async def test_scss_uses_sass_peer(self, project):
        """SCSS compiles through the sass peer with the file's directory and root as load paths."""
        calls = []
        path = project.write("src/a.scss", "$c: red; .a { color: $c }")

        css = await compile_file(path, project.root, peer_resolver({"sass": modern_sass_peer(".a{}", calls)}))

        assert css == ".a{}"
        assert calls[0]["load_paths"] == [str(project.root / "src"), str(project.root)]
        assert len(calls[0]["importers"]) == 1

    @pytest.mark.asyncio
    async def test_sass_missing_peer(self, project):
        """A missing sass peer names the dialect in the error."""
        path = project.write("a.sass", ".a\n  color: red")

        with pytest.raises(MissingPeerError, match="Attempted to process Sass"):
            await compile_file(path, project.root, peer_resolver({}))

    @pytest.mark.asyncio
    async def test_less_uses_lesscpy(self, project):
        """Less goes through the lesscpy peer."""
        path = project.write("a.less", "@c: red;")
        peer = SimpleNamespace(render=lambda source, options: f"/* {source} */")

        css = await compile_file(path, project.root, peer_resolver({"lesscpy": peer}))

        assert css == "/* @c: red; */"

    @pytest.mark.asyncio
    async def test_non_style_file(self, project):
        """Script files compile to nothing."""
        path = project.write("a.ts", "export {}")

        assert await compile_file(path, project.root) == ""
