"""
Module graph — Depth-first walk from an entry to its style units.

Scripts are parsed with tree-sitter and their static imports followed in
source order:

    import './card.css'                 -> style unit
    export * from './tokens'            -> script, walked
    const theme = require('./theme')    -> script, walked
    await import('./lazy.scss')         -> style unit
    import type { X } from './types'    -> ignored

Style units contribute CSS after everything they import (a ``.css.ts``
module's own imports come first). Each style unit's ``@import``/``@use``/
``@forward`` chain is scanned and reported in ``files`` but compiled by
the dialect compiler, not walked here.

Resolution policy:
    custom resolver returns False   external, skipped
    relative/absolute miss          ResolutionError
    bare package miss               external, logged at debug level

Usage:
    walker = GraphWalker(options)
    graph = await walker.walk("src/index.ts")
    graph.styles   # ["/app/src/card.css", ...] in cascade order
    graph.files    # every visited file
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .config import CssOptions
from .errors import KnightedCssError, ResolutionError
from .parsing import Dialect, DialectRegistry, default_registry
from .parsing.languages.css import is_external_style_specifier
from .parsing.languages.script import analyze_module
from .parsing.treesitter import is_available
from .resolver import (
    DEFAULT_CONDITIONS,
    SCRIPT_EXTENSIONS,
    ModuleResolver,
    call_custom_resolver,
    is_relative,
    matches_extension,
)
from .sass_importer import SASS_EXTENSIONS, PkgResolver, ensure_sass_path
from .utils import read_text_async

logger = logging.getLogger(__name__)

NODE_BUILTINS = frozenset({
    "assert", "async_hooks", "buffer", "child_process", "cluster", "console",
    "constants", "crypto", "dgram", "diagnostics_channel", "dns", "events", "fs",
    "http", "http2", "https", "inspector", "module", "net", "os", "path",
    "perf_hooks", "process", "punycode", "querystring", "readline", "repl",
    "stream", "string_decoder", "sys", "timers", "tls", "trace_events", "tty",
    "url", "util", "v8", "vm", "wasi", "worker_threads", "zlib",
})


def is_node_builtin(specifier: str) -> bool:
    return specifier.split("/", 1)[0] in NODE_BUILTINS


class CompileCache:
    """
    Compiled CSS per physical file, owned by one ``css`` invocation.

    Never shared between invocations: resolvers and peers may differ per call.
    """

    def __init__(self):
        self._entries: Dict[str, str] = {}

    async def get_or_compile(self, path: str, compile_fn: Callable[[str], Awaitable[str]]) -> str:
        if path not in self._entries:
            self._entries[path] = await compile_fn(path)
        return self._entries[path]

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class GraphResult:
    """Ordered style units and every visited file."""
    styles: List[str] = field(default_factory=list)
    files: List[str] = field(default_factory=list)


class GraphWalker:
    """
    Walks one entry's module graph.

    Args:
        options: Extraction options (cwd, extensions, filter, resolver, module_graph)
        registry: Dialect registry (built-in dialects by default)
    """

    def __init__(self, options: CssOptions, registry: Optional[DialectRegistry] = None):
        self.options = options
        self.cwd: Path = options.cwd
        self.registry = registry or default_registry()
        self.style_extensions = list(options.extensions)
        graph = options.module_graph
        script_extensions = list(dict.fromkeys(list(graph.extensions) + list(SCRIPT_EXTENSIONS)))
        self.resolver = ModuleResolver(
            self.cwd,
            extensions=script_extensions + self.style_extensions,
            conditions=graph.conditions or DEFAULT_CONDITIONS,
            tsconfig=graph.tsconfig,
            main_fields=("module", "main"),
        )
        self.style_resolver = ModuleResolver(
            self.cwd,
            extensions=self.style_extensions,
            conditions=("style",) + DEFAULT_CONDITIONS,
            tsconfig=graph.tsconfig,
            main_fields=("style", "main"),
        )
        self._files: Dict[str, None] = {}
        self._styles: Dict[str, None] = {}
        self._visited: Set[str] = set()

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def style_extension(self, path: str) -> Optional[str]:
        return matches_extension(path, self.style_extensions)

    def is_script(self, path: str) -> bool:
        config = self.registry.get_config(path)
        return config is not None and config.is_script

    def _record(self, path: str) -> None:
        self._files.setdefault(path)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def resolve_entry(self, entry: str) -> str:
        """
        Resolve the entry: custom resolver first, then relative to cwd.

        Raises:
            ResolutionError: If the entry does not exist
        """
        if self.options.resolver is not None:
            resolved = await call_custom_resolver(self.options.resolver, entry, self.cwd)
            if resolved:
                return resolved
        path = os.path.abspath(os.path.join(self.cwd, entry))
        if not os.path.isfile(path):
            raise ResolutionError(entry)
        return path

    async def resolve_import(self, specifier: str, importer: str) -> Optional[str]:
        """
        Resolve one import of a script.

        Returns:
            Absolute path, or None for external specifiers

        Raises:
            ResolutionError: For relative or absolute specifiers that miss
        """
        if self.options.resolver is not None:
            resolved = await call_custom_resolver(self.options.resolver, specifier, self.cwd, importer)
            if resolved is False:
                logger.debug("Resolver marked %s as external", specifier)
                return None
            if resolved:
                return resolved

        resolved = self.resolver.resolve(specifier, importer)
        if resolved:
            return resolved
        if is_relative(specifier) or os.path.isabs(specifier):
            raise ResolutionError(specifier, importer)
        logger.debug("Treating unresolved %s from %s as external", specifier, importer)
        return None

    def resolve_style_import(self, specifier: str, importer: str, dialect: Optional[Dialect]) -> Optional[str]:
        """Best-effort resolution of an ``@import``/``@use`` specifier."""
        if is_external_style_specifier(specifier) or specifier.startswith("sass:"):
            return None
        if specifier.startswith("pkg:"):
            return PkgResolver(self.cwd).resolve(specifier[4:], importer)

        spec = specifier[1:] if specifier.startswith("~") else specifier
        if dialect in (Dialect.SCSS, Dialect.SASS) and not os.path.isabs(spec):
            candidate = os.path.join(os.path.dirname(importer), spec)
            for ext in ("",) + SASS_EXTENSIONS:
                found = ensure_sass_path(candidate + ext)
                if found:
                    return os.path.abspath(found)

        relative = spec if is_relative(spec) or os.path.isabs(spec) else f"./{spec}"
        resolved = self.style_resolver.resolve(relative, importer)
        if resolved is None and relative != spec:
            resolved = self.style_resolver.resolve(spec, importer)
        if resolved is None:
            logger.debug("Unable to resolve style import %s from %s", specifier, importer)
        return resolved

    # -------------------------------------------------------------------------
    # Walking
    # -------------------------------------------------------------------------

    async def walk(self, entry: str) -> GraphResult:
        """
        Walk the graph of an entry.

        Raises:
            ResolutionError: If the entry or a relative import is missing
            KnightedCssError: If the script grammar is unavailable
        """
        entry_path = await self.resolve_entry(entry)
        if self.style_extension(entry_path) and not self.is_script(entry_path):
            await self._visit_style(entry_path)
        else:
            await self._visit(entry_path)
        return GraphResult(styles=list(self._styles), files=list(self._files))

    async def _visit(self, path: str) -> None:
        if path in self._visited:
            return
        self._visited.add(path)
        self._record(path)

        if self.is_script(path):
            await self._visit_script(path)
        if self.style_extension(path):
            await self._visit_style(path)

    async def _visit_script(self, path: str) -> None:
        if not is_available():
            raise KnightedCssError(
                f"Unable to walk {path}: install tree-sitter-language-pack to parse scripts."
            )
        source = await read_text_async(path)
        analysis = analyze_module(source, path)
        for specifier in analysis.imports:
            if is_node_builtin(specifier):
                continue
            resolved = await self.resolve_import(specifier, path)
            if resolved is None:
                continue
            if not self.style_extension(resolved) and not self.is_script(resolved):
                logger.debug("Ignoring non-module import %s", resolved)
                continue
            if "node_modules" in Path(resolved).parts and not self.style_extension(resolved):
                if not self.options.file_filter(resolved):
                    continue
            await self._visit(resolved)

    async def _visit_style(self, path: str) -> None:
        self._visited.add(path)
        self._record(path)
        if path not in self._styles:
            self._styles.setdefault(path)
            await self._scan_style_imports(path, set())

    async def _scan_style_imports(self, path: str, seen: Set[str]) -> None:
        config = self.registry.get_config(path)
        if config is None or config.import_scanner is None or path in seen:
            return
        seen.add(path)
        try:
            source = await read_text_async(path)
        except OSError:
            logger.debug("Unable to read %s for import scanning", path)
            return
        for specifier in config.import_scanner(source):
            resolved = self.resolve_style_import(specifier, path, config.dialect)
            if resolved is None:
                continue
            self._record(resolved)
            await self._scan_style_imports(resolved, seen)
