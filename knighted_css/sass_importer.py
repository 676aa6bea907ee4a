"""
Sass importer — ``pkg:`` URLs, partials and alias specifiers for Sass peers.

Sass resolves plain relative imports itself. This importer adds:

    pkg:@scope/theme/tokens    node_modules lookup with sass-first conditions
    ~alias/path (any scheme)   delegated to the caller's resolver
    _partial / index files     ``ensure_sass_path`` probing for both

One importer shape is produced per Sass API:

    SassImporter.canonicalize/load   compile_async peers
    SassImporter.legacy              render(options, callback) peers
    SassImporter.libsass             libsass ``importers=[(0, fn)]``

Set ``KNIGHTED_CSS_DEBUG_SASS=1`` to log every decision at INFO level.
"""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import CssResolver, sass_debug_enabled
from .resolver import ModuleResolver, call_custom_resolver, file_url_to_path
from .utils import read_text_async

logger = logging.getLogger(__name__)

SASS_EXTENSIONS = (".scss", ".sass", ".css")
SASS_CONDITIONS = ("sass", "import", "require", "node", "default")

_SCHEME = re.compile(r"^([a-z][\w+.-]*):", re.IGNORECASE)
_NATIVE_SCHEMES = frozenset({"file", "http", "https", "data", "sass"})


def ensure_sass_path(path: str) -> Optional[str]:
    """
    Find the file Sass would load for a path.

    Tries the path itself, then ``_name.ext``, ``name/index.ext`` and
    ``name/_index.ext``. Paths without a Sass extension are probed with
    each of ``SASS_EXTENSIONS`` in turn.
    """
    candidate = Path(path)
    if candidate.is_file():
        return str(candidate)
    ext = candidate.suffix
    if ext in SASS_EXTENSIONS:
        base, extensions = candidate.name[:-len(ext)], (ext,)
    else:
        base, extensions = candidate.name, SASS_EXTENSIONS
    for ext in extensions:
        for option in (
            candidate.with_name(f"{base}{ext}"),
            candidate.with_name(f"_{base}{ext}"),
            candidate.parent / base / f"index{ext}",
            candidate.parent / base / f"_index{ext}",
        ):
            if option.is_file():
                return str(option)
    return None


def should_normalize_specifier(specifier: str) -> bool:
    """True for scheme-prefixed specifiers Sass cannot load natively."""
    match = _SCHEME.match(specifier)
    if not match:
        return False
    return match.group(1).lower() not in _NATIVE_SCHEMES


def resolve_relative_specifier(specifier: str, containing_path: Optional[str]) -> Optional[str]:
    if not containing_path or _SCHEME.match(specifier):
        return None
    return ensure_sass_path(os.path.join(os.path.dirname(containing_path), specifier))


def infer_sass_syntax(path: str) -> str:
    return "indented" if path.endswith(".sass") else "scss"


class PkgResolver:
    """Resolves ``pkg:`` specifiers with sass-first package conditions."""

    def __init__(self, cwd: Path):
        self.cwd = Path(cwd)
        self._resolver = ModuleResolver(
            self.cwd,
            extensions=SASS_EXTENSIONS,
            conditions=SASS_CONDITIONS,
            tsconfig=None,
            main_fields=("sass", "style", "main"),
        )

    def resolve(self, specifier: str, containing_path: Optional[str] = None) -> Optional[str]:
        importer = containing_path or str(self.cwd / "index.scss")
        resolved = self._resolver.resolve(specifier, importer)
        if not resolved:
            return None
        return ensure_sass_path(resolved) or resolved


class SassImporter:
    """
    Importer bridging Sass peers to package and alias resolution.

    Args:
        cwd: Project root
        resolver: Caller's resolver for alias schemes
        entry_path: File being compiled (containing path of top-level imports)
    """

    def __init__(self, cwd: Path, resolver: Optional[CssResolver] = None, entry_path: Optional[str] = None):
        self.cwd = Path(cwd)
        self.resolver = resolver
        self.entry_path = entry_path
        self.pkg = PkgResolver(self.cwd)
        self.level = logging.INFO if sass_debug_enabled() else logging.DEBUG
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _log(self, message: str, *args: Any) -> None:
        logger.log(self.level, message, *args)

    async def resolve_alias(self, specifier: str, containing_path: Optional[str]) -> Optional[str]:
        resolved = await call_custom_resolver(self.resolver, specifier, self.cwd, containing_path)
        if not resolved:
            return None
        return ensure_sass_path(resolved)

    async def resolve(self, url: str, containing_path: Optional[str]) -> Optional[str]:
        """Alias resolver first, then ``pkg:``; None lets Sass continue."""
        if self.resolver is not None and should_normalize_specifier(url):
            resolved = await self.resolve_alias(url, containing_path)
            if resolved:
                return resolved
            self._log("Sass alias resolver returned no result for %s", url)
        if url.startswith("pkg:"):
            resolved = self.pkg.resolve(url[4:], containing_path)
            if not resolved:
                self._log("Sass pkg resolver returned no result for %s", url)
            return resolved
        return None

    # -------------------------------------------------------------------------
    # compile_async peers
    # -------------------------------------------------------------------------

    async def canonicalize(self, url: str, context: Any = None) -> Optional[str]:
        self._log("Sass canonicalize request: %s", url)
        if isinstance(context, dict):
            containing_url = context.get("containing_url")
        else:
            containing_url = getattr(context, "containing_url", None)
        containing_path = self.entry_path
        if containing_url:
            path = file_url_to_path(str(containing_url))
            containing_path = str(path) if path else containing_path

        resolved = await self.resolve(url, containing_path)
        if resolved is None and containing_url:
            resolved = resolve_relative_specifier(url, containing_path)
        if resolved is None:
            return None
        canonical = Path(resolved).as_uri()
        self._log("Sass canonical url: %s", canonical)
        return canonical

    async def load(self, canonical_url: str) -> Dict[str, str]:
        self._log("Sass load request: %s", canonical_url)
        path = file_url_to_path(str(canonical_url))
        contents = await read_text_async(path)
        return {"contents": contents, "syntax": infer_sass_syntax(str(path))}

    # -------------------------------------------------------------------------
    # render(options, callback) peers
    # -------------------------------------------------------------------------

    async def legacy(self, url: str, prev: Optional[str] = None, done: Any = None) -> Optional[Dict[str, str]]:
        containing_path = prev if prev and prev != "stdin" else self.entry_path
        resolved = await self.resolve(url, containing_path)
        result = {"file": resolved} if resolved else None
        if done is not None:
            done(result)
            return None
        return result

    # -------------------------------------------------------------------------
    # libsass
    # -------------------------------------------------------------------------

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the loop that owns async resolvers called from libsass threads."""
        self._loop = loop

    def libsass(self, url: str, prev: Optional[str] = None) -> Optional[List[Tuple[str]]]:
        """
        libsass importer callable; runs in the compile worker thread.

        Returns ``[(path,)]`` or None to fall through to libsass.
        """
        if self._loop is None:
            raise RuntimeError("SassImporter.bind_loop() must be called before libsass compiles")
        containing_path = prev if prev and prev != "stdin" else self.entry_path
        future = asyncio.run_coroutine_threadsafe(self.resolve(url, containing_path), self._loop)
        resolved = future.result()
        return [(resolved,)] if resolved else None
