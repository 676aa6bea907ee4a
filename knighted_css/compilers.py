"""
Compilers — Dialect dispatch from a style file to CSS text.

    .css      read as-is
    .scss     Sass peer (``sass``)
    .sass     Sass peer, indented syntax
    .less     Less peer (``lesscpy``)
    .css.ts   static CSS-in-TS evaluation (no peer)

The dialect is chosen from the file extension alone, longest suffix first,
so ``theme.css.ts`` is vanilla rather than TypeScript.

Usage:
    css = await compile_file("/app/src/card.scss", cwd=Path("/app"))
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from .config import CssResolver, PeerResolver
from .parsing import Dialect, DialectRegistry, default_registry
from .peers import SassPeer, load_peer, render_less, unwrap_namespace
from .sass_importer import SassImporter
from .utils import read_text_async
from .vanilla import compile_vanilla

logger = logging.getLogger(__name__)


async def compile_sass(
    path: str,
    cwd: Path,
    peer_resolver: Optional[PeerResolver] = None,
    resolver: Optional[CssResolver] = None,
    peer_name: str = "sass",
) -> str:
    """
    Compile a ``.scss``/``.sass`` file with the Sass peer.

    Raises:
        MissingPeerError: If the peer cannot be imported
        UnsupportedPeerError: If it exposes no known compile API
    """
    module = await load_peer(peer_name, "Sass", peer_resolver)
    peer = SassPeer.probe(unwrap_namespace(module), peer_name)

    importer = SassImporter(cwd, resolver=resolver, entry_path=path)
    importer.bind_loop(asyncio.get_running_loop())
    load_paths = list(dict.fromkeys([os.path.dirname(path), str(cwd)]))
    return await peer.compile(
        path,
        load_paths,
        importer=importer,
        legacy_importer=importer.legacy,
        libsass_importer=importer.libsass,
    )


async def compile_less(
    path: str,
    peer_resolver: Optional[PeerResolver] = None,
    peer_name: str = "lesscpy",
) -> str:
    module = await load_peer(peer_name, "Less", peer_resolver)
    source = await read_text_async(path)
    return await render_less(unwrap_namespace(module), source, path, peer_name)


async def compile_file(
    path: str,
    cwd: Path,
    peer_resolver: Optional[PeerResolver] = None,
    resolver: Optional[CssResolver] = None,
    registry: Optional[DialectRegistry] = None,
) -> str:
    """
    Compile one style file to CSS.

    Args:
        path: Absolute path of the style file
        cwd: Project root
        peer_resolver: ``name -> module`` loader for compiler peers
        resolver: Caller's resolver, used for Sass alias imports
        registry: Dialect registry (built-in dialects by default)

    Returns:
        CSS text; "" for files that are not a style dialect
    """
    config = (registry or default_registry()).get_config(path)
    if config is None or config.dialect is None:
        logger.debug("No style dialect for %s", path)
        return ""

    dialect = config.dialect
    if dialect is Dialect.CSS:
        return await read_text_async(path)
    if dialect in (Dialect.SCSS, Dialect.SASS):
        return await compile_sass(path, cwd, peer_resolver, resolver, config.peer_name or "sass")
    if dialect is Dialect.LESS:
        return await compile_less(path, peer_resolver, config.peer_name or "lesscpy")
    if dialect is Dialect.VANILLA:
        return await compile_vanilla(path, cwd)
    return ""
