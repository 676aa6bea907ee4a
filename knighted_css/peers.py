"""
Peers — Loading optional compiler packages and probing their APIs.

Compilers for Sass and Less are not dependencies of this package; they are
imported on demand through a peer resolver (``importlib.import_module`` by
default, or a caller-supplied ``name -> module`` callable, sync or async).

Sass peers are probed once into a closed set of API shapes:

    MODERN       compile_async(path, load_paths=..., importers=...)
    LEGACY       render(options, callback)   Node-style (error, result)
    LIBSASS      compile(filename=..., include_paths=..., importers=...)
    UNSUPPORTED  none of the above

Usage:
    module = await load_peer("sass", "Sass", peer_resolver)
    peer = SassPeer.probe(unwrap_namespace(module), "sass")
    css = await peer.compile(path, load_paths, importer=importer)
"""

import asyncio
import importlib
import io
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from .config import PeerResolver
from .errors import CompileError, MissingPeerError, UnsupportedPeerError
from .utils import maybe_await

logger = logging.getLogger(__name__)


def peer_attr(namespace: Any, name: str) -> Any:
    """Read a member from a module, object or mapping."""
    if isinstance(namespace, dict):
        return namespace.get(name)
    return getattr(namespace, name, None)


def unwrap_namespace(module: Any) -> Any:
    """Prefer a truthy ``default`` member over the module itself."""
    default = peer_attr(module, "default")
    return default if default else module


async def load_peer(name: str, label: str, peer_resolver: Optional[PeerResolver] = None) -> Any:
    """
    Import a compiler peer.

    Args:
        name: Package to import
        label: Dialect name used in the error message
        peer_resolver: Custom loader; ``importlib.import_module`` by default

    Raises:
        MissingPeerError: If the package is not installed
    """
    loader = peer_resolver or importlib.import_module
    try:
        return await maybe_await(loader(name))
    except ModuleNotFoundError as exc:
        if exc.name in (None, name) or name.startswith(f"{exc.name}."):
            raise MissingPeerError(label, name) from exc
        raise


def _css_text(result: Any) -> str:
    """Pull the CSS out of a compiler result (str, bytes, object or mapping)."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result
    css = peer_attr(result, "css")
    if css is None:
        return ""
    if isinstance(css, bytes):
        return css.decode("utf-8")
    return str(css)


# =============================================================================
# Sass
# =============================================================================

class SassApi(Enum):
    MODERN = "compile_async"
    LEGACY = "render"
    LIBSASS = "compile"
    UNSUPPORTED = "unsupported"


def probe_sass_api(namespace: Any) -> SassApi:
    if callable(peer_attr(namespace, "compile_async")):
        return SassApi.MODERN
    if callable(peer_attr(namespace, "render")):
        return SassApi.LEGACY
    if callable(peer_attr(namespace, "compile")):
        return SassApi.LIBSASS
    return SassApi.UNSUPPORTED


def _error_message(error: Any) -> str:
    message = peer_attr(error, "message")
    return message if isinstance(message, str) and message else str(error)


async def call_legacy_render(render: Any, options: dict) -> Any:
    """
    Adapt a Node-style ``render(options, callback)`` into an awaitable.

    The callback may fire synchronously, later on the loop, or from another
    thread. An error delivered through it is raised from the await, never
    from inside the callback.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def settle(error: Any, result: Any) -> None:
        if future.done():
            return
        if error:
            exc = error if isinstance(error, BaseException) else CompileError(_error_message(error))
            future.set_exception(exc)
        else:
            future.set_result(result)

    def callback(error: Any = None, result: Any = None) -> None:
        loop.call_soon_threadsafe(settle, error, result)

    await maybe_await(render(options, callback))
    return await future


@dataclass
class SassPeer:
    """A Sass module together with the API shape it was probed to expose."""
    namespace: Any
    api: SassApi
    name: str = "sass"

    @classmethod
    def probe(cls, namespace: Any, name: str = "sass") -> 'SassPeer':
        api = probe_sass_api(namespace)
        logger.debug("Sass peer %s uses %s API", name, api.name)
        return cls(namespace=namespace, api=api, name=name)

    async def compile(
        self,
        path: str,
        load_paths: List[str],
        importer: Any = None,
        legacy_importer: Any = None,
        libsass_importer: Any = None,
    ) -> str:
        """
        Compile a Sass file to expanded CSS.

        Raises:
            UnsupportedPeerError: If the peer exposes no known compile API
        """
        if self.api is SassApi.MODERN:
            result = await maybe_await(peer_attr(self.namespace, "compile_async")(
                path,
                load_paths=load_paths,
                style="expanded",
                importers=[importer] if importer is not None else [],
            ))
            return _css_text(result)

        if self.api is SassApi.LEGACY:
            options = {"file": path, "include_paths": load_paths, "output_style": "expanded"}
            if legacy_importer is not None:
                options["importer"] = legacy_importer
            result = await call_legacy_render(peer_attr(self.namespace, "render"), options)
            return _css_text(result)

        if self.api is SassApi.LIBSASS:
            compile_fn = peer_attr(self.namespace, "compile")
            kwargs = {"filename": path, "include_paths": load_paths, "output_style": "expanded"}
            if libsass_importer is not None:
                kwargs["importers"] = [(0, libsass_importer)]
            result = await asyncio.to_thread(compile_fn, **kwargs)
            return _css_text(result)

        raise UnsupportedPeerError(self.name, "compile_async or render")


# =============================================================================
# Less
# =============================================================================

class _NamedSource(io.StringIO):
    """In-memory Less source that still reports its file name to the parser."""

    def __init__(self, source: str, name: str):
        super().__init__(source)
        self.name = name


async def render_less(namespace: Any, source: str, path: str, name: str = "lesscpy") -> str:
    """
    Compile Less source with whichever API the peer exposes.

    ``render(source, options)`` (sync or awaitable) is preferred; a
    lesscpy-style ``compile(stream)`` runs in a worker thread. The stream
    carries ``name = path`` so relative ``@import``s resolve next to the file.

    Raises:
        UnsupportedPeerError: If the peer exposes neither API
    """
    render = peer_attr(namespace, "render")
    if callable(render):
        result = await maybe_await(render(source, {"filename": path}))
        return _css_text(result)

    compile_fn = peer_attr(namespace, "compile")
    if callable(compile_fn):
        result = await asyncio.to_thread(compile_fn, _NamedSource(source, path), minify=False)
        return _css_text(result)

    raise UnsupportedPeerError(name, "render or compile")
