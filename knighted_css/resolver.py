"""
Resolver — Maps module specifiers to absolute file paths.

Resolution order for a specifier seen in ``importer``:

    1. ``file://`` URLs are decoded to paths
    2. Foreign URI schemes (``https:``, ``data:``, ...) are external: None
    3. Relative and absolute paths are resolved against the importer
    4. ``compilerOptions.paths`` from tsconfig
    5. ``#`` imports from the nearest package.json ``imports`` field
    6. Bare packages through ``node_modules`` and package.json ``exports``

Candidate files are probed with the contract in ``find_existing_file``.
Nothing here raises for a missing file; callers decide whether a miss is
fatal.

Usage:
    resolver = ModuleResolver(cwd=Path("/app"), extensions=[".ts", ".css"])
    resolver.resolve("./card", "/app/src/index.ts")   # "/app/src/card.ts"
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse
from urllib.request import url2pathname

from .tsconfig import PathsMatcher, TsconfigOption, load_paths_matcher
from .utils import maybe_await

logger = logging.getLogger(__name__)

SCRIPT_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")
STYLE_EXTENSIONS = (".css", ".scss", ".sass", ".less", ".css.ts")
DEFAULT_CONDITIONS = ("import", "require", "node", "default")

_SCHEME = re.compile(r"^[a-z][\w+.-]*:", re.IGNORECASE)
_JS_ALIAS_TARGETS = (".js", ".ts", ".tsx", ".mjs", ".cjs", ".mts", ".cts")
_JSX_ALIAS_TARGETS = (".jsx", ".tsx")


# =============================================================================
# Specifier Helpers
# =============================================================================

def has_scheme(specifier: str) -> bool:
    return bool(_SCHEME.match(specifier))


def is_foreign_scheme(specifier: str) -> bool:
    """True for ``scheme:`` specifiers other than ``file:``."""
    return has_scheme(specifier) and not specifier.lower().startswith("file:")


def is_relative(specifier: str) -> bool:
    return specifier in (".", "..") or specifier.startswith(("./", "../"))


def file_url_to_path(url: str) -> Optional[Path]:
    """Decode a ``file://`` URL; None if it is not a local file URL."""
    parsed = urlparse(url)
    if parsed.scheme.lower() != "file" or parsed.netloc not in ("", "localhost"):
        return None
    return Path(url2pathname(parsed.path))


def normalize_specifier(raw: str) -> str:
    """
    Strip the resource query and fragment from a specifier.

    A leading ``#`` (package imports) is kept. Virtual modules (``\\0``) and
    foreign schemes normalize to ``""``.
    """
    if not raw:
        return ""
    trimmed = raw.strip()
    if not trimmed or trimmed.startswith("\0"):
        return ""
    offset = 1 if trimmed.startswith("#") else 0
    match = re.search(r"[?#]", trimmed[offset:])
    without_query = trimmed if match is None else trimmed[:offset + match.start()]
    if not without_query or is_foreign_scheme(without_query):
        return ""
    return without_query


def split_package_specifier(specifier: str) -> Tuple[str, str]:
    """
    Split a bare specifier into package name and subpath.

    ``@scope/pkg/a/b`` -> ``("@scope/pkg", "./a/b")``; ``pkg`` -> ``("pkg", ".")``
    """
    parts = specifier.split("/")
    count = 2 if specifier.startswith("@") and len(parts) > 1 else 1
    name = "/".join(parts[:count])
    rest = "/".join(parts[count:])
    return name, f"./{rest}" if rest else "."


def matches_extension(path: str, extensions: Iterable[str]) -> Optional[str]:
    """Return the longest configured extension the path ends with."""
    lower = path.lower()
    found = [ext for ext in extensions if lower.endswith(ext)]
    return max(found, key=len) if found else None


def build_extension_alias(extensions: Sequence[str]) -> Dict[str, List[str]]:
    """
    Extension alias table derived from the configured script extensions.

    ``.js``/``.mjs``/``.cjs`` map to every configured JS/TS extension and
    ``.jsx`` maps to ``.jsx``/``.tsx``, preserving configured order.
    """
    alias: Dict[str, List[str]] = {}
    js_targets = list(dict.fromkeys(ext for ext in extensions if ext in _JS_ALIAS_TARGETS))
    if js_targets:
        for key in (".js", ".mjs", ".cjs"):
            alias[key] = js_targets
    jsx_targets = list(dict.fromkeys(ext for ext in extensions if ext in _JSX_ALIAS_TARGETS))
    if jsx_targets:
        alias[".jsx"] = jsx_targets
    return alias


def find_existing_file(
    candidate: Path,
    extensions: Sequence[str],
    alias: Optional[Dict[str, List[str]]] = None,
) -> Optional[Path]:
    """
    Probe the filesystem for a candidate path.

    Order (first hit wins):
        1. aliased extensions (``./a.js`` -> ``./a.ts``) when the alias table covers it
        2. the candidate itself, if it carries a recognized extension
        3. the candidate with each extension appended, in declared order
        4. ``index.<ext>`` inside the candidate directory, in declared order
        5. the candidate itself with any other extension

    Args:
        candidate: Absolute path without query
        extensions: Recognized extensions, in priority order
        alias: Optional extension alias table

    Returns:
        Existing file path, or None
    """
    text = str(candidate)
    if alias:
        suffix = candidate.suffix.lower()
        if suffix in alias:
            stem = text[:-len(suffix)]
            for target in alias[suffix]:
                aliased = Path(stem + target)
                if aliased.is_file():
                    return aliased

    if matches_extension(text, extensions) and candidate.is_file():
        return candidate

    for ext in extensions:
        with_ext = Path(text + ext)
        if with_ext.is_file():
            return with_ext

    if candidate.is_dir():
        for ext in extensions:
            index = candidate / f"index{ext}"
            if index.is_file():
                return index
        return None

    if candidate.suffix and candidate.is_file():
        return candidate
    return None


# =============================================================================
# package.json exports / imports
# =============================================================================

def _resolve_target(target: Any, captured: str, conditions: Sequence[str]) -> Optional[str]:
    if isinstance(target, str):
        return target.replace("*", captured)
    if isinstance(target, list):
        for entry in target:
            resolved = _resolve_target(entry, captured, conditions)
            if resolved is not None:
                return resolved
        return None
    if isinstance(target, dict):
        for key, value in target.items():
            if key == "default" or key in conditions:
                resolved = _resolve_target(value, captured, conditions)
                if resolved is not None:
                    return resolved
    return None


def resolve_package_map(
    mapping: Dict[str, Any],
    key: str,
    conditions: Sequence[str],
) -> Optional[str]:
    """
    Match a subpath (``./x``) or import (``#x``) against an exports/imports map.

    Exact keys win; otherwise the ``*`` pattern with the longest prefix.
    """
    if key in mapping:
        return _resolve_target(mapping[key], "", conditions)
    best: Optional[str] = None
    best_prefix = -1
    captured = ""
    for pattern in mapping:
        if "*" not in pattern:
            continue
        prefix, _, suffix = pattern.partition("*")
        if (
            key.startswith(prefix)
            and key.endswith(suffix)
            and len(key) >= len(prefix) + len(suffix)
            and len(prefix) > best_prefix
        ):
            best = pattern
            best_prefix = len(prefix)
            captured = key[len(prefix):len(key) - len(suffix)]
    if best is None:
        return None
    return _resolve_target(mapping[best], captured, conditions)


def read_package_json(directory: Path) -> Optional[Dict[str, Any]]:
    path = directory / "package.json"
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.debug("Ignoring unreadable %s", path)
        return None
    return data if isinstance(data, dict) else None


def _normalize_exports(exports: Any) -> Dict[str, Any]:
    if isinstance(exports, dict) and any(key.startswith(".") for key in exports):
        return exports
    return {".": exports}


# =============================================================================
# Resolver
# =============================================================================

class ModuleResolver:
    """
    Node-style module resolver with TypeScript conveniences.

    Instances hold no cross-request state beyond the tsconfig paths they
    were built with; callers own any memoization.
    """

    def __init__(
        self,
        cwd: Path,
        extensions: Sequence[str] = SCRIPT_EXTENSIONS + STYLE_EXTENSIONS,
        conditions: Sequence[str] = DEFAULT_CONDITIONS,
        tsconfig: TsconfigOption = "auto",
        main_fields: Sequence[str] = ("main",),
    ):
        """
        Initialize resolver.

        Args:
            cwd: Working directory for tsconfig discovery and bare fallbacks
            extensions: Probe extensions in priority order
            conditions: package.json condition names, in priority order
            tsconfig: "auto", a tsconfig path, an inline config, or None
            main_fields: package.json fields consulted when exports are absent
        """
        self.cwd = Path(cwd)
        self.extensions = [ext.lower() for ext in extensions]
        self.conditions = list(conditions)
        self.main_fields = list(main_fields)
        self.alias = build_extension_alias(self.extensions)
        self._paths: Optional[PathsMatcher] = load_paths_matcher(tsconfig, self.cwd)

    def resolve(self, specifier: str, importer: Optional[str] = None) -> Optional[str]:
        """
        Resolve a specifier to an absolute path.

        Args:
            specifier: Raw specifier (query is stripped here)
            importer: Absolute path of the importing file; cwd when omitted

        Returns:
            Absolute path string, or None when not found or external
        """
        spec = normalize_specifier(specifier)
        if not spec:
            return None
        base_dir = Path(importer).parent if importer else self.cwd

        if spec.lower().startswith("file:"):
            path = file_url_to_path(spec)
            return self._probe(path) if path else None

        if is_relative(spec) or os.path.isabs(spec):
            return self._probe(base_dir / spec)

        if self._paths is not None:
            for candidate in self._paths.candidates(spec):
                found = self._probe(candidate)
                if found:
                    return found

        if spec.startswith("#"):
            return self._resolve_package_import(spec, base_dir)

        return self._resolve_bare(spec, base_dir)

    def _probe(self, candidate: Path) -> Optional[str]:
        found = find_existing_file(Path(os.path.abspath(candidate)), self.extensions, self.alias)
        return str(found) if found else None

    def _resolve_package_import(self, spec: str, base_dir: Path) -> Optional[str]:
        for directory in (base_dir, *base_dir.parents):
            package = read_package_json(directory)
            if package is None:
                continue
            imports = package.get("imports")
            if not isinstance(imports, dict):
                return None
            target = resolve_package_map(imports, spec, self.conditions)
            if target is None:
                logger.debug("No imports entry for %s in %s", spec, directory)
                return None
            if is_relative(target):
                return self._probe(directory / target)
            # Targets may name another (workspace) package
            return self._resolve_bare(target, directory)
        return None

    def _resolve_bare(self, spec: str, base_dir: Path) -> Optional[str]:
        name, subpath = split_package_specifier(spec)
        for directory in (base_dir, *base_dir.parents):
            package_dir = directory / "node_modules" / name
            if package_dir.is_dir():
                return self._resolve_in_package(package_dir, subpath)
        logger.debug("Package %s not found from %s", name, base_dir)
        return None

    def _resolve_in_package(self, package_dir: Path, subpath: str) -> Optional[str]:
        package = read_package_json(package_dir) or {}
        exports = package.get("exports")
        if exports is not None:
            target = resolve_package_map(_normalize_exports(exports), subpath, self.conditions)
            if target is not None:
                return self._probe(package_dir / target)

        if subpath != ".":
            return self._probe(package_dir / subpath)

        for field_name in self.main_fields:
            entry = package.get(field_name)
            if isinstance(entry, str) and entry:
                found = self._probe(package_dir / entry)
                if found:
                    return found
        return self._probe(package_dir)


async def call_custom_resolver(
    resolver: Any,
    specifier: str,
    cwd: Path,
    importer: Optional[str] = None,
) -> Union[str, bool, None]:
    """
    Run a caller-supplied resolver (sync or async).

    String results may be absolute paths, paths relative to ``cwd`` or
    ``file://`` URLs and are returned absolute. ``False`` means the specifier
    is intentionally external; None defers to built-in resolution.
    """
    result = await maybe_await(resolver(specifier, cwd=str(cwd), importer=importer))
    if result is False:
        return False
    if not result:
        return None
    result = str(result)
    if result.lower().startswith("file:"):
        path = file_url_to_path(result)
        return str(path) if path else None
    return os.path.abspath(os.path.join(cwd, result))
