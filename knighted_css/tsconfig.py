"""
tsconfig — Path mapping from ``compilerOptions.paths``.

Reads tsconfig.json files the way TypeScript tolerates them: comments and
trailing commas allowed, relative ``extends`` chains followed (child options
win). Package-based ``extends`` values are ignored.

Usage:
    matcher = load_paths_matcher("auto", cwd, extensions)
    if matcher:
        candidates = matcher.candidates("@ui/card")
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

TsconfigOption = Union[None, str, Dict[str, Any]]

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_MAX_EXTENDS_DEPTH = 8


def strip_json_comments(text: str) -> str:
    """
    Remove ``//`` and ``/* */`` comments outside of strings.

    Newlines are preserved so JSON error positions stay meaningful.
    """
    out: List[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        c = text[i]
        nxt = text[i + 1] if i + 1 < n else ""
        if in_string:
            out.append(c)
            if c == "\\" and nxt:
                out.append(nxt)
                i += 2
                continue
            if c == '"':
                in_string = False
            i += 1
            continue
        if c == '"':
            in_string = True
            out.append(c)
            i += 1
        elif c == "/" and nxt == "/":
            end = text.find("\n", i)
            i = n if end == -1 else end
        elif c == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            block = text[i:n if end == -1 else end + 2]
            out.append("\n" * block.count("\n"))
            i = n if end == -1 else end + 2
        else:
            out.append(c)
            i += 1
    return "".join(out)


def load_jsonc(path: Path) -> Optional[Dict[str, Any]]:
    """Load a JSON-with-comments file, returning None if unreadable or invalid."""
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return None
    cleaned = _TRAILING_COMMA.sub(r"\1", strip_json_comments(raw)).strip()
    if not cleaned:
        return None
    try:
        data = json.loads(cleaned)
    except ValueError:
        logger.debug("Ignoring malformed tsconfig %s", path)
        return None
    return data if isinstance(data, dict) else None


def resolve_tsconfig_path(tsconfig: str, cwd: Path) -> Optional[Path]:
    """
    Resolve a tsconfig option to a file.

    Accepts a file, or a directory containing ``tsconfig.json``.
    """
    candidate = Path(tsconfig)
    if not candidate.is_absolute():
        candidate = cwd / candidate
    if candidate.is_dir():
        candidate = candidate / "tsconfig.json"
    return candidate if candidate.is_file() else None


def find_nearest_tsconfig(cwd: Path) -> Optional[Path]:
    """Walk upward from cwd to the nearest tsconfig.json."""
    for directory in (cwd, *cwd.parents):
        candidate = directory / "tsconfig.json"
        if candidate.is_file():
            return candidate
    return None


def _resolve_extends(current: Path, value: str) -> Optional[Path]:
    value = value.strip()
    if not value.startswith(("./", "../", "/")):
        return None
    candidate = Path(value)
    if not candidate.suffix:
        candidate = candidate.with_name(candidate.name + ".json")
    if not candidate.is_absolute():
        candidate = current.parent / candidate
    candidate = candidate.resolve()
    return candidate if candidate.is_file() else None


@dataclass
class PathsMatcher:
    """
    Expands a specifier through ``compilerOptions.paths`` patterns.

    Attributes:
        base_dir: Directory replacement targets are relative to
        paths: Pattern -> replacement list (each holds at most one ``*``)
    """
    base_dir: Path
    paths: Dict[str, List[str]] = field(default_factory=dict)

    def candidates(self, specifier: str) -> List[Path]:
        """
        Candidate files for a specifier, best pattern first.

        Exact patterns beat wildcards; among wildcards the longest prefix wins.
        """
        best: Optional[str] = None
        best_prefix = -1
        captured = ""
        for pattern in self.paths:
            if "*" not in pattern:
                if pattern == specifier:
                    best, captured = pattern, ""
                    break
                continue
            prefix, _, suffix = pattern.partition("*")
            if (
                specifier.startswith(prefix)
                and specifier.endswith(suffix)
                and len(specifier) >= len(prefix) + len(suffix)
                and len(prefix) > best_prefix
            ):
                best = pattern
                best_prefix = len(prefix)
                captured = specifier[len(prefix):len(specifier) - len(suffix)]
        if best is None:
            return []
        return [
            self.base_dir / target.replace("*", captured)
            for target in self.paths[best]
        ]


def _normalize_paths(raw: Any) -> Dict[str, List[str]]:
    result: Dict[str, List[str]] = {}
    if not isinstance(raw, dict):
        return result
    for pattern, targets in raw.items():
        if isinstance(targets, str):
            targets = [targets]
        if not isinstance(targets, list):
            continue
        cleaned = [t for t in targets if isinstance(t, str) and t.strip()]
        if cleaned:
            result[pattern] = cleaned
    return result


def _matcher_from_options(options: Any, config_dir: Path) -> Optional[PathsMatcher]:
    if not isinstance(options, dict):
        return None
    paths = _normalize_paths(options.get("paths"))
    if not paths:
        return None
    base_url = options.get("baseUrl")
    base_dir = config_dir
    if isinstance(base_url, str) and base_url.strip():
        base_dir = (config_dir / base_url.strip()).resolve()
    return PathsMatcher(base_dir=base_dir, paths=paths)


def load_tsconfig_options(path: Path) -> Optional[Dict[str, Any]]:
    """
    Merge ``compilerOptions`` along a relative ``extends`` chain.

    ``baseUrl`` is made absolute against the file that declares it.
    """
    chain: List[Path] = []
    seen = set()
    current: Optional[Path] = path.resolve()
    while current is not None and len(chain) < _MAX_EXTENDS_DEPTH:
        if current in seen:
            break
        seen.add(current)
        chain.append(current)
        data = load_jsonc(current)
        extends = data.get("extends") if data else None
        current = _resolve_extends(current, extends) if isinstance(extends, str) else None

    merged: Dict[str, Any] = {}
    for config_path in reversed(chain):
        data = load_jsonc(config_path) or {}
        options = data.get("compilerOptions")
        if not isinstance(options, dict):
            continue
        options = dict(options)
        base_url = options.get("baseUrl")
        if isinstance(base_url, str) and base_url.strip():
            options["baseUrl"] = str((config_path.parent / base_url.strip()).resolve())
        elif "paths" in options and "baseUrl" not in merged:
            options["baseUrl"] = str(config_path.parent)
        merged.update(options)
    return merged or None


def load_paths_matcher(tsconfig: TsconfigOption, cwd: Path) -> Optional[PathsMatcher]:
    """
    Build a PathsMatcher from a tsconfig option.

    Args:
        tsconfig: None or ``"auto"`` (discover from cwd upward), a file or
            directory path, or an inline config dict relative to cwd
        cwd: Working directory

    Returns:
        PathsMatcher, or None when no ``paths`` are configured
    """
    if isinstance(tsconfig, dict):
        return _matcher_from_options(tsconfig.get("compilerOptions"), cwd)

    if tsconfig is None or tsconfig == "auto":
        path = find_nearest_tsconfig(cwd)
    else:
        path = resolve_tsconfig_path(tsconfig, cwd)
    if path is None:
        return None

    options = load_tsconfig_options(path)
    if not options:
        return None
    logger.debug("Using tsconfig paths from %s", path)
    return _matcher_from_options(options, path.parent)
