"""
Stable selectors — Deterministic, hash-independent class names.

A stable class is built from a namespace and a sanitized token:

    stable_token("card")                    -> "knighted-card"
    stable_token("Hero Title", "acme")      -> "acme-Hero-Title"
    stable_token("card", namespace="  ")    -> "card"

These helpers are pure and usable outside the stylesheet pipeline, e.g. to
reference the stable class of a CSS Modules export from application code.
"""

import re
from typing import Callable, List, Mapping, Optional

DEFAULT_NAMESPACE = "knighted"

_WHITESPACE = re.compile(r"\s+")
_INVALID = re.compile(r"[^A-Za-z0-9_-]")
_HYPHENS = re.compile(r"-+")


def normalize_token(token: str) -> str:
    """
    Sanitize a token into a valid class-name fragment.

    Whitespace runs become single hyphens, any character outside
    ``[A-Za-z0-9_-]`` becomes a hyphen, hyphen runs collapse and edge
    hyphens are stripped. An empty result falls back to ``"stable"``.
    """
    sanitized = _WHITESPACE.sub("-", token.strip())
    sanitized = _INVALID.sub("-", sanitized)
    sanitized = _HYPHENS.sub("-", sanitized).strip("-")
    return sanitized or "stable"


def resolve_stable_namespace(namespace: Optional[str] = None) -> str:
    """Return the configured namespace, or the default when none is set."""
    return namespace if isinstance(namespace, str) else DEFAULT_NAMESPACE


def stable_token(token: str, namespace: Optional[str] = None) -> str:
    """
    Build the stable class name for a token.

    Args:
        token: Raw token (usually a local class name)
        namespace: Prefix; None means the default, blank means no prefix

    Returns:
        ``namespace-token`` or the bare sanitized token
    """
    normalized = normalize_token(token)
    prefix = resolve_stable_namespace(namespace).strip()
    if not prefix:
        return normalized
    return f"{prefix}-{normalized}"


def stable_class(token: str, namespace: Optional[str] = None) -> str:
    return stable_token(token, namespace)


def stable_selector(token: str, namespace: Optional[str] = None) -> str:
    return f".{stable_token(token, namespace)}"


def create_stable_class_factory(namespace: Optional[str] = None) -> Callable[[str], str]:
    """Bind a namespace once and return a ``token -> stable class`` function."""
    def factory(token: str) -> str:
        return stable_class(token, namespace)
    return factory


def _default_join(values: List[str]) -> str:
    return " ".join(value for value in values if value)


def stable_class_name(
    styles: Mapping[str, str],
    key: str,
    token: Optional[str] = None,
    namespace: Optional[str] = None,
    join: Optional[Callable[[List[str]], str]] = None,
) -> str:
    """
    Combine a CSS Modules class with its stable counterpart.

    Args:
        styles: CSS Modules export map (local name -> hashed class)
        key: Export key to look up
        token: Token for the stable class (defaults to key)
        namespace: Stable namespace
        join: Custom joiner (defaults to space-joining non-empty values)

    Returns:
        e.g. ``"a1b2c3_card knighted-card"``
    """
    hashed = styles.get(key, "")
    stable = stable_class(token if token is not None else key, namespace)
    return (join or _default_join)([hashed, stable])
