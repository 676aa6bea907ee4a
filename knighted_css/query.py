"""
Query flags — Canonical view of a bundler resource query.

A resource query is ``?`` followed by ``&``-joined ``key`` or ``key=value``
tokens. Keys and values may be percent-encoded; recognized keys are
case-sensitive literals:

    knighted-css         marker that activates the protocol
    combined             bundle upstream exports and CSS into one module
    named-only           suppress the synthetic default export
    no-default           alias of named-only
    types                request the stable selector map
    stableNamespace=ns   namespace override for selector generation
    exportName=ident     per-request override of the CSS export name

Everything else passes through untouched, in its original order.

Usage:
    flags = parse_flags("?knighted-css&combined&foo=bar")
    flags.combined            # True
    flags.sanitized_query     # "?foo=bar"
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple
from urllib.parse import unquote

MARKER_QUERY_FLAG = "knighted-css"
COMBINED_QUERY_FLAG = "combined"
TYPES_QUERY_FLAG = "types"
STABLE_NAMESPACE_QUERY_PARAM = "stableNamespace"
EXPORT_NAME_QUERY_PARAM = "exportName"
STABLE_SELECTORS_EXPORT_NAME = "stableSelectors"
NAMED_ONLY_QUERY_FLAGS = ("named-only", "no-default")

_STRIPPED_KEYS = frozenset({
    MARKER_QUERY_FLAG,
    COMBINED_QUERY_FLAG,
    TYPES_QUERY_FLAG,
    STABLE_NAMESPACE_QUERY_PARAM,
    *NAMED_ONLY_QUERY_FLAGS,
})

CSS_TS_SUFFIXES = (".css.ts", ".css.js")


def safe_decode(value: str) -> str:
    """Percent-decode a query fragment, returning it raw when malformed."""
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return value


def split_query(query: Optional[str]) -> List[str]:
    """Split a query into its non-empty ``&`` entries."""
    if not query:
        return []
    trimmed = query[1:] if query.startswith("?") else query
    return [part for part in trimmed.split("&") if part]


def _entry_key(entry: str) -> str:
    return safe_decode(entry.split("=", 1)[0])


def is_query_flag(entry: str, flag: str) -> bool:
    return _entry_key(entry) == flag


def has_query_flag(query: Optional[str], flag: str) -> bool:
    return any(is_query_flag(part, flag) for part in split_query(query))


def get_query_param(query: Optional[str], key: str) -> Optional[str]:
    """
    Read the first value of a query parameter.

    Returns:
        Decoded value, ``""`` for a bare key, or None when absent
    """
    for entry in split_query(query):
        raw_key, _, raw_value = entry.partition("=")
        if not raw_key or safe_decode(raw_key) != key:
            continue
        return safe_decode(raw_value) if raw_value else ""
    return None


def build_sanitized_query(query: Optional[str]) -> str:
    """
    Strip every recognized flag and the marker from a query.

    Unrelated entries are kept verbatim, including undecodable fragments.
    The result is stable under repeated application.

    Returns:
        ``"?a&b"`` or ``""`` when nothing remains
    """
    entries = [part for part in split_query(query) if _entry_key(part) not in _STRIPPED_KEYS]
    return f"?{'&'.join(entries)}" if entries else ""


def split_request(request: str) -> Tuple[str, str]:
    """Split ``path?query`` into ``(path, "?query")``."""
    path, sep, query = request.partition("?")
    return path, f"{sep}{query}" if sep else ""


@dataclass(frozen=True)
class QueryFlagSet:
    """Parsed resource query."""
    marker: bool = False
    combined: bool = False
    skip_synthetic_default: bool = False
    types_requested: bool = False
    stable_namespace: Optional[str] = None
    export_name: Optional[str] = None
    sanitized_query: str = ""

    @property
    def stable_requested(self) -> bool:
        return self.types_requested


def parse_flags(query: Optional[str]) -> QueryFlagSet:
    """Classify a resource query into a QueryFlagSet."""
    entries = split_query(query)
    keys = {_entry_key(entry) for entry in entries}
    return QueryFlagSet(
        marker=MARKER_QUERY_FLAG in keys,
        combined=COMBINED_QUERY_FLAG in keys,
        skip_synthetic_default=any(flag in keys for flag in NAMED_ONLY_QUERY_FLAGS),
        types_requested=TYPES_QUERY_FLAG in keys,
        stable_namespace=get_query_param(query, STABLE_NAMESPACE_QUERY_PARAM),
        export_name=get_query_param(query, EXPORT_NAME_QUERY_PARAM),
        sanitized_query=build_sanitized_query(query),
    )


# =============================================================================
# Default Export Policy
# =============================================================================

class ModuleDefaultSignal(str, Enum):
    """Outcome of static default-export detection."""
    HAS_DEFAULT = "has-default"
    NO_DEFAULT = "no-default"
    UNKNOWN = "unknown"


def should_forward_default_export(request: str) -> bool:
    """False for CSS-in-TS files, which have no meaningful default."""
    path, _ = split_request(request)
    if not path:
        return True
    return not path.lower().endswith(CSS_TS_SUFFIXES)


def should_emit_combined_default(
    detection: ModuleDefaultSignal,
    request: str,
    skip_synthetic_default: bool,
) -> bool:
    """
    Decide whether a combined module re-exports a default.

    An explicit skip always wins, then the CSS-in-TS suffix check. After
    that a positive or unknown detection forwards, a negative one does not.
    """
    if skip_synthetic_default:
        return False
    if not should_forward_default_export(request):
        return False
    return ModuleDefaultSignal(detection) is not ModuleDefaultSignal.NO_DEFAULT


# =============================================================================
# Module Shapes
# =============================================================================

class SelectorVariant(str, Enum):
    """Module shape a consumer can expect for a flag combination."""
    CSS = "css"
    TYPES = "types"
    COMBINED = "combined"
    COMBINED_WITHOUT_DEFAULT = "combinedWithoutDefault"
    COMBINED_TYPES = "combinedTypes"
    COMBINED_TYPES_WITHOUT_DEFAULT = "combinedTypesWithoutDefault"


def determine_selector_variant(query: Optional[str]) -> SelectorVariant:
    flags = parse_flags(query)
    if not flags.combined:
        return SelectorVariant.TYPES if flags.types_requested else SelectorVariant.CSS
    if flags.types_requested:
        if flags.skip_synthetic_default:
            return SelectorVariant.COMBINED_TYPES_WITHOUT_DEFAULT
        return SelectorVariant.COMBINED_TYPES
    if flags.skip_synthetic_default:
        return SelectorVariant.COMBINED_WITHOUT_DEFAULT
    return SelectorVariant.COMBINED


def variant_exports(variant: SelectorVariant, export_name: str = "knightedCss") -> List[str]:
    """
    Names a module of the given shape exports in addition to upstream ones.

    ``*`` stands for the upstream module's named exports.
    """
    variant = SelectorVariant(variant)
    names = [export_name]
    if variant in (
        SelectorVariant.TYPES,
        SelectorVariant.COMBINED_TYPES,
        SelectorVariant.COMBINED_TYPES_WITHOUT_DEFAULT,
    ):
        names.append(STABLE_SELECTORS_EXPORT_NAME)
    if variant is not SelectorVariant.CSS and variant is not SelectorVariant.TYPES:
        names.append("*")
        if variant in (SelectorVariant.COMBINED, SelectorVariant.COMBINED_TYPES):
            names.append("default")
    return names
