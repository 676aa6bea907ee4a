"""
Style dialect configurations and import scanners.

Defines the CSS, SCSS, Sass (indented) and Less configs. Each carries an
``import_scanner`` that lists the specifiers a stylesheet pulls in, used
to report the transitive ``@import``/``@use``/``@forward`` chain as build
dependencies.

Scanners are deliberately lexical: Sass and Less sources are not valid CSS,
and only the quoted specifier matters here.
"""

import re
from typing import List

from ..config import Dialect, DialectConfig


# =============================================================================
# Import Scanners
# =============================================================================

_CSS_IMPORT = re.compile(
    r"""@import\s+(?:url\(\s*)?['"]([^'"\n\r]+)['"]\s*\)?""",
    re.IGNORECASE,
)
_LESS_IMPORT = re.compile(
    r"""@import\s*(?:\([^)]*\)\s*)?(?:url\(\s*)?['"]([^'"\n\r]+)['"]\s*\)?""",
    re.IGNORECASE,
)
_SASS_USE = re.compile(r"""@(?:use|forward)\s+['"]([^'"\n\r]+)['"]""", re.IGNORECASE)
_SASS_IMPORT = re.compile(r"@import\s+([^;\n]+)", re.IGNORECASE)
_QUOTED = re.compile(r"""['"]([^'"]+)['"]""")
_EXTERNAL = re.compile(r"^(?:https?:|data:|blob:)", re.IGNORECASE)


def is_external_style_specifier(specifier: str) -> bool:
    return bool(_EXTERNAL.match(specifier))


def scan_css_imports(source: str) -> List[str]:
    return [m.group(1) for m in _CSS_IMPORT.finditer(source)]


def scan_less_imports(source: str) -> List[str]:
    return [m.group(1) for m in _LESS_IMPORT.finditer(source)]


def scan_sass_imports(source: str) -> List[str]:
    """
    ``@use``/``@forward`` first, then every quoted entry of ``@import`` lists.

    Handles ``@import 'a', 'b';`` and the semicolon-free indented syntax.
    """
    found = [m.group(1) for m in _SASS_USE.finditer(source)]
    for match in _SASS_IMPORT.finditer(source):
        found.extend(q.group(1) for q in _QUOTED.finditer(match.group(1)))
    return found


# =============================================================================
# Configs
# =============================================================================

CSS_CONFIG = DialectConfig(
    name="CSS",
    tree_sitter_name="css",
    extensions={".css"},
    dialect=Dialect.CSS,
    import_scanner=scan_css_imports,
)

SCSS_CONFIG = DialectConfig(
    name="SCSS",
    tree_sitter_name="scss",
    extensions={".scss"},
    dialect=Dialect.SCSS,
    peer_name="sass",
    import_scanner=scan_sass_imports,
)

SASS_CONFIG = DialectConfig(
    name="Sass",
    tree_sitter_name="scss",
    extensions={".sass"},
    dialect=Dialect.SASS,
    peer_name="sass",
    import_scanner=scan_sass_imports,
)

LESS_CONFIG = DialectConfig(
    name="Less",
    tree_sitter_name="css",
    extensions={".less"},
    dialect=Dialect.LESS,
    peer_name="lesscpy",
    import_scanner=scan_less_imports,
)
