"""
Dialect configuration data structures.

Defines DialectConfig: the per-extension rules that route a file to a
tree-sitter grammar, a compiler peer and an ``@import`` scanner.

Design principle: New dialects are added via config, not code changes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Set


class Dialect(str, Enum):
    """Style-authoring syntaxes."""
    CSS = "css"
    SCSS = "scss"
    SASS = "sass"
    LESS = "less"
    VANILLA = "vanilla"


@dataclass
class DialectConfig:
    """
    Configuration for one kind of source file.

    Attributes:
        name: Human-readable name (e.g., "Sass", "TypeScript")
        tree_sitter_name: Grammar name for tree-sitter (e.g., "css", "tsx")
        extensions: File extensions this config handles (e.g., {'.scss'})
        dialect: Style dialect, or None for plain scripts
        is_script: Whether the file's own imports are walked
        peer_name: Importable compiler package, if the dialect needs one
        import_scanner: Extracts ``@import``/``@use`` specifiers from source
    """
    # Identity
    name: str
    tree_sitter_name: str
    extensions: Set[str]

    # Behavior
    dialect: Optional[Dialect] = None
    is_script: bool = False
    peer_name: Optional[str] = None

    # Hooks
    import_scanner: Optional[Callable[[str], List[str]]] = None

    @property
    def is_style(self) -> bool:
        return self.dialect is not None
