"""
Dialect Registry — Routes files to dialect configurations.

Central registry that maps file extensions to DialectConfig instances.
Multi-part extensions are supported and the longest match wins, so
``theme.css.ts`` routes to the CSS-in-TS dialect rather than TypeScript.

Usage:
    registry = DialectRegistry()
    registry.register(SCSS_CONFIG)
    registry.register(TYPESCRIPT_CONFIG)

    config = registry.get_config("src/theme.scss")
    # Returns SCSS_CONFIG
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

from .config import DialectConfig


class DialectRegistry:
    """
    Registry of dialect configurations.

    Maps file extensions to DialectConfig instances for routing.
    """

    def __init__(self):
        """Initialize empty registry."""
        self._configs: Dict[str, DialectConfig] = {}  # name -> config
        self._extension_map: Dict[str, str] = {}  # ext -> config name

    def register(self, config: DialectConfig) -> None:
        """
        Register a dialect configuration.

        Args:
            config: DialectConfig to register

        Raises:
            ValueError: If extension already registered to different config
        """
        for ext in config.extensions:
            existing = self._extension_map.get(ext.lower())
            if existing is not None and existing != config.name:
                raise ValueError(
                    f"Extension {ext} already registered to {existing}, "
                    f"cannot register to {config.name}"
                )

        self._configs[config.name] = config
        for ext in config.extensions:
            self._extension_map[ext.lower()] = config.name

    def unregister(self, name: str) -> bool:
        """
        Unregister a dialect configuration by name.

        Returns:
            True if unregistered, False if not found
        """
        config = self._configs.pop(name, None)
        if config is None:
            return False
        for ext in config.extensions:
            if self._extension_map.get(ext.lower()) == name:
                del self._extension_map[ext.lower()]
        return True

    def match_extension(self, file_path: Union[str, Path]) -> Optional[str]:
        """Longest registered extension the path ends with."""
        lower = str(file_path).lower()
        found = [ext for ext in self._extension_map if lower.endswith(ext)]
        return max(found, key=len) if found else None

    def get_config(self, file_path: Union[str, Path]) -> Optional[DialectConfig]:
        """
        Get dialect config for a file based on its longest matching extension.

        Returns:
            DialectConfig if extension is supported, None otherwise
        """
        ext = self.match_extension(file_path)
        return self._configs.get(self._extension_map[ext]) if ext else None

    def style_extensions(self) -> List[str]:
        """Extensions of every registered style dialect, in registration order."""
        return [
            ext for ext, name in self._extension_map.items()
            if self._configs[name].is_style
        ]

    def script_extensions(self) -> List[str]:
        """Extensions whose files have walkable imports, in registration order."""
        return [
            ext for ext, name in self._extension_map.items()
            if self._configs[name].is_script
        ]

    def is_supported(self, file_path: Union[str, Path]) -> bool:
        return self.match_extension(file_path) is not None
