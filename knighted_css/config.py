"""
Configuration — Options for extraction and the loader protocol.

Config hierarchy (highest to lowest priority):
  1. Options passed by the caller (loader options, keyword overrides)
  2. Environment variables
  3. Project config (knighted-css.yaml in the project root)
  4. Defaults

Environment variables:
  KNIGHTED_CSS_STABLE_NAMESPACE   stable selector namespace
  KNIGHTED_CSS_MINIFY             "1"/"true" to minify extracted CSS
  KNIGHTED_CSS_DEBUG_SASS         "1" to log Sass importer decisions

Example knighted-css.yaml:

    auto_stable:
      namespace: acme
      exclude: "^is-"
    transform:
      css_modules: true
      minify: false
    specificity_boost:
      strategy: {type: append-where, token: boost}
      match: [".card"]
    module_graph:
      tsconfig: auto
    export_name: knightedCss
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Pattern, Sequence, Union

import yaml

from .selectors import RuleVisitor
from .tsconfig import TsconfigOption

DEFAULT_EXPORT_NAME = "knightedCss"
DEFAULT_OUTPUT_FILENAME = "extracted.css"
DEFAULT_STYLE_EXTENSIONS = [".css", ".scss", ".sass", ".less", ".css.ts"]

PatternLike = Union[str, Pattern]

# resolver(specifier, cwd=..., importer=...) -> path, None (defer) or False (external)
ResolverResult = Union[str, bool, None]
CssResolver = Callable[..., Union[ResolverResult, Awaitable[ResolverResult]]]
PeerResolver = Callable[[str], Any]
FileFilter = Callable[[str], bool]

SPECIFICITY_STRATEGIES = ("repeat-class", "append-where")


def compile_pattern(value: Optional[PatternLike]) -> Optional[Pattern]:
    if value is None or isinstance(value, re.Pattern):
        return value
    return re.compile(value)


def _truthy(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def default_filter(path: str) -> bool:
    """Exclude anything under node_modules."""
    return "node_modules" not in Path(path).parts


@dataclass
class AutoStableConfig:
    """Selector stabilization settings."""
    namespace: Optional[str] = None
    include: Optional[Pattern] = None
    exclude: Optional[Pattern] = None

    def __post_init__(self):
        self.include = compile_pattern(self.include)
        self.exclude = compile_pattern(self.exclude)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AutoStableConfig':
        return cls(
            namespace=data.get("namespace"),
            include=data.get("include"),
            exclude=data.get("exclude"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "include": self.include.pattern if self.include else None,
            "exclude": self.exclude.pattern if self.exclude else None,
        }


AutoStableOption = Union[bool, None, AutoStableConfig, Dict[str, Any]]


def normalize_auto_stable(option: AutoStableOption) -> Optional[AutoStableConfig]:
    """False/None disable, True enables defaults, dicts are parsed."""
    if not option:
        return None
    if option is True:
        return AutoStableConfig()
    if isinstance(option, dict):
        return AutoStableConfig.from_dict(option)
    return option


@dataclass
class TransformOptions:
    """
    Post-processing of the concatenated stylesheet.

    Attributes:
        minify: Minify the output
        css_modules: Hash local class names and collect exports
        visitor: Rule visitor applied after the built-in ones
        filename: Name hashed into CSS Modules class names
    """
    minify: bool = False
    css_modules: bool = False
    visitor: Optional[RuleVisitor] = None
    filename: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransformOptions':
        return cls(
            minify=bool(data.get("minify", False)),
            css_modules=bool(data.get("css_modules", False)),
            visitor=data.get("visitor"),
            filename=data.get("filename"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minify": self.minify,
            "css_modules": self.css_modules,
            "filename": self.filename,
        }


TransformOption = Union[bool, None, TransformOptions, Dict[str, Any]]


def normalize_transform(option: TransformOption) -> Optional[TransformOptions]:
    if not option:
        return None
    if option is True:
        return TransformOptions()
    if isinstance(option, dict):
        return TransformOptions.from_dict(option)
    return option


@dataclass
class SpecificityBoost:
    """
    Raise selector specificity for matched rules.

    Attributes:
        strategy: "repeat-class" or "append-where"
        times: Copies of the last class for repeat-class (minimum 1)
        token: Class placed in ``:where(.token)`` for append-where
        match: Selectors to boost; strings match the whole selector exactly,
            patterns are searched. Empty means every selector.
        visitor: Custom rule visitor replacing the built-in strategies
    """
    strategy: Optional[str] = None
    times: int = 1
    token: str = ""
    match: List[PatternLike] = field(default_factory=list)
    visitor: Optional[RuleVisitor] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SpecificityBoost':
        strategy = data.get("strategy") or {}
        if isinstance(strategy, str):
            strategy = {"type": strategy}
        return cls(
            strategy=strategy.get("type"),
            times=int(strategy.get("times", 1)),
            token=strategy.get("token", ""),
            match=list(data.get("match") or []),
            visitor=data.get("visitor"),
        )

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if self.strategy is not None and self.strategy not in SPECIFICITY_STRATEGIES:
            valid = ", ".join(SPECIFICITY_STRATEGIES)
            return f"Unknown specificity strategy '{self.strategy}'. Valid: {valid}"
        if self.strategy == "append-where" and not self.token.lstrip("."):
            return "append-where specificity strategy requires a token"
        return None


@dataclass
class ModuleGraphOptions:
    """Script graph resolution settings."""
    tsconfig: TsconfigOption = "auto"
    conditions: Optional[List[str]] = None
    extensions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModuleGraphOptions':
        return cls(
            tsconfig=data.get("tsconfig", "auto"),
            conditions=data.get("conditions"),
            extensions=list(data.get("extensions") or []),
        )


@dataclass
class CssOptions:
    """
    Options for ``css`` / ``css_with_meta``.

    Attributes:
        cwd: Working directory (defaults to the process cwd)
        extensions: Style extensions that contribute CSS
        filter: ``path -> bool``; False excludes a file's CSS
        resolver: Custom resolver tried before built-in resolution
        peer_resolver: ``name -> module`` loader for compiler peers
        auto_stable: Selector stabilization (bool, dict or AutoStableConfig)
        transform: Stylesheet post-processing (bool, dict or TransformOptions)
        specificity_boost: Specificity boost settings
        module_graph: Script graph resolution settings
    """
    cwd: Optional[Path] = None
    extensions: Sequence[str] = field(default_factory=lambda: list(DEFAULT_STYLE_EXTENSIONS))
    filter: Optional[FileFilter] = None
    resolver: Optional[CssResolver] = None
    peer_resolver: Optional[PeerResolver] = None
    auto_stable: AutoStableOption = False
    transform: TransformOption = False
    specificity_boost: Optional[SpecificityBoost] = None
    module_graph: ModuleGraphOptions = field(default_factory=ModuleGraphOptions)

    def __post_init__(self):
        self.cwd = Path(self.cwd).resolve() if self.cwd else Path.cwd()
        self.extensions = [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.extensions
        ]
        if isinstance(self.specificity_boost, dict):
            self.specificity_boost = SpecificityBoost.from_dict(self.specificity_boost)
        if isinstance(self.module_graph, dict):
            self.module_graph = ModuleGraphOptions.from_dict(self.module_graph)

    @property
    def file_filter(self) -> FileFilter:
        return self.filter or default_filter

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CssOptions':
        """Create from a dictionary; unknown keys are ignored."""
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in data.items() if key in known})

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if self.specificity_boost is not None:
            error = self.specificity_boost.validate()
            if error:
                return error
        if not self.extensions:
            return "At least one style extension is required"
        return None


@dataclass
class LoaderOptions:
    """Options of the loader and bridge loader."""
    css: CssOptions = field(default_factory=CssOptions)
    export_name: str = DEFAULT_EXPORT_NAME
    stable_namespace: Optional[str] = None
    emit_css_modules: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoaderOptions':
        css_data = {k: v for k, v in data.items() if k in CssOptions.__dataclass_fields__}
        return cls(
            css=CssOptions.from_dict(css_data),
            export_name=data.get("export_name") or DEFAULT_EXPORT_NAME,
            stable_namespace=data.get("stable_namespace"),
            emit_css_modules=data.get("emit_css_modules", True) is not False,
        )


def sass_debug_enabled() -> bool:
    return os.environ.get("KNIGHTED_CSS_DEBUG_SASS") == "1"


class ConfigManager:
    """
    Loads loader options from the project config and the environment.

    Hierarchy:
      1. Explicit overrides
      2. Environment variables
      3. Project config (knighted-css.yaml)
      4. Defaults
    """

    PROJECT_CONFIG_FILE = "knighted-css.yaml"

    def __init__(self, project_dir: Optional[Path] = None):
        self.project_dir = Path(project_dir) if project_dir else Path.cwd()

    @property
    def project_config_path(self) -> Path:
        return self.project_dir / self.PROJECT_CONFIG_FILE

    def load_data(self, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Merge every layer into one options dictionary."""
        config_data: Dict[str, Any] = {}

        if self.project_config_path.exists():
            with open(self.project_config_path) as f:
                config_data = self._merge(config_data, yaml.safe_load(f) or {})

        namespace = os.environ.get("KNIGHTED_CSS_STABLE_NAMESPACE")
        if namespace is not None:
            config_data["stable_namespace"] = namespace
            auto_stable = config_data.get("auto_stable")
            if isinstance(auto_stable, dict):
                auto_stable["namespace"] = namespace
            elif auto_stable:
                config_data["auto_stable"] = {"namespace": namespace}
        if os.environ.get("KNIGHTED_CSS_MINIFY"):
            transform = config_data.get("transform")
            transform = dict(transform) if isinstance(transform, dict) else {}
            transform["minify"] = _truthy(os.environ["KNIGHTED_CSS_MINIFY"])
            config_data["transform"] = transform

        if overrides:
            config_data = self._merge(config_data, overrides)
        config_data.setdefault("cwd", self.project_dir)
        return config_data

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> LoaderOptions:
        """
        Load loader options from all sources.

        Raises:
            ValueError: If the merged options are invalid
        """
        options = LoaderOptions.from_dict(self.load_data(overrides))
        error = options.css.validate()
        if error:
            raise ValueError(f"Invalid knighted-css configuration: {error}")
        return options

    def _merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dicts, override wins."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value
        return result
