"""
Tests for configuration — option dataclasses and ConfigManager layering.

Tests validate:
- from_dict parsing of nested option shapes
- Defaults (filter, namespace, cwd)
- Precedence: overrides > environment > knighted-css.yaml > defaults
"""

import re

import pytest

from knighted_css.config import (
    AutoStableConfig,
    ConfigManager,
    CssOptions,
    LoaderOptions,
    ModuleGraphOptions,
    SpecificityBoost,
    default_filter,
    normalize_auto_stable,
    normalize_transform,
)


# =============================================================================
# Option Shapes
# =============================================================================

class TestOptionShapes:
    """Test parsing of nested options."""

    def test_auto_stable_variants(self):
        """auto_stable accepts a bool or a mapping with pattern strings."""
        assert normalize_auto_stable(False) is None
        assert normalize_auto_stable(True) == AutoStableConfig()

        config = normalize_auto_stable({"namespace": "acme", "exclude": "^is-"})

        assert config.namespace == "acme"
        assert isinstance(config.exclude, re.Pattern)
        assert config.to_dict() == {"namespace": "acme", "include": None, "exclude": "^is-"}

    def test_transform_variants(self):
        """transform accepts None, a bool or a mapping."""
        assert normalize_transform(None) is None
        assert normalize_transform(True).css_modules is False
        assert normalize_transform({"minify": True}).minify is True

    def test_specificity_strategy_shapes(self):
        """The strategy may be a name or a mapping."""
        short = SpecificityBoost.from_dict({"strategy": "repeat-class"})
        full = SpecificityBoost.from_dict({
            "strategy": {"type": "append-where", "token": "boost"},
            "match": [".card"],
        })

        assert (short.strategy, short.times) == ("repeat-class", 1)
        assert (full.strategy, full.token, full.match) == ("append-where", "boost", [".card"])

    def test_css_options_normalization(self, tmp_path):
        """Extensions are lowercased and dotted, nested mappings become dataclasses."""
        options = CssOptions(
            cwd=tmp_path,
            extensions=["SCSS", ".Css"],
            specificity_boost={"strategy": "repeat-class"},
            module_graph={"tsconfig": None, "conditions": ["style"]},
        )

        assert options.cwd == tmp_path.resolve()
        assert options.extensions == [".scss", ".css"]
        assert isinstance(options.specificity_boost, SpecificityBoost)
        assert options.module_graph == ModuleGraphOptions(tsconfig=None, conditions=["style"])

    def test_from_dict_ignores_unknown_keys(self, tmp_path):
        """Keys that belong to other option groups are ignored."""
        options = CssOptions.from_dict({"cwd": tmp_path, "export_name": "x"})

        assert options.cwd == tmp_path.resolve()

    def test_default_filter(self):
        """node_modules is filtered out by default."""
        assert default_filter("/app/src/a.css")
        assert not default_filter("/app/node_modules/ui/a.css")

    def test_validation(self, tmp_path):
        """An empty extension list is rejected."""
        assert CssOptions(cwd=tmp_path).validate() is None
        assert CssOptions(cwd=tmp_path, extensions=[]).validate() == "At least one style extension is required"

    def test_loader_options_from_dict(self, tmp_path):
        """Loader options wrap the CSS options; a blank export name falls back."""
        options = LoaderOptions.from_dict({
            "cwd": tmp_path,
            "auto_stable": True,
            "export_name": "",
            "stable_namespace": "acme",
            "emit_css_modules": False,
        })

        assert options.css.auto_stable is True
        assert options.export_name == "knightedCss"
        assert options.stable_namespace == "acme"
        assert options.emit_css_modules is False


# =============================================================================
# ConfigManager
# =============================================================================

class TestConfigManager:
    """Test layered loading."""

    def test_defaults(self, project):
        """No file and no environment give the defaults."""
        options = ConfigManager(project.root).load()

        assert options.export_name == "knightedCss"
        assert options.stable_namespace is None
        assert options.css.cwd == project.root

    def test_project_file(self, project):
        """knighted-css.yaml at the project root is read."""
        project.write("knighted-css.yaml", (
            "export_name: styles\n"
            "auto_stable:\n"
            "  namespace: acme\n"
            "transform:\n"
            "  css_modules: true\n"
        ))

        options = ConfigManager(project.root).load()

        assert options.export_name == "styles"
        assert options.css.auto_stable == {"namespace": "acme"}
        assert options.css.transform == {"css_modules": True}

    def test_environment_over_file(self, project, monkeypatch):
        """Environment variables override the project file."""
        project.write("knighted-css.yaml", "auto_stable:\n  namespace: acme\n")
        monkeypatch.setenv("KNIGHTED_CSS_STABLE_NAMESPACE", "env")
        monkeypatch.setenv("KNIGHTED_CSS_MINIFY", "true")

        options = ConfigManager(project.root).load()

        assert options.stable_namespace == "env"
        assert options.css.auto_stable == {"namespace": "env"}
        assert options.css.transform == {"minify": True}

    def test_overrides_win(self, project, monkeypatch):
        """Nested override dicts merge into the file's values."""
        project.write("knighted-css.yaml", "transform:\n  css_modules: true\n  minify: false\n")
        monkeypatch.setenv("KNIGHTED_CSS_STABLE_NAMESPACE", "env")

        options = ConfigManager(project.root).load({
            "stable_namespace": "override",
            "transform": {"minify": True},
        })

        assert options.stable_namespace == "override"
        assert options.css.transform == {"css_modules": True, "minify": True}

    def test_invalid_configuration(self, project):
        """An unknown strategy is reported as invalid configuration."""
        project.write("knighted-css.yaml", "specificity_boost:\n  strategy: sideways\n")

        with pytest.raises(ValueError, match="Invalid knighted-css configuration"):
            ConfigManager(project.root).load()

    def test_empty_file(self, project):
        """An empty file is treated as no configuration."""
        project.write("knighted-css.yaml", "")

        assert ConfigManager(project.root).load().export_name == "knightedCss"
