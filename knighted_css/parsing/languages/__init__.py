"""
Dialect configurations.

Each module defines configs for one family of source files:
- css.py: CSS (.css), SCSS (.scss), Sass (.sass), Less (.less) and their import scanners
- script.py: JavaScript, TypeScript, TSX and the CSS-in-TS dialect (.css.ts)
"""

from .css import CSS_CONFIG, SCSS_CONFIG, SASS_CONFIG, LESS_CONFIG
from .script import JAVASCRIPT_CONFIG, TYPESCRIPT_CONFIG, TSX_CONFIG, VANILLA_CONFIG

STYLE_CONFIGS = [CSS_CONFIG, SCSS_CONFIG, SASS_CONFIG, LESS_CONFIG, VANILLA_CONFIG]
SCRIPT_CONFIGS = [TYPESCRIPT_CONFIG, TSX_CONFIG, JAVASCRIPT_CONFIG]

__all__ = [
    'CSS_CONFIG',
    'SCSS_CONFIG',
    'SASS_CONFIG',
    'LESS_CONFIG',
    'VANILLA_CONFIG',
    'JAVASCRIPT_CONFIG',
    'TYPESCRIPT_CONFIG',
    'TSX_CONFIG',
    'STYLE_CONFIGS',
    'SCRIPT_CONFIGS',
]
