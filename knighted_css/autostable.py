"""
Auto-stable — Duplicate selectors under deterministic class names.

For every rule, each selector is rewritten with its class atoms replaced by
their stable class; the rewrite is appended to the rule when it differs
from the original and is not already present:

    .foo { color: red }        ->  .foo, .knighted-foo { color: red }
    :global(.x) .foo { ... }   ->  :global(.x) .foo, :global(.x) .knighted-foo { ... }

Original selectors are never removed or reordered. ``:global(...)``
components are opaque and stay byte-identical.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from .config import AutoStableConfig, AutoStableOption, normalize_auto_stable
from .selectors import CLASS, RuleVisitor, Selector, SelectorToken
from .stable import stable_class


def should_transform(token: str, config: AutoStableConfig) -> bool:
    """Exclude is tested first, then include."""
    if config.exclude is not None and config.exclude.search(token):
        return False
    if config.include is not None and not config.include.search(token):
        return False
    return True


def stabilize_selector(selector: Selector, config: AutoStableConfig) -> Tuple[Selector, bool]:
    """
    Rewrite every eligible class atom of a selector into its stable class.

    Classes nested in ``:is()``/``:where()``/``:has()``/``:not()`` are atoms of
    the same token stream, so a change at any depth marks the selector changed.

    Returns:
        (selector, changed); the input selector when nothing changed
    """
    changed = False
    tokens: List[SelectorToken] = []
    for token in selector.tokens:
        if token.kind == CLASS and should_transform(token.value, config):
            stable = stable_class(token.value, config.namespace)
            if stable and stable != token.value:
                tokens.append(SelectorToken(CLASS, stable))
                changed = True
                continue
        tokens.append(token)
    if not changed:
        return selector, False
    return selector.with_tokens(tokens), True


def build_auto_stable_visitor(option: AutoStableOption) -> Optional[RuleVisitor]:
    """
    Build the rule visitor for an auto-stable option.

    Args:
        option: False/None (disabled), True (defaults), dict or AutoStableConfig

    Returns:
        Visitor, or None when disabled
    """
    config = normalize_auto_stable(option)
    if config is None:
        return None

    def visitor(selectors: List[Selector]) -> List[Selector]:
        seen = {selector.key() for selector in selectors}
        augmented = list(selectors)
        for selector in selectors:
            stable, changed = stabilize_selector(selector, config)
            if not changed:
                continue
            key = stable.key()
            if key in seen:
                continue
            seen.add(key)
            augmented.append(stable)
        return augmented

    return visitor


def stable_export_value(
    classes: Iterable[Tuple[str, str]],
    option: AutoStableOption,
) -> str:
    """
    Space-joined export value with each class followed by its stable class.

    Args:
        classes: (local name, emitted class name) pairs, own class first
        option: Auto-stable option; disabled means no stable classes

    Returns:
        e.g. ``"a1_button knighted-button a1_base knighted-base"``
    """
    config = normalize_auto_stable(option)
    values: List[str] = []
    for local, emitted in classes:
        values.append(emitted)
        if config is not None and should_transform(local, config):
            values.append(stable_class(local, config.namespace))
    return " ".join(dict.fromkeys(value for value in values if value))


def stabilize_exports(
    exports: Dict[str, List[Tuple[str, str]]],
    option: AutoStableOption,
) -> Dict[str, str]:
    """Render every CSS Modules export, adding stable classes when enabled."""
    return {name: stable_export_value(classes, option) for name, classes in exports.items()}
