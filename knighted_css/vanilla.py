"""
Vanilla — Static evaluation of CSS-in-TS (``.css.ts``) modules.

The module is parsed with the TypeScript grammar and its top-level
statements are evaluated in order. Calls with literal arguments produce CSS:

    export const card = style({ padding: 8, ':hover': { color: 'red' } })
        ->  .card_card__1a2b3c { padding: 8px; }
            .card_card__1a2b3c:hover { color: red; }

    globalStyle(`${card} > a`, { color: 'inherit' })
    export const fade = keyframes({ from: { opacity: 0 }, to: { opacity: 1 } })
    export const tone = styleVariants({ light: {...}, dark: {...} })

Theme helpers bind variable trees that member lookups resolve against:

    export const [themeClass, vars] = createTheme({ color: { bg: '#000' } })
        ->  .card_themeClass__4d5e6f { --color-bg__7a8b9c: #000; }
    style({ background: vars.color.bg })   # background: var(--color-bg__7a8b9c)

``createGlobalTheme``, ``createThemeContract``, ``createVar``,
``fallbackVar``, ``recipe`` (base, variants and compound variants) and the
``stableClass``/``stableSelector`` helpers are evaluated as well.

Identifiers bound to earlier results (class names, plain strings, variable
trees, object literals) are substituted in selectors and values; a
generated class name used in a selector gains its leading dot. Anything
that cannot be evaluated statically is skipped with a warning naming it.

Class names are ``<file stem>_<debug id>__<hash>`` and variables
``--<token path>__<hash>``, the hash derived from the file path relative to
the project root and the call's position.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import xxhash

from .errors import KnightedCssError
from .parsing.treesitter import node_text, parse, string_value, unescape
from .stable import stable_class, stable_selector
from .utils import read_text_async

if TYPE_CHECKING:
    from tree_sitter import Node

logger = logging.getLogger(__name__)

STYLE_CALLS = frozenset({"style", "globalStyle", "keyframes", "styleVariants", "recipe"})
THEME_CALLS = frozenset({"createTheme", "createGlobalTheme", "createThemeContract", "createVar", "fallbackVar"})
STABLE_CALLS = frozenset({"stableClass", "stableSelector"})
AT_RULE_KEYS = ("@media", "@supports", "@container", "@layer")

UNITLESS_PROPERTIES = frozenset({
    "animationIterationCount", "aspectRatio", "columnCount", "columns", "flex",
    "flexGrow", "flexShrink", "fontWeight", "gridColumn", "gridColumnEnd",
    "gridColumnStart", "gridRow", "gridRowEnd", "gridRowStart", "lineHeight",
    "opacity", "order", "orphans", "scale", "tabSize", "widows", "zIndex", "zoom",
})

_UPPER = re.compile(r"[A-Z]")
_VAR_REFERENCE = re.compile(r"var\((--[\w-]+)(?:,.*)?\)", re.DOTALL)
_NON_NAME = re.compile(r"[^\w-]")


def css_property_name(key: str) -> str:
    """``backgroundColor`` -> ``background-color``; vendor prefixes get a leading dash."""
    if key.startswith("--"):
        return key
    if key.startswith("ms") and len(key) > 2 and key[2].isupper():
        key = "Ms" + key[2:]
    return _UPPER.sub(lambda m: f"-{m.group(0).lower()}", key)


def custom_property(reference: str) -> str:
    """``var(--gap__1a2b3c)`` -> ``--gap__1a2b3c``; other text is returned as is."""
    match = _VAR_REFERENCE.fullmatch(reference.strip())
    return match.group(1) if match else reference


@dataclass
class _Rule:
    selector: str
    declarations: List[str] = field(default_factory=list)
    wrappers: Tuple[str, ...] = ()


class VanillaEvaluator:
    """
    Evaluates one ``.css.ts`` module to CSS.

    Args:
        path: Absolute path of the module
        cwd: Project root (class name hashes are relative to it)
    """

    def __init__(self, path: str, cwd: Path):
        self.path = path
        self.stem = Path(path).name.split(".")[0] or "style"
        self.relative = Path(os.path.relpath(path, cwd)).as_posix()
        self.scope: Dict[str, Any] = {}
        self.objects: Dict[str, "Node"] = {}
        self.rules: List[_Rule] = []
        self.keyframes: List[str] = []
        self.classes: List[str] = []
        self.source = b""
        self._counter = 0

    # -------------------------------------------------------------------------
    # Identifiers
    # -------------------------------------------------------------------------

    def _digest(self) -> str:
        digest = xxhash.xxh32_hexdigest(f"{self.relative}:{self._counter}".encode("utf-8"))[:6]
        self._counter += 1
        return digest

    def ident(self, debug_id: Optional[str]) -> str:
        digest = self._digest()
        if debug_id:
            return f"{self.stem}_{debug_id}__{digest}"
        return f"{self.stem}__{digest}"

    def variable(self, debug_id: Optional[str]) -> str:
        """A fresh ``var(--...)`` reference."""
        digest = self._digest()
        if debug_id:
            return f"var(--{_NON_NAME.sub('-', debug_id)}__{digest})"
        return f"var(--{digest})"

    def selector(self, text: str) -> str:
        """Dot-prefix generated class names interpolated into a selector."""
        for name in sorted(self.classes, key=len, reverse=True):
            text = re.sub(rf"(?<![\w.-]){re.escape(name)}(?![\w-])", f".{name}", text)
        return text

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def resolve(self, node: Optional["Node"]) -> Any:
        """Bound value of an identifier or member chain: a string, a class list or a variable tree."""
        if node is None:
            return None
        if node.type == "identifier":
            return self.scope.get(node_text(node, self.source))
        if node.type == "member_expression":
            target = self.resolve(node.child_by_field_name("object"))
            prop = node.child_by_field_name("property")
            if isinstance(target, dict) and prop is not None:
                return target.get(node_text(prop, self.source))
            return None
        if node.type == "subscript_expression":
            target = self.resolve(node.child_by_field_name("object"))
            index = node.child_by_field_name("index")
            key = self.value(index) if index is not None else None
            if isinstance(target, dict) and key is not None:
                return target.get(key)
            return None
        if node.type in ("parenthesized_expression", "as_expression", "satisfies_expression",
                         "non_null_expression"):
            return self.resolve(node.named_children[0]) if node.named_children else None
        return None

    def value(self, node: "Node") -> Optional[str]:
        """Static string value of an expression, or None."""
        if node.type in ("string", "number"):
            return string_value(node, self.source) if node.type == "string" else node_text(node, self.source)
        if node.type == "template_string":
            return self._template(node)
        if node.type in ("identifier", "member_expression", "subscript_expression"):
            resolved = self.resolve(node)
            return resolved if isinstance(resolved, str) else None
        if node.type == "call_expression":
            result = self.call(node, None)
            return result if isinstance(result, str) else None
        if node.type == "unary_expression":
            operand = node.child_by_field_name("argument")
            operator = node.child_by_field_name("operator")
            inner = self.value(operand) if operand is not None else None
            if inner is not None and operator is not None and node_text(operator, self.source) == "-":
                return f"-{inner}"
            return None
        if node.type == "binary_expression":
            operator = node.child_by_field_name("operator")
            if operator is None or node_text(operator, self.source) != "+":
                return None
            left = self.value(node.child_by_field_name("left"))
            right = self.value(node.child_by_field_name("right"))
            return left + right if left is not None and right is not None else None
        if node.type in ("parenthesized_expression", "as_expression", "satisfies_expression",
                         "non_null_expression"):
            return self.value(node.named_children[0]) if node.named_children else None
        return None

    def _template(self, node: "Node") -> Optional[str]:
        parts: List[str] = []
        position = node.start_byte + 1
        for child in node.children:
            if child.type != "template_substitution":
                continue
            parts.append(unescape(self.source[position:child.start_byte].decode("utf-8")))
            inner = self.value(child.named_children[0]) if child.named_children else None
            if inner is None:
                return None
            parts.append(inner)
            position = child.end_byte
        parts.append(unescape(self.source[position:node.end_byte - 1].decode("utf-8")))
        return "".join(parts)

    def key(self, node: "Node") -> Optional[str]:
        if node.type in ("property_identifier", "identifier", "true", "false"):
            return node_text(node, self.source)
        if node.type == "computed_property_name":
            return self.value(node.named_children[0]) if node.named_children else None
        return self.value(node)

    def pairs(self, node: "Node") -> List[Tuple[str, "Node"]]:
        """Evaluable ``key: value`` entries of an object literal."""
        entries = []
        for child in node.named_children:
            if child.type != "pair":
                continue
            key_node = child.child_by_field_name("key")
            value_node = child.child_by_field_name("value")
            key = self.key(key_node) if key_node is not None else None
            if key is None or value_node is None:
                label = node_text(key_node, self.source) if key_node is not None else "?"
                logger.warning("Skipping non-static key %s in %s", label, self.path)
                continue
            entries.append((key, value_node))
        return entries

    def literal(self, node: "Node") -> Optional["Node"]:
        """The object literal ``node`` is or names, or None."""
        if node.type == "object":
            return node
        if node.type in ("parenthesized_expression", "as_expression", "satisfies_expression"):
            return self.literal(node.named_children[0]) if node.named_children else None
        if node.type == "identifier":
            return self.objects.get(node_text(node, self.source))
        return None

    # -------------------------------------------------------------------------
    # Style objects
    # -------------------------------------------------------------------------

    def declaration(self, prop: str, node: "Node") -> List[str]:
        name = css_property_name(prop)
        nodes = node.named_children if node.type == "array" else [node]
        declarations = []
        for item in nodes:
            text = self.value(item)
            if text is None:
                logger.warning(
                    "Skipping non-static value for %s in %s: %s", prop, self.path, node_text(item, self.source)
                )
                continue
            numeric = item.type == "number" or (
                item.type == "unary_expression" and re.fullmatch(r"-[\d.]+", text) is not None
            )
            if numeric and text.lstrip("-") != "0" and prop not in UNITLESS_PROPERTIES and not prop.startswith("--"):
                text = f"{text}px"
            declarations.append(f"{name}: {text};")
        return declarations

    def style_object(self, selector: str, node: "Node", wrappers: Tuple[str, ...] = ()) -> None:
        """Flatten a style object into rules, nested rules after their parent."""
        literal = self.literal(node)
        if literal is None:
            logger.warning(
                "Skipping non-literal style for %s in %s: %s", selector, self.path, node_text(node, self.source)
            )
            return
        rule = _Rule(selector=selector, wrappers=wrappers)
        self.rules.append(rule)
        for key, value in self.pairs(literal):
            if key == "selectors" and value.type == "object":
                for nested, nested_value in self.pairs(value):
                    self.style_object(self.selector(nested.replace("&", selector)), nested_value, wrappers)
            elif key == "vars" and value.type == "object":
                for var, var_value in self.pairs(value):
                    var = custom_property(var)
                    if var.startswith("--"):
                        rule.declarations.extend(self.declaration(var, var_value))
                    else:
                        logger.warning("Skipping variable %s that is not a custom property in %s", var, self.path)
            elif key in AT_RULE_KEYS and value.type == "object":
                for query, query_value in self.pairs(value):
                    self.style_object(selector, query_value, wrappers + (f"{key} {query}",))
            elif key.startswith(":"):
                self.style_object(f"{selector}{key}", value, wrappers)
            elif value.type == "object":
                logger.warning("Skipping unsupported nested key %s in %s", key, self.path)
            else:
                rule.declarations.extend(self.declaration(key, value))

    def style_list(self, node: "Node", debug_id: Optional[str]) -> Optional[str]:
        """``style(obj)`` or ``style([base, obj])``; returns the class list."""
        ident = self.ident(debug_id)
        self.classes.append(ident)
        classes = [ident]
        items = node.named_children if node.type == "array" else [node]
        for item in items:
            if self.literal(item) is not None:
                self.style_object(f".{ident}", item)
            else:
                composed = self.value(item)
                if composed:
                    classes.append(composed)
                else:
                    logger.warning("Skipping non-static composition in %s: %s", self.path, node_text(item, self.source))
        return " ".join(classes)

    # -------------------------------------------------------------------------
    # Themes
    # -------------------------------------------------------------------------

    def contract(self, node: "Node", path: Tuple[str, ...] = ()) -> Dict[str, Any]:
        """Map the shape of a token object to fresh variables, depth first."""
        tree: Dict[str, Any] = {}
        for key, value in self.pairs(node):
            if value.type == "object":
                tree[key] = self.contract(value, path + (key,))
            else:
                tree[key] = self.variable("-".join(path + (key,)))
        return tree

    def assign(self, contract: Dict[str, Any], node: "Node", declarations: List[str]) -> None:
        """Collect ``--var: value;`` for each token of ``node`` the contract names."""
        for key, value in self.pairs(node):
            target = contract.get(key)
            if isinstance(target, dict) and value.type == "object":
                self.assign(target, value, declarations)
            elif isinstance(target, str):
                text = self.value(value)
                if text is None:
                    logger.warning("Skipping non-static theme value %s in %s", key, self.path)
                else:
                    declarations.append(f"{custom_property(target)}: {text};")
            else:
                logger.warning("Skipping theme value %s that the contract does not define in %s", key, self.path)

    def theme_rule(self, selector: str, contract: Dict[str, Any], tokens: "Node") -> None:
        declarations: List[str] = []
        self.assign(contract, tokens, declarations)
        self.rules.append(_Rule(selector=selector, declarations=declarations))

    def theme(self, name: str, args: List["Node"], debug_id: Optional[str]) -> Any:
        if name == "createVar":
            explicit = self.value(args[0]) if args else None
            return self.variable(explicit or debug_id)

        if name == "fallbackVar":
            values = [self.value(arg) for arg in args]
            if not values or any(value is None for value in values):
                logger.warning("Skipping fallbackVar with non-static values in %s", self.path)
                return None
            result = values[-1]
            for reference in reversed(values[:-1]):
                result = f"var({custom_property(reference)}, {result})"
            return result

        if not args:
            logger.warning("Skipping %s without arguments in %s", name, self.path)
            return None

        if name == "createThemeContract":
            shape = self.literal(args[0])
            return self.contract(shape) if shape is not None else None

        if name == "createTheme":
            tokens = self.literal(args[0])
            if tokens is not None:
                contract = self.contract(tokens)
                explicit = self.value(args[1]) if len(args) > 1 else None
                theme_class = self.ident(explicit or debug_id)
                self.classes.append(theme_class)
                self.theme_rule(f".{theme_class}", contract, tokens)
                return [theme_class, contract]
            contract = self.resolve(args[0])
            tokens = self.literal(args[1]) if len(args) > 1 else None
            if not isinstance(contract, dict) or tokens is None:
                logger.warning("Skipping createTheme with a non-static contract in %s", self.path)
                return None
            explicit = self.value(args[2]) if len(args) > 2 else None
            theme_class = self.ident(explicit or debug_id)
            self.classes.append(theme_class)
            self.theme_rule(f".{theme_class}", contract, tokens)
            return theme_class

        # createGlobalTheme
        selector = self.value(args[0])
        if selector is None or len(args) < 2:
            logger.warning("Skipping createGlobalTheme with a dynamic selector in %s", self.path)
            return None
        tokens = self.literal(args[1])
        if tokens is not None:
            contract = self.contract(tokens)
            self.theme_rule(self.selector(selector), contract, tokens)
            return contract
        contract = self.resolve(args[1])
        tokens = self.literal(args[2]) if len(args) > 2 else None
        if not isinstance(contract, dict) or tokens is None:
            logger.warning("Skipping createGlobalTheme with a non-static contract in %s", self.path)
            return None
        self.theme_rule(self.selector(selector), contract, tokens)
        return None

    # -------------------------------------------------------------------------
    # Calls and statements
    # -------------------------------------------------------------------------

    def recipe(self, node: "Node", debug_id: Optional[str]) -> Optional[str]:
        """Base class, one class per variant option, one per compound variant."""
        options = self.literal(node)
        if options is None:
            logger.warning("Skipping recipe with non-literal options in %s", self.path)
            return None
        prefix = debug_id or "recipe"
        base = None
        for key, value in self.pairs(options):
            if key == "base":
                base = self.style_list(value, debug_id)
            elif key == "variants" and value.type == "object":
                for group, choices in self.pairs(value):
                    if choices.type != "object":
                        logger.warning("Skipping non-literal variant %s in %s", group, self.path)
                        continue
                    for option, style in self.pairs(choices):
                        self.style_list(style, f"{prefix}_{group}_{option}")
            elif key == "compoundVariants" and value.type == "array":
                for index, compound in enumerate(value.named_children):
                    entry = self.literal(compound)
                    style = dict(self.pairs(entry)).get("style") if entry is not None else None
                    if style is None:
                        logger.warning("Skipping compound variant %d without a style in %s", index, self.path)
                        continue
                    self.style_list(style, f"{prefix}_compound_{index}")
        return base

    def call(self, node: "Node", debug_id: Optional[str]) -> Any:
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        if function is None or arguments is None or function.type != "identifier":
            label = node_text(function, self.source) if function is not None else "?"
            logger.warning("Skipping call to %s in %s: it cannot be evaluated statically", label, self.path)
            return None
        name = node_text(function, self.source)
        args = [child for child in arguments.named_children if child.type != "comment"]

        if name in THEME_CALLS:
            return self.theme(name, args, debug_id)

        if name in STABLE_CALLS:
            token = self.value(args[0]) if args else None
            if token is None:
                logger.warning("Skipping %s with a non-static token in %s", name, self.path)
                return None
            return stable_class(token) if name == "stableClass" else stable_selector(token)

        if name not in STYLE_CALLS or not args:
            logger.warning("Skipping call to %s in %s: it cannot be evaluated statically", name, self.path)
            return None

        if name == "style":
            explicit = self.value(args[1]) if len(args) > 1 else None
            return self.style_list(args[0], explicit or debug_id)

        if name == "recipe":
            return self.recipe(args[0], debug_id)

        if name == "globalStyle":
            selector = self.value(args[0])
            if selector is None or len(args) < 2:
                logger.warning("Skipping globalStyle with a dynamic selector in %s", self.path)
                return None
            self.style_object(self.selector(selector), args[1])
            return None

        if name == "keyframes":
            ident = self.ident(debug_id)
            frames = []
            for step, value in self.pairs(args[0]):
                declarations = []
                for prop, prop_value in (self.pairs(value) if value.type == "object" else []):
                    declarations.extend(self.declaration(prop, prop_value))
                body = "".join(f"\n    {line}" for line in declarations)
                frames.append(f"  {step} {{{body}\n  }}")
            self.keyframes.append(f"@keyframes {ident} {{\n" + "\n".join(frames) + "\n}")
            return ident

        # styleVariants
        for variant, value in self.pairs(args[0]):
            variant_id = f"{debug_id}_{variant}" if debug_id else variant
            self.style_list(value, variant_id)
        return None

    def bind(self, pattern: "Node", value: "Node") -> None:
        """Evaluate a declarator and bind its result to the identifier or array pattern."""
        if pattern.type == "identifier":
            identifier = node_text(pattern, self.source)
            if value.type == "call_expression":
                result = self.call(value, identifier)
            else:
                literal = self.literal(value)
                if literal is not None:
                    self.objects[identifier] = literal
                    return
                result = self.value(value)
            if result is not None:
                self.scope[identifier] = result
            return
        if pattern.type == "array_pattern" and value.type == "call_expression":
            names = [child for child in pattern.named_children if child.type == "identifier"]
            debug_id = node_text(names[0], self.source) if names else None
            result = self.call(value, debug_id)
            if isinstance(result, list):
                for name, item in zip(names, result):
                    self.scope[node_text(name, self.source)] = item
            return
        logger.warning("Skipping destructuring declaration in %s: %s", self.path, node_text(pattern, self.source))

    def statement(self, node: "Node") -> None:
        if node.type == "export_statement":
            declaration = node.child_by_field_name("declaration")
            if declaration is not None:
                self.statement(declaration)
                return
            value = node.child_by_field_name("value")
            if value is not None and value.type == "call_expression":
                self.call(value, "default")
        elif node.type in ("lexical_declaration", "variable_declaration"):
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name = declarator.child_by_field_name("name")
                value = declarator.child_by_field_name("value")
                if name is not None and value is not None:
                    self.bind(name, value)
        elif node.type == "expression_statement" and node.named_children:
            expression = node.named_children[0]
            if expression.type == "call_expression":
                self.call(expression, None)

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def render(self) -> str:
        blocks = list(self.keyframes)
        for rule in self.rules:
            if not rule.declarations:
                continue
            depth = len(rule.wrappers)
            indent = "  " * depth
            body = "".join(f"\n{indent}  {line}" for line in rule.declarations)
            block = f"{indent}{rule.selector} {{{body}\n{indent}}}"
            for level, wrapper in reversed(list(enumerate(rule.wrappers))):
                outer = "  " * level
                block = f"{outer}{wrapper} {{\n{block}\n{outer}}}"
            blocks.append(block)
        return "\n".join(blocks) + ("\n" if blocks else "")

    def evaluate(self, source: str) -> str:
        """
        Evaluate module source to CSS.

        Raises:
            KnightedCssError: If the TypeScript grammar is unavailable
        """
        self.source = source.encode("utf-8")
        tree = parse("typescript", self.source)
        if tree is None:
            raise KnightedCssError(
                f"Unable to evaluate {self.path}: the tree-sitter TypeScript grammar is unavailable."
            )
        for node in tree.root_node.named_children:
            self.statement(node)
        return self.render()


def evaluate_vanilla(source: str, path: str, cwd: Path) -> str:
    return VanillaEvaluator(path, cwd).evaluate(source)


async def compile_vanilla(path: str, cwd: Path) -> str:
    """Read and evaluate a ``.css.ts`` module."""
    source = await read_text_async(path)
    return evaluate_vanilla(source, path, cwd)
