"""
Codegen — Proxy ES module source for resource queries.

Generated modules are described by a small IR and rendered to text:

    ModulePlan
      imports      ordered ImportDecl (alias, request, named bindings)
      statements   ordered module-level statements

The flag set decides which statements a plan contains; rendering is plain
joining. Three shapes exist:

    build_combined_module             loader pitch for ?knighted-css&combined
    build_bridge_module               bridge pitch for a stylesheet resource
    build_combined_js_bridge_module   bridge pitch for a script resource

Requests are rendered as JSON string literals.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import DEFAULT_EXPORT_NAME

CSS_MODULES_EXPORT_NAME = "knightedCssModules"


def js_string(value: str) -> str:
    return json.dumps(value)


@dataclass
class ImportDecl:
    """
    One import declaration.

    ``names`` of None renders a namespace import (``import * as alias``);
    otherwise ``import { name as local, ... }``.
    """
    alias: str
    request: str
    names: Optional[List[Tuple[str, str]]] = None

    def render(self) -> str:
        if self.names is None:
            return f"import * as {self.alias} from {js_string(self.request)};"
        bindings = ", ".join(
            name if name == local else f"{name} as {local}" for name, local in self.names
        )
        return f"import {{ {bindings} }} from {js_string(self.request)};"


@dataclass
class ModulePlan:
    imports: List[ImportDecl] = field(default_factory=list)
    statements: List[str] = field(default_factory=list)

    def add_import(self, alias: str, request: str, names: Optional[List[Tuple[str, str]]] = None) -> None:
        self.imports.append(ImportDecl(alias, request, names))

    def add(self, statement: str) -> None:
        self.statements.append(statement)

    def render(self) -> str:
        return "\n".join([decl.render() for decl in self.imports] + self.statements)


# =============================================================================
# Runtime helpers embedded in bridge modules
# =============================================================================

RESOLVE_CSS_TEXT = """function (primary, module) {
  const candidates = [primary, module, module && module.default];
  for (const candidate of candidates) {
    if (typeof candidate === 'string') {
      return candidate;
    }
    if (candidate && typeof candidate.toString === 'function') {
      const text = String(candidate.toString());
      if (text && text !== '[object Object]' && text !== '[object Module]') {
        return text;
      }
    }
  }
  return '';
}"""

RESOLVE_CSS_MODULES = """function (primary, module) {
  const candidates = [primary, module, module && module.default];
  for (const candidate of candidates) {
    if (!candidate || typeof candidate !== 'object') continue;
    if (!('locals' in candidate)) continue;
    const locals = candidate.locals;
    if (!locals || typeof locals !== 'object') continue;
    return locals;
  }
  const isStringMap = value => {
    const entries = Object.entries(value);
    if (entries.length === 0) return false;
    return entries.every(([, entry]) => typeof entry === 'string');
  };
  for (const candidate of candidates) {
    if (!candidate || typeof candidate !== 'object') continue;
    if (isStringMap(candidate)) return candidate;
  }
  if (!module || typeof module !== 'object') return undefined;
  const output = {};
  for (const [key, entry] of Object.entries(module)) {
    if (key === 'default' || key === '__esModule') continue;
    if (typeof entry === 'string') {
      output[key] = entry;
    }
  }
  return Object.keys(output).length > 0 ? output : undefined;
}"""

DEFAULT_FROM_NAMESPACE = """const __knightedDefault =
typeof {alias}.default !== 'undefined'
  ? {alias}.default
  : {alias};"""


def _default_from(alias: str) -> str:
    return DEFAULT_FROM_NAMESPACE.replace("{alias}", alias)


# =============================================================================
# Renderers
# =============================================================================

def build_css_injection(css: str, export_name: str = DEFAULT_EXPORT_NAME) -> str:
    """Named export appended to a module's own source."""
    return f"\n\nexport const {export_name} = {js_string(css)};\n"


def build_css_modules_export(css_modules: Dict[str, str]) -> str:
    return f"export const {CSS_MODULES_EXPORT_NAME} = {json.dumps(css_modules, indent=2)};"


def build_combined_module(
    request: str,
    css: str,
    export_name: str = DEFAULT_EXPORT_NAME,
    emit_default: bool = True,
    css_modules: Optional[Dict[str, str]] = None,
    stable_selectors_literal: Optional[str] = None,
) -> str:
    """
    Combined module for the loader pitch.

    Re-exports the original module and adds the compiled CSS, optionally
    the CSS Modules map and the stable selector literal.
    """
    plan = ModulePlan()
    plan.add_import("__knightedModule", request)
    plan.add(f"export * from {js_string(request)};")
    if emit_default:
        plan.add(_default_from("__knightedModule"))
        plan.add("export default __knightedDefault;")
    plan.add(f"export const {export_name} = {js_string(css)};")
    if css_modules is not None:
        plan.add(build_css_modules_export(css_modules))
    if stable_selectors_literal:
        plan.add(stable_selectors_literal.rstrip("\n"))
    return plan.render() + "\n"


def build_bridge_module(
    locals_request: str,
    upstream_request: str,
    combined: bool,
    emit_default: bool,
    emit_css_modules: bool = True,
    export_name: str = DEFAULT_EXPORT_NAME,
) -> str:
    """
    Bridge module for a stylesheet handled by another CSS loader.

    The upstream module supplies the CSS text; the locals request supplies
    the CSS Modules map (``locals``, a string record, or string named exports).
    """
    plan = ModulePlan()
    plan.add_import("__knightedLocals", locals_request)
    plan.add_import("__knightedUpstream", upstream_request)
    plan.add(_default_from("__knightedUpstream"))
    plan.add(f"const __knightedResolveCss = {RESOLVE_CSS_TEXT};")
    plan.add(f"const __knightedResolveCssModules = {RESOLVE_CSS_MODULES};")
    plan.add(
        "const __knightedLocalsExport =\n"
        "  __knightedResolveCssModules(__knightedLocals, __knightedLocals) ??\n"
        "  __knightedLocals;"
    )
    plan.add("const __knightedCss = __knightedResolveCss(__knightedDefault, __knightedUpstream);")
    plan.add(f"export const {export_name} = __knightedCss;")

    if emit_css_modules:
        plan.add(
            "const __knightedCssModules = __knightedLocalsExport ?? __knightedResolveCssModules(\n"
            "  __knightedDefault,\n"
            "  __knightedUpstream,\n"
            ");"
        )
        plan.add(f"export const {CSS_MODULES_EXPORT_NAME} = __knightedCssModules;")

    if combined:
        plan.add(f"export * from {js_string(locals_request)};")
        if emit_default:
            plan.add("export default __knightedLocalsExport;")
    else:
        plan.add("export default __knightedCss;")
    return plan.render()


def build_combined_js_bridge_module(
    upstream_request: str,
    css_requests: Sequence[str],
    emit_default: bool = False,
    export_name: str = DEFAULT_EXPORT_NAME,
) -> str:
    """
    Combined module for a script whose CSS Modules imports go through the bridge.

    CSS payloads of every discovered request are concatenated and their
    CSS Modules maps merged.
    """
    plan = ModulePlan()
    plan.add_import("__knightedUpstream", upstream_request)
    for index, request in enumerate(css_requests):
        plan.add_import(f"__knightedCss{index}", request, [
            (DEFAULT_EXPORT_NAME, f"__knightedCss{index}"),
            (CSS_MODULES_EXPORT_NAME, f"__knightedCssModules{index}"),
        ])
    if emit_default:
        plan.add(
            "const __knightedDefault = Object.prototype.hasOwnProperty.call(__knightedUpstream, 'default')"
            " ? __knightedUpstream['default'] : undefined;"
        )
    css_values = ", ".join(f"__knightedCss{index}" for index in range(len(css_requests)))
    module_values = ", ".join(f"__knightedCssModules{index}" for index in range(len(css_requests)))
    plan.add(f"const __knightedCss = [{css_values}].filter(Boolean).join('\\n');")
    plan.add(f"const __knightedCssModules = Object.assign({{}}, ...[{module_values}].filter(Boolean));")
    plan.add(f"export const {export_name} = __knightedCss;")
    plan.add(f"export const {CSS_MODULES_EXPORT_NAME} = __knightedCssModules;")
    plan.add(f"export * from {js_string(upstream_request)};")
    if emit_default:
        plan.add("export default __knightedDefault;")
    return plan.render()


# =============================================================================
# Requests
# =============================================================================

Contextify = Callable[[str, str], str]


def strip_resource_query(request: str) -> str:
    index = request.find("?")
    return request[:index] if index >= 0 else request


def to_posix(path: str) -> str:
    return path.replace(os.sep, "/")


def dot_relative(relative_path: str, resource_path: str) -> str:
    """POSIX path that always starts with ``./`` or ``../``."""
    normalized = to_posix(relative_path or os.path.basename(resource_path))
    if normalized.startswith(("./", "../")):
        return normalized
    return f"./{normalized}"


def build_upstream_request(remaining_request: Optional[str]) -> str:
    """Remaining loader chain with normal loaders disabled (``!!``)."""
    if not remaining_request:
        return ""
    return remaining_request if remaining_request.startswith("!") else f"!!{remaining_request}"


def relative_request(context: str, request: str) -> str:
    resource, _, query = request.partition("?")
    relative = dot_relative(os.path.relpath(resource, context), resource)
    return f"{relative}?{query}" if query else relative


def build_proxy_request(
    resource_path: str,
    sanitized_query: str,
    context: Optional[str] = None,
    raw_request: Optional[str] = None,
    contextify: Optional[Contextify] = None,
) -> str:
    """
    Request for the original resource with knighted flags removed.

    A raw request keeps its loader prefix (everything up to the last ``!``);
    a relative resource in it is rebased onto ``context``. Without one, the
    host's ``contextify`` is used, else a POSIX dot-relative path.

    Args:
        resource_path: Absolute resource path
        sanitized_query: Query from ``build_sanitized_query``
        context: Directory of the requesting module
        raw_request: Request string as written by the importer, if known
        contextify: Host ``(context, request) -> request`` function
    """
    base = context or os.path.dirname(resource_path)
    if raw_request:
        stripped = strip_resource_query(raw_request)
        delimiter = stripped.rfind("!")
        prefix = stripped[:delimiter + 1] if delimiter >= 0 else ""
        resource = stripped[delimiter + 1:] if delimiter >= 0 else stripped
        if resource.startswith(("./", "../")):
            if contextify is not None:
                resource = strip_resource_query(contextify(base, resource_path))
            else:
                resource = dot_relative(os.path.relpath(resource_path, base), resource_path)
        return f"{prefix}{resource}{sanitized_query}"

    request = f"{resource_path}{sanitized_query}"
    if contextify is not None:
        return contextify(base, request)
    return relative_request(base, request)
