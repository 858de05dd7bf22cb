"""Render rustdoc JSON type and item descriptions back into Rust-like text."""

from __future__ import annotations

from typing import Any, Dict, List


def _flag(body: Dict[str, Any], name: str) -> bool:
    # Boolean fields gained an ``is_`` prefix in later format versions.
    return bool(body.get(f"is_{name}", body.get(name, False)))


def render_path(path: Dict[str, Any] | None) -> str:
    if not path:
        return "_"
    name = path.get("path") or path.get("name") or "_"
    return name + render_generic_args(path.get("args"))


def render_generic_args(args: Any) -> str:
    if not isinstance(args, dict) or not args:
        return ""
    if "angle_bracketed" in args:
        body = args["angle_bracketed"] or {}
        parts = [_render_generic_arg(arg) for arg in body.get("args", [])]
        for constraint in body.get("constraints", body.get("bindings", [])) or []:
            parts.append(_render_constraint(constraint))
        parts = [part for part in parts if part]
        return f"<{', '.join(parts)}>" if parts else ""
    if "parenthesized" in args:
        body = args["parenthesized"] or {}
        inputs = ", ".join(render_type(ty) for ty in body.get("inputs", []))
        output = body.get("output")
        suffix = f" -> {render_type(output)}" if output is not None else ""
        return f"({inputs}){suffix}"
    return ""


def _render_generic_arg(arg: Any) -> str:
    if arg == "infer":
        return "_"
    if not isinstance(arg, dict) or len(arg) != 1:
        return ""
    (tag, value), = arg.items()
    if tag == "lifetime":
        return str(value)
    if tag == "type":
        return render_type(value)
    if tag == "const":
        if isinstance(value, dict):
            return str(value.get("expr") or value.get("value") or "_")
        return str(value)
    return ""


def _render_constraint(constraint: Dict[str, Any]) -> str:
    name = constraint.get("name", "_")
    binding = constraint.get("binding") or {}
    equality = binding.get("equality") if isinstance(binding, dict) else None
    if isinstance(equality, dict) and "type" in equality:
        return f"{name} = {render_type(equality['type'])}"
    constraint_bounds = binding.get("constraint") if isinstance(binding, dict) else None
    if constraint_bounds:
        return f"{name}: {render_bounds(constraint_bounds)}"
    return name


def render_bounds(bounds: List[Any]) -> str:
    rendered = [render_bound(bound) for bound in bounds or []]
    return " + ".join(part for part in rendered if part)


def render_bound(bound: Any) -> str:
    if not isinstance(bound, dict) or len(bound) != 1:
        return ""
    (tag, value), = bound.items()
    if tag == "trait_bound":
        prefix = "?" if value.get("modifier") == "maybe" else ""
        return prefix + render_path(value.get("trait"))
    if tag == "outlives":
        return str(value)
    return ""


def render_type(ty: Any) -> str:
    if ty is None:
        return "()"
    if isinstance(ty, str):
        return "_" if ty == "infer" else ty
    if not isinstance(ty, dict) or len(ty) != 1:
        return "_"
    (tag, value), = ty.items()
    if tag == "resolved_path":
        return render_path(value)
    if tag in ("generic", "primitive"):
        return str(value)
    if tag == "tuple":
        items = [render_type(item) for item in value]
        if len(items) == 1:
            return f"({items[0]},)"
        return f"({', '.join(items)})"
    if tag == "slice":
        return f"[{render_type(value)}]"
    if tag == "array":
        return f"[{render_type(value.get('type'))}; {value.get('len', '_')}]"
    if tag == "borrowed_ref":
        lifetime = value.get("lifetime")
        mutable = "mut " if _flag(value, "mutable") else ""
        lifetime_part = f"{lifetime} " if lifetime else ""
        return f"&{lifetime_part}{mutable}{render_type(value.get('type'))}"
    if tag == "raw_pointer":
        qualifier = "mut" if _flag(value, "mutable") else "const"
        return f"*{qualifier} {render_type(value.get('type'))}"
    if tag == "impl_trait":
        return f"impl {render_bounds(value)}"
    if tag == "dyn_trait":
        traits = [render_path(poly.get("trait")) for poly in value.get("traits", [])]
        if value.get("lifetime"):
            traits.append(value["lifetime"])
        return f"dyn {' + '.join(traits)}"
    if tag == "qualified_path":
        self_type = render_type(value.get("self_type"))
        name = value.get("name", "_")
        trait = value.get("trait")
        if trait:
            return f"<{self_type} as {render_path(trait)}>::{name}"
        return f"{self_type}::{name}"
    if tag == "function_pointer":
        sig = value.get("sig") or value.get("decl") or {}
        inputs = ", ".join(render_type(pair[1]) for pair in sig.get("inputs", []))
        output = sig.get("output")
        suffix = f" -> {render_type(output)}" if output is not None else ""
        return f"fn({inputs}){suffix}"
    return "_"


def render_generics(generics: Any) -> str:
    if not isinstance(generics, dict):
        return ""
    names: List[str] = []
    for param in generics.get("params", []):
        kind = param.get("kind") or {}
        type_kind = kind.get("type") if isinstance(kind, dict) else None
        if isinstance(type_kind, dict) and _flag(type_kind, "synthetic"):
            continue
        const_kind = kind.get("const") if isinstance(kind, dict) else None
        if isinstance(const_kind, dict):
            names.append(f"const {param['name']}: {render_type(const_kind.get('type'))}")
        else:
            names.append(param["name"])
    return f"<{', '.join(names)}>" if names else ""


def _render_input(name: str, ty: Any) -> str:
    if name == "self":
        if ty == {"generic": "Self"}:
            return "self"
        if isinstance(ty, dict) and "borrowed_ref" in ty:
            ref = ty["borrowed_ref"]
            if ref.get("type") == {"generic": "Self"}:
                mutable = "mut " if _flag(ref, "mutable") else ""
                lifetime = f"{ref['lifetime']} " if ref.get("lifetime") else ""
                return f"&{lifetime}{mutable}self"
        return f"self: {render_type(ty)}"
    return f"{name}: {render_type(ty)}"


def render_function(name: str, body: Dict[str, Any]) -> str:
    header = body.get("header") or {}
    qualifiers = [
        word
        for word, flag in (("const", "const"), ("async", "async"), ("unsafe", "unsafe"))
        if _flag(header, flag)
    ]
    abi = header.get("abi")
    # "Rust" or {"C": {"unwind": false}}
    abi_name = next(iter(abi), "Rust") if isinstance(abi, dict) else abi
    if abi_name and abi_name != "Rust":
        qualifiers.append(f'extern "{abi_name}"')
    sig = body.get("sig") or body.get("decl") or {}
    inputs = ", ".join(_render_input(pair[0], pair[1]) for pair in sig.get("inputs", []))
    if _flag(sig, "c_variadic"):
        inputs = f"{inputs}, ..." if inputs else "..."
    output = sig.get("output")
    suffix = f" -> {render_type(output)}" if output is not None else ""
    prefix = " ".join(qualifiers + ["fn"])
    return f"{prefix} {name}{render_generics(body.get('generics'))}({inputs}){suffix}"


def render_impl(body: Dict[str, Any]) -> str:
    generics = render_generics(body.get("generics"))
    unsafe = "unsafe " if _flag(body, "unsafe") else ""
    for_type = render_type(body.get("for"))
    trait = body.get("trait")
    if trait:
        negation = "!" if _flag(body, "negative") else ""
        return f"{unsafe}impl{generics} {negation}{render_path(trait)} for {for_type}"
    return f"{unsafe}impl{generics} {for_type}"


def render_signature(tag: str, name: str, raw_body: Any) -> str | None:
    """Return a one-line declaration for an item, or None when nothing useful renders."""
    body = raw_body if isinstance(raw_body, dict) else {}
    generics = render_generics(body.get("generics"))
    if tag == "function":
        return render_function(name, body)
    if tag == "module":
        return f"mod {name}"
    if tag in ("struct", "enum", "union"):
        return f"{tag} {name}{generics}"
    if tag == "trait":
        qualifiers = ("unsafe " if _flag(body, "unsafe") else "") + (
            "auto " if _flag(body, "auto") else ""
        )
        bounds = render_bounds(body.get("bounds", []))
        return f"{qualifiers}trait {name}{generics}" + (f": {bounds}" if bounds else "")
    if tag == "trait_alias":
        return f"trait {name}{generics} = {render_bounds(body.get('params', []))}"
    if tag in ("type_alias", "typedef"):
        return f"type {name}{generics} = {render_type(body.get('type'))}"
    if tag == "constant":
        return f"const {name}: {render_type(body.get('type'))}"
    if tag == "static":
        mutable = "mut " if _flag(body, "mutable") else ""
        return f"static {mutable}{name}: {render_type(body.get('type'))}"
    if tag == "macro":
        source = raw_body if isinstance(raw_body, str) else ""
        first_line = source.strip().splitlines()[0] if source.strip() else ""
        return first_line or f"macro_rules! {name}"
    if tag == "proc_macro":
        kind = body.get("kind")
        if kind == "attr":
            return f"#[{name}]"
        if kind == "derive":
            return f"#[derive({name})]"
        return f"{name}!()"
    if tag == "impl":
        return render_impl(body)
    return None
