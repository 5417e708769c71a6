"""Introspection of the live namespace the user is working in."""

import inspect
import logging
from typing import (
    Any,
    Dict,
    List,
)

logger = logging.getLogger(__name__)

MAX_MEMBERS = 30


def _kind(value: Any) -> str:
    if inspect.isclass(value):
        return "class"
    if inspect.ismodule(value):
        return "module"
    if inspect.isroutine(value):
        return "function"
    return type(value).__name__


def _signature(value: Any) -> str:
    try:
        return str(inspect.signature(value))
    except (TypeError, ValueError):
        return "(...)"


def _first_doc_line(value: Any) -> str:
    doc = inspect.getdoc(value) or ""
    return doc.splitlines()[0] if doc else ""


class NamespaceTools:
    """``list_objects`` / ``describe_object`` over a namespace dict."""

    def __init__(self, namespace: Dict[str, Any]):
        self.namespace = namespace

    def list_objects(self) -> str:
        """Public names grouped by kind; classes list their base classes."""
        groups: Dict[str, List[str]] = {}
        for name in sorted(self.namespace):
            if name.startswith("_"):
                continue
            value = self.namespace[name]
            kind = _kind(value)
            if kind == "class":
                bases = ", ".join(b.__name__ for b in value.__bases__ if b is not object)
                entry = f"{name}({bases})" if bases else name
            elif kind == "function":
                entry = f"{name}{_signature(value)}"
            else:
                entry = name
            groups.setdefault(kind, []).append(entry)

        if not groups:
            return "The namespace has no public names."

        order = ["class", "function", "module"]
        kinds = order + sorted(k for k in groups if k not in order)
        lines = []
        for kind in kinds:
            if kind in groups:
                lines.append(f"{kind}: {', '.join(groups[kind])}")
        return "\n".join(lines)

    def _resolve(self, name: str) -> Any:
        head, *rest = name.split(".")
        if head not in self.namespace:
            raise LookupError(head)
        value = self.namespace[head]
        for attr in rest:
            value = getattr(value, attr)
        return value

    def describe_object(self, name: str | None) -> str:
        """Type, signature, docstring and public members of the object called *name*."""
        if not name or not name.strip():
            return "Error: name is required."
        name = name.strip()
        try:
            value = self._resolve(name)
        except (LookupError, AttributeError):
            return f"Name '{name}' not found. Use list_objects to see available names."

        lines = [f"Name: {name}", f"Kind: {_kind(value)}"]
        if inspect.isclass(value):
            mro = " -> ".join(cls.__name__ for cls in value.__mro__)
            lines.append(f"MRO: {mro}")
            lines.append(f"Constructor: {name}{_signature(value)}")
        elif inspect.isroutine(value):
            lines.append(f"Signature: {name}{_signature(value)}")
        else:
            lines.append(f"Type: {type(value).__module__}.{type(value).__qualname__}")
            try:
                lines.append(f"Value: {repr(value)[:200]}")
            except Exception:  # pylint: disable=broad-except
                lines.append("Value: <unrepresentable>")

        doc = inspect.getdoc(value)
        if doc and (inspect.isclass(value) or inspect.isroutine(value) or inspect.ismodule(value)):
            lines.append("Doc: " + "\n     ".join(doc.splitlines()[:10]))

        if inspect.isclass(value) or inspect.ismodule(value):
            members = self._members(value)
            if members:
                lines.append("Members:")
                lines.extend(f"  {m}" for m in members)

        annotations = getattr(value, "__annotations__", None) if inspect.isclass(value) else None
        if annotations:
            lines.append("Fields:")
            for field, annotation in annotations.items():
                type_name = getattr(annotation, "__name__", str(annotation))
                lines.append(f"  {field}: {type_name}")
        return "\n".join(lines)

    @staticmethod
    def _members(value: Any) -> List[str]:
        members = []
        for member_name, member in inspect.getmembers(value):
            if member_name.startswith("_"):
                continue
            if inspect.isroutine(member):
                summary = _first_doc_line(member)
                entry = f"{member_name}{_signature(member)}"
                members.append(f"{entry}  # {summary}" if summary else entry)
            elif inspect.isclass(value) and isinstance(member, property):
                members.append(f"{member_name} (property)")
            if len(members) >= MAX_MEMBERS:
                members.append("...")
                break
        return members
