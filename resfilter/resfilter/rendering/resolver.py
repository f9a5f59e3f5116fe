"""Placeholder name resolution against a stack of property scopes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, Protocol, Sequence

from jinja2 import Environment, Undefined


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


class NameResolver(Protocol):
    def find(self, name: str, scopes: Sequence[Any]) -> Any:
        """Return the value bound to ``name`` or ``MISSING``."""
        ...


def _lookup_segment(scope: Any, segment: str) -> Any:
    if isinstance(scope, Mapping):
        return scope[segment] if segment in scope else MISSING
    return getattr(scope, segment, MISSING)


class PathResolver:
    """Resolve ``a.b.c`` as a walk through nested mappings and objects.

    The head segment is looked up in each scope, innermost first. The rest of
    the walk stays inside the first scope holding the head and uses Jinja2's
    own attribute-then-item access.
    """

    def __init__(self, environment: Environment) -> None:
        self.environment = environment

    def find(self, name: str, scopes: Sequence[Any]) -> Any:
        head, *rest = name.split(".")
        for scope in scopes:
            value = _lookup_segment(scope, head)
            if value is not MISSING:
                break
        else:
            return MISSING

        for segment in rest:
            value = self.environment.getattr(value, segment)
            if isinstance(value, Undefined):
                return MISSING
        return value


class ExactKeyResolver:
    """Match the full name as one mapping key before delegating.

    Property names such as ``project.version`` are keys in their own right;
    only when no mapping scope holds the whole name is it treated as a path.
    """

    def __init__(self, delegate: NameResolver) -> None:
        self.delegate = delegate

    def find(self, name: str, scopes: Sequence[Any]) -> Any:
        for scope in scopes:
            if isinstance(scope, Mapping) and name in scope:
                return scope[name]
        return self.delegate.find(name, scopes)


def stringify(value: Any) -> Any:
    """Normalize file system paths to '/' separators for output.

    ``None`` renders as empty text. Other values are returned as-is and
    converted by the engine.
    """
    if value is None:
        return ""
    if isinstance(value, os.PathLike):
        return os.fspath(value).replace("\\", "/")
    return value
