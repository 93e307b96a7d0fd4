"""Predicates deciding whether an intercepted call should be reported."""
from __future__ import annotations

import re
from typing import Callable, Iterable


class FilterPredicate:
    """Pure boolean decision over a call target (URL or method name).

    Predicates compose with ``~``, ``&`` and ``|``. Two integrations that watch
    the same traffic should carry complementary predicates (``p`` and ``~p``)
    so that every call is reported by exactly one of them.
    """

    __slots__ = ("_func", "description")

    def __init__(self, func: Callable[[str], bool], description: str = "custom") -> None:
        self._func = func
        self.description = description

    def should_report(self, target: str) -> bool:
        return bool(self._func(target or ""))

    __call__ = should_report

    def __invert__(self) -> "FilterPredicate":
        func = self._func
        return FilterPredicate(lambda target: not func(target), f"not({self.description})")

    def __and__(self, other: "FilterPredicate") -> "FilterPredicate":
        left, right = self._func, other._func
        return FilterPredicate(
            lambda target: left(target) and right(target),
            f"({self.description} and {other.description})",
        )

    def __or__(self, other: "FilterPredicate") -> "FilterPredicate":
        left, right = self._func, other._func
        return FilterPredicate(
            lambda target: left(target) or right(target),
            f"({self.description} or {other.description})",
        )

    def __repr__(self) -> str:
        return f"FilterPredicate({self.description})"


def always() -> FilterPredicate:
    return FilterPredicate(lambda _target: True, "always")


def never() -> FilterPredicate:
    return FilterPredicate(lambda _target: False, "never")


def url_prefix(*prefixes: str) -> FilterPredicate:
    """Match targets starting with any of ``prefixes`` (trailing slashes ignored)."""

    cleaned = tuple(prefix.rstrip("/") for prefix in prefixes if prefix)
    if not cleaned:
        return never()

    def _match(target: str) -> bool:
        return any(
            target == prefix or target.startswith(prefix + "/") or target.startswith(prefix + "?")
            for prefix in cleaned
        )

    return FilterPredicate(_match, f"url_prefix({', '.join(cleaned)})")


def method_names(*names: str) -> FilterPredicate:
    wanted = frozenset(name.lower() for name in names)
    return FilterPredicate(
        lambda target: target.lower() in wanted,
        f"method_names({', '.join(sorted(wanted))})",
    )


def url_pattern(pattern: str) -> FilterPredicate:
    compiled = re.compile(pattern)
    return FilterPredicate(lambda target: compiled.search(target) is not None, f"url_pattern({pattern})")


def any_of(predicates: Iterable[FilterPredicate]) -> FilterPredicate:
    result = never()
    for predicate in predicates:
        result = result | predicate
    return result


__all__ = [
    "FilterPredicate",
    "always",
    "any_of",
    "method_names",
    "never",
    "url_pattern",
    "url_prefix",
]
