"""
Label selector parsing and matching.

Supports the selector grammar accepted by the API server for list/watch
requests: equality (``=``, ``==``), inequality (``!=``), existence
(``key``, ``!key``) and set-based (``key in (a,b)``, ``key notin (a,b)``)
requirements joined by commas.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass

from argocd_operator.errors import ConfigurationError

_SET_REQUIREMENT = re.compile(r"^([^\s!=()]+)\s+(in|notin)\s+\(([^()]*)\)$")
_KEY = re.compile(r"^([a-zA-Z0-9]([-a-zA-Z0-9_.]*[a-zA-Z0-9])?/)?[a-zA-Z0-9]([-a-zA-Z0-9_.]*[a-zA-Z0-9])?$")


@dataclass(frozen=True)
class Requirement:
    key: str
    operator: str  # one of =, !=, in, notin, exists, !exists
    values: frozenset[str] = frozenset()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        if self.operator == "exists":
            return present
        if self.operator == "!exists":
            return not present
        if self.operator in ("=", "in"):
            return present and labels[self.key] in self.values
        # != and notin also match when the key is absent
        return not present or labels[self.key] not in self.values


def _split_requirements(selector: str) -> list[str]:
    """Split on commas that are not inside a value set."""
    parts: list[str] = []
    depth = 0
    current = ""
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return [p.strip() for p in parts if p.strip()]


def _check_key(key: str, selector: str) -> str:
    if not _KEY.match(key):
        raise ConfigurationError(f"Invalid label key '{key}' in selector '{selector}'")
    return key


def parse_label_selector(selector: str | None) -> tuple[Requirement, ...]:
    """
    Parse a label selector string.

    Args:
        selector: Selector string, e.g. ``"foo=bar,!baz"``; empty matches all

    Returns:
        Tuple of requirements, all of which must match

    Raises:
        ConfigurationError: If the selector is malformed
    """
    if not selector:
        return ()

    requirements: list[Requirement] = []
    for part in _split_requirements(selector):
        set_match = _SET_REQUIREMENT.match(part)
        if set_match:
            key, op, raw_values = set_match.groups()
            values = frozenset(v.strip() for v in raw_values.split(",") if v.strip())
            requirements.append(Requirement(_check_key(key, selector), op, values))
        elif "!=" in part:
            key, value = (s.strip() for s in part.split("!=", 1))
            requirements.append(
                Requirement(_check_key(key, selector), "!=", frozenset({value}))
            )
        elif "==" in part or "=" in part:
            sep = "==" if "==" in part else "="
            key, value = (s.strip() for s in part.split(sep, 1))
            requirements.append(
                Requirement(_check_key(key, selector), "=", frozenset({value}))
            )
        elif part.startswith("!"):
            requirements.append(
                Requirement(_check_key(part[1:].strip(), selector), "!exists")
            )
        else:
            requirements.append(Requirement(_check_key(part, selector), "exists"))
    return tuple(requirements)


def matches_label_selector(
    labels: Mapping[str, str] | None, selector: str | tuple[Requirement, ...] | None
) -> bool:
    """Return True if ``labels`` satisfy every requirement of ``selector``."""
    requirements = (
        parse_label_selector(selector)
        if selector is None or isinstance(selector, str)
        else selector
    )
    labels = labels or {}
    return all(req.matches(labels) for req in requirements)
