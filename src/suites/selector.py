"""Label selector parsing and matching.

Supports the Kubernetes label selector grammar used to pick tests:

    suite=basic                 equality (also ==)
    test!=checkspectest         inequality
    necessity in (required)     set membership
    test notin (a, b)           set exclusion
    suite                       key exists
    !suite                      key does not exist

Requirements are comma-separated and must all hold. An empty selector
matches everything.
"""

import re
from dataclasses import dataclass

_KEY_RE = re.compile(r'^[A-Za-z0-9]([-A-Za-z0-9_./]*[A-Za-z0-9])?$')
_VALUE_RE = re.compile(r'^([A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?)?$')
_SET_RE = re.compile(r'^(?P<key>\S+)\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)$')
_CMP_RE = re.compile(r'^(?P<key>[^=!\s]+)\s*(?P<op>==|=|!=)\s*(?P<value>\S*)$')


class SelectorError(ValueError):
    """Selector expression cannot be parsed."""


@dataclass(frozen=True)
class Requirement:
    """A single key/operator/values clause."""
    key: str
    operator: str  # 'in', 'notin', 'exists', '!'
    values: frozenset = frozenset()

    def matches(self, labels: dict[str, str]) -> bool:
        if self.operator == 'exists':
            return self.key in labels
        if self.operator == '!':
            return self.key not in labels
        if self.operator == 'in':
            return self.key in labels and labels[self.key] in self.values
        # notin also matches when the key is absent
        return labels.get(self.key) not in self.values


@dataclass(frozen=True)
class Selector:
    """Conjunction of requirements."""
    requirements: tuple[Requirement, ...] = ()

    def matches(self, labels: dict[str, str]) -> bool:
        return all(r.matches(labels) for r in self.requirements)

    def empty(self) -> bool:
        return not self.requirements


def _split_requirements(expr: str) -> list[str]:
    """Split on commas that are not inside a parenthesised value set."""
    parts, depth, current = [], 0, []
    for ch in expr:
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
            if depth < 0:
                raise SelectorError(f"unbalanced ')' in {expr!r}")
        if ch == ',' and depth == 0:
            parts.append(''.join(current))
            current = []
            continue
        current.append(ch)
    if depth != 0:
        raise SelectorError(f"unbalanced '(' in {expr!r}")
    parts.append(''.join(current))
    return parts


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise SelectorError(f"invalid label key {key!r}")
    return key


def _check_value(value: str) -> str:
    if not _VALUE_RE.match(value):
        raise SelectorError(f"invalid label value {value!r}")
    return value


def _parse_requirement(text: str) -> Requirement:
    text = text.strip()
    if not text:
        raise SelectorError("empty requirement")

    if m := _SET_RE.match(text):
        values = [_check_value(v.strip()) for v in m.group('values').split(',') if v.strip()]
        if not values:
            raise SelectorError(f"empty value set in {text!r}")
        return Requirement(_check_key(m.group('key')), m.group('op'), frozenset(values))

    if m := _CMP_RE.match(text):
        key, op, value = m.group('key'), m.group('op'), _check_value(m.group('value'))
        return Requirement(_check_key(key), 'notin' if op == '!=' else 'in', frozenset([value]))

    if text.startswith('!'):
        return Requirement(_check_key(text[1:].strip()), '!')

    return Requirement(_check_key(text), 'exists')


def parse_selector(expr: str) -> Selector:
    """Parse a selector expression.

    Raises:
        SelectorError: If the expression is malformed
    """
    if not expr or not expr.strip():
        return Selector()
    return Selector(tuple(_parse_requirement(part) for part in _split_requirements(expr)))
