"""Declarative event filters.

A filter is a single predicate evaluated against a resource payload::

    metadata.name==my-resource
    status.phase!=Pending
    spec.containers.image%nginx:*
    metadata.labels.app\\.kubernetes\\.io/name==web
    spec.replicas>=2
    metadata.deletionTimestamp

The syntax follows the gjson query form ``#(path op value)``:

- ``path`` is dot-separated; ``\\.`` escapes a literal dot. A numeric segment
  indexes a list, ``#`` as the last segment is the length of a list, and ``#``
  followed by more segments maps over a list. Any other segment that reaches a
  list is applied to every element (implicit search).
- ``op`` is one of ``==`` (or ``=``), ``!=``, ``<``, ``<=``, ``>``, ``>=``, ``%``
  (wildcard like) or ``!%`` (not like). Without an operator the filter checks
  existence. The operator is at most two characters long, so in
  ``status.message==<none>`` the value is ``<none>``.
- ``value`` is a JSON string (``"quoted"``), ``true``, ``false``, ``null``, a
  number, or a bare word that is compared as a string.

A filter matches when any value reached by the path satisfies the predicate.
Filters are ANDed by :func:`evaluate`.
"""

from __future__ import annotations

import fnmatch
import functools
import json
import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from await_operator.operator.errors import FilterSyntaxError, PayloadError

_OPERATOR_CHARS = frozenset("=!<>%")
_TWO_CHAR_OPERATORS = frozenset({"==", "!=", "<=", ">=", "!%"})
_ONE_CHAR_OPERATORS = frozenset({"=", "<", ">", "%"})
_NUMBER = re.compile(r"-?\d+(\.\d+)?([eE][+-]?\d+)?")


class _Incomparable:
    pass


_INCOMPARABLE = _Incomparable()


@dataclass(frozen=True, slots=True)
class Filter:
    """A parsed filter expression."""

    expression: str
    path: tuple[str, ...]
    op: str | None = None
    value: object = None
    # The literal as written (unquoted for JSON strings). String fields are
    # compared against this so that `labels.version==1` matches the label "1".
    text: str = ""

    def matches(self, document: object) -> bool:
        for found in _resolve(document, self.path):
            if self.op is None:
                return True
            candidates = found if isinstance(found, list) else [found]
            if any(self._compare(candidate) for candidate in candidates):
                return True
        return False

    def _compare(self, actual: object) -> bool:
        op = self.op
        if op in ("%", "!%"):
            if not isinstance(actual, str):
                return False
            like = fnmatch.fnmatchcase(actual, self.text)
            return like if op == "%" else not like

        left, right = _coerce(actual, self.value, self.text)
        if left is _INCOMPARABLE:
            return op == "!="
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        if left is None or isinstance(left, bool):
            # Only equality is defined for null and booleans.
            return False
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right


def _coerce(actual: object, value: object, text: str) -> tuple[Any, Any]:
    if isinstance(actual, bool) or actual is None:
        if type(actual) is type(value):
            return actual, value
        return _INCOMPARABLE, None
    if isinstance(actual, int | float):
        if isinstance(value, int | float) and not isinstance(value, bool):
            return actual, value
        return _INCOMPARABLE, None
    if isinstance(actual, str):
        return actual, text
    return _INCOMPARABLE, None


def _resolve(node: object, path: tuple[str, ...]) -> Iterator[object]:
    if not path:
        yield node
        return

    head, rest = path[0], path[1:]
    if isinstance(node, list):
        if head == "#":
            if not rest:
                yield len(node)
                return
            for item in node:
                yield from _resolve(item, rest)
            return
        if head.isdigit():
            index = int(head)
            if index < len(node):
                yield from _resolve(node[index], rest)
            return
        for item in node:
            yield from _resolve(item, path)
        return

    if isinstance(node, dict) and head in node:
        yield from _resolve(node[head], rest)


def _split_path(expression: str, text: str) -> tuple[tuple[str, ...], int]:
    segments: list[str] = []
    current: list[str] = []
    idx = 0
    while idx < len(text):
        ch = text[idx]
        if ch == "\\":
            if idx + 1 >= len(text):
                raise FilterSyntaxError(expression, "dangling escape at end of expression")
            current.append(text[idx + 1])
            idx += 2
            continue
        if ch in _OPERATOR_CHARS:
            break
        if ch == ".":
            segments.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        idx += 1
    segments.append("".join(current).strip())

    if segments == [""]:
        raise FilterSyntaxError(expression, "missing path")
    if any(not segment for segment in segments):
        raise FilterSyntaxError(expression, "empty path segment")
    return tuple(segments), idx


def _parse_literal(expression: str, raw: str) -> tuple[object, str]:
    if raw.startswith('"'):
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            raise FilterSyntaxError(expression, "malformed string literal") from None
        return value, value
    if raw in ("true", "false"):
        return raw == "true", raw
    if raw == "null":
        return None, raw
    if _NUMBER.fullmatch(raw):
        number = float(raw)
        return (int(number) if number.is_integer() and "." not in raw else number), raw
    return raw, raw


def _split_operator(expression: str, rest: str) -> tuple[str, str]:
    # At most two characters form the operator; anything after is the value.
    if rest[:2] in _TWO_CHAR_OPERATORS:
        op = rest[:2]
    elif rest[:1] in _ONE_CHAR_OPERATORS:
        op = rest[:1]
    else:
        raise FilterSyntaxError(expression, f"unknown operator {rest[:2]!r}")
    return ("==" if op == "=" else op), rest[len(op):]


@functools.lru_cache(maxsize=1024)
def parse_filter(expression: str) -> Filter:
    """Parse a single filter expression.

    Raises:
        FilterSyntaxError: If the expression is structurally invalid.
    """

    text = expression.strip()
    if not text:
        raise FilterSyntaxError(expression, "empty expression")

    path, idx = _split_path(expression, text)
    if idx >= len(text):
        return Filter(expression=expression, path=path)

    op, remainder = _split_operator(expression, text[idx:])
    raw = remainder.strip()
    if not raw:
        raise FilterSyntaxError(expression, f"missing value after {op!r}")

    value, literal_text = _parse_literal(expression, raw)
    return Filter(expression=expression, path=path, op=op, value=value, text=literal_text)


def compile_filters(filters: Sequence[str]) -> list[Filter]:
    """Parse every filter up front so that a malformed one is always reported."""

    return [parse_filter(f) for f in filters]


def canonicalize(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Round-trip a payload through JSON into a plain queryable tree."""

    try:
        document = json.loads(json.dumps(payload, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise PayloadError(f"Payload is not serializable: {e}") from e
    if not isinstance(document, dict):
        raise PayloadError(f"Payload must be an object, got {type(document).__name__}")
    return document


def evaluate(payload: Mapping[str, Any], filters: Sequence[str]) -> bool:
    """Return True when every filter matches the payload.

    An empty filter list always passes. Evaluation stops at the first filter
    that does not match; that is a normal ``False``, not an error.

    Raises:
        FilterSyntaxError: If any filter is malformed.
        PayloadError: If the payload cannot be serialized.
    """

    compiled = compile_filters(filters)
    document = canonicalize(payload)
    return all(f.matches(document) for f in compiled)
