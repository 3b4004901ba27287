"""Setting the label selector of a Service."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import NamedTuple, Optional

from kruiseset.workloads import Manifest

OP_IN = "In"
OP_NOT_IN = "NotIn"
OP_EXISTS = "Exists"
OP_DOES_NOT_EXIST = "DoesNotExist"

LABEL_VALUE_MAX_LENGTH = 63
_DNS_SUBDOMAIN_MAX_LENGTH = 253

_NAME_RE = re.compile(r"^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$")
_VALUE_RE = re.compile(r"^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$")
_SUBDOMAIN_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$")
_TOKEN_RE = re.compile(r"(==|!=|[=!<>(),])|([^\s!=<>(),]+)|(\s+)")

_KEYWORDS = {"in": "in", "notin": "notin"}
_OPERATORS = {"in", "notin", "=", "==", "!=", ">", "<"}


@dataclass
class LabelSelectorRequirement:
    """One set-based requirement of a label selector."""

    key: str
    operator: str
    values: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"{{{self.key} {self.operator} [{' '.join(self.values)}]}}"


@dataclass
class LabelSelector:
    """Equality labels plus set-based requirements."""

    match_labels: dict[str, str] = field(default_factory=dict)
    match_expressions: list[LabelSelectorRequirement] = field(default_factory=list)


class _Token(NamedTuple):
    kind: str  # "ident", "op" or "end"
    text: str


_END = _Token("end", "")


def _tokenize(text: str) -> list[_Token]:
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        op, ident, _ = match.groups()
        if op is not None:
            tokens.append(_Token("op", op))
        elif ident is not None:
            tokens.append(_Token("ident", ident))
    return tokens


def _validate_key(key: str) -> None:
    prefix, sep, name = key.rpartition("/")
    if sep:
        if not prefix or len(prefix) > _DNS_SUBDOMAIN_MAX_LENGTH or not _SUBDOMAIN_RE.match(prefix):
            raise ValueError(f"invalid label key {key!r}: prefix must be a DNS subdomain")
    if not name or len(name) > LABEL_VALUE_MAX_LENGTH or not _NAME_RE.match(name):
        raise ValueError(
            f"invalid label key {key!r}: name part must consist of alphanumeric characters, "
            "'-', '_' or '.', and must start and end with an alphanumeric character"
        )


def _validate_value(value: str) -> None:
    if len(value) > LABEL_VALUE_MAX_LENGTH or not _VALUE_RE.match(value):
        raise ValueError(
            f"invalid label value {value!r}: a valid label must be an empty string or consist "
            "of alphanumeric characters, '-', '_' or '.', and must start and end with an "
            "alphanumeric character"
        )


class _Requirement(NamedTuple):
    key: str
    operator: str  # one of "=", "==", "!=", "in", "notin", ">", "<", "exists", "!"
    values: tuple[str, ...]


class _Parser:
    def __init__(self, text: str):
        self._tokens = _tokenize(text)
        self._pos = 0

    def _peek(self) -> _Token:
        return self._tokens[self._pos] if self._pos < len(self._tokens) else _END

    def _next(self) -> _Token:
        token = self._peek()
        self._pos += 1
        return token

    def _is_key_start(self, token: _Token) -> bool:
        return token == _Token("op", "!") or (token.kind == "ident" and token.text not in _KEYWORDS)

    def parse(self) -> list[_Requirement]:
        requirements: list[_Requirement] = []
        token = self._peek()
        if token.kind == "end":
            return requirements
        if not self._is_key_start(token):
            raise ValueError(f"found '{token.text}', expected: !, identifier, or 'end of string'")
        while True:
            requirements.append(self._parse_requirement())
            token = self._next()
            if token.kind == "end":
                return requirements
            if token != _Token("op", ","):
                raise ValueError(f"found '{token.text}', expected: ',' or 'end of string'")
            if not self._is_key_start(self._peek()):
                raise ValueError(f"found '{self._peek().text}', expected: identifier after ','")

    def _parse_requirement(self) -> _Requirement:
        negated = False
        token = self._next()
        if token == _Token("op", "!"):
            negated = True
            token = self._next()
        if token.kind != "ident" or token.text in _KEYWORDS:
            raise ValueError(f"found '{token.text}', expected: identifier")
        key = token.text
        _validate_key(key)
        following = self._peek()
        if negated:
            return _Requirement(key, "!", ())
        if following.kind == "end" or following == _Token("op", ","):
            return _Requirement(key, "exists", ())
        operator = self._parse_operator()
        if operator in ("in", "notin"):
            values = self._parse_value_set()
            if not values:
                raise ValueError("for 'in', 'notin' operators, values set can't be empty")
        else:
            values = (self._parse_exact_value(),)
        if operator in (">", "<"):
            if not re.fullmatch(r"[+-]?\d+", values[0]):
                raise ValueError(
                    f"for 'Gt', 'Lt' operators, the value must be an integer: {values[0]!r}"
                )
        else:
            for value in values:
                _validate_value(value)
        return _Requirement(key, operator, tuple(sorted(set(values))))

    def _parse_operator(self) -> str:
        token = self._next()
        if token.text in _OPERATORS:
            return token.text
        raise ValueError(
            f"found '{token.text}', expected: in, notin, =, ==, !=, gt, lt"
        )

    def _parse_exact_value(self) -> str:
        token = self._peek()
        if token.kind == "end" or token == _Token("op", ","):
            return ""
        token = self._next()
        if token.kind == "ident":
            return token.text
        raise ValueError(f"found '{token.text}', expected: identifier")

    def _parse_value_set(self) -> tuple[str, ...]:
        token = self._next()
        if token != _Token("op", "("):
            raise ValueError(f"found '{token.text}', expected: '('")
        values: list[str] = []
        if self._peek() == _Token("op", ")"):
            self._next()
            return ()
        while True:
            token = self._next()
            if token.kind == "ident":
                values.append(token.text)
                token = self._next()
            else:
                values.append("")
            if token == _Token("op", ")"):
                return tuple(values)
            if token != _Token("op", ","):
                raise ValueError(f"found '{token.text}', expected: ',', or ')'")
            if self._peek() == _Token("op", ")"):
                self._next()
                values.append("")
                return tuple(values)


def parse_label_selector(text: str) -> LabelSelector:
    """Parse selector syntax such as ``a=b,c in (x, y),!d`` into a LabelSelector."""
    selector = LabelSelector()
    for requirement in _Parser(text).parse():
        op = requirement.operator
        if op in ("=", "=="):
            if len(requirement.values) != 1:
                raise ValueError("equals operator must have exactly one value")
            selector.match_labels[requirement.key] = requirement.values[0]
            continue
        if op in (">", "<"):
            name = "gt" if op == ">" else "lt"
            raise ValueError(f'"{name}" isn\'t supported in label selectors')
        operator = {
            "in": OP_IN,
            "notin": OP_NOT_IN,
            "exists": OP_EXISTS,
            "!": OP_DOES_NOT_EXIST,
        }.get(op)
        if operator is None:
            raise ValueError(f'"{op}" is not a valid label selector operator')
        selector.match_expressions.append(
            LabelSelectorRequirement(requirement.key, operator, list(requirement.values))
        )
    return selector


def update_selector_for_object(obj: Manifest, selector: LabelSelector) -> None:
    """Replace the selector of a Service with the labels of ``selector``."""
    if obj.get("kind") != "Service":
        raise ValueError("setting a selector is only supported for Services")
    if selector.match_expressions:
        expressions = " ".join(str(e) for e in selector.match_expressions)
        raise ValueError(f"match expression [{expressions}] not supported on this object")
    spec = obj.get("spec")
    if not isinstance(spec, dict):
        spec = {}
        obj["spec"] = spec
    spec["selector"] = dict(selector.match_labels)


def get_resources_and_selector(args: list[str]) -> tuple[list[str], Optional[LabelSelector]]:
    """Split arguments into resources and the selector given last."""
    if not args:
        return [], None
    return list(args[:-1]), parse_label_selector(args[-1])


@dataclass
class SelectorOptions:
    """What ``set selector`` should change."""

    resources: list[str] = field(default_factory=list)
    selector: Optional[LabelSelector] = None
    resource_version: str = ""

    @classmethod
    def from_args(cls, args: list[str], resource_version: str = "") -> "SelectorOptions":
        resources, selector = get_resources_and_selector(args)
        return cls(resources=resources, selector=selector, resource_version=resource_version)

    def validate(self) -> None:
        """Raise ValueError when no selector was given."""
        if self.selector is None:
            raise ValueError("one selector is required")

    def run(self, objects: list[Manifest]) -> list[Manifest]:
        """Set the selector on every object in place; stop at the first failure."""
        self.validate()
        assert self.selector is not None
        for obj in objects:
            if self.resource_version:
                metadata = obj.setdefault("metadata", {})
                metadata["resourceVersion"] = self.resource_version
            update_selector_for_object(obj, self.selector)
        return list(objects)