"""Scoped variables - template vars that only exist under matching paths.

Each rule names a variable, a payload (static value or provider), and
include/exclude path patterns. Patterns are compiled once when the binder is
built; per request only matching and provider calls happen.

Pattern forms:
    ""          matches nothing
    "*"         matches every path
    "/"         matches the frontpage only
    "~regex~"   raw regular expression, searched anywhere in the path
    "/foo/*"    glob, anchored at the start; "*" matches anything
    "foo"       same as "/foo", a plain prefix
"""

from __future__ import annotations

import copy
import importlib
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence, Union
from urllib.parse import urlsplit

from layerview.config import VarRuleConfig
from layerview.errors import ConfigError, ProviderResolutionFailed
from layerview.services import ServiceRegistry

log = logging.getLogger(__name__)

_MATCH_NOTHING = re.compile(r"(?!)")
_MATCH_ALL = re.compile(r"")
_FRONTPAGE = re.compile(r"\A/\Z")
_SLASHES = re.compile(r"/+")


def compile_path_matcher(pattern: str) -> re.Pattern[str]:
    """Compile a human-friendly path pattern. Apply it with ``search``.

    Raises:
        ConfigError: If a ``~regex~`` pattern is not a valid expression.
    """
    if pattern == "":
        return _MATCH_NOTHING

    if len(pattern) >= 2 and pattern.startswith("~") and pattern.endswith("~"):
        try:
            return re.compile(pattern[1:-1])
        except re.error as e:
            raise ConfigError(f"Invalid path regex {pattern!r}: {e}") from e

    if pattern == "*":
        return _MATCH_ALL

    if not pattern.startswith("/"):
        pattern = "/" + pattern
    if pattern == "/":
        return _FRONTPAGE

    return re.compile(r"\A" + re.escape(pattern).replace(r"\*", ".*"))


def path_matches(
    path: str,
    include: Sequence[re.Pattern[str]],
    exclude: Sequence[re.Pattern[str]],
) -> bool:
    """Included by default when ``include`` is empty; any exclude wins."""
    if include and not any(p.search(path) for p in include):
        return False
    return not any(p.search(path) for p in exclude)


def app_relative_path(raw_path: str, base_url: str = "") -> str:
    """Strip the base URL's path prefix from a request path.

    >>> app_relative_path("/shop/events/x.html", "https://example.com/shop/")
    '/events/x.html'

    The result always starts with ``/`` and is ``/`` for the frontpage.
    """
    path = raw_path or "/"
    if not path.startswith("/"):
        path = "/" + path

    base_path = urlsplit(base_url).path.strip("/")
    if base_path:
        prefix = "/" + base_path
        if path.startswith(prefix + "/"):
            path = path[len(prefix) :]

    return _SLASHES.sub("/", path) or "/"


# --- providers --------------------------------------------------------------


def _import_target(target: str, var_name: str | None) -> Any:
    """Import ``pkg.mod:attr`` (or ``pkg.mod.attr``) and return the attribute."""
    module_name, sep, attr = target.partition(":")
    if not sep:
        module_name, _, attr = target.rpartition(".")
    if not module_name or not attr:
        raise ProviderResolutionFailed(
            target, "expected 'module:attribute'", var_name
        )

    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise ProviderResolutionFailed(
            target, f"cannot import '{module_name}': {e}", var_name
        ) from e

    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise ProviderResolutionFailed(
                target, f"'{part}' does not exist", var_name
            ) from None
    return obj


def _call_method(owner: Any, method: str, target: str, var_name: str | None) -> Any:
    func = getattr(owner, method, None)
    if func is None or not callable(func):
        raise ProviderResolutionFailed(
            target, f"method '{method}' does not exist", var_name
        )
    return func()


@dataclass(frozen=True)
class FunctionProvider:
    """A free function, called with the service registry."""

    target: str

    def __call__(self, services: ServiceRegistry, var_name: str | None = None) -> Any:
        func = _import_target(self.target, var_name)
        if not callable(func):
            raise ProviderResolutionFailed(self.target, "not callable", var_name)
        return func(services)


@dataclass(frozen=True)
class ClassProvider:
    """A class constructed with the service registry, then one method called."""

    target: str
    method: str

    def __call__(self, services: ServiceRegistry, var_name: str | None = None) -> Any:
        cls = _import_target(self.target, var_name)
        if not isinstance(cls, type):
            raise ProviderResolutionFailed(self.target, "not a class", var_name)
        return _call_method(cls(services), self.method, self.target, var_name)


@dataclass(frozen=True)
class ServiceProvider:
    """A method on a registered service."""

    service_id: str
    method: str

    def __call__(self, services: ServiceRegistry, var_name: str | None = None) -> Any:
        if not services.has(self.service_id):
            raise ProviderResolutionFailed(
                self.service_id, "service is not registered", var_name
            )
        service = services.get(self.service_id)
        return _call_method(service, self.method, self.service_id, var_name)


Provider = Union[FunctionProvider, ClassProvider, ServiceProvider]


def parse_provider(call: str | Mapping[str, str]) -> Provider:
    """Build a provider from its config form.

    ``"pkg.mod:func"`` is a function, ``{"class": ..., "method": ...}`` a class
    provider and ``{"service": ..., "method": ...}`` a service provider.

    Raises:
        ConfigError: For any other shape.
    """
    if isinstance(call, str):
        return FunctionProvider(call)
    if "class" in call and "method" in call:
        return ClassProvider(str(call["class"]), str(call["method"]))
    if "service" in call and "method" in call:
        return ServiceProvider(str(call["service"]), str(call["method"]))
    raise ConfigError(f"Unsupported provider definition {dict(call)!r}")


# --- rules ------------------------------------------------------------------


class VarKind(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class CompiledVarRule:
    """A scoped var rule with its path patterns already compiled."""

    var_name: str
    kind: VarKind
    payload: Any
    include: tuple[re.Pattern[str], ...] = field(default_factory=tuple)
    exclude: tuple[re.Pattern[str], ...] = field(default_factory=tuple)

    @classmethod
    def from_config(cls, rule: VarRuleConfig) -> "CompiledVarRule":
        if rule.call is not None:
            kind, payload = VarKind.DYNAMIC, parse_provider(rule.call)
        else:
            kind, payload = VarKind.STATIC, rule.value

        return cls(
            var_name=rule.var,
            kind=kind,
            payload=payload,
            include=tuple(compile_path_matcher(p) for p in rule.include),
            exclude=tuple(compile_path_matcher(p) for p in rule.exclude),
        )

    def fires_for(self, path: str) -> bool:
        return path_matches(path, self.include, self.exclude)

    def value(self, services: ServiceRegistry) -> Any:
        if self.kind is VarKind.STATIC:
            # Each render gets its own copy.
            return copy.deepcopy(self.payload)
        return self.payload(services, self.var_name)


class ScopedVarBinder:
    """Evaluates compiled rules against request paths."""

    def __init__(self, rules: Sequence[CompiledVarRule] = ()):
        self.rules = tuple(rules)

    @classmethod
    def from_config(cls, rules: Iterable[VarRuleConfig]) -> "ScopedVarBinder":
        return cls([CompiledVarRule.from_config(r) for r in rules])

    def bind_for_path(self, path: str, services: ServiceRegistry) -> dict[str, Any]:
        """Values of every rule firing for ``path``; later rules win.

        Raises:
            ProviderResolutionFailed: If a firing dynamic rule's provider
                cannot be resolved.
        """
        bound: dict[str, Any] = {}
        for rule in self.rules:
            if not rule.fires_for(path):
                continue
            log.debug(f"Scoped var '{rule.var_name}' fires for {path}")
            bound[rule.var_name] = rule.value(services)
        return bound

    def __len__(self) -> int:
        return len(self.rules)
