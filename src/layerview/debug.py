"""Render-variable dump for debugging, emitted as an HTML comment."""

from __future__ import annotations

from pprint import pformat
from typing import Any, Mapping

MAX_DUMP_DEPTH = 10

_SCALARS = (str, bytes, int, float, bool, type(None))


def _normalize(value: Any, depth: int, seen: set[int]) -> Any:
    if depth >= MAX_DUMP_DEPTH:
        return "[depth-limit]"
    if isinstance(value, _SCALARS):
        return value
    if isinstance(value, Mapping):
        return {str(k): _normalize(v, depth + 1, seen) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_normalize(v, depth + 1, seen) for v in value]
    if callable(value):
        return "[callable]"

    if id(value) in seen:
        return f"[{type(value).__name__} (seen)]"
    seen.add(id(value))

    out: dict[str, Any] = {"__class__": type(value).__qualname__}
    props = getattr(value, "__dict__", None)
    if props:
        out["props"] = {k: _normalize(v, depth + 1, seen) for k, v in props.items()}
    return out


def dump_vars(variables: Mapping[str, Any], environment: str) -> str:
    """Format ``variables`` as an HTML comment block.

    Nesting is cut off at ``MAX_DUMP_DEPTH``, objects are shown once, and
    callables are shown as ``[callable]``.
    """
    body = pformat(_normalize(dict(variables), 0, set()), width=100, sort_dicts=True)
    body = body.replace("-->", "--&gt;")
    return (
        f"<!--\n=== layerview vars (environment: {environment}) ===\n"
        f"{body}\n=== end vars ===\n-->\n"
    )
