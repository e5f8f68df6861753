"""Runtime helpers bound into every compiled template's scope."""

from __future__ import annotations

from typing import Any, Callable

from markupsafe import escape

from layerview.errors import LayerviewError

# Marker the artifact header checks before running.
GUARD_NAME = "_lv_guard"


def escape_value(value: Any) -> str:
    """HTML-escape ``value``; ``None`` renders as an empty string."""
    if value is None:
        return ""
    return str(escape(value))


def raw_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def lenient_value(thunk: Callable[[], Any]) -> Any:
    """Evaluate an escaped-echo expression, treating missing data as None.

    Engine errors raised by helpers always propagate.
    """
    try:
        return thunk()
    except LayerviewError:
        raise
    except (NameError, LookupError, AttributeError):
        return None


def runtime_scope(write: Callable[[str], Any]) -> dict[str, Any]:
    """The engine-private names a compiled template expects."""
    return {
        GUARD_NAME: True,
        "_lv_write": write,
        "_lv_escape": escape_value,
        "_lv_raw": raw_value,
        "_lv_value": lenient_value,
    }
