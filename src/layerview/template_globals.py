"""Template globals - config scalars and helper callables every template sees.

Helpers that need a service look it up only when a template calls them, so a
host without, say, a datetime service can still render templates that never
format dates.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Mapping
from urllib.parse import quote, urlencode

from markupsafe import Markup

from layerview.config import ViewConfig
from layerview.errors import ProviderResolutionFailed
from layerview.request import RequestContext

_ABSOLUTE_URL = re.compile(r"^https?://", re.I)

# role() operations forwarded to the gate with the caller's arguments.
_ROLE_METHODS = frozenset({"label", "label_of", "labels", "any", "at_least"})


def join_url(base_url: str, path: str = "", query: Mapping[str, Any] | None = None) -> str:
    """Join ``base_url`` and ``path`` with exactly one slash, plus a query."""
    url = base_url.rstrip("/") + "/" + path.lstrip("/")
    if query:
        url += "?" + urlencode(query, doseq=True)
    return url


def versioned_asset(base_url: str, path: str, version: str) -> str:
    """Asset URL with a ``v=`` cache-busting parameter when ``version`` is set.

    Absolute http(s) URLs are returned unchanged.
    """
    if _ABSOLUTE_URL.match(path):
        return path

    url = join_url(base_url, path)
    if version:
        url += ("&" if "?" in url else "?") + "v=" + quote(version, safe="")
    return url


def build_globals(config: ViewConfig, request: RequestContext) -> dict[str, Any]:
    """Build the globals for one request."""
    services = request.services
    base_url = config.http.base_url
    public_root_url = config.http.public_root_url or base_url

    def require(service_id: str, helper: str) -> Any:
        if not services.has(service_id):
            raise ProviderResolutionFailed(
                service_id, f"service is required by the '{helper}' helper"
            )
        return services.get(service_id)

    def method(service_id: str, name: str, helper: str) -> Callable[..., Any]:
        func = getattr(require(service_id, helper), name, None)
        if func is None or not callable(func):
            raise ProviderResolutionFailed(
                service_id, f"method '{name}' needed by the '{helper}' helper does not exist"
            )
        return func

    def url(path: str = "", query: Mapping[str, Any] | None = None) -> str:
        return join_url(base_url, path, query)

    def asset(path: str, version: str | None = None) -> str:
        ver = config.view.asset_version if version is None else version
        return versioned_asset(base_url, path, ver)

    def txt(
        key: str,
        file: str,
        layer: str | None = None,
        default: str = "",
        vars: Mapping[str, Any] | None = None,
    ) -> str:
        return method("txt", "get", "txt")(key, file, layer, default, dict(vars or {}))

    def dt(when: Any, pattern: str, tz: str | None = None, locale: str | None = None) -> str:
        return method("datetime", "format", "dt")(when, pattern, tz, locale)

    def dt_now(pattern: str, tz: str | None = None, locale: str | None = None) -> str:
        return method("datetime", "now", "dt_now")(pattern, tz, locale)

    def dt_month(month: int, form: str | None = None, locale: str | None = None) -> str:
        return method("datetime", "month", "dt_month")(month, form, locale)

    def dt_weekday(weekday: int, form: str | None = None, locale: str | None = None) -> str:
        return method("datetime", "weekday", "dt_weekday")(weekday, form, locale)

    def csrf_field() -> str:
        if not services.has("security"):
            return ""
        hidden_input = getattr(services.get("security"), "csrf_hidden_input", None)
        if not callable(hidden_input):
            return ""
        return Markup(hidden_input())

    def role(op: str, *args: Any) -> Any:
        gate = require("role", "role")
        if op == "is":
            return bool(getattr(gate, str(args[0]), False))
        if op == "rank":
            return method("role", "rank", "role")()
        if op in _ROLE_METHODS:
            return method("role", op, "role")(*args)

        if config.is_dev:
            raise ValueError(f"Unknown role helper '{op}'")
        return False

    def icon(name: str, default: str = "") -> str:
        return config.view.icons.get(name, default)

    helpers: dict[str, Callable[..., Any]] = {
        "url": url,
        "asset": asset,
        "txt": txt,
        "dt": dt,
        "dt_now": dt_now,
        "dt_month": dt_month,
        "dt_weekday": dt_weekday,
        "has_service": services.has,
        "has_package": services.has_package,
        "csrf_field": csrf_field,
        "current_path": lambda: request.path,
        "role": role,
        "icon": icon,
    }

    return {
        "app_name": config.identity.app_name,
        "base_url": base_url,
        "public_root_url": public_root_url,
        "language": config.locale.language,
        "charset": config.locale.charset,
        "marketing_scripts": config.view.marketing_scripts,
        "view_vars": dict(config.view.view_vars),
        "icons": dict(config.view.icons),
        "csrf_protection": config.security.csrf_protection,
        "honeypot_protection": config.security.honeypot_protection,
        "form_action_switching": config.security.form_action_switching,
        "captcha_protection": config.security.captcha_protection,
        "env": {"name": config.environment, "dev": config.is_dev},
        **helpers,
    }
