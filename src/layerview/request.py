"""Per-request render context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from layerview.services import ServiceRegistry


@dataclass
class RequestContext:
    """What the engine knows about the request being rendered.

    Globals are built at most once per context and cached on it, so a host
    creates one context per request and reuses it for every render in that
    request.

    Attributes:
        path: Raw request path; made app-relative before rule matching.
        query: Query parameters.
        services: Optional capabilities for providers and helpers.
    """

    path: str = "/"
    query: Mapping[str, Any] = field(default_factory=dict)
    services: ServiceRegistry = field(default_factory=ServiceRegistry)
    cached_globals: dict[str, Any] | None = field(default=None, repr=False)
