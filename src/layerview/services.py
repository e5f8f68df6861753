"""Service registry - optional capabilities templates and providers can use.

The engine never constructs services itself. The host registers whatever it
has (text lookup, datetime formatting, role checks, CSRF fields) and the
engine looks them up by id when a template or provider asks.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from layerview.errors import ProviderResolutionFailed


class ServiceRegistry:
    """Id -> service object map plus the set of installed package slugs."""

    def __init__(
        self,
        services: Mapping[str, Any] | None = None,
        packages: Iterable[str] = (),
    ):
        self._services: dict[str, Any] = dict(services or {})
        self._packages: set[str] = {p.strip("/") for p in packages}

    def register(self, service_id: str, service: Any) -> None:
        self._services[service_id] = service

    def register_package(self, slug: str) -> None:
        self._packages.add(slug.strip("/"))

    def get(self, service_id: str) -> Any:
        """Return the service registered as ``service_id``.

        Raises:
            ProviderResolutionFailed: If nothing is registered under that id.
        """
        try:
            return self._services[service_id]
        except KeyError:
            raise ProviderResolutionFailed(
                service_id, "service is not registered"
            ) from None

    def has(self, service_id: str) -> bool:
        return service_id in self._services

    def has_package(self, slug: str) -> bool:
        return slug.strip("/") in self._packages

    @property
    def packages(self) -> frozenset[str]:
        return frozenset(self._packages)

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._services

    def __repr__(self) -> str:
        return f"ServiceRegistry(services={sorted(self._services)}, packages={sorted(self._packages)})"
