"""Layer registry - maps layer ids to template root directories.

A layer is either the application itself (``app``) or a vendor package
(``vendor/package``). The registry is built once from configuration and never
changes afterwards.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import Iterator, Mapping

from layerview.errors import InvalidLayer, UnknownLayer

APP_LAYER = "app"

_LAYER_ID = re.compile(r"^[a-z0-9._-]+/[a-z0-9._-]+$", re.IGNORECASE)


def is_valid_layer_id(layer: str) -> bool:
    """Check a layer id against the ``app`` / ``vendor/package`` shape."""
    return layer == APP_LAYER or bool(_LAYER_ID.match(layer))


class LayerRegistry:
    """Immutable map of layer id -> absolute template root."""

    def __init__(self, layers: Mapping[str, str]):
        self._layers = MappingProxyType(dict(layers))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, object]) -> "LayerRegistry":
        """Validate and normalize a raw ``template_layers`` mapping.

        Raises:
            InvalidLayer: If an id has the wrong shape or a root is empty.
        """
        layers: dict[str, str] = {}
        for key, root in mapping.items():
            layer = str(key)
            if not is_valid_layer_id(layer):
                raise InvalidLayer(layer, "expected 'app' or 'vendor/package'")
            if not isinstance(root, str) or root == "":
                raise InvalidLayer(layer, "root must be a non-empty directory path")

            # Root boundary is enforced per load, not here.
            layers[layer] = root.rstrip("/\\") or root
        return cls(layers)

    def root(self, layer: str) -> str:
        """Return the template root of ``layer``."""
        try:
            return self._layers[layer]
        except KeyError:
            raise UnknownLayer(layer) from None

    def __contains__(self, layer: object) -> bool:
        return layer in self._layers

    def __iter__(self) -> Iterator[str]:
        return iter(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def __repr__(self) -> str:
        return f"LayerRegistry({dict(self._layers)!r})"
