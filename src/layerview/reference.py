"""Reference resolver - turns ``path@layer`` strings into template files.

Every load re-checks the layer boundary: extends and include directives can
point at any layer, so a reference is never trusted just because an earlier
one from the same template was fine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from layerview.comments import strip_comments
from layerview.errors import (
    MalformedReference,
    PathEscape,
    TemplateNotFound,
    UnknownLayer,
)
from layerview.layers import LayerRegistry

log = logging.getLogger(__name__)

REF_SEPARATOR = "@"
DEFAULT_SUFFIX = ".html"


@dataclass(frozen=True)
class TemplateRef:
    """A template identified by its path relative to a layer root."""

    relative_path: str
    layer: str

    def __str__(self) -> str:
        return f"{self.relative_path}{REF_SEPARATOR}{self.layer}"


def split_ref(ref: str) -> tuple[str, str]:
    """Split ``ref`` on its last ``@`` into ``(relative_path, layer)``.

    Leading path separators are dropped so lookups are always relative.

    Raises:
        MalformedReference: If there is no separator or either side is empty.
    """
    rel, sep, layer = ref.rpartition(REF_SEPARATOR)
    if not sep:
        raise MalformedReference(ref)

    rel = rel.lstrip("/\\")
    if rel == "" or layer == "":
        raise MalformedReference(ref)

    return rel, layer


def parse_ref(ref: str, registry: LayerRegistry) -> TemplateRef:
    """Parse and validate ``ref`` against the registered layers."""
    rel, layer = split_ref(ref)
    if layer not in registry:
        raise UnknownLayer(layer, ref)
    return TemplateRef(relative_path=rel, layer=layer)


def resolve_path(ref: TemplateRef, registry: LayerRegistry) -> Path:
    """Resolve ``ref`` to a canonical file path inside its layer root.

    A path without a suffix that names no file falls back to ``.html``, so
    ``layout@app`` finds ``layout.html``.

    Raises:
        PathEscape: If the canonical path leaves the canonical root, through
            ``..`` segments or a symlink.
        TemplateNotFound: If no regular file exists at that path.
    """
    root = Path(registry.root(ref.layer)).resolve()
    candidates = [ref.relative_path]
    if not Path(ref.relative_path).suffix:
        candidates.append(ref.relative_path + DEFAULT_SUFFIX)

    target = root
    for rel in candidates:
        target = (root / rel).resolve()
        if target == root or not target.is_relative_to(root):
            raise PathEscape(str(ref), str(target))
        if target.is_file():
            return target

    raise TemplateNotFound(str(ref), str(target))


def load_source(ref: TemplateRef, registry: LayerRegistry) -> tuple[str, Path]:
    """Read a template's raw text. Returns ``(text, absolute_path)``."""
    path = resolve_path(ref, registry)
    return path.read_text(encoding="utf-8"), path


class TemplateLoader:
    """Reference parsing and source loading bound to one layer registry.

    The compile stages (inheritance, includes, dependency tracking) all take a
    loader so they share the same boundary checks.
    """

    def __init__(self, registry: LayerRegistry):
        self.registry = registry

    def parse(self, ref: str) -> TemplateRef:
        return parse_ref(ref, self.registry)

    def path(self, ref: TemplateRef) -> Path:
        return resolve_path(ref, self.registry)

    def load(self, ref: TemplateRef) -> tuple[str, Path]:
        log.debug(f"Loading template {ref}")
        return load_source(ref, self.registry)

    def load_stripped(self, ref: TemplateRef) -> tuple[str, Path]:
        """Load a template with its ``{# #}`` comments already removed."""
        text, path = self.load(ref)
        return strip_comments(text), path
