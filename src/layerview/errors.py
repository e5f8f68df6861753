"""layerview exceptions

Every structural failure in the engine is one of these. They propagate to the
host's error boundary; nothing in the engine catches them to carry on.
"""

from __future__ import annotations

from typing import Sequence


class LayerviewError(Exception):
    """Base exception for all layerview errors."""

    pass


class ConfigError(LayerviewError):
    """Raised when engine configuration is invalid."""

    pass


class InvalidLayer(ConfigError):
    """Raised when a layer id or its root directory is malformed."""

    def __init__(self, layer: str, reason: str):
        self.layer = layer
        self.reason = reason
        super().__init__(f"Invalid layer '{layer}': {reason}")


# --- reference resolution ---------------------------------------------------


class ResolutionError(LayerviewError):
    """Base for failures turning a reference into a template file."""

    pass


class MalformedReference(ResolutionError):
    """Raised when a reference is not of the form 'path@layer'."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Template ref '{ref}' must look like 'path@layer'")


class UnknownLayer(ResolutionError):
    """Raised when a reference names a layer that was never registered."""

    def __init__(self, layer: str, ref: str | None = None):
        self.layer = layer
        self.ref = ref
        where = f" in '{ref}'" if ref else ""
        super().__init__(f"Unknown layer '{layer}'{where}")


class TemplateNotFound(ResolutionError):
    """Raised when the referenced template file does not exist."""

    def __init__(self, ref: str, path: str | None = None):
        self.ref = ref
        self.path = path
        super().__init__(f"Template '{ref}' not found")


class PathEscape(ResolutionError):
    """Raised when a reference resolves outside its layer root."""

    def __init__(self, ref: str, path: str):
        self.ref = ref
        self.path = path
        super().__init__(f"Illegal path escape '{ref}' (resolved to {path})")


# --- inheritance ------------------------------------------------------------


class InheritanceError(LayerviewError):
    """Base for layout inheritance failures."""

    pass


class DuplicateBlock(InheritanceError):
    """Raised when a child template defines the same block twice."""

    def __init__(self, name: str, layer: str):
        self.name = name
        self.layer = layer
        super().__init__(
            f"Duplicate block '{name}' in child template (layer '{layer}')"
        )


class OrphanBlock(InheritanceError):
    """Raised when a child block has no matching yield in its parent."""

    def __init__(self, name: str, layer: str, parent: str):
        self.name = name
        self.layer = layer
        self.parent = parent
        super().__init__(
            f"Block '{name}' from layer '{layer}' is not yielded in parent '{parent}'"
        )


class MissingBlock(InheritanceError):
    """Raised when a parent still has unfilled yields after merging."""

    def __init__(self, names: Sequence[str], layer: str, parent: str):
        self.names = list(names)
        self.layer = layer
        self.parent = parent
        listed = ", ".join(f"'{n}'" for n in self.names)
        super().__init__(
            f"Missing child blocks {listed} from layer '{layer}' in parent '{parent}'"
        )


class InheritanceCycle(InheritanceError):
    """Raised when an extends chain reaches the same template twice."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Circular extends chain through '{ref}'")


# --- compilation ------------------------------------------------------------


class IncludeDepthExceeded(LayerviewError):
    """Raised when nested includes go deeper than the allowed maximum."""

    def __init__(self, depth: int, ref: str | None = None):
        self.depth = depth
        self.ref = ref
        where = f" while including '{ref}'" if ref else ""
        super().__init__(f"Include depth exceeded ({depth}){where}")


class TemplateSyntaxError(LayerviewError):
    """Raised when control tags are unbalanced or malformed."""

    def __init__(self, message: str, token: str | None = None):
        self.token = token
        if token is not None:
            message = f"{message}: {token!r}"
        super().__init__(message)


class CacheWriteFailed(LayerviewError):
    """Raised when a compiled artifact cannot be published to the cache."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write compiled template {path}: {reason}")


class ProviderResolutionFailed(LayerviewError):
    """Raised when a dynamic var provider or helper target cannot be resolved."""

    def __init__(self, target: str, reason: str, var_name: str | None = None):
        self.target = target
        self.reason = reason
        self.var_name = var_name
        for_var = f" for var '{var_name}'" if var_name else ""
        super().__init__(f"Provider '{target}'{for_var} unavailable: {reason}")
