"""layerview - layered HTML template engine

Templates live in layers (the app, plus vendor packages) and are compiled to
cached Python modules. Layouts are inherited with extends/block/yield and
partials are inlined at compile time.
"""

from layerview._version import __version__
from layerview.cache import Artifact
from layerview.config import ViewConfig
from layerview.engine import TemplateEngine
from layerview.errors import LayerviewError
from layerview.reference import TemplateRef
from layerview.request import RequestContext
from layerview.services import ServiceRegistry

__all__ = [
    "__version__",
    "Artifact",
    "LayerviewError",
    "RequestContext",
    "ServiceRegistry",
    "TemplateEngine",
    "TemplateRef",
    "ViewConfig",
]
