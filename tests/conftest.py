import logging
from pathlib import Path

import pytest

from layerview.config import ViewConfig
from layerview.engine import TemplateEngine
from layerview.layers import LayerRegistry
from layerview.reference import TemplateLoader


def write_tree(root: Path, files: dict) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def make_layer(tmp_path):
    """Create a template root for a layer: make_layer({"page.html": "..."})."""

    def _make(files: dict, layer: str = "app") -> Path:
        return write_tree(tmp_path / "layers" / layer.replace("/", "__"), files)

    return _make


@pytest.fixture
def make_loader():
    def _make(layers: dict) -> TemplateLoader:
        return TemplateLoader(
            LayerRegistry.from_mapping({k: str(v) for k, v in layers.items()})
        )

    return _make


@pytest.fixture
def make_engine(tmp_path):
    """Build an engine over the given layer roots.

    Extra keyword arguments go into the ``view`` section; ``environment``,
    ``http`` and ``security`` go to their own sections.
    """

    def _make(layers: dict, mtime_fn=None, **view) -> TemplateEngine:
        data = {
            "environment": view.pop("environment", "prod"),
            "http": view.pop("http", {}),
            "security": view.pop("security", {}),
            "view": {
                "template_layers": {k: str(v) for k, v in layers.items()},
                "cache_dir": str(tmp_path / "cache"),
                **view,
            },
        }
        return TemplateEngine(ViewConfig.from_dict(data), mtime_fn=mtime_fn)

    return _make


@pytest.fixture(autouse=True)
def reset_package_logger():
    """The CLI installs its own handler; undo that between tests."""
    yield
    logger = logging.getLogger("layerview")
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
