"""Render pipeline - the entry point hosts use.

    engine = TemplateEngine(ViewConfig.load(Path("layerview.yaml")))
    request = RequestContext(path="/admin/users", services=services)
    html = engine.render_to_string("page.html@app", {"name": "World"}, request=request)

Variables are merged with precedence caller data > scoped vars > globals.
"""

from __future__ import annotations

import io
import logging
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable, Mapping, TextIO

from layerview.cache import Artifact, CacheStore, MtimeFn, TemplateCompiler
from layerview.config import ViewConfig
from layerview.debug import dump_vars
from layerview.layers import LayerRegistry
from layerview.reference import TemplateLoader, TemplateRef
from layerview.request import RequestContext
from layerview.runtime import runtime_scope
from layerview.scoped_vars import ScopedVarBinder, app_relative_path
from layerview.template_globals import build_globals

log = logging.getLogger(__name__)

DUMP_QUERY_PARAM = "_viewvars"
DUMP_ENVIRONMENTS = ("dev", "stage")


def default_cache_dir() -> Path:
    return Path(tempfile.gettempdir()) / "layerview-cache"


class TemplateEngine:
    """Compiles and renders layered templates.

    The layer registry, scoped var rules and cache store are built once here
    and never change afterwards; everything request-specific lives on the
    ``RequestContext`` passed to each render.

    Args:
        config: Engine configuration.
        cache_dir: Overrides ``config.view.cache_dir``.
        mtime_fn: Modification-time lookup used for cache freshness.
    """

    def __init__(
        self,
        config: ViewConfig,
        *,
        cache_dir: Path | str | None = None,
        mtime_fn: MtimeFn | None = None,
    ):
        self.config = config
        self.registry = LayerRegistry.from_mapping(config.view.template_layers)
        self.loader = TemplateLoader(self.registry)
        self.binder = ScopedVarBinder.from_config(config.view.vars)

        compiler = TemplateCompiler(
            self.loader,
            allow_inline_code=config.view.allow_inline_code,
            trim_whitespace=config.view.trim_whitespace,
            remove_html_comments=config.view.remove_html_comments,
        )
        resolved_dir = cache_dir or config.view.cache_dir or default_cache_dir()
        self.cache = CacheStore(
            compiler,
            Path(resolved_dir),
            enabled=config.view.cache_enabled,
            mtime_fn=mtime_fn,
        )
        log.debug(
            f"Engine ready: {len(self.registry)} layer(s), {len(self.binder)} scoped var rule(s), "
            f"cache {'on' if self.cache.enabled else 'off'} at {self.cache.cache_dir}"
        )

    def compile(self, ref: str | TemplateRef) -> Artifact:
        """Compile ``ref`` (or reuse its fresh cached artifact)."""
        if isinstance(ref, str):
            ref = self.loader.parse(ref)
        return self.cache.get_or_compile(ref)

    def globals_for(self, request: RequestContext) -> dict[str, Any]:
        if request.cached_globals is None:
            request.cached_globals = build_globals(self.config, request)
        return request.cached_globals

    def build_vars(
        self, data: Mapping[str, Any] | None, request: RequestContext
    ) -> dict[str, Any]:
        """Merge globals, scoped vars for the request path, and caller data."""
        path = app_relative_path(request.path, self.config.http.base_url)
        scoped = self.binder.bind_for_path(path, request.services)
        return {**self.globals_for(request), **scoped, **(data or {})}

    def render(
        self,
        ref: str | TemplateRef,
        data: Mapping[str, Any] | None = None,
        *,
        request: RequestContext | None = None,
        out: TextIO | None = None,
    ) -> None:
        """Render ``ref`` to ``out`` (stdout by default)."""
        request = request or RequestContext()
        out = sys.stdout if out is None else out

        artifact = self.compile(ref)
        variables = self.build_vars(data, request)

        if self._wants_dump(request):
            out.write(dump_vars(variables, self.config.environment))

        self._execute(artifact, variables, out.write)

    def render_to_string(
        self,
        ref: str | TemplateRef,
        data: Mapping[str, Any] | None = None,
        *,
        request: RequestContext | None = None,
    ) -> str:
        """Render ``ref`` and return the output."""
        request = request or RequestContext()
        buffer = io.StringIO()
        try:
            artifact = self.compile(ref)
            self._execute(artifact, self.build_vars(data, request), buffer.write)
            return buffer.getvalue()
        finally:
            buffer.close()

    def clear_cache(self) -> int:
        return self.cache.clear()

    def _wants_dump(self, request: RequestContext) -> bool:
        return (
            DUMP_QUERY_PARAM in request.query
            and self.config.environment in DUMP_ENVIRONMENTS
        )

    @staticmethod
    def _execute(
        artifact: Artifact, variables: Mapping[str, Any], write: Callable[[str], Any]
    ) -> None:
        namespace = dict(variables)
        # Runtime names go in last so render vars cannot shadow them.
        namespace.update(runtime_scope(write))
        log.debug(f"Executing {artifact.ref}")
        exec(artifact.code, namespace)
