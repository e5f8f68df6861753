"""Dependency tracking, compilation and the compiled-artifact cache.

Compiled templates are Python modules written under one cache directory. A
cached module is reused while it is at least as new as its source and every
template the source transitively extends or includes.
"""

from __future__ import annotations

import hashlib
import itertools
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from types import CodeType
from typing import Callable, Optional

from jinja2 import Environment, FileSystemLoader

from layerview.errors import CacheWriteFailed, TemplateSyntaxError
from layerview.includes import INCLUDE_RE, expand_includes
from layerview.inheritance import EXTENDS_RE, resolve_inheritance
from layerview.reference import TemplateLoader, TemplateRef
from layerview.runtime import GUARD_NAME
from layerview.syntax import SyntaxCompiler, remove_html_comments, trim_whitespace

log = logging.getLogger(__name__)

MtimeFn = Callable[[str], float]

_SLUG_RE = re.compile(r"[^A-Za-z0-9_]+")
_DEPENDENCY_RE = re.compile(f"{EXTENDS_RE.pattern}|{INCLUDE_RE.pattern}", re.I)

OPTIONS_PREFIX = "# Options: "
# The options header sits within this many leading lines of an artifact.
HEADER_LINES = 4
ARTIFACT_MODE = 0o644


def _slug(value: str) -> str:
    return _SLUG_RE.sub("_", value).strip("_")


def cache_filename(ref: TemplateRef) -> str:
    """Deterministic artifact filename for ``ref``.

    Both the layer and the relative path go into the name, plus a short hash
    of ``path@layer`` so that slugs which collapse to the same text stay apart.
    """
    digest = hashlib.sha1(str(ref).encode("utf-8")).hexdigest()[:8]
    return f"{_slug(ref.layer)}__{_slug(ref.relative_path)}_{digest}.py"


def collect_dependencies(
    text: str,
    loader: TemplateLoader,
    visited: Optional[set[str]] = None,
) -> list[Path]:
    """Find every template ``text`` transitively extends or includes.

    Args:
        text: Comment-stripped template source.
        loader: Resolves referenced templates.
        visited: References already walked; guards against cycles.

    Returns:
        Dependency file paths, ordered by first appearance, without repeats.
    """
    visited = set() if visited is None else visited
    deps: list[Path] = []

    for match in _DEPENDENCY_RE.finditer(text):
        ref = loader.parse(match.group(1) or match.group(2))
        key = str(ref)
        if key in visited:
            continue
        visited.add(key)

        child, path = loader.load_stripped(ref)
        deps.append(path)
        deps.extend(collect_dependencies(child, loader, visited))

    return deps


class TemplateCompiler:
    """Runs the compile stages for one template and renders the artifact.

    Stages: comment stripping, inheritance, includes, optional HTML
    post-processing, then lowering to Python.
    """

    def __init__(
        self,
        loader: TemplateLoader,
        *,
        allow_inline_code: bool = True,
        trim_whitespace: bool = False,
        remove_html_comments: bool = False,
    ):
        self.loader = loader
        self.allow_inline_code = allow_inline_code
        self.trim_whitespace = trim_whitespace
        self.remove_html_comments = remove_html_comments
        self.syntax = SyntaxCompiler(allow_inline_code=allow_inline_code)
        self._env: Environment | None = None

    def flatten(self, ref: TemplateRef) -> str:
        """Resolve ``ref`` to a single template with no layout or partials."""
        text, _ = self.loader.load_stripped(ref)
        text = resolve_inheritance(text, ref.layer, self.loader)
        text = expand_includes(text, self.loader)

        if self.remove_html_comments:
            text = remove_html_comments(text)
        if self.trim_whitespace:
            text = trim_whitespace(text)
        return text

    def compile(self, ref: TemplateRef) -> str:
        """Return the full artifact module source for ``ref``.

        Raises:
            TemplateSyntaxError: If tags are unbalanced or an embedded
                expression is not valid Python.
        """
        path = self.loader.path(ref)
        body = self.syntax.compile(self.flatten(ref))

        try:
            compile(body, str(ref), "exec")
        except SyntaxError as e:
            raise TemplateSyntaxError(
                f"Invalid Python in template {ref} (line {e.lineno}): {e.msg}",
                e.text.strip() if e.text else None,
            ) from e

        tmpl = self._get_env().get_template("artifact.py.j2")
        return tmpl.render(
            ref=str(ref),
            source_path=str(path),
            guard=GUARD_NAME,
            options_header=self.options_header,
            message=repr(f"compiled template {ref} must be executed by layerview"),
            body=body,
        )

    @property
    def options_header(self) -> str:
        """Header line recording the options that shape the compiled output."""
        flags = {
            "inline_code": self.allow_inline_code,
            "trim_whitespace": self.trim_whitespace,
            "remove_html_comments": self.remove_html_comments,
        }
        return OPTIONS_PREFIX + " ".join(f"{k}={int(v)}" for k, v in flags.items())

    def _get_env(self) -> Environment:
        if self._env is None:
            templates_dir = Path(__file__).parent / "templates"
            self._env = Environment(
                loader=FileSystemLoader(str(templates_dir)),
                keep_trailing_newline=True,
                trim_blocks=True,
                lstrip_blocks=True,
            )
        return self._env


@dataclass(frozen=True)
class Artifact:
    """A compiled template ready to execute.

    ``cache_path`` is None when caching is disabled and the artifact only
    lives in memory.
    """

    ref: TemplateRef
    source: str
    code: CodeType
    cache_path: Path | None = None
    mtime: float | None = None


class CacheStore:
    """Compiles templates on demand and publishes them atomically.

    Args:
        compiler: Produces artifact source for a reference.
        cache_dir: Directory holding compiled artifacts.
        enabled: When False every request recompiles in memory.
        mtime_fn: Modification-time lookup, injectable for tests.
    """

    def __init__(
        self,
        compiler: TemplateCompiler,
        cache_dir: Path,
        *,
        enabled: bool = True,
        mtime_fn: MtimeFn | None = None,
    ):
        self.compiler = compiler
        self.cache_dir = Path(cache_dir)
        self.enabled = enabled
        self.mtime_fn: MtimeFn = mtime_fn or os.path.getmtime
        # artifact path -> (mtime, source, code); one entry per artifact
        self._memo: dict[str, tuple[float, str, CodeType]] = {}

    @property
    def loader(self) -> TemplateLoader:
        return self.compiler.loader

    def artifact_path(self, ref: TemplateRef) -> Path:
        return self.cache_dir / cache_filename(ref)

    def newest_mtime(self, ref: TemplateRef) -> float:
        """Latest modification time across ``ref`` and all its dependencies."""
        text, path = self.loader.load_stripped(ref)
        deps = collect_dependencies(text, self.loader, {str(ref)})
        return max(self.mtime_fn(str(p)) for p in [path, *deps])

    def is_fresh(self, target: Path, newest: float) -> bool:
        """True if ``target`` is newer than ``newest`` and was compiled with
        the current compiler options."""
        if not target.exists():
            return False
        mtime = self.mtime_fn(str(target))
        return mtime >= newest and self._has_current_options(target, mtime)

    def _has_current_options(self, target: Path, mtime: float) -> bool:
        entry = self._memo.get(str(target))
        if entry is not None and entry[0] == mtime:
            header = entry[1].splitlines()[:HEADER_LINES]
        else:
            with open(target, encoding="utf-8") as f:
                header = [line.rstrip("\n") for line in itertools.islice(f, HEADER_LINES)]

        if self.compiler.options_header in header:
            return True
        log.debug(f"{target.name} was compiled with other options")
        return False

    def get_or_compile(self, ref: TemplateRef) -> Artifact:
        """Return an executable artifact for ``ref``, compiling if stale."""
        if not self.enabled:
            log.debug(f"Cache disabled, compiling {ref} in memory")
            source = self.compiler.compile(ref)
            return Artifact(ref=ref, source=source, code=compile(source, str(ref), "exec"))

        target = self.artifact_path(ref)
        newest = self.newest_mtime(ref)

        if self.is_fresh(target, newest):
            log.debug(f"Cache hit for {ref}: {target.name}")
            mtime = self.mtime_fn(str(target))
            source, code = self._load(target, mtime)
        else:
            log.debug(f"Cache miss for {ref}, compiling")
            source = self.compiler.compile(ref)
            self.publish(target, source, newest)
            mtime = self.mtime_fn(str(target))
            code = compile(source, str(target), "exec")
            self._memo[str(target)] = (mtime, source, code)

        return Artifact(ref=ref, source=source, code=code, cache_path=target, mtime=mtime)

    def _load(self, target: Path, mtime: float) -> tuple[str, CodeType]:
        entry = self._memo.get(str(target))
        if entry is None or entry[0] != mtime:
            source = target.read_text(encoding="utf-8")
            entry = (mtime, source, compile(source, str(target), "exec"))
            self._memo[str(target)] = entry
        return entry[1], entry[2]

    def publish(self, target: Path, source: str, newest: float) -> None:
        """Write ``source`` to ``target`` through a temp file and a rename.

        Readers never see a partial artifact. A failed rename is retried once
        after removing the stale target; if a concurrent writer has already
        produced a fresh artifact, that one is kept instead.

        Raises:
            CacheWriteFailed: If the artifact cannot be written.
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=self.cache_dir, prefix=f"{target.stem}.", suffix=".tmp"
            )
        except OSError as e:
            raise CacheWriteFailed(str(target), str(e)) from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(source)
            os.chmod(tmp, ARTIFACT_MODE)
            replaced = self._replace(tmp, target, newest)
        except OSError as e:
            raise CacheWriteFailed(str(target), str(e)) from e
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

        if replaced:
            log.info(f"Published compiled template {target}")

    def _replace(self, tmp: str, target: Path, newest: float) -> bool:
        """Rename ``tmp`` onto ``target``. False if a concurrent artifact won."""
        try:
            os.replace(tmp, target)
            return True
        except OSError as e:
            if self.is_fresh(target, newest):
                log.warning(f"Lost publish race for {target.name}; keeping concurrent artifact")
                return False
            log.debug(f"Rename onto {target.name} failed ({e}), retrying")

        try:
            target.unlink(missing_ok=True)
            os.replace(tmp, target)
            return True
        except OSError:
            if self.is_fresh(target, newest):
                log.warning(f"Lost publish race for {target.name}; keeping concurrent artifact")
                return False
            raise

    def clear(self) -> int:
        """Delete compiled artifacts and stray temp files. Returns the count."""
        self._memo.clear()
        if not self.cache_dir.is_dir():
            return 0

        removed = 0
        for pattern in ("*.py", "*.tmp"):
            for path in self.cache_dir.glob(pattern):
                path.unlink(missing_ok=True)
                removed += 1

        log.info(f"Removed {removed} compiled template(s) from {self.cache_dir}")
        return removed
