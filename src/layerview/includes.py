"""Include expander - inlines ``{% include "partial@layer" %}`` at compile time.

No include directive survives into a compiled artifact. Self-referencing or
circular includes are stopped by the depth limit.
"""

from __future__ import annotations

import logging
import re

from layerview.comments import strip_comments
from layerview.errors import IncludeDepthExceeded
from layerview.reference import TemplateLoader

log = logging.getLogger(__name__)

MAX_INCLUDE_DEPTH = 16

INCLUDE_RE = re.compile(r"""{%\s*include\s+["'](.+?)["']\s*%}""", re.I)


def expand_includes(text: str, loader: TemplateLoader, depth: int = 0) -> str:
    """Replace every include directive with the fully expanded partial.

    Args:
        text: Template source; comments are stripped again locally so that
            comment-wrapped includes inside partials are ignored.
        loader: Resolves and loads partial references.
        depth: Nesting level of ``text``; the top-level template is 0.

    Raises:
        IncludeDepthExceeded: If an include must be expanded at depth >= 16.
    """
    if not INCLUDE_RE.search(text):
        return text

    clean = strip_comments(text)
    if not INCLUDE_RE.search(clean):
        return clean

    if depth >= MAX_INCLUDE_DEPTH:
        raise IncludeDepthExceeded(depth)

    def _expand(match: re.Match[str]) -> str:
        ref = loader.parse(match.group(1))
        partial, _ = loader.load_stripped(ref)
        log.debug(f"Including {ref} at depth {depth + 1}")
        return expand_includes(partial, loader, depth + 1)

    return INCLUDE_RE.sub(_expand, clean)
