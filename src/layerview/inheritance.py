"""Inheritance resolver - flattens ``extends`` chains into one template body.

A child declares ``{% extends "layout@layer" %}`` and fills named regions
with ``{% block name %}...{% endblock %}``. The parent marks where each region
goes with ``{% yield name %}``. Resolution is strict: every child block must
land in a yield and every yield must be filled.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from layerview.errors import (
    DuplicateBlock,
    InheritanceCycle,
    MissingBlock,
    OrphanBlock,
)
from layerview.reference import TemplateLoader

log = logging.getLogger(__name__)

EXTENDS_RE = re.compile(r"""{%\s*extends\s+["'](.+?)["']\s*%}""")
BLOCK_RE = re.compile(r"{%\s*block\s+([\w-]+)\s*%}(.*?){%\s*endblock\s*%}", re.S)
YIELD_RE = re.compile(r"{%\s*yield\s*([\w-]+)\s*%}")


def _yield_pattern(name: str) -> re.Pattern[str]:
    return re.compile(r"{%\s*yield\s*" + re.escape(name) + r"\s*%}")


def extract_blocks(text: str, layer: str) -> dict[str, str]:
    """Collect the child's blocks by name, body trimmed.

    Raises:
        DuplicateBlock: If a block name appears twice.
    """
    blocks: dict[str, str] = {}
    for match in BLOCK_RE.finditer(text):
        name = match.group(1)
        if name in blocks:
            raise DuplicateBlock(name, layer)
        blocks[name] = match.group(2).strip()
    return blocks


def resolve_inheritance(
    text: str,
    layer: str,
    loader: TemplateLoader,
    _chain: Optional[set[str]] = None,
) -> str:
    """Merge ``text`` into its parent layouts until no ``extends`` remains.

    Args:
        text: Comment-stripped template source.
        layer: Layer of ``text``; used for error messages and passed down.
        loader: Resolves and loads parent references.

    Returns:
        The flattened template with all yields filled.
    """
    match = EXTENDS_RE.search(text)
    if match is None:
        return text

    parent_ref = loader.parse(match.group(1))
    chain = set() if _chain is None else _chain
    key = str(parent_ref)
    if key in chain:
        raise InheritanceCycle(key)
    chain.add(key)

    child = EXTENDS_RE.sub("", text, count=1)
    blocks = extract_blocks(child, layer)

    parent, parent_path = loader.load_stripped(parent_ref)
    log.debug(f"Merging {len(blocks)} block(s) from layer '{layer}' into {parent_ref}")

    for name, body in blocks.items():
        # A callable replacement keeps backslashes in the body literal.
        parent, count = _yield_pattern(name).subn(lambda _m, b=body: b, parent)
        if count == 0:
            raise OrphanBlock(name, layer, str(parent_path))

    leftover = list(dict.fromkeys(YIELD_RE.findall(parent)))
    if leftover:
        raise MissingBlock(leftover, layer, str(parent_path))

    return resolve_inheritance(parent, parent_ref.layer, loader, chain)
