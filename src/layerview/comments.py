"""Comment stripper - removes ``{# ... #}`` template comments.

Runs before any other stage so commented-out ``extends`` and ``include``
directives are invisible to both compilation and dependency tracking.
"""

from __future__ import annotations

COMMENT_OPEN = "{#"
COMMENT_CLOSE = "#}"


def strip_comments(text: str) -> str:
    """Remove nested ``{# ... #}`` comments in a single pass.

    Each opener increments a depth counter and each closer decrements it, so
    ``{# a {# b #} c #}`` disappears entirely. A closer at depth zero is plain
    text. If input ends inside a comment, everything from the outermost open
    comment onward is dropped rather than raising.

    Removing a comment can glue a ``{`` to a following ``#``; the scan repeats
    until no new opener appears so the result is always a fixed point.
    """
    while COMMENT_OPEN in text:
        stripped = _strip_once(text)
        if stripped == text:
            break
        text = stripped
    return text


def _strip_once(text: str) -> str:
    out: list[str] = []
    depth = 0
    start = 0
    i = 0
    n = len(text)

    while i < n - 1:
        pair = text[i : i + 2]
        if pair == COMMENT_OPEN:
            if depth == 0:
                out.append(text[start:i])
            depth += 1
            i += 2
            continue
        if pair == COMMENT_CLOSE and depth > 0:
            depth -= 1
            i += 2
            if depth == 0:
                start = i
            continue
        i += 1

    # Unterminated comment: drop the tail.
    if depth == 0:
        out.append(text[start:])

    return "".join(out)
