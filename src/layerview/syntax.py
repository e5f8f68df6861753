"""Syntax compiler - lowers the template DSL into Python source.

Runs last, on a template whose comments, layouts and partials are already
resolved. The generated source is a module body that writes through
``_lv_write``; the engine executes it with the render variables as its
globals, so template expressions are plain Python expressions.

Tokens:
    {{ expr }}              escaped echo
    {{{ expr }}}            raw echo (trusted content only)
    {% if expr %} / {% elseif expr %} / {% else %} / {% endif %}
    {% foreach x in items %} / {% endforeach %}
    {? statement ?}         inline Python (only if allowed)
    {?= expr ?}             inline Python echo (only if allowed)
"""

from __future__ import annotations

import re
import textwrap
from typing import List

from layerview.errors import TemplateSyntaxError

TOKEN_RE = re.compile(
    r"(\{\?=.*?\?\}|\{\?.*?\?\}|\{\{\{.*?\}\}\}|\{\{.*?\}\}|\{%.*?%\})", re.S
)

TAG_RE = re.compile(r"(\w+)(.*)", re.S)
FOREACH_RE = re.compile(r"^(.+?)\s+in\s+(.+)$", re.S)

# Structural markers already handled by earlier stages.
RESIDUAL_TAGS = {"block", "endblock", "yield", "extends", "include"}

HTML_COMMENT_RE = re.compile(r"<!--(?!<!)[^\[>].*?-->", re.S)

_SENSITIVE_RE = re.compile(
    r"(<(?:pre|code|textarea|script|style)\b[^>]*>.*?</(?:pre|code|textarea|script|style)>"
    r"|\{\?.*?\?\}|\{\{\{.*?\}\}\}|\{\{.*?\}\}|\{%.*?%\})",
    re.S | re.I,
)
_WHITESPACE_RUN = re.compile(r"\s{2,}")


def _unwrap_parens(clause: str) -> str:
    """Drop one pair of parentheses wrapping the whole clause."""
    if not (clause.startswith("(") and clause.endswith(")")):
        return clause
    depth = 0
    for i, ch in enumerate(clause):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i != len(clause) - 1:
                return clause
    return clause[1:-1].strip()


def remove_html_comments(text: str) -> str:
    """Strip ``<!-- ... -->`` comments, keeping IE conditional comments."""
    return HTML_COMMENT_RE.sub("", text)


def trim_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space outside sensitive regions.

    ``pre``, ``code``, ``textarea``, ``script`` and ``style`` elements and
    all template tags are left untouched.
    """
    parts = _SENSITIVE_RE.split(text)
    for i in range(0, len(parts), 2):
        parts[i] = _WHITESPACE_RUN.sub(" ", parts[i])
    return "".join(parts)


class CodeBuilder:
    """Accumulates indented Python source lines."""

    INDENT_STEP = 4

    def __init__(self, indent: int = 0):
        self.lines: List[str] = []
        self.indent_level = indent

    def add_line(self, line: str) -> None:
        self.lines.append(" " * self.indent_level + line)

    def add_block(self, source: str) -> None:
        """Add a multi-line snippet at the current indentation."""
        for line in textwrap.dedent(source).strip("\n").splitlines():
            self.add_line(line)

    def indent(self) -> None:
        self.indent_level += self.INDENT_STEP

    def dedent(self) -> None:
        self.indent_level -= self.INDENT_STEP

    def __str__(self) -> str:
        return "\n".join(self.lines)


class SyntaxCompiler:
    """Lowers DSL tokens to Python statements.

    Args:
        allow_inline_code: When False, ``{? ?}`` and ``{?= ?}`` tokens are
            dropped entirely.
    """

    def __init__(self, allow_inline_code: bool = True):
        self.allow_inline_code = allow_inline_code

    def compile(self, text: str) -> str:
        """Return Python source that renders ``text``.

        Raises:
            TemplateSyntaxError: On unbalanced or unknown control tags.
        """
        code = CodeBuilder()
        ops_stack: List[str] = []
        buffered: List[str] = []

        def flush_output() -> None:
            if len(buffered) == 1:
                code.add_line(f"_lv_write({buffered[0]})")
            elif len(buffered) > 1:
                code.add_line(f"_lv_write({' + '.join(buffered)})")
            del buffered[:]

        for token in TOKEN_RE.split(text):
            if not token:
                continue

            if token.startswith("{?="):
                if not self.allow_inline_code:
                    continue
                flush_output()
                expr = self._expr(token[3:-2], token)
                code.add_line(f"_lv_write(_lv_raw({expr}))")
            elif token.startswith("{?"):
                if not self.allow_inline_code:
                    continue
                flush_output()
                statement = token[2:-2]
                if statement.strip():
                    code.add_block(statement)
            elif token.startswith("{{{"):
                flush_output()
                expr = self._expr(token[3:-3], token)
                code.add_line(f"_lv_write(_lv_raw({expr}))")
            elif token.startswith("{{"):
                flush_output()
                expr = self._expr(token[2:-2], token)
                code.add_line(f"_lv_write(_lv_escape(_lv_value(lambda: ({expr}))))")
            elif token.startswith("{%"):
                flush_output()
                self._tag(token, code, ops_stack)
            else:
                buffered.append(repr(token))

        if ops_stack:
            raise TemplateSyntaxError("Unclosed tag", ops_stack[-1])

        flush_output()
        return str(code)

    def _expr(self, expr: str, token: str) -> str:
        expr = expr.strip()
        if not expr:
            raise TemplateSyntaxError("Empty expression", token)
        return expr

    def _tag(self, token: str, code: CodeBuilder, ops_stack: List[str]) -> None:
        match = TAG_RE.match(token[2:-2].strip())
        if match is None:
            raise TemplateSyntaxError("Empty tag", token)
        word, rest = match.group(1), match.group(2).strip()

        if word in RESIDUAL_TAGS:
            return

        if word == "if":
            code.add_line(f"if {self._expr(rest, token)}:")
            code.indent()
            code.add_line("pass")
            ops_stack.append("if")
        elif word in ("elseif", "elif"):
            self._expect(ops_stack, "if", token)
            code.dedent()
            code.add_line(f"elif {self._expr(rest, token)}:")
            code.indent()
            code.add_line("pass")
        elif word == "else":
            self._expect(ops_stack, "if", token)
            code.dedent()
            code.add_line("else:")
            code.indent()
            code.add_line("pass")
            ops_stack[-1] = "else"
        elif word == "endif":
            if not ops_stack or ops_stack[-1] not in ("if", "else"):
                raise TemplateSyntaxError("Unexpected endif", token)
            ops_stack.pop()
            code.dedent()
        elif word == "foreach":
            match = FOREACH_RE.match(_unwrap_parens(rest))
            if match is None:
                raise TemplateSyntaxError("Don't understand foreach", token)
            target, iterable = match.group(1), match.group(2)
            code.add_line(f"for {target} in {iterable}:")
            code.indent()
            code.add_line("pass")
            ops_stack.append("foreach")
        elif word == "endforeach":
            self._expect(ops_stack, "foreach", token)
            ops_stack.pop()
            code.dedent()
        else:
            raise TemplateSyntaxError("Don't understand tag", token)

    @staticmethod
    def _expect(ops_stack: List[str], op: str, token: str) -> None:
        if not ops_stack or ops_stack[-1] != op:
            raise TemplateSyntaxError("Mismatched tag", token)
