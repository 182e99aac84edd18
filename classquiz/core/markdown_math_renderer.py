"""Markdown + LaTeX rendering for question content served to browsers.

Question text is stored as Markdown with ``$...$`` or ``$$...$$`` math. Math
spans are lifted out before Markdown runs so that underscores and asterisks
inside formulas survive, then put back verbatim (HTML-escaped) for MathJax to
typeset on the client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import html
import re

from markdown_it import MarkdownIt

MATHJAX_SCRIPT_URL = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"
EMPTY_CONTENT_HTML = "<p><em>No content provided.</em></p>"

_MATH_PATTERN = re.compile(r"\$\$.+?\$\$|\$[^$\n]+?\$", re.DOTALL)
_PLACEHOLDER = "CQMATH{index}X"
_PLACEHOLDER_PATTERN = re.compile(r"CQMATH(\d+)X")


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Turns question and answer text into HTML fragments."""

    allow_raw_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = MarkdownIt("commonmark", {"html": self.allow_raw_html}).enable(["table", "strikethrough"])

    def render_fragment(self, markdown_text: str) -> str:
        """Block-level HTML for a question body."""
        source = (markdown_text or "").strip()
        if not source:
            return EMPTY_CONTENT_HTML
        protected, spans = _lift_math(source)
        return _restore_math(self._markdown.render(protected), spans)

    def render_inline(self, markdown_text: str) -> str:
        """Inline HTML for an answer option, without a wrapping paragraph."""
        protected, spans = _lift_math((markdown_text or "").strip())
        return _restore_math(self._markdown.renderInline(protected), spans)


def _lift_math(text: str) -> tuple[str, list[str]]:
    spans: list[str] = []

    def stash(match: re.Match[str]) -> str:
        spans.append(match.group(0))
        return _PLACEHOLDER.format(index=len(spans) - 1)

    return _MATH_PATTERN.sub(stash, text), spans


def _restore_math(rendered: str, spans: list[str]) -> str:
    if not spans:
        return rendered
    return _PLACEHOLDER_PATTERN.sub(lambda match: html.escape(spans[int(match.group(1))], quote=False), rendered)


renderer = MarkdownMathRenderer()
