"""Markdown + LaTeX rendering for lesson pages and quiz text.

Lesson pages are authored as markdown with ``$...$`` math. The server renders
them to HTML fragments; MathJax in the browser typesets the math.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from html import escape

from markdown_it import MarkdownIt

from classroom_app.core.models import LessonPage

_MATHJAX_SCRIPT = "https://cdn.jsdelivr.net/npm/mathjax@3/es5/tex-mml-chtml.js"


@dataclass(slots=True)
class MarkdownMathRenderer:
    """Converts markdown-with-math into HTML fragments or full documents."""

    enable_html: bool = False
    _markdown: MarkdownIt = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._markdown = (
            MarkdownIt("commonmark", {"html": self.enable_html})
            .enable("table")
            .enable("strikethrough")
        )

    def render_fragment(self, markdown_text: str) -> str:
        sanitized = (markdown_text or "").strip()
        if not sanitized:
            return "<p><em>No content provided.</em></p>"
        return self._markdown.render(sanitized)

    def render_page(self, page: LessonPage) -> str:
        """Render a lesson page as a standalone HTML document that loads MathJax."""
        title = escape(page.title or "Lesson")
        body_html = self.render_fragment(page.content)
        return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>{title}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <script>
      window.MathJax = {{ tex: {{ inlineMath: [['$','$']], displayMath: [['$$','$$']] }}, svg: {{ fontCache: 'global' }} }};
    </script>
    <script defer src="{_MATHJAX_SCRIPT}"></script>
  </head>
  <body>
    <h1>{title}</h1>
    <article class="lesson-page">{body_html}</article>
  </body>
</html>"""


# Shared by all request threads; rendering does not mutate the parser.
renderer = MarkdownMathRenderer()
