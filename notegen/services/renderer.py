"""
Markdown note rendering for export.

Pipeline
--------
1. markdown_to_html            — CommonMark + tables + $math$ (MathML)
2. add_page_breaks_before_weeks — page break before every "Week N" heading
                                  except the first
3. wrap_html_document          — standalone print-ready HTML document
4. render_export               — html | docx | pdf
"""
from __future__ import annotations

import asyncio
import base64
import html
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, Union

from latex2mathml.converter import convert as latex_to_mathml
from markdown_it import MarkdownIt
from markdown_it.common.utils import escapeHtml
from mdit_py_plugins.dollarmath import dollarmath_plugin

from notegen.config import settings
from notegen.services.docx_writer import html_to_docx
from notegen.services.pdf_printer import html_to_pdf

logger = logging.getLogger(__name__)

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PDF_MEDIA_TYPE = "application/pdf"
HTML_MEDIA_TYPE = "text/html; charset=utf-8"

PAGE_BREAK_MARKER = '<div class="page-break" style="page-break-before: always;"></div>'

_HEADING_RE = re.compile(r"<(h[1-3])\b[^>]*>(.*?)</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
# "Week 3", "Week 3 - Topic", "week 3: Topic", "Week 3rd term", "Week 04-Topic"
_WEEK_HEADING_RE = re.compile(r"^\s*week\s+\d+", re.IGNORECASE)


class RenderError(Exception):
    """A stage of the export pipeline failed."""


@dataclass
class RenderedDocument:
    markdown_source: str
    html_body: str
    paginated_html: str
    full_html: str


@dataclass
class ExportResult:
    content: Union[bytes, str]
    media_type: str
    filename: str = ""


# ---------------------------------------------------------------------------
# Markdown -> HTML
# ---------------------------------------------------------------------------

def _render_math(content: str, config: Dict[str, Any]) -> str:
    display = "block" if config.get("display_mode") else "inline"
    try:
        return latex_to_mathml(content, display=display)
    except Exception as exc:
        logger.warning("Could not convert LaTeX %r: %s", content[:80], exc)
        return f'<code class="math-error">{escapeHtml(content)}</code>'


@lru_cache(maxsize=None)
def _markdown_parser() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"html": False}).enable(["table", "strikethrough"])
    # allow_digits=False keeps "₦500 and $20" from being read as math
    dollarmath_plugin(md, allow_digits=False, renderer=_render_math)
    return md


def markdown_to_html(markdown: str) -> str:
    """Render Markdown to an HTML fragment with math as MathML."""
    return _markdown_parser().render(markdown)


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def heading_text(inner_html: str) -> str:
    return html.unescape(_TAG_RE.sub("", inner_html))


def add_page_breaks_before_weeks(html_body: str) -> str:
    """
    Insert a page-break marker before every h1-h3 heading that starts with
    ``Week <number>``, except the first such heading.
    """
    seen_first = False

    def _insert(match: "re.Match[str]") -> str:
        nonlocal seen_first
        if not _WEEK_HEADING_RE.match(heading_text(match.group(2))):
            return match.group(0)
        if not seen_first:
            seen_first = True
            return match.group(0)
        return PAGE_BREAK_MARKER + match.group(0)

    return _HEADING_RE.sub(_insert, html_body)


# ---------------------------------------------------------------------------
# Document wrapping
# ---------------------------------------------------------------------------

@lru_cache(maxsize=None)
def get_math_css() -> str:
    """Math stylesheet, read once from package data and reused for the process."""
    try:
        return resources.files("notegen").joinpath("static/math.css").read_text(encoding="utf-8")
    except (FileNotFoundError, OSError) as exc:
        logger.warning("Math stylesheet unavailable: %s", exc)
        return ""


@lru_cache(maxsize=None)
def get_watermark_data_uri() -> str:
    """Background watermark as a data URI so headless rendering needs no fetch."""
    try:
        svg = resources.files("notegen").joinpath("static/watermark.svg").read_bytes()
    except (FileNotFoundError, OSError) as exc:
        logger.warning("Watermark image unavailable: %s", exc)
        return ""
    return "data:image/svg+xml;base64," + base64.b64encode(svg).decode("ascii")


DOCUMENT_TEMPLATE = """<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  {font_link}
  <style>
    {math_css}
    @page {{ margin: {margin}; }}

    body {{
      font-family: 'Geist', system-ui, -apple-system, 'Segoe UI', Roboto, Arial, sans-serif;
      line-height: 1.6;
      color: #111;
      position: relative;
      -webkit-print-color-adjust: exact;
      print-color-adjust: exact;
    }}

    body::after {{
      content: "";
      background-image: url("{watermark}");
      background-repeat: no-repeat;
      background-position: center;
      background-size: 400px;
      position: fixed;
      top: 0;
      left: 0;
      right: 0;
      bottom: 0;
      z-index: -1;
      opacity: {watermark_opacity};
    }}

    code, pre, kbd, samp {{
      font-family: 'Geist Mono', 'Courier New', Courier, monospace;
      font-size: 0.9em;
    }}

    h1 {{ font-weight: 700; font-size: 24px; margin: 0 0 12px; }}
    h2 {{ font-weight: 600; font-size: 20px; margin: 16px 0 8px; }}
    h3 {{ font-weight: 500; font-size: 18px; margin: 14px 0 6px; }}

    p {{ margin: 8px 0; }}
    ul, ol {{ padding-left: 1.5rem; }}
    table {{ width: 100%; border-collapse: collapse; margin: 12px 0; }}
    th, td {{ border: 1px solid #ddd; padding: 6px; }}
    .page-break {{ page-break-before: always; break-before: page; }}

    pre {{
      background: #f5f5f5;
      padding: 1em;
      border-radius: 4px;
      overflow-x: auto;
    }}

    :not(pre) > code {{
      background: #f0f0f0;
      padding: 0.2em 0.4em;
      border-radius: 3px;
    }}
  </style>
</head>
<body>
{body}
</body>
</html>
"""


def wrap_html_document(inner_html: str) -> str:
    """Embed *inner_html* in a standalone, print-styled HTML document."""
    font_link = (
        f'<link href="{html.escape(settings.FONT_STYLESHEET_URL)}" rel="stylesheet">'
        if settings.FONT_STYLESHEET_URL
        else ""
    )
    return DOCUMENT_TEMPLATE.format(
        font_link=font_link,
        math_css=get_math_css(),
        margin=settings.PDF_MARGIN,
        watermark=get_watermark_data_uri(),
        watermark_opacity=settings.WATERMARK_OPACITY,
        body=inner_html,
    )


def build_rendered_document(markdown: str) -> RenderedDocument:
    html_body = markdown_to_html(markdown)
    paginated = add_page_breaks_before_weeks(html_body)
    return RenderedDocument(
        markdown_source=markdown,
        html_body=html_body,
        paginated_html=paginated,
        full_html=wrap_html_document(paginated),
    )


# ---------------------------------------------------------------------------
# Format branch
# ---------------------------------------------------------------------------

async def render_export(markdown: str, fmt: str) -> ExportResult:
    """
    Render *markdown* as ``html``, ``docx`` or ``pdf``.

    Raises:
        ValueError:  unknown format.
        RenderError: any stage of the pipeline failed.
    """
    if fmt not in ("html", "docx", "pdf"):
        raise ValueError(f"Unsupported export format: {fmt!r}")

    try:
        document = await asyncio.to_thread(build_rendered_document, markdown)
    except Exception as exc:
        raise RenderError(f"Markdown rendering failed: {exc}") from exc

    if fmt == "html":
        return ExportResult(content=document.full_html, media_type=HTML_MEDIA_TYPE)

    if fmt == "docx":
        try:
            data = await asyncio.to_thread(html_to_docx, document.full_html)
        except Exception as exc:
            raise RenderError(f"DOCX conversion failed: {exc}") from exc
        return ExportResult(content=data, media_type=DOCX_MEDIA_TYPE, filename="notes.docx")

    try:
        data = await html_to_pdf(document.full_html)
    except Exception as exc:
        raise RenderError(f"PDF rendering failed: {exc}") from exc
    return ExportResult(content=data, media_type=PDF_MEDIA_TYPE, filename="notes.pdf")
