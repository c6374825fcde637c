"""
HTML -> DOCX conversion for exported notes.

Walks the rendered note HTML with BeautifulSoup and rebuilds it with
python-docx: headings, paragraphs with inline formatting, nested lists,
tables, code blocks, block quotes and page breaks.  MathML is flattened to a
linear text form (``x^2``, ``(a)/(b)``, ``√(x)``) because Word cannot import
it directly.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, replace
from typing import List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH, WD_BREAK
from docx.shared import Inches, Pt, RGBColor
from docx.text.paragraph import Paragraph

logger = logging.getLogger(__name__)

BLOCK_TAGS = frozenset({
    "h1", "h2", "h3", "h4", "h5", "h6", "p", "ul", "ol", "table", "pre",
    "blockquote", "hr", "div", "section", "article",
})

MAX_LIST_DEPTH = 3
CODE_FONT = "Courier New"


@dataclass(frozen=True)
class RunFormat:
    bold: bool = False
    italic: bool = False
    code: bool = False
    strike: bool = False
    underline: bool = False


# ---------------------------------------------------------------------------
# MathML
# ---------------------------------------------------------------------------

def _element_children(node: Tag) -> List[Tag]:
    return [child for child in node.children if isinstance(child, Tag)]


def _group(text: str) -> str:
    return text if len(text) <= 1 else f"({text})"


def mathml_to_text(node: Tag) -> str:
    """Linearize a MathML element tree into readable plain text."""
    name = (node.name or "").lower()
    kids = _element_children(node)

    if name in ("mi", "mn", "mo", "mtext", "ms"):
        return node.get_text()
    if name == "annotation" or name == "annotation-xml":
        return ""
    if name == "msup" and len(kids) >= 2:
        return f"{mathml_to_text(kids[0])}^{_group(mathml_to_text(kids[1]))}"
    if name == "msub" and len(kids) >= 2:
        return f"{mathml_to_text(kids[0])}_{_group(mathml_to_text(kids[1]))}"
    if name == "msubsup" and len(kids) >= 3:
        return (
            f"{mathml_to_text(kids[0])}_{_group(mathml_to_text(kids[1]))}"
            f"^{_group(mathml_to_text(kids[2]))}"
        )
    if name == "mfrac" and len(kids) >= 2:
        return f"{_group(mathml_to_text(kids[0]))}/{_group(mathml_to_text(kids[1]))}"
    if name == "msqrt":
        return f"√({''.join(mathml_to_text(k) for k in kids)})"
    if name == "mroot" and len(kids) >= 2:
        return f"{_group(mathml_to_text(kids[1]))}√({mathml_to_text(kids[0])})"
    if name in ("munder", "mover", "munderover") and kids:
        return " ".join(mathml_to_text(k) for k in kids)
    if name == "mtable":
        return "; ".join(mathml_to_text(k) for k in kids)
    if name == "mtr":
        return ", ".join(mathml_to_text(k) for k in kids)
    if not kids:
        return node.get_text()
    return "".join(mathml_to_text(k) for k in kids)


# ---------------------------------------------------------------------------
# Inline content
# ---------------------------------------------------------------------------

def _add_run(paragraph: Paragraph, text: str, fmt: RunFormat) -> None:
    if not text:
        return
    run = paragraph.add_run(text)
    run.bold = fmt.bold or None
    run.italic = fmt.italic or None
    run.underline = fmt.underline or None
    if fmt.strike:
        run.font.strike = True
    if fmt.code:
        run.font.name = CODE_FONT
        run.font.size = Pt(10)


def add_inline(paragraph: Paragraph, node, fmt: RunFormat = RunFormat()) -> None:
    """Append the inline content of *node* to *paragraph* as formatted runs."""
    if isinstance(node, NavigableString):
        # Source newlines inside a paragraph are soft breaks
        _add_run(paragraph, str(node).replace("\n", " "), fmt)
        return
    if not isinstance(node, Tag):
        return

    name = node.name.lower()
    if name == "br":
        paragraph.add_run().add_break()
        return
    if name == "math":
        _add_run(paragraph, mathml_to_text(node), replace(fmt, italic=True))
        return
    if name in ("ul", "ol"):
        # Nested lists are emitted by the list writer, not inline
        return

    if name in ("strong", "b"):
        fmt = replace(fmt, bold=True)
    elif name in ("em", "i"):
        fmt = replace(fmt, italic=True)
    elif name == "code":
        fmt = replace(fmt, code=True)
    elif name in ("del", "s", "strike"):
        fmt = replace(fmt, strike=True)
    elif name in ("a", "u"):
        fmt = replace(fmt, underline=True)
    elif name == "img":
        _add_run(paragraph, node.get("alt", ""), fmt)
        return

    for child in node.children:
        add_inline(paragraph, child, fmt)


# ---------------------------------------------------------------------------
# Block content
# ---------------------------------------------------------------------------

class DocxBuilder:
    """Accumulates block elements into a python-docx Document."""

    def __init__(self) -> None:
        self.doc = Document()
        style = self.doc.styles["Normal"]
        style.font.name = "Calibri"
        style.font.size = Pt(11)
        for section in self.doc.sections:
            section.left_margin = section.right_margin = Inches(0.75)
            section.top_margin = section.bottom_margin = Inches(0.75)
        self._pending_page_break = False
        self._has_title = False

    def _paragraph(self, style: Optional[str] = None) -> Paragraph:
        paragraph = self.doc.add_paragraph(style=style)
        if self._pending_page_break:
            paragraph.paragraph_format.page_break_before = True
            self._pending_page_break = False
        return paragraph

    def add_block(self, node) -> None:
        if isinstance(node, NavigableString):
            text = str(node).strip()
            if text:
                add_inline(self._paragraph(), NavigableString(text))
            return
        if not isinstance(node, Tag):
            return

        name = node.name.lower()
        classes = node.get("class") or []

        if name in ("h1", "h2", "h3", "h4", "h5", "h6"):
            level = int(name[1])
            heading = self.doc.add_heading("", level=level)
            if self._pending_page_break:
                heading.paragraph_format.page_break_before = True
                self._pending_page_break = False
            add_inline(heading, node)
            if level == 1 and not self._has_title:
                self.doc.core_properties.title = node.get_text(" ", strip=True)[:255]
                self._has_title = True
        elif name == "div" and "page-break" in classes:
            self._pending_page_break = True
        elif name == "p":
            add_inline(self._paragraph(), node)
        elif name in ("ul", "ol"):
            self.add_list(node, ordered=(name == "ol"), depth=1)
        elif name == "table":
            self.add_table(node)
        elif name == "pre":
            self.add_code_block(node)
        elif name == "blockquote":
            for child in node.children:
                if isinstance(child, Tag) and child.name in BLOCK_TAGS:
                    if child.name == "p":
                        add_inline(self._paragraph(style="Quote"), child)
                    else:
                        self.add_block(child)
                elif isinstance(child, NavigableString) and str(child).strip():
                    add_inline(self._paragraph(style="Quote"), child)
        elif name == "hr":
            self._paragraph()
        elif name == "math":
            paragraph = self._paragraph()
            paragraph.alignment = WD_ALIGN_PARAGRAPH.CENTER
            add_inline(paragraph, node)
        elif name in BLOCK_TAGS or any(
            isinstance(child, Tag) and child.name in BLOCK_TAGS for child in node.children
        ):
            for child in node.children:
                self.add_block(child)
        else:
            add_inline(self._paragraph(), node)

    def add_list(self, node: Tag, ordered: bool, depth: int) -> None:
        base = "List Number" if ordered else "List Bullet"
        level = min(depth, MAX_LIST_DEPTH)
        style = base if level == 1 else f"{base} {level}"

        for item in node.find_all("li", recursive=False):
            paragraph = self._paragraph(style=style)
            nested: List[Tag] = []
            for child in item.children:
                if isinstance(child, Tag) and child.name in ("ul", "ol"):
                    nested.append(child)
                elif isinstance(child, Tag) and child.name == "p":
                    # Loose list items wrap their text in <p>
                    if paragraph.text:
                        paragraph.add_run().add_break()
                    add_inline(paragraph, child)
                else:
                    add_inline(paragraph, child)
            for sublist in nested:
                self.add_list(sublist, ordered=(sublist.name == "ol"), depth=depth + 1)

    def add_table(self, node: Tag) -> None:
        rows = node.find_all("tr")
        if not rows:
            return
        width = max(len(row.find_all(["th", "td"], recursive=False)) for row in rows)
        if width == 0:
            return

        table = self.doc.add_table(rows=len(rows), cols=width)
        table.style = "Table Grid"
        for r, row in enumerate(rows):
            for c, cell_node in enumerate(row.find_all(["th", "td"], recursive=False)):
                paragraph = table.cell(r, c).paragraphs[0]
                add_inline(paragraph, cell_node, RunFormat(bold=cell_node.name == "th"))
        self._paragraph()

    def add_code_block(self, node: Tag) -> None:
        paragraph = self._paragraph()
        lines = node.get_text().rstrip("\n").split("\n")
        for i, line in enumerate(lines):
            run = paragraph.add_run(line)
            run.font.name = CODE_FONT
            run.font.size = Pt(9)
            run.font.color.rgb = RGBColor(40, 40, 40)
            if i < len(lines) - 1:
                run.add_break(WD_BREAK.LINE)
        paragraph.paragraph_format.space_before = Pt(4)
        paragraph.paragraph_format.space_after = Pt(4)

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.doc.save(buffer)
        return buffer.getvalue()


def html_to_docx(full_html: str) -> bytes:
    """Convert a rendered note HTML document to DOCX bytes."""
    soup = BeautifulSoup(full_html, "html.parser")
    root = soup.body or soup

    builder = DocxBuilder()
    for child in root.children:
        if isinstance(child, Tag) and child.name in ("script", "style"):
            continue
        builder.add_block(child)

    data = builder.to_bytes()
    logger.info("DOCX export: %d bytes", len(data))
    return data
