"""
System prompt assembly for lecture note generation.

The system prompt is the fixed pedagogical template, optionally followed by
reference excerpts from the knowledge base and by the instructions for the
request mode:

  custom        — the user assigned topics to weeks by hand
  spreadsheet   — topics come from one column of an uploaded scheme of work
  conversational — free text; the latest user message is the query

Mode precedence is custom > spreadsheet > conversational.  The same mode also
decides the query used to rank knowledge documents.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from openpyxl.utils import get_column_letter

from notegen.config import settings
from notegen.models.schemas import ChatMessage, ChatRequest, NoteMode
from notegen.services.knowledge import (
    ExcerptResult,
    load_docx_from_dir,
    pick_relevant_excerpt,
)
from notegen.services.scheme_parser import (
    SpreadsheetParseError,
    WeekTopic,
    parse_week_topics,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """\
I will be sending you topics with their subtopics. Starting from H1 (used only for the main topic header), \
followed by H2 and lower levels for subtopics, generate a well-structured lecture-style note aligned with \
Nigerian teaching and note-writing standards.

Include (And formatted this way in markdown):
- Topic/Heading (use Header1) – Clear and bold.
- Subtopics (use Header2, Header3 as needed) – Properly broken down for easy flow.
- Detailed Explanation – Engaging lecture tone, easy for students to follow.
- Examples – Worked examples and varied scenarios.
- Classwork – Short practice questions.
- Real-life Practical Classwork/Applications (if applicable) – Everyday Nigerian contexts.
- Summary/Key Points – Quick recap.
- Assignment (optional) – Extended practice task.

Goals:
- In-depth but simple to understand.
- Interactive (teacher-like delivery).
- Practical (connect theory to Nigerian life).
- Curriculum-focused (standard Nigerian secondary/tertiary lecture notes).

Format for weeks:
- Week {N} - {topic name} (use Header1)
- Start with a greeting, e.g., "Good day class, in today's class we are going to…"

MOST IMPORTANT BULLET RULE:
Whenever you list bullet points (e.g., Key Characteristics), after each bullet add a colon and then a clear \
explanation (max 4 sentences) that simplifies the idea for easy understanding. Do not leave bullets as terse \
fragments.

Math:
- Write mathematical expressions in LaTeX between $...$ (inline) or $$...$$ (display).

Knowledge base and reference:
- Always check provided reference documents before writing. They are schemes of work and curriculum guides; \
use them to understand structure and curriculum mapping.
- When the user requests like: "Civic education SS1 week1", consult the scheme document columns \
(numbers, SS1, SS2, SS3) to find the appropriate content and structure your output accordingly.

VERY IMPORTANT: Do not add any conversational filler or commentary. Your response should be only the \
generated note, starting directly with the first H1 header.\
"""

REFERENCE_BLOCK = """

---

Reference Excerpts (from: {sources}):

{excerpt}

---

Follow the structure strictly."""

CLASS_LEVEL_INSTRUCTION = (
    "\n\nThe user has selected the following class level: {level}. "
    "Please tailor the content to be appropriate for this level of understanding."
)

# Braces are doubled: this text is only used inside str.format templates
WEEK_HEADING_REMINDER = (
    'Reminder: Start each week with an H1 exactly as: "Week {{N}} - {{topic}}" '
    "and then proceed with the required structure."
)

CUSTOM_MODE_INSTRUCTION = """

The user is in custom mode. Generate notes for the entire term using the following weekly topics:
{lines}

""" + WEEK_HEADING_REMINDER

SPREADSHEET_MODE_INSTRUCTION = """

The user uploaded a spreadsheet. Generate notes ONLY for the non-empty entries found in \
Column {column} ({letter}) using the exact week numbers (row index as week).
Generate in ascending order by week number.

Weeks to generate (skip weeks marked with "-"):
{lines}

""" + WEEK_HEADING_REMINDER


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class PromptPlan:
    """Mode-dependent pieces of a prompt, before knowledge lookup."""

    mode: NoteMode
    query: str
    instruction: str = ""


@dataclass
class AssembledPrompt:
    """Everything the completion service needs for one chat request."""

    system_prompt: str
    query: str
    mode: NoteMode
    sources: List[str] = field(default_factory=list)
    conversation: List[ChatMessage] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Instruction builders
# ---------------------------------------------------------------------------

def class_level_instruction(level: Optional[str]) -> str:
    if not level or not level.strip():
        return ""
    return CLASS_LEVEL_INSTRUCTION.format(level=level.strip())


def custom_mode_instruction(weekly_selections: Dict[int, List[str]]) -> str:
    lines = "\n".join(
        f"- Week {week}: {', '.join(topics)}"
        for week, topics in sorted(weekly_selections.items())
    )
    return CUSTOM_MODE_INSTRUCTION.format(lines=lines)


def spreadsheet_mode_instruction(week_topics: List[WeekTopic], column: int = 1) -> str:
    lines = "\n".join(
        f"- Week {wt.week}: {wt.topic}"
        for wt in sorted(week_topics, key=lambda wt: wt.week)
    )
    return SPREADSHEET_MODE_INSTRUCTION.format(
        column=column,
        letter=get_column_letter(column),
        lines=lines,
    )


def latest_user_message(messages: List[ChatMessage]) -> Optional[ChatMessage]:
    """Return the most recent message authored by the user, if any."""
    for message in reversed(messages):
        if message.role == "user":
            return message
    return None


def compose_system_prompt(excerpt: ExcerptResult, instruction: str = "") -> str:
    """Template + reference excerpts (when any) + mode instructions."""
    prompt = SYSTEM_PROMPT
    if excerpt.combined:
        prompt += REFERENCE_BLOCK.format(
            sources=", ".join(excerpt.sources),
            excerpt=excerpt.combined,
        )
    return prompt + instruction


# ---------------------------------------------------------------------------
# Mode resolution
# ---------------------------------------------------------------------------

def _decode_upload(data: str) -> bytes:
    # Data URLs ("data:...;base64,XXXX") are accepted as well as bare base64
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SpreadsheetParseError(f"Upload is not valid base64: {exc}") from exc


def resolve_plan(request: ChatRequest) -> PromptPlan:
    """
    Decide the request mode and derive its instruction text and KB query.

    Raises:
        SpreadsheetParseError: the uploaded workbook cannot be read.
        EmptyColumnError:      the selected column has no topics.
    """
    level_hint = class_level_instruction(request.class_level)

    if request.weekly_selections:
        query = " ".join(
            topic
            for _, topics in sorted(request.weekly_selections.items())
            for topic in topics
        )
        return PromptPlan(
            mode=NoteMode.CUSTOM,
            query=query,
            instruction=level_hint + custom_mode_instruction(request.weekly_selections),
        )

    if request.file is not None and request.file.data:
        column = max(1, request.selected_column or 1)
        week_topics = parse_week_topics(
            _decode_upload(request.file.data),
            filename=request.file.name,
            media_type=request.file.type,
            column=column,
        )
        return PromptPlan(
            mode=NoteMode.SPREADSHEET,
            query=" ".join(wt.topic for wt in week_topics),
            instruction=level_hint + spreadsheet_mode_instruction(week_topics, column),
        )

    last_user = latest_user_message(request.messages)
    return PromptPlan(
        mode=NoteMode.CONVERSATIONAL,
        query=last_user.text() if last_user else "",
        instruction=level_hint,
    )


async def build_prompt(
    request: ChatRequest,
    knowledge_dir: Optional[str] = None,
    max_chars: Optional[int] = None,
) -> AssembledPrompt:
    """
    Assemble the system prompt and model-facing conversation for *request*.

    Only the latest user message is forwarded to the model; earlier turns stay
    in the UI transcript but are not sent.
    """
    # Spreadsheet parsing is blocking work
    plan = await asyncio.to_thread(resolve_plan, request)

    docs = await load_docx_from_dir(knowledge_dir or settings.KNOWLEDGE_DIR)
    excerpt = pick_relevant_excerpt(
        docs,
        plan.query,
        max_chars if max_chars is not None else settings.EXCERPT_MAX_CHARS,
    )

    last_user = latest_user_message(request.messages)
    logger.info(
        "Prompt built: mode=%s, query=%d chars, sources=%s",
        plan.mode.value,
        len(plan.query),
        excerpt.sources or "none",
    )
    return AssembledPrompt(
        system_prompt=compose_system_prompt(excerpt, plan.instruction),
        query=plan.query,
        mode=plan.mode,
        sources=excerpt.sources,
        conversation=[last_user] if last_user else [],
    )
