"""Tests for system prompt assembly and request mode resolution."""
import asyncio
import base64
import time
from pathlib import Path

import pytest

from notegen.models.schemas import ChatRequest, NoteMode
from notegen.services.knowledge import ExcerptResult
from notegen.services import prompt_builder
from notegen.services.prompt_builder import (
    SYSTEM_PROMPT,
    build_prompt,
    compose_system_prompt,
    custom_mode_instruction,
    resolve_plan,
)
from notegen.services.scheme_parser import EmptyColumnError, SpreadsheetParseError, WeekTopic
from tests.conftest import assistant_message, make_docx, make_xlsx, user_message


def _xlsx_file(column_values, name="scheme.xlsx"):
    data = base64.b64encode(make_xlsx([column_values])).decode("ascii")
    return {"name": name, "type": "application/vnd.ms-excel", "data": data}


# ---------------------------------------------------------------------------
# Mode resolution
# ---------------------------------------------------------------------------

def test_conversational_mode_uses_latest_user_message():
    request = ChatRequest(messages=[
        user_message("Biology SS1 week 1", "m1"),
        assistant_message("# Week 1 - Living things", "a1"),
        user_message("Civic education SS2 week 3", "m2"),
    ])

    plan = resolve_plan(request)

    assert plan.mode is NoteMode.CONVERSATIONAL
    assert plan.query == "Civic education SS2 week 3"
    assert plan.instruction == ""


def test_conversational_query_joins_text_parts():
    request = ChatRequest(messages=[{
        "role": "user",
        "parts": [
            {"type": "text", "text": "Physics"},
            {"type": "file", "url": "blob:abc"},
            {"type": "text", "text": "motion"},
        ],
    }])
    assert resolve_plan(request).query == "Physics motion"


def test_spreadsheet_mode_lists_qualifying_weeks():
    request = ChatRequest(
        messages=[user_message("Generate")],
        file=_xlsx_file(["Topic A", "-", None, "Topic B"]),
    )

    plan = resolve_plan(request)

    assert plan.mode is NoteMode.SPREADSHEET
    assert plan.query == "Topic A Topic B"
    assert "- Week 1: Topic A\n- Week 4: Topic B" in plan.instruction
    assert "Week 2" not in plan.instruction
    assert 'skip weeks marked with "-"' in plan.instruction
    assert "Column 1 (A)" in plan.instruction
    assert 'H1 exactly as: "Week {N} - {topic}"' in plan.instruction


def test_spreadsheet_mode_names_selected_column():
    request = ChatRequest(
        messages=[user_message("Generate")],
        file={
            "name": "scheme.xlsx",
            "data": base64.b64encode(make_xlsx([["x"], ["Values"]])).decode("ascii"),
        },
        selectedColumn=2,
    )
    plan = resolve_plan(request)
    assert "Column 2 (B)" in plan.instruction
    assert "- Week 1: Values" in plan.instruction


def test_custom_mode_takes_precedence_over_file():
    request = ChatRequest(
        messages=[user_message("Generate")],
        file=_xlsx_file(["Spreadsheet topic"]),
        weeklySelections={"3": ["Energy"], "1": ["Matter", "States of matter"]},
    )

    plan = resolve_plan(request)

    assert plan.mode is NoteMode.CUSTOM
    assert "The user is in custom mode" in plan.instruction
    assert "uploaded a spreadsheet" not in plan.instruction
    assert "Spreadsheet topic" not in plan.instruction
    assert plan.query == "Matter States of matter Energy"


def test_custom_mode_ignores_broken_file():
    request = ChatRequest(
        messages=[user_message("Generate")],
        file={"name": "scheme.xlsx", "data": base64.b64encode(b"garbage").decode("ascii")},
        weeklySelections={1: ["Matter"]},
    )
    assert resolve_plan(request).mode is NoteMode.CUSTOM


def test_custom_mode_instruction_orders_weeks():
    text = custom_mode_instruction({10: ["Waves"], 2: ["Heat", "Light"]})
    assert text.index("- Week 2: Heat, Light") < text.index("- Week 10: Waves")
    assert 'H1 exactly as: "Week {N} - {topic}"' in text


@pytest.mark.parametrize(
    "extra",
    [
        {},
        {"weeklySelections": {1: ["Matter"]}},
        {"file": {"name": "s.xlsx", "data": base64.b64encode(make_xlsx([["Soil"]])).decode("ascii")}},
    ],
)
def test_class_level_hint_in_every_mode(extra):
    request = ChatRequest(messages=[user_message("Agric")], classLevel="JSS 2", **extra)
    plan = resolve_plan(request)
    assert "following class level: JSS 2." in plan.instruction


def test_invalid_base64_is_a_parse_error():
    request = ChatRequest(
        messages=[user_message("Generate")],
        file={"name": "scheme.xlsx", "data": "%%% not base64 %%%"},
    )
    with pytest.raises(SpreadsheetParseError):
        resolve_plan(request)


def test_data_url_upload_is_accepted():
    encoded = base64.b64encode(make_xlsx([["Soil"]])).decode("ascii")
    request = ChatRequest(
        messages=[user_message("Generate")],
        file={"name": "s.xlsx", "data": f"data:application/octet-stream;base64,{encoded}"},
    )
    assert resolve_plan(request).query == "Soil"


def test_empty_column_propagates():
    request = ChatRequest(
        messages=[user_message("Generate")],
        file=_xlsx_file(["-", None, "-"]),
    )
    with pytest.raises(EmptyColumnError):
        resolve_plan(request)


# ---------------------------------------------------------------------------
# Prompt composition
# ---------------------------------------------------------------------------

def test_compose_without_excerpt_is_template_plus_instruction():
    assert compose_system_prompt(ExcerptResult(), "") == SYSTEM_PROMPT
    assert compose_system_prompt(ExcerptResult(), "\n\nextra") == SYSTEM_PROMPT + "\n\nextra"


def test_compose_with_excerpt_names_sources_before_instruction():
    excerpt = ExcerptResult(combined="# Source: a.docx\n\nWeek 1", sources=["a.docx", "b.docx"])

    prompt = compose_system_prompt(excerpt, "\n\nMODE")

    assert prompt.startswith(SYSTEM_PROMPT)
    assert "Reference Excerpts (from: a.docx, b.docx):" in prompt
    assert "Follow the structure strictly." in prompt
    assert prompt.index("Follow the structure strictly.") < prompt.index("MODE")


@pytest.mark.asyncio
async def test_build_prompt_includes_knowledge_excerpt(knowledge_dir: Path):
    make_docx(knowledge_dir / "civic.docx", ["Civic education scheme", "Week 3: National values"])
    make_docx(knowledge_dir / "maths.docx", ["Mathematics scheme", "Week 3: Indices"])

    request = ChatRequest(messages=[
        user_message("Earlier question", "m1"),
        user_message("civic education values", "m2"),
    ])
    prompt = await build_prompt(request)

    assert prompt.mode is NoteMode.CONVERSATIONAL
    assert prompt.sources[0] == "civic.docx"
    assert "# Source: civic.docx" in prompt.system_prompt
    assert [m.id for m in prompt.conversation] == ["m2"]


@pytest.mark.asyncio
async def test_build_prompt_without_knowledge_base(tmp_path: Path):
    request = ChatRequest(messages=[user_message("Chemistry")])

    prompt = await build_prompt(request, knowledge_dir=str(tmp_path / "missing"))

    assert prompt.system_prompt == SYSTEM_PROMPT
    assert prompt.sources == []


@pytest.mark.asyncio
async def test_build_prompt_respects_budget(knowledge_dir: Path):
    make_docx(knowledge_dir / "long.docx", ["word " * 2000])
    request = ChatRequest(messages=[user_message("word")])

    prompt = await build_prompt(request, max_chars=300)

    start = prompt.system_prompt.index("# Source: long.docx")
    end = prompt.system_prompt.index("\n\n---\n\nFollow the structure strictly.")
    assert end - start <= 300


def test_empty_weekly_selections_is_not_custom_mode():
    request = ChatRequest(messages=[user_message("Agric SS1")], weeklySelections={})
    plan = resolve_plan(request)
    assert plan.mode is NoteMode.CONVERSATIONAL
    assert plan.query == "Agric SS1"


def test_csv_upload_without_name_uses_declared_type():
    request = ChatRequest(
        messages=[user_message("Generate")],
        file={
            "name": "",
            "type": "text/csv",
            "data": base64.b64encode(b"Soil\n-\nWater\n").decode("ascii"),
        },
    )
    plan = resolve_plan(request)
    assert plan.mode is NoteMode.SPREADSHEET
    assert "- Week 1: Soil\n- Week 3: Water" in plan.instruction


@pytest.mark.asyncio
async def test_spreadsheet_parsing_runs_off_the_event_loop(knowledge_dir: Path, monkeypatch):
    def slow_parse(data, filename="", column=1, media_type=None):
        time.sleep(0.3)
        return [WeekTopic(1, "Soil")]

    monkeypatch.setattr(prompt_builder, "parse_week_topics", slow_parse)

    gaps = []

    async def ticker():
        last = time.monotonic()
        while True:
            await asyncio.sleep(0.01)
            now = time.monotonic()
            gaps.append(now - last)
            last = now

    request = ChatRequest(messages=[user_message("Generate")], file=_xlsx_file(["Soil"]))

    task = asyncio.create_task(ticker())
    try:
        prompt = await build_prompt(request)
    finally:
        task.cancel()

    assert prompt.mode is NoteMode.SPREADSHEET
    assert gaps
    assert max(gaps) < 0.2
