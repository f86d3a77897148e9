import asyncio

import pytest

from cbt_session.engine.editor import ContentEditorSession, apply_patch
from cbt_session.errors import InvalidEditError, ServiceError
from cbt_session.models.question_model import Question
from cbt_session.models.session_state import EditorState


@pytest.fixture
async def editor(content_service, scheduler):
    session = ContentEditorSession(content_service, "exam-1", scheduler)
    assert await session.load()
    yield session
    session.close()


def _question(**extra):
    data = {"id": "x", "section": "Math", "module": 1, "text": "2+2?",
            "choices": ["3", "4", "5"], "correct_answer": "4"}
    data.update(extra)
    return Question(**data)


# ── 정답-보기 연동 ───────────────────────────────────────────────────────────

def test_renaming_correct_choice_rewrites_correct_answer():
    q = apply_patch(_question(), {"choices": ["3", "four", "5"]})
    assert q.correct_answer == "four"


def test_renaming_other_choice_keeps_correct_answer():
    q = apply_patch(_question(), {"choices": ["three", "4", "5"]})
    assert q.correct_answer == "4"


def test_removing_correct_choice_clears_correct_answer():
    q = apply_patch(_question(correct_answer="5"), {"choices": ["3", "4"]})
    assert q.correct_answer == ""


def test_removing_other_choice_keeps_correct_answer():
    q = apply_patch(_question(choices=["A", "B", "C", "D"], correct_answer="C"), {"choices": ["A", "C", "D"]})
    assert q.correct_answer == "C"


def test_reordering_choices_keeps_correct_answer():
    q = apply_patch(_question(choices=["A", "B", "C"], correct_answer="A"), {"choices": ["C", "A", "B"]})
    assert q.correct_answer == "A"


def test_removing_correct_first_choice_clears_correct_answer():
    q = apply_patch(_question(choices=["A", "B", "C", "D"], correct_answer="A"), {"choices": ["B", "C", "D"]})
    assert q.correct_answer == ""


def test_patch_cannot_produce_stale_correct_answer():
    original = _question()
    with pytest.raises(InvalidEditError):
        apply_patch(original, {"choices": ["3", "six", "5"], "correct_answer": "4"})
    with pytest.raises(InvalidEditError):
        apply_patch(original, {"correct_answer": "7"})
    assert original.correct_answer == "4"


def test_unknown_field_rejected():
    with pytest.raises(InvalidEditError):
        apply_patch(_question(), {"id": "y"})


# ── 선택 / 초안 ──────────────────────────────────────────────────────────────

async def test_load_sets_first_module_filter(editor):
    assert editor.navigator.filter == ("Reading", 1)
    assert [q.id for q in editor.navigator.questions] == ["a", "b"]
    assert editor.state is EditorState.IDLE


async def test_switching_question_discards_unsaved_draft(editor, content_service):
    editor.select_question("a")
    editor.edit({"text": "Edited prompt"})
    assert editor.dirty

    editor.select_question("b")
    assert not editor.dirty
    assert not editor.autosave_pending

    draft = editor.select_question("a")
    assert draft.question.text == "Prompt a"
    assert content_service.updates == []


async def test_edit_choice_keeps_correct_answer_in_sync(editor):
    editor.select_question("a")
    draft = editor.edit_choice(1, "B (revised)")
    assert draft.question.choices[1] == "B (revised)"
    assert draft.question.correct_answer == "B (revised)"

    draft = editor.edit_choice(0, "A (revised)")
    assert draft.question.correct_answer == "B (revised)"


async def test_invalid_edit_leaves_draft_untouched(editor):
    editor.select_question("a")
    with pytest.raises(InvalidEditError):
        editor.set_correct_answer("not a choice")
    assert editor.draft.question.correct_answer == "B"
    assert not editor.dirty
    with pytest.raises(InvalidEditError):
        editor.edit_choice(9, "x")


async def test_edit_without_selection_raises(editor):
    with pytest.raises(RuntimeError):
        editor.edit({"text": "x"})


# ── 저장 ─────────────────────────────────────────────────────────────────────

async def test_debounce_saves_after_quiet_period(editor, content_service, scheduler):
    editor.select_question("a")
    editor.edit({"text": "one"})
    scheduler.advance(1.5)
    editor.edit({"text": "two"})
    scheduler.advance(1.5)
    await editor.join()
    assert content_service.updates == []

    scheduler.advance(0.5)
    await editor.join()

    assert [q.text for q in content_service.updates] == ["two"]
    assert not editor.dirty
    assert editor.state is EditorState.EDITING
    assert editor.persisted("a").text == "two"


async def test_save_sends_full_question(editor, content_service):
    editor.select_question("a")
    editor.edit({"explanation": "Because."})
    assert await editor.save()

    saved = content_service.updates[0]
    assert saved.id == "a"
    assert saved.text == "Prompt a"
    assert saved.choices == ["A", "B", "C", "D"]
    assert saved.correct_answer == "B"
    assert saved.difficulty == "Easy"
    assert saved.explanation == "Because."


async def test_save_failure_is_reported_and_keeps_dirty(content_service, scheduler):
    errors = []
    editor = ContentEditorSession(content_service, "exam-1", scheduler, on_error=errors.append)
    await editor.load()
    editor.select_question("a")
    editor.edit({"text": "draft"})
    content_service.update_error = ServiceError("HTTP 500", status_code=500)

    assert not await editor.save()
    assert editor.dirty
    assert editor.last_error and "HTTP 500" in editor.last_error
    assert errors == [editor.last_error]
    assert editor.persisted("a").text == "Prompt a"

    content_service.update_error = None
    assert await editor.save()
    assert not editor.dirty
    assert editor.last_error is None
    editor.close()


async def test_edit_during_save_stays_dirty(editor, content_service):
    content_service.update_gate = asyncio.Event()
    editor.select_question("a")
    editor.edit({"text": "first"})

    task = asyncio.create_task(editor.save())
    await asyncio.sleep(0)
    assert editor.state is EditorState.SAVING
    editor.edit({"text": "second"})

    content_service.update_gate.set()
    assert await task
    assert editor.dirty
    assert editor.persisted("a").text == "first"
    assert editor.draft.question.text == "second"


async def test_save_and_advance_waits_for_save(editor, content_service):
    editor.select_question("a")
    editor.edit({"text": "edited"})

    assert await editor.save_and_advance()
    assert content_service.updates[0].text == "edited"
    assert editor.selected_id == "b"
    assert not editor.dirty


async def test_save_and_advance_stays_on_failure(editor, content_service):
    editor.select_question("a")
    editor.edit({"text": "edited"})
    content_service.update_error = ServiceError("offline")

    assert not await editor.save_and_advance()
    assert editor.selected_id == "a"
    assert editor.draft.question.text == "edited"


async def test_save_and_advance_keeps_edit_made_during_save(editor, content_service):
    content_service.update_gate = asyncio.Event()
    editor.select_question("a")
    editor.edit({"text": "first"})

    task = asyncio.create_task(editor.save_and_advance())
    await asyncio.sleep(0)
    editor.edit({"text": "second"})
    content_service.update_gate.set()

    assert await task
    assert [q.text for q in content_service.updates] == ["first", "second"]
    assert editor.persisted("a").text == "second"
    assert editor.selected_id == "b"


async def test_save_and_advance_outside_filter_stays(editor):
    editor.select_question("a")
    editor.set_filter("Math", 1)
    editor.edit({"text": "edited"})

    assert await editor.save_and_advance()
    assert editor.selected_id == "a"
    assert not editor.dirty


async def test_filter_back_to_draft_module_restores_position(editor):
    editor.select_question("a")
    editor.set_filter("Math", 1)
    editor.set_filter("Reading", 1)
    assert editor.navigator.current_index == 0

    assert await editor.save_and_advance()
    assert editor.selected_id == "b"


async def test_save_and_advance_at_last_question_stays(editor):
    editor.select_question("b")
    assert await editor.save_and_advance()
    assert editor.selected_id == "b"


async def test_close_cancels_debounce_without_saving(editor, content_service, scheduler):
    editor.select_question("a")
    editor.edit({"text": "unsaved"})
    editor.close()
    scheduler.advance(10)
    await editor.join()
    assert content_service.updates == []


# ── 추가 / 삭제 / 불러오기 ──────────────────────────────────────────────────

async def test_add_question_uses_active_filter(editor, content_service):
    editor.set_filter("Math", 1)
    created = await editor.add_question()

    assert content_service.created[0]["section"] == "Math"
    assert content_service.created[0]["module"] == 1
    assert created.correct_answer == "Option A"
    assert editor.selected_id == created.id
    assert [q.id for q in editor.navigator.questions] == ["d", created.id]


async def test_delete_question(editor, content_service):
    editor.select_question("b")
    assert await editor.delete_question()
    assert content_service.deleted == ["b"]
    assert editor.state is EditorState.IDLE
    assert [q.id for q in editor.navigator.questions] == ["a"]


async def test_slow_load_then_failure(content_service, scheduler):
    content_service.get_gate = asyncio.Event()
    content_service.get_error = ServiceError("down")
    editor = ContentEditorSession(content_service, "exam-1", scheduler)

    task = asyncio.create_task(editor.load())
    await asyncio.sleep(0)
    scheduler.advance(15)
    assert editor.is_slow

    content_service.get_gate.set()
    assert not await task
    assert not editor.is_slow
    assert "down" in editor.last_error
