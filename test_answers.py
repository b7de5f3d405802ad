"""Answer capture: upsert per (session, question), validation and the flush barrier."""
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import pytest

from tryout.answers import AnswerRecorder, build_answer_row
from tryout.errors import RemoteOperationFailure, ValidationError

SESSION = {"id": "s1", "status": "in_progress"}
QUESTION = {"id": "q1", "correct_answer": "C"}


def test_answer_row_marks_correctness():
    assert build_answer_row(SESSION, QUESTION, "C", 12)["is_correct"] is True
    row = build_answer_row(SESSION, QUESTION, "A", -3)
    assert row["is_correct"] is False
    assert row["time_spent_seconds"] == 0


def test_changing_answer_keeps_single_row(db, supabase, inline_executor):
    recorder = AnswerRecorder(db, executor=inline_executor)
    recorder.record_answer(SESSION, QUESTION, "A", 5)
    recorder.record_answer(SESSION, QUESTION, "C", 9)
    assert recorder.flush("s1") == []

    rows = supabase.rows("user_answers")
    assert len(rows) == 1
    assert rows[0]["user_answer"] == "C"
    assert rows[0]["is_correct"] is True
    assert rows[0]["time_spent_seconds"] == 9
    assert recorder.answered("s1") == {"q1": "C"}


def test_same_answer_twice_is_idempotent(db, supabase, inline_executor):
    recorder = AnswerRecorder(db, executor=inline_executor)
    recorder.record_answer(SESSION, QUESTION, "B", 5)
    recorder.record_answer(SESSION, QUESTION, "B", 5)
    recorder.flush("s1")
    assert len(supabase.rows("user_answers")) == 1


@pytest.mark.parametrize("choice", ["F", "a", "", None])
def test_invalid_choice_rejected(db, inline_executor, choice):
    recorder = AnswerRecorder(db, executor=inline_executor)
    with pytest.raises(ValidationError):
        recorder.record_answer(SESSION, QUESTION, choice, 1)
    assert recorder.answered("s1") == {}


def test_completed_session_rejects_answers(db, supabase, inline_executor):
    recorder = AnswerRecorder(db, executor=inline_executor)
    with pytest.raises(ValidationError):
        recorder.record_answer({"id": "s1", "status": "completed"}, QUESTION, "A", 1)
    assert supabase.rows("user_answers") == []


def test_flush_reports_failed_writes(db, supabase, inline_executor):
    supabase.fail("user_answers", "upsert")
    recorder = AnswerRecorder(db, executor=inline_executor)
    recorder.record_answer(SESSION, QUESTION, "A", 1)
    recorder.record_answer(SESSION, {"id": "q2", "correct_answer": "A"}, "A", 1)
    assert recorder.flush("s1") == ["q1", "q2"]
    # Already drained
    assert recorder.flush("s1") == []


def test_flush_waits_for_background_writes(db, supabase):
    recorder = AnswerRecorder(db, executor=ThreadPoolExecutor(max_workers=1))
    for i in range(20):
        recorder.record_answer(SESSION, {"id": f"q{i}", "correct_answer": "A"}, "A", i)
    assert recorder.flush("s1") == []
    assert len(supabase.rows("user_answers")) == 20
    recorder.shutdown()


def test_flush_is_per_session(db, supabase, inline_executor):
    supabase.fail("user_answers", "upsert")
    recorder = AnswerRecorder(db, executor=inline_executor)
    recorder.record_answer({"id": "other", "status": "in_progress"}, QUESTION, "A", 1)
    assert recorder.flush("s1") == []
    assert recorder.flush("other") == ["q1"]


def test_rejected_write_clears_choice_and_is_reported_once(db, supabase, inline_executor):
    recorder = AnswerRecorder(db, executor=inline_executor)
    recorder.record_answer(SESSION, {"id": "q2", "correct_answer": "A"}, "B", 1)
    supabase.fail("user_answers", "upsert")
    recorder.record_answer(SESSION, QUESTION, "C", 3)

    assert recorder.answered("s1") == {"q2": "B"}
    assert recorder.failed("s1") == ["q1"]
    assert recorder.failed("s1") == []

    supabase.recover("user_answers", "upsert")
    recorder.record_answer(SESSION, QUESTION, "C", 4)
    assert recorder.answered("s1") == {"q2": "B", "q1": "C"}
    assert recorder.failed("s1") == []


def test_older_rejected_write_keeps_newer_choice(db):
    # Writes complete only when run() is called, in submission order
    class ManualExecutor(Executor):
        def __init__(self):
            self.queued = []

        def submit(self, fn, *args, **kwargs):
            future = Future()
            self.queued.append((future, fn, args))
            return future

        def run(self):
            for future, fn, args in self.queued:
                try:
                    future.set_result(fn(*args))
                except Exception as e:
                    future.set_exception(e)

    class FlakyStore:
        calls = 0

        def upsert(self, row, on_conflict):
            FlakyStore.calls += 1
            if FlakyStore.calls == 1:
                raise RemoteOperationFailure("rejected")
            return row

    executor = ManualExecutor()
    recorder = AnswerRecorder(db, executor=executor)
    recorder.store = FlakyStore()
    recorder.record_answer(SESSION, QUESTION, "A", 1)
    recorder.record_answer(SESSION, QUESTION, "B", 2)
    executor.run()

    assert recorder.answered("s1") == {"q1": "B"}
    assert recorder.failed("s1") == []
