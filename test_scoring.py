"""Scoring and per-category aggregation."""
import pytest

from tryout.scoring import (
    build_tag_stats_rows,
    category_key,
    compute_results,
    format_duration,
    latest_answers,
    round_half_up,
    score_band,
    tag_accuracy,
)

SESSION = {"id": "s1", "user_id": "u1", "package_id": "p1"}
PACKAGE = {"id": "p1", "total_questions": 999}


def questions(n, main="TWK", sub="Pancasila"):
    return [{"id": f"q{i}", "main_category": main, "sub_category": sub, "correct_answer": "A"} for i in range(1, n + 1)]


def answer(qid, choice, correct, seconds=10):
    return {"question_id": qid, "user_answer": choice, "is_correct": correct, "time_spent_seconds": seconds}


def test_three_of_five_correct_scores_sixty():
    qs = questions(5)
    answers = [
        answer("q1", "A", True),
        answer("q2", "A", True),
        answer("q3", "A", True),
        answer("q4", "B", False),
    ]
    result = compute_results(SESSION, PACKAGE, qs, answers)
    assert result["score"] == 60
    assert (result["correct"], result["wrong"], result["unanswered"]) == (3, 1, 1)
    assert result["total"] == 5


def test_blank_answer_row_counts_as_unanswered():
    qs = questions(5)
    answers = [
        answer("q1", "A", True),
        answer("q2", "A", True),
        answer("q3", "A", True),
        answer("q4", "B", False),
        answer("q5", None, False),
    ]
    result = compute_results(SESSION, PACKAGE, qs, answers)
    assert (result["correct"], result["wrong"], result["unanswered"]) == (3, 1, 1)
    assert result["tag_stats"][0]["unanswered"] == 1


def test_tag_group_times_and_average():
    qs = questions(2, main="TIU", sub="Aritmatika")
    answers = [answer("q1", "A", True, 30), answer("q2", "C", False, 50)]
    result = compute_results(SESSION, PACKAGE, qs, answers)
    assert result["tag_stats"] == [{
        "main_category": "TIU",
        "sub_category": "Aritmatika",
        "total_questions": 2,
        "correct_answers": 1,
        "wrong_answers": 1,
        "unanswered": 0,
        "total_time_seconds": 80,
        "average_time_seconds": 40,
    }]


def test_untagged_questions_fall_back_to_default_group():
    qs = [{"id": "q1", "main_category": None, "sub_category": ""}, {"id": "q2", "main_category": "TKP", "sub_category": None}]
    result = compute_results(SESSION, PACKAGE, qs, [])
    keys = [(t["main_category"], t["sub_category"]) for t in result["tag_stats"]]
    assert keys == [("Non Tag", "Umum"), ("TKP", "Umum")]
    assert all(t["unanswered"] == 1 for t in result["tag_stats"])


def test_groups_partition_the_questions():
    qs = questions(3, "TWK", "Pancasila") + [
        {"id": "x1", "main_category": "TIU", "sub_category": "Verbal"},
        {"id": "x2", "main_category": "TIU", "sub_category": "Verbal"},
    ]
    answers = [answer("q1", "A", True), answer("x1", "B", False), answer("x2", "A", True)]
    result = compute_results(SESSION, PACKAGE, qs, answers)
    assert sum(t["total_questions"] for t in result["tag_stats"]) == len(qs)
    for t in result["tag_stats"]:
        assert t["correct_answers"] + t["wrong_answers"] + t["unanswered"] == t["total_questions"]
    assert result["correct"] + result["wrong"] + result["unanswered"] == result["total"]


def test_total_comes_from_loaded_questions_not_package():
    result = compute_results(SESSION, PACKAGE, questions(4), [answer("q1", "A", True)])
    assert result["score"] == 25


def test_no_questions_scores_zero():
    result = compute_results(SESSION, PACKAGE, [], [])
    assert result["score"] == 0
    assert result["tag_stats"] == []


def test_answers_for_unknown_questions_are_ignored():
    by_question = latest_answers(questions(1), [answer("q1", "B", False), answer("zz", "A", True), answer("q1", "A", True)])
    assert list(by_question) == ["q1"]
    assert by_question["q1"]["is_correct"] is True


def test_tag_stats_rows_carry_session_identity():
    rows = build_tag_stats_rows(SESSION, [{"main_category": "TWK", "sub_category": "Umum"}])
    assert rows[0]["session_id"] == "s1"
    assert rows[0]["user_id"] == "u1"
    assert rows[0]["package_id"] == "p1"


@pytest.mark.parametrize("value,expected", [(2.5, 3), (66.666, 67), (0.4999, 0), (40.0, 40)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_category_key_defaults():
    assert category_key({}) == ("Non Tag", "Umum")
    assert category_key({"main_category": "TIU", "sub_category": "Figural"}) == ("TIU", "Figural")


def test_tag_accuracy():
    assert tag_accuracy({"total_questions": 3, "correct_answers": 2}) == 67
    assert tag_accuracy({"total_questions": 0, "correct_answers": 0}) == 0


@pytest.mark.parametrize("score,band", [(80, "high"), (79, "medium"), (60, "medium"), (59, "low"), (None, "low")])
def test_score_band(score, band):
    assert score_band(score) == band


def test_format_duration():
    assert format_duration(6600) == "1:50:00"
    assert format_duration(65) == "1:05"
    assert format_duration(-3) == "0:00"
