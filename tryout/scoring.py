"""
Scoring and per-category aggregation for a finished tryout session.
Score = round(correct / total * 100), total taken from the loaded question list.
"""
import logging
import math
from typing import Dict, List, Optional, Tuple

from engine import DEFAULT_MAIN_CATEGORY, DEFAULT_SUB_CATEGORY, HIGH_SCORE, MEDIUM_SCORE

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (round() would give 2 for 2.5)."""
    return int(math.floor(value + 0.5))


def category_key(question: Dict) -> Tuple[str, str]:
    """(main_category, sub_category) with the fixed fallbacks for untagged questions."""
    main = question.get("main_category") or DEFAULT_MAIN_CATEGORY
    sub = question.get("sub_category") or DEFAULT_SUB_CATEGORY
    return main, sub


def latest_answers(questions: List[Dict], answers: List[Dict]) -> Dict[str, Dict]:
    """Index answers by question id, dropping rows for unknown questions. Later rows win."""
    known = {str(q["id"]) for q in questions}
    by_question = {}
    for answer in answers:
        qid = str(answer.get("question_id"))
        if qid in known:
            by_question[qid] = answer
    return by_question


def compute_results(session: Dict, package: Dict, questions: List[Dict], answers: List[Dict]) -> Dict:
    """
    Aggregate a session's answers into totals and per-category stats.

    Args:
        session: TryoutSession row (only used for logging)
        package: QuestionPackage row; its total_questions field is ignored
        questions: the package's questions as loaded for the session
        answers: UserAnswer rows for the session

    Returns:
        {score, correct, wrong, unanswered, total, tag_stats}
    """
    total = len(questions)
    by_question = latest_answers(questions, answers)

    correct = sum(1 for a in by_question.values() if a.get("is_correct"))
    wrong = sum(1 for a in by_question.values() if not a.get("is_correct") and a.get("user_answer"))
    # Questions without an answer row plus rows holding an empty choice
    unanswered = total - correct - wrong
    score = round_half_up(correct / total * 100) if total else 0

    groups: Dict[Tuple[str, str], Dict] = {}
    for question in questions:
        main, sub = category_key(question)
        if (main, sub) not in groups:
            groups[(main, sub)] = {
                "main_category": main,
                "sub_category": sub,
                "total_questions": 0,
                "correct_answers": 0,
                "wrong_answers": 0,
                "unanswered": 0,
                "total_time_seconds": 0,
            }
        group = groups[(main, sub)]
        group["total_questions"] += 1

        answer = by_question.get(str(question["id"]))
        if answer is None:
            group["unanswered"] += 1
            continue
        if answer.get("is_correct"):
            group["correct_answers"] += 1
        elif answer.get("user_answer"):
            group["wrong_answers"] += 1
        else:
            group["unanswered"] += 1
        group["total_time_seconds"] += answer.get("time_spent_seconds") or 0

    tag_stats = []
    for group in groups.values():
        n = group["total_questions"]
        group["average_time_seconds"] = round_half_up(group["total_time_seconds"] / n) if n > 0 else 0
        tag_stats.append(group)

    logger.info(
        "Session %s scored %d (correct=%d, wrong=%d, unanswered=%d, groups=%d, package=%s)",
        session.get("id"), score, correct, wrong, unanswered, len(tag_stats), package.get("id"),
    )
    return {
        "score": score,
        "correct": correct,
        "wrong": wrong,
        "unanswered": unanswered,
        "total": total,
        "tag_stats": tag_stats,
    }


def build_tag_stats_rows(session: Dict, tag_stats: List[Dict]) -> List[Dict]:
    """QuestionTagStats payloads tied to the session, its user and its package."""
    return [
        {
            "session_id": session["id"],
            "user_id": session.get("user_id"),
            "package_id": session.get("package_id"),
            **stats,
        }
        for stats in tag_stats
    ]


def tag_accuracy(stats: Dict) -> int:
    total = stats.get("total_questions") or 0
    if total <= 0:
        return 0
    return round_half_up((stats.get("correct_answers") or 0) / total * 100)


def score_band(score: Optional[float]) -> str:
    if score is None:
        return "low"
    if score >= HIGH_SCORE:
        return "high"
    if score >= MEDIUM_SCORE:
        return "medium"
    return "low"


def format_duration(seconds: int) -> str:
    """H:MM:SS for an hour or more, M:SS otherwise."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
