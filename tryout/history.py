"""
Session history, per-package ranking and package statistics.
"""
import logging
from typing import Dict, Iterable, List, Optional

from tryout.database import DatabaseClient
from tryout.errors import NotFoundError, RemoteOperationFailure
from tryout.payments import COMPLETED, parse_timestamp
from tryout.scoring import round_half_up, tag_accuracy

logger = logging.getLogger(__name__)

UNKNOWN_USER = "Pengguna"


def list_user_sessions(db: DatabaseClient, user_id, limit: int = 50) -> List[Dict]:
    return db.entity("TryoutSession").filter({"user_id": str(user_id)}, order="-created_at", limit=limit)


def load_packages(db: DatabaseClient, package_ids: Iterable) -> Dict[str, Dict]:
    """{package_id: package} for the given ids; missing or failing ones are skipped."""
    store = db.entity("QuestionPackage")
    packages = {}
    for package_id in dict.fromkeys(package_ids):
        try:
            packages[package_id] = store.get(package_id)
        except (NotFoundError, RemoteOperationFailure) as e:
            logger.error("Error loading package %s: %s", package_id, e.message)
    return packages


def load_user_names(db: DatabaseClient, user_ids: Iterable) -> Dict[str, str]:
    store = db.entity("User")
    names = {}
    for user_id in dict.fromkeys(user_ids):
        try:
            names[user_id] = store.get(user_id).get("full_name") or UNKNOWN_USER
        except (NotFoundError, RemoteOperationFailure) as e:
            logger.error("Error loading user %s: %s", user_id, e.message)
            names[user_id] = UNKNOWN_USER
    return names


def session_details(db: DatabaseClient, session: Dict) -> Dict:
    """Answers and per-category stats of one session, with accuracy per category."""
    answers = db.entity("UserAnswer").filter({"session_id": session["id"]})
    tag_stats = db.entity("QuestionTagStats").filter({"session_id": session["id"]})
    for stats in tag_stats:
        stats["accuracy"] = tag_accuracy(stats)
    return {"session": session, "answers": answers, "tag_stats": tag_stats}


def session_duration_minutes(session: Dict) -> Optional[int]:
    if not session.get("start_time") or not session.get("end_time"):
        return None
    delta = parse_timestamp(session["end_time"]) - parse_timestamp(session["start_time"])
    return round_half_up(delta.total_seconds() / 60)


def history_stats(sessions: List[Dict]) -> Optional[Dict]:
    """
    Aggregate over completed sessions.

    Returns:
        {total_sessions, average_score, highest_score, accuracy} or None when
        nothing has been completed yet
    """
    completed = [s for s in sessions if s.get("status") == "completed"]
    if not completed:
        return None
    scores = [s.get("total_score") or 0 for s in completed]
    total_questions = sum(
        (s.get("correct_answers") or 0) + (s.get("wrong_answers") or 0) + (s.get("unanswered") or 0)
        for s in completed
    )
    total_correct = sum(s.get("correct_answers") or 0 for s in completed)
    return {
        "total_sessions": len(completed),
        "average_score": round_half_up(sum(scores) / len(completed)),
        "highest_score": max(scores),
        "accuracy": round_half_up(total_correct / total_questions * 100) if total_questions > 0 else 0,
    }


def package_ranking(db: DatabaseClient, package_id, limit: int = 5) -> List[Dict]:
    """Top completed sessions for a package, best score first."""
    sessions = db.entity("TryoutSession").filter(
        {"package_id": str(package_id), "status": "completed"}, order="-total_score", limit=limit
    )
    names = load_user_names(db, [s.get("user_id") for s in sessions])
    return [
        {"rank": i + 1, "user_name": names.get(s.get("user_id"), UNKNOWN_USER), "session": s}
        for i, s in enumerate(sessions)
    ]


def package_stats(db: DatabaseClient, package_id, limit: int = 50) -> Dict:
    """Sales and score overview of one package for the admin dashboard."""
    payments = db.entity("Payment").filter({"package_id": str(package_id), "status": COMPLETED})
    sessions = db.entity("TryoutSession").filter(
        {"package_id": str(package_id), "status": "completed"}, order="-total_score", limit=limit
    )
    scores = [s.get("total_score") or 0 for s in sessions]
    return {
        "payments": payments,
        "sessions": sessions,
        "user_names": load_user_names(db, [s.get("user_id") for s in sessions]),
        "total_payments": len(payments),
        "revenue": sum(p.get("amount") or 0 for p in payments),
        "total_sessions": len(sessions),
        "average_score": round_half_up(sum(scores) / len(scores)) if scores else 0,
        "highest_score": max(scores) if scores else 0,
    }
