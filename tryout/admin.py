"""Admin catalogue management: question packages and their questions."""
import logging
from typing import Dict, List, Optional

from engine import CHOICES, DEFAULT_DURATION_MINUTES, MAX_QUESTIONS_PER_PACKAGE
from tryout.database import DatabaseClient
from tryout.errors import ValidationError

logger = logging.getLogger(__name__)

OPTION_FIELDS = tuple(f"option_{c.lower()}" for c in CHOICES)


# ============= Packages =============

def list_packages(db: DatabaseClient, limit: int = 50) -> List[Dict]:
    return db.entity("QuestionPackage").list(order="-created_at", limit=limit)


def list_active_packages(db: DatabaseClient, limit: int = 10) -> List[Dict]:
    return db.entity("QuestionPackage").filter({"is_active": True}, order="-created_at", limit=limit)


def validate_package(fields: Dict) -> Dict:
    title = (fields.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required", field="title")
    try:
        duration = int(fields.get("duration_minutes") or DEFAULT_DURATION_MINUTES)
        price = float(fields.get("price") or 0)
    except (TypeError, ValueError):
        raise ValidationError("Duration and price must be numbers", field="duration_minutes")
    if duration < 1:
        raise ValidationError("Duration must be at least 1 minute", field="duration_minutes")
    if price < 0:
        raise ValidationError("Price cannot be negative", field="price")
    return {
        "title": title,
        "description": (fields.get("description") or "").strip(),
        "duration_minutes": duration,
        "price": price,
        "requires_payment": bool(fields.get("requires_payment", True)),
        "is_active": bool(fields.get("is_active", True)),
    }


def save_package(db: DatabaseClient, fields: Dict, package_id=None) -> Dict:
    """Create a package (with no questions yet) or update an existing one."""
    cleaned = validate_package(fields)
    store = db.entity("QuestionPackage")
    if package_id:
        saved = store.update(package_id, cleaned)
        logger.info("Package %s updated", package_id)
    else:
        saved = store.create({**cleaned, "total_questions": 0})
        logger.info("Package %s created: %s", saved["id"], cleaned["title"])
    return saved


def delete_package(db: DatabaseClient, package_id) -> None:
    db.entity("QuestionPackage").delete(package_id)


# ============= Questions =============

def list_questions(db: DatabaseClient, package_id, limit: int = MAX_QUESTIONS_PER_PACKAGE) -> List[Dict]:
    return db.entity("Question").filter({"package_id": str(package_id)}, order="question_number", limit=limit)


def next_question_number(questions: List[Dict]) -> int:
    return len(questions) + 1


def validate_question(fields: Dict) -> Dict:
    """All five options, the question text and a correct answer A-E are required."""
    cleaned = {"question_text": (fields.get("question_text") or "").strip()}
    if not cleaned["question_text"]:
        raise ValidationError("Question text is required", field="question_text")
    for name in OPTION_FIELDS:
        value = (fields.get(name) or "").strip()
        if not value:
            raise ValidationError(f"{name} is required", field=name)
        cleaned[name] = value
    answer = (fields.get("correct_answer") or "").strip().upper()
    if answer not in CHOICES:
        raise ValidationError(f"Correct answer must be one of {', '.join(CHOICES)}", field="correct_answer")
    cleaned["correct_answer"] = answer
    try:
        cleaned["question_number"] = int(fields.get("question_number") or 0)
    except (TypeError, ValueError):
        raise ValidationError("Question number must be a number", field="question_number")
    if cleaned["question_number"] < 1:
        raise ValidationError("Question number must be positive", field="question_number")
    cleaned["explanation"] = (fields.get("explanation") or "").strip()
    cleaned["main_category"] = (fields.get("main_category") or "").strip() or None
    cleaned["sub_category"] = (fields.get("sub_category") or "").strip() or None
    return cleaned


def sync_total_questions(db: DatabaseClient, package_id) -> int:
    """Recount the package's questions and store the count on the package."""
    count = db.entity("Question").count({"package_id": str(package_id)})
    db.entity("QuestionPackage").update(package_id, {"total_questions": count})
    return count


def save_question(db: DatabaseClient, package_id, fields: Dict, question_id=None) -> Dict:
    cleaned = validate_question(fields)
    store = db.entity("Question")
    if question_id:
        saved = store.update(question_id, {**cleaned, "package_id": str(package_id)})
    else:
        saved = store.create({**cleaned, "package_id": str(package_id)})
        sync_total_questions(db, package_id)
    logger.info("Question %s saved in package %s", saved["id"], package_id)
    return saved


def delete_question(db: DatabaseClient, package_id, question_id) -> int:
    """Delete a question and return the package's new question count."""
    db.entity("Question").delete(question_id)
    return sync_total_questions(db, package_id)
