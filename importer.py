"""Ingest .jsonl question banks into one question package, then resync its total_questions."""
import json
import argparse
import logging
from pathlib import Path

from engine import CHOICES, MAX_QUESTIONS_PER_PACKAGE
from tryout.admin import OPTION_FIELDS, sync_total_questions, validate_question
from tryout.errors import ValidationError

logger = logging.getLogger(__name__)

# Bank topics -> SKD main category
TOPIC_CATEGORIES = {
    "twk": "TWK", "wawasan kebangsaan": "TWK", "pancasila": "TWK", "nasionalisme": "TWK",
    "tiu": "TIU", "intelegensia umum": "TIU", "verbal": "TIU", "numerik": "TIU", "figural": "TIU",
    "tkp": "TKP", "karakteristik pribadi": "TKP", "pelayanan publik": "TKP",
}


def topic_to_category(topic: str) -> str | None:
    """Map a free-text topic to TWK/TIU/TKP; None when nothing matches (scored as Non Tag)."""
    t = (topic or "").strip().lower().replace("_", " ")
    if not t:
        return None
    if t in TOPIC_CATEGORIES:
        return TOPIC_CATEGORIES[t]
    for key, category in TOPIC_CATEGORIES.items():
        if key in t:
            return category
    return None


def parse_line(line: str, number: int) -> dict | None:
    """Parse one JSONL line into a questions row. Returns None if invalid/skip."""
    line = line.strip()
    if not line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None

    fields = {
        "question_number": raw.get("question_number") or number,
        "question_text": raw.get("question_text") or raw.get("text") or "",
        "explanation": raw.get("explanation") or "",
        "sub_category": raw.get("sub_category") or raw.get("topic") or "",
        "main_category": raw.get("main_category") or topic_to_category(raw.get("topic")) or "",
    }
    options = raw.get("options")
    if isinstance(options, list):
        # Exactly five options A-E
        if len(options) != len(CHOICES):
            return None
        fields.update(zip(OPTION_FIELDS, options))
    else:
        fields.update({name: raw.get(name) for name in OPTION_FIELDS})

    answer = raw.get("correct_answer")
    if answer is None and isinstance(raw.get("correct_option"), int) and 0 <= raw["correct_option"] < len(CHOICES):
        answer = CHOICES[raw["correct_option"]]
    fields["correct_answer"] = answer

    try:
        return validate_question(fields)
    except ValidationError as e:
        logger.warning("Skipping line %d: %s", number, e.message)
        return None


def load_and_transform(path: Path, start_number: int = 1):
    """Read JSONL and yield validated question rows, numbered from start_number."""
    number = start_number
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            row = parse_line(line, number)
            if row:
                number += 1
                yield row


def insert_questions_bulk(db, package_id: str, rows: list[dict], chunk_size: int = 100) -> int:
    client = db.client
    for i in range(0, len(rows), chunk_size):
        chunk = [{**row, "package_id": str(package_id)} for row in rows[i:i + chunk_size]]
        client.table("questions").insert(chunk).execute()
        logger.info("Inserted questions %d-%d", i + 1, i + len(chunk))
    return len(rows)


def delete_package_questions(db, package_id: str) -> None:
    db.client.table("questions").delete().eq("package_id", str(package_id)).execute()


def run_import(db, package_id: str, jsonl_path: Path, chunk_size: int = 100, dry_run: bool = False, replace: bool = False) -> int:
    """Import the file into the package. Returns the package's question count afterwards."""
    if not jsonl_path.exists():
        raise FileNotFoundError(f"JSONL not found: {jsonl_path}")
    package = db.entity("QuestionPackage").get(package_id)
    existing = 0 if replace else db.entity("Question").count({"package_id": str(package_id)})
    rows = list(load_and_transform(jsonl_path, start_number=existing + 1))
    room = MAX_QUESTIONS_PER_PACKAGE - existing
    if len(rows) > room:
        logger.warning("Package %s holds at most %d questions; dropping %d rows", package_id, MAX_QUESTIONS_PER_PACKAGE, len(rows) - room)
        rows = rows[:max(0, room)]

    if dry_run:
        print(f"Dry run: would insert {len(rows)} questions into '{package['title']}' from {jsonl_path}")
        if rows:
            print("Sample row:", rows[0])
        return existing + len(rows)

    if replace:
        delete_package_questions(db, package_id)
        print(f"Deleted existing questions of '{package['title']}'")
    insert_questions_bulk(db, package_id, rows, chunk_size=chunk_size)
    total = sync_total_questions(db, package_id)
    print(f"Inserted {len(rows)} questions from {jsonl_path}; package now has {total}")
    return total


if __name__ == "__main__":
    from db import get_database_uncached

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    parser = argparse.ArgumentParser(description="Import a JSONL question bank into a Supabase question package.")
    parser.add_argument("package_id", help="Target question_packages.id")
    parser.add_argument("jsonl", help="Path to .jsonl (one question per line)")
    parser.add_argument("--chunk-size", type=int, default=100, help="Insert chunk size (default 100)")
    parser.add_argument("--dry-run", action="store_true", help="Parse and validate only, do not insert")
    parser.add_argument("--replace", action="store_true", help="Delete the package's questions first (fresh import)")
    args = parser.parse_args()
    run_import(
        get_database_uncached(), args.package_id, Path(args.jsonl),
        chunk_size=args.chunk_size, dry_run=args.dry_run, replace=args.replace,
    )
