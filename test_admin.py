"""Admin catalogue: packages and questions."""
import pytest

from conftest import make_question
from tryout import admin
from tryout.errors import NotFoundError, ValidationError


def test_new_package_starts_empty(db):
    package = admin.save_package(db, {"title": " Tryout Akbar ", "duration_minutes": "90", "price": "25000"})
    assert package["title"] == "Tryout Akbar"
    assert package["duration_minutes"] == 90
    assert package["total_questions"] == 0
    assert package["requires_payment"] is True


def test_update_package(db):
    package = admin.save_package(db, {"title": "A"})
    updated = admin.save_package(db, {"title": "B", "is_active": False}, package_id=package["id"])
    assert updated["title"] == "B"
    assert admin.list_active_packages(db) == []


def test_update_missing_package(db):
    with pytest.raises(NotFoundError):
        admin.save_package(db, {"title": "B"}, package_id="missing")


@pytest.mark.parametrize("fields", [{"title": ""}, {"title": "x", "duration_minutes": -5}, {"title": "x", "price": -1}, {"title": "x", "price": "free"}])
def test_invalid_package(fields):
    with pytest.raises(ValidationError):
        admin.validate_package(fields)


def test_question_count_tracks_create_and_delete(db):
    package = admin.save_package(db, {"title": "A"})
    first = admin.save_question(db, package["id"], make_question(package["id"], 1))
    admin.save_question(db, package["id"], make_question(package["id"], 2))
    assert db.entity("QuestionPackage").get(package["id"])["total_questions"] == 2

    assert admin.delete_question(db, package["id"], first["id"]) == 1
    assert db.entity("QuestionPackage").get(package["id"])["total_questions"] == 1


def test_question_count_covers_large_packages(db):
    package = admin.save_package(db, {"title": "A"})
    db.client.table("questions").insert([make_question(package["id"], i) for i in range(1, 206)]).execute()
    assert admin.sync_total_questions(db, package["id"]) == 205
    assert db.entity("QuestionPackage").get(package["id"])["total_questions"] == 205


def test_edit_question_keeps_count(db):
    package = admin.save_package(db, {"title": "A"})
    question = admin.save_question(db, package["id"], make_question(package["id"], 1))
    edited = admin.save_question(
        db, package["id"], {**make_question(package["id"], 1), "question_text": "Baru", "correct_answer": "d"},
        question_id=question["id"],
    )
    assert edited["question_text"] == "Baru"
    assert edited["correct_answer"] == "D"
    assert len(admin.list_questions(db, package["id"])) == 1


def test_next_question_number():
    assert admin.next_question_number([]) == 1
    assert admin.next_question_number([{}, {}]) == 3


def test_blank_categories_stored_as_none():
    cleaned = admin.validate_question({**make_question("p", 1), "main_category": " ", "sub_category": ""})
    assert cleaned["main_category"] is None
    assert cleaned["sub_category"] is None


@pytest.mark.parametrize("override", [
    {"question_text": ""},
    {"option_c": "  "},
    {"correct_answer": "F"},
    {"question_number": 0},
    {"question_number": "x"},
])
def test_invalid_question(override):
    with pytest.raises(ValidationError):
        admin.validate_question({**make_question("p", 1), **override})
