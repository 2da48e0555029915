"""
Course data mapper: form shape <-> storage shape.

Covers renames, numeric coercion, tag splitting, defaults on read and the
settings extraction. No I/O involved.
"""
from __future__ import annotations

from backend.teaching.mapping import (
    course_form_to_settings,
    course_form_to_storage,
    course_storage_to_form,
    lesson_form_to_storage,
    split_tags,
    topic_form_to_storage,
    unmapped_form_fields,
)


def test_to_storage_renames_and_coerces_numbers():
    row = course_form_to_storage(
        {
            "title": "Intro to SQL",
            "shortDescription": "Short",
            "description": "Long text",
            "price": "100",
            "maxStudents": "30",
        }
    )
    assert row["title"] == "Intro to SQL"
    assert row["description"] == "Short"
    assert row["about_course"] == "Long text"
    assert row["regular_price"] == 100.0
    assert row["max_students"] == 30
    assert row["is_free"] is False


def test_to_storage_splits_tags_and_drops_empties():
    row = course_form_to_storage({"title": "x", "courseTags": "a, b,, c "})
    assert row["course_tags"] == ["a", "b", "c"]


def test_to_storage_defaults_and_free_flag():
    row = course_form_to_storage({"title": "x", "price": "0"})
    assert row["is_free"] is True
    assert row["language"] == "English"
    assert row["difficulty_level"] == "All Levels"
    assert row["course_tags"] == []
    assert row["total_duration_hours"] == 0


def test_to_storage_unparseable_number_falls_back_to_default():
    row = course_form_to_storage({"title": "x", "price": "abc", "maxStudents": "many"})
    assert row["regular_price"] == 0
    assert row["max_students"] == 0


def test_to_storage_never_writes_absent_optional_keys():
    row = course_form_to_storage({"title": "x", "unknownField": 1})
    for key in ("slug", "category", "thumbnail_url", "status", "unknownField"):
        assert key not in row


def test_to_storage_legacy_duration_is_used_for_hours():
    assert course_form_to_storage({"duration": "12"})["total_duration_hours"] == 12
    assert course_form_to_storage({"totalDurationHours": 5, "duration": 12})["total_duration_hours"] == 5


def test_partial_mode_only_writes_sent_fields():
    row = course_form_to_storage({"title": "New"}, partial=True)
    assert row == {"title": "New"}


def test_to_form_defaults_for_empty_row():
    form = course_storage_to_form({})
    assert form["passingGrade"] == 70
    assert form["level"] == "all_levels"
    assert form["language"] == "English"
    assert form["price"] == 0
    assert form["maxStudents"] == 0
    assert form["lifetimeAccess"] is True
    assert form["status"] == "draft"
    assert form["courseTags"] == ""
    assert form["topics"] == []
    assert form["thumbnailPreview"] is None


def test_to_form_flattens_settings_and_keeps_zero_grade():
    form = course_storage_to_form(
        {
            "title": "T",
            "thumbnail_url": "https://cdn/x.png",
            "course_tags": ["a", "b"],
            "course_settings": [
                {"certificate_enabled": True, "passing_grade": 0, "allow_lifetime_access": False}
            ],
        }
    )
    assert form["certificateEnabled"] is True
    assert form["passingGrade"] == 0
    assert form["lifetimeAccess"] is False
    assert form["courseTags"] == "a, b"
    assert form["thumbnailPreview"] == "https://cdn/x.png"
    assert "thumbnail_url" not in form


def test_round_trip_preserves_mapped_fields():
    original = {
        "title": "Data",
        "shortDescription": "s",
        "description": "d",
        "language": "German",
        "level": "beginner",
        "courseTags": "a, b",
        "contentDripEnabled": True,
    }
    form = course_storage_to_form(course_form_to_storage(original))
    for key, value in original.items():
        assert form[key] == value


def test_to_settings_defaults_and_clamping():
    settings = course_form_to_settings({})
    assert settings["certificate_enabled"] is False
    assert settings["passing_grade"] == 70
    assert settings["max_students"] is None
    assert settings["allow_lifetime_access"] is True

    assert course_form_to_settings({"passingGrade": "150"})["passing_grade"] == 100
    assert course_form_to_settings({"passingGrade": -5})["passing_grade"] == 0
    assert course_form_to_settings({"lifetimeAccess": False})["allow_lifetime_access"] is False


def test_unmapped_fields_reports_unknown_keys_only():
    extra = unmapped_form_fields({"title": "x", "topics": [], "passingGrade": 70, "colour": "red"})
    assert extra == ["colour"]


def test_split_tags_ignores_non_strings():
    assert split_tags(None) == []
    assert split_tags(["a"]) == []


def test_lesson_form_renames_and_passes_snake_keys():
    row = lesson_form_to_storage({"videoUrl": "v", "duration": "15", "isPreview": 1, "content_type": "video"})
    assert row == {"video_url": "v", "duration_minutes": 15, "is_preview": True, "content_type": "video"}


def test_lesson_form_carries_topic_id():
    assert lesson_form_to_storage({"topicId": "t-1"}) == {"topic_id": "t-1"}
    assert lesson_form_to_storage({"topicId": ""}) == {"topic_id": None}


def test_topic_form_accepts_editor_and_storage_keys():
    assert topic_form_to_storage({"name": "Basics", "summary": "Start here"}) == {
        "title": "Basics",
        "description": "Start here",
    }
    assert topic_form_to_storage({"title": "", "name": "Fallback"}) == {"title": "Fallback"}
    assert topic_form_to_storage({"description": ""}) == {"description": None}
    assert topic_form_to_storage({"other": 1}) == {}
