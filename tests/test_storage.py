"""
Tests for the SQLite analysis store
"""

import pytest

from heartlens.storage import AnalysisStore


@pytest.fixture
def store(tmp_path):
    return AnalysisStore(tmp_path / "heartlens_test.db")


def test_request_lifecycle(store):
    request_id = store.create_analysis_request("u1", "Alex", "Sam", 2)

    row = store.get_analysis_request(request_id)
    assert row["status"] == "processing"
    assert row["screenshot_count"] == 2
    assert row["results"] is None

    assert store.complete_analysis_request(request_id, {"relationship_health": 72})
    row = store.get_analysis_request(request_id)
    assert row["status"] == "completed"
    assert row["results"] == {"relationship_health": 72}
    assert row["completed_at"] is not None


def test_failed_request(store):
    request_id = store.create_analysis_request("", None, None, 1)

    assert store.fail_analysis_request(request_id, "OCR exploded")
    row = store.get_analysis_request(request_id)
    assert row["status"] == "failed"
    assert row["error"] == "OCR exploded"
    assert row["user_id"] == "anonymous"


def test_missing_request(store):
    assert store.get_analysis_request(999) is None
    assert store.complete_analysis_request(999, {}) is False


def test_text_analyses(store):
    store.insert_text_analysis("u1", {"text": "hi", "confidence": 0.9, "sentiment": {}})
    store.insert_text_analysis("u2", {"text": "other", "confidence": 0.5})

    rows = store.list_text_analyses("u1")
    assert len(rows) == 1
    assert rows[0]["raw_text"] == "hi"
    assert rows[0]["ocr_confidence"] == 0.9
    assert rows[0]["analysis_results"]["sentiment"] == {}


def test_sync_replaces_categories_but_keeps_text_analyses(store):
    store.insert_text_analysis("u1", {"text": "hi", "confidence": 0.9})
    first = [{"category": "trust", "subject_a_score": 0.7, "subject_b_score": 0.6,
              "comparison": "similar", "subject_a_insights": ["a"], "subject_b_insights": ["b"],
              "message_patterns": {"count": 3}}]
    gottman = [{"horseman": "criticism", "description": "d", "presence": 0.2,
                "examples": ["you never"], "recommendations": ["soft startup"]}]

    assert store.sync_analysis("u1", first, gottman) == {"analysis_results": 1, "gottman_analyses": 1}
    second = [{"category": "joy", "subject_a_score": 0.5}]
    assert store.sync_analysis("u1", second, []) == {"analysis_results": 1, "gottman_analyses": 0}

    categories = store.list_category_results("u1")
    assert [c["category"] for c in categories] == ["joy"]
    assert categories[0]["subject_b_insights"] is None
    assert store.list_gottman_analyses("u1") == []
    assert len(store.list_text_analyses("u1")) == 1


def test_sync_decodes_json_columns(store):
    gottman = [{"horseman": "contempt", "presence": 0.4, "examples": ["whatever"], "recommendations": []}]
    store.sync_analysis("u1", [{"category": "trust", "message_patterns": {"n": 1}}], gottman)

    assert store.list_category_results("u1")[0]["message_patterns"] == {"n": 1}
    saved = store.list_gottman_analyses("u1")[0]
    assert saved["horseman"] == "contempt"
    assert saved["examples"] == ["whatever"]


def test_sync_requires_user(store):
    with pytest.raises(ValueError):
        store.sync_analysis("", [], [])


def test_ping(store):
    assert store.ping() is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
