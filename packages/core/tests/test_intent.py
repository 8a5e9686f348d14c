"""Tests for the owner-provided reviewer context store."""

import json
import logging

from revgate_core.intent import INTENT_FILE, clear_intent, get_intent, set_intent


def test_set_then_get(tmp_path):
    set_intent(str(tmp_path), "The retry change is intentional.")
    record = get_intent(str(tmp_path))
    assert record["message"] == "The retry change is intentional."
    assert "timestamp" in record


def test_set_creates_data_dir(tmp_path):
    data_dir = tmp_path / ".revgate"
    set_intent(str(data_dir), "hello")
    assert (data_dir / INTENT_FILE).exists()


def test_get_absent_returns_none(tmp_path):
    assert get_intent(str(tmp_path)) is None


def test_clear(tmp_path):
    set_intent(str(tmp_path), "hello")
    assert clear_intent(str(tmp_path)) is True
    assert get_intent(str(tmp_path)) is None
    assert clear_intent(str(tmp_path)) is False


def test_unreadable_record_ignored_with_warning(tmp_path, caplog):
    (tmp_path / INTENT_FILE).write_text("{broken")
    with caplog.at_level(logging.WARNING):
        assert get_intent(str(tmp_path)) is None
    assert caplog.records


def test_record_without_message_ignored(tmp_path):
    (tmp_path / INTENT_FILE).write_text(json.dumps({"timestamp": "2024-01-01T00:00:00+00:00"}))
    assert get_intent(str(tmp_path)) is None
