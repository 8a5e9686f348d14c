"""Tests for revgate-store implementations.

Behaviour shared through BaseJobStore (transitions, re-submission, artifact
naming) runs against both backends via the parametrized ``store`` fixture.
Backend-specific tests cover only the on-disk layout.
"""

from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import replace

import pytest

from revgate_core.models import Blocker, BlockReview, DiffSummary, JobStatus, PassReview, ReviewRequest
from revgate_store import (
    FileJobStore,
    InvalidTransitionError,
    JobCorruptError,
    JobExistsError,
    JobNotFoundError,
    ReviewNotFoundError,
    SQLiteJobStore,
)


def _request(key="job-1", objective="Fix x") -> ReviewRequest:
    return ReviewRequest(
        kind="range",
        diff="+x = 1\n",
        summary=DiffSummary(files=1, additions=1, deletions=0, bytes=7),
        job_key=key,
        old_revision="a" * 40,
        new_revision="b" * 40,
        ref="refs/heads/main",
        objective=objective,
        model="gpt-4o",
        extra_params={"seed": 1},
    )


PASS = PassReview(status="pass", blockers=[], notes=["Nice."])
BLOCK = BlockReview(
    status="block",
    blockers=[Blocker(rule="r", title="Leak", file="a.py", line_start=2, line_end=3, why="w", suggested_fix="close it")],
    notes=[],
)


@pytest.fixture(params=["file", "sqlite"])
def store(request, tmp_path):
    if request.param == "file":
        s = FileJobStore(str(tmp_path / ".revgate"))
    else:
        s = SQLiteJobStore(str(tmp_path / "revgate.db"))
    yield s
    s.close()


def _corrupt(store, key):
    """Overwrite a job record with unparsable content, whatever the backend."""
    if isinstance(store, FileJobStore):
        os.makedirs(store.jobs_dir, exist_ok=True)
        with open(os.path.join(store.jobs_dir, f"{key}.json"), "w") as f:
            f.write("{truncated")
    else:
        store._conn.execute(
            "INSERT OR REPLACE INTO jobs (key, status, record_json) VALUES (?, ?, ?)", (key, "pending", "{truncated")
        )
        store._conn.commit()


# ---------------------------------------------------------------------------
# Job lifecycle (both backends)
# ---------------------------------------------------------------------------


class TestJobLifecycle:
    def test_create_then_load_round_trip(self, store):
        store.create(_request())
        job = store.load("job-1")
        assert job.status == JobStatus.PENDING
        assert job.log == []
        assert job.request == replace(_request(), created_at=job.request.created_at)
        assert job.request.objective == "Fix x"
        assert job.request.extra_params == {"seed": 1}

    def test_missing_job(self, store):
        assert store.exists("nope") is False
        with pytest.raises(JobNotFoundError):
            store.load("nope")

    def test_corrupt_record_is_an_error(self, store):
        _corrupt(store, "job-1")
        assert store.exists("job-1") is True
        with pytest.raises(JobCorruptError):
            store.load("job-1")

    def test_duplicate_create_rejected(self, store):
        store.create(_request())
        with pytest.raises(JobExistsError):
            store.create(_request())

    def test_failed_job_can_be_recreated(self, store):
        job = store.create(_request())
        store.update(job, status=JobStatus.FAILED, error="boom")
        fresh = store.create(_request(objective="Second try"))
        assert fresh.status == JobStatus.PENDING
        loaded = store.load("job-1")
        assert loaded.error is None
        assert loaded.request.objective == "Second try"

    def test_corrupt_job_can_be_recreated(self, store):
        _corrupt(store, "job-1")
        store.create(_request())
        assert store.load("job-1").status == JobStatus.PENDING

    def test_full_transition_path(self, store):
        job = store.create(_request())
        store.update(job, status=JobStatus.RUNNING)
        store.append_log(job, "Starting review worker.")
        store.update(job, status=JobStatus.COMPLETED, result=BLOCK, review_path="job-1.json")

        loaded = store.load("job-1")
        assert loaded.status == JobStatus.COMPLETED
        assert loaded.log == ["Starting review worker."]
        assert loaded.result == BLOCK
        assert loaded.review_path == "job-1.json"

    @pytest.mark.parametrize(
        "path",
        [
            [JobStatus.COMPLETED],
            [JobStatus.RUNNING, JobStatus.PENDING],
            [JobStatus.FAILED, JobStatus.RUNNING],
            [JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED],
        ],
    )
    def test_illegal_transitions_rejected(self, store, path):
        job = store.create(_request())
        *legal, illegal = path
        for status in legal:
            store.update(job, status=status, result=PASS if status == JobStatus.COMPLETED else None)
        with pytest.raises(InvalidTransitionError):
            store.update(job, status=illegal)

    def test_same_non_terminal_status_allowed(self, store):
        job = store.create(_request())
        store.update(job, status=JobStatus.RUNNING)
        store.update(job, status=JobStatus.RUNNING)
        assert store.load("job-1").status == JobStatus.RUNNING

    def test_terminal_job_fields_frozen(self, store):
        job = store.create(_request())
        store.update(job, status=JobStatus.FAILED, error="boom")
        with pytest.raises(InvalidTransitionError):
            store.update(job, error="rewritten")

    def test_transition_checked_against_persisted_status(self, store):
        stale = store.create(_request())
        fresh = store.load("job-1")
        store.update(fresh, status=JobStatus.FAILED, error="boom")
        with pytest.raises(InvalidTransitionError):
            store.update(stale, status=JobStatus.RUNNING)

    def test_unknown_field_rejected(self, store):
        job = store.create(_request())
        with pytest.raises(TypeError):
            store.update(job, request=_request("other"))

    def test_list_jobs(self, store):
        for i in range(3):
            store.create(_request(f"job-{i}"))
        jobs = store.list_jobs()
        assert sorted(j.key for j in jobs) == ["job-0", "job-1", "job-2"]
        assert len(store.list_jobs(limit=2)) == 2

    def test_list_jobs_skips_corrupt_records(self, store):
        store.create(_request("good"))
        _corrupt(store, "bad")
        assert [j.key for j in store.list_jobs()] == ["good"]


# ---------------------------------------------------------------------------
# Review artifacts (both backends)
# ---------------------------------------------------------------------------


class TestReviewArtifacts:
    def test_save_and_load_by_name_and_key(self, store):
        job = store.create(_request())
        store.save_review(job, BLOCK)

        by_name = store.load_review("job-1.json")
        by_key = store.load_review("job-1")
        assert by_name.name == by_key.name == "job-1.json"
        assert by_name.review == BLOCK
        assert by_name.review.blockers[0].suggested_fix == "close it"
        assert by_name.request.ref == "refs/heads/main"

    def test_latest_review(self, store):
        first = store.create(_request("job-a"))
        second = store.create(_request("job-b"))
        store.save_review(first, PASS)
        store.save_review(second, BLOCK)
        if isinstance(store, FileJobStore):
            # Pin mtimes so ordering does not depend on filesystem timestamp resolution.
            os.utime(os.path.join(store.reviews_dir, "job-a.json"), (1_000, 1_000))
            os.utime(os.path.join(store.reviews_dir, "job-b.json"), (2_000, 2_000))
        assert store.load_review().name == "job-b.json"

    def test_no_reviews(self, store):
        with pytest.raises(ReviewNotFoundError):
            store.load_review()

    def test_unknown_review(self, store):
        with pytest.raises(ReviewNotFoundError):
            store.load_review("missing.json")

    @pytest.mark.parametrize("name", ["../secrets.json", "a/b.json", "..", "", ".hidden.json", "x\\y.json"])
    def test_path_traversal_rejected(self, store, name):
        with pytest.raises(ValueError):
            store.load_review(name)


# ---------------------------------------------------------------------------
# Backend-specific layout
# ---------------------------------------------------------------------------


class TestFileJobStore:
    def test_layout(self, tmp_path):
        store = FileJobStore(str(tmp_path))
        job = store.create(_request())
        path = store.save_review(job, PASS)

        assert path == os.path.join(str(tmp_path), "reviews", "job-1.json")
        with open(os.path.join(str(tmp_path), "jobs", "job-1.json")) as f:
            record = json.load(f)
        assert record["key"] == "job-1"
        assert record["status"] == "pending"
        assert record["log"] == []

    def test_no_temp_files_left_behind(self, tmp_path):
        store = FileJobStore(str(tmp_path))
        job = store.create(_request())
        store.update(job, status=JobStatus.RUNNING)
        assert os.listdir(store.jobs_dir) == ["job-1.json"]

    def test_non_object_record_is_corrupt(self, tmp_path):
        store = FileJobStore(str(tmp_path))
        os.makedirs(store.jobs_dir)
        with open(os.path.join(store.jobs_dir, "job-1.json"), "w") as f:
            f.write("[1, 2, 3]")
        with pytest.raises(JobCorruptError):
            store.load("job-1")


class TestSQLiteJobStore:
    def test_schema_created(self, tmp_path):
        db = str(tmp_path / "revgate.db")
        SQLiteJobStore(db).close()
        conn = sqlite3.connect(db)
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        conn.close()
        assert {"jobs", "reviews"} <= tables

    def test_status_column_tracks_record(self, tmp_path):
        store = SQLiteJobStore(str(tmp_path / "revgate.db"))
        job = store.create(_request())
        store.update(job, status=JobStatus.RUNNING)
        status = store._conn.execute("SELECT status FROM jobs WHERE key='job-1'").fetchone()[0]
        store.close()
        assert status == "running"

    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "revgate.db")
        first = SQLiteJobStore(db)
        job = first.create(_request())
        first.save_review(job, PASS)
        first.close()

        second = SQLiteJobStore(db)
        assert second.load("job-1").status == JobStatus.PENDING
        assert second.load_review().name == "job-1.json"
        second.close()

    def test_review_locator_is_name(self, tmp_path):
        store = SQLiteJobStore(str(tmp_path / "revgate.db"))
        job = store.create(_request())
        assert store.save_review(job, PASS) == "job-1.json"
        store.close()
