"""FileJobStore: one JSON file per job under the repository's data directory.

Layout:
  <data>/jobs/<key>.json      job record
  <data>/reviews/<key>.json   review artifact {review, request}

Every write replaces the whole file through a temp file and ``os.replace``,
so a concurrent reader (the attach client polling) sees either the old or
the new record, never a partial one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile

from revgate_store.base import BaseJobStore, JobCorruptError, JobStoreError

logger = logging.getLogger(__name__)


def _atomic_write_json(path: str, data: dict) -> None:
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    temp_file = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=directory,
        prefix=".tmp-",
        suffix=".json",
        delete=False,
    )
    temp_name = temp_file.name
    try:
        with temp_file:
            json.dump(data, temp_file, indent=2)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.replace(temp_name, path)
    finally:
        if os.path.exists(temp_name):
            os.remove(temp_name)


def _read_json(path: str) -> dict | None:
    if not os.path.exists(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise JobCorruptError(f"{path} is not valid JSON: {e}") from e
    except OSError as e:
        raise JobStoreError(f"Failed to read {path}: {e}") from e
    if not isinstance(data, dict):
        raise JobCorruptError(f"{path} does not contain a JSON object")
    return data


class FileJobStore(BaseJobStore):
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.jobs_dir = os.path.join(data_dir, "jobs")
        self.reviews_dir = os.path.join(data_dir, "reviews")

    def _job_path(self, key: str) -> str:
        return os.path.join(self.jobs_dir, f"{key}.json")

    def _read_record(self, key: str) -> dict | None:
        return _read_json(self._job_path(key))

    def _write_record(self, key: str, record: dict) -> None:
        try:
            _atomic_write_json(self._job_path(key), record)
        except OSError as e:
            raise JobStoreError(f"Failed to write job {key}: {e}") from e

    def _list_records(self, limit: int) -> list[dict]:
        if not os.path.isdir(self.jobs_dir):
            return []
        paths = [
            os.path.join(self.jobs_dir, name)
            for name in os.listdir(self.jobs_dir)
            if name.endswith(".json") and not name.startswith(".")
        ]
        paths.sort(key=lambda p: (os.path.getmtime(p), p), reverse=True)

        records = []
        for path in paths:
            if len(records) >= limit:
                break
            try:
                record = _read_json(path)
            except JobStoreError as e:
                logger.warning("Skipping job record %s: %s", path, e)
                continue
            if record is not None:
                records.append(record)
        return records

    def _write_review(self, name: str, key: str, artifact: dict) -> str:
        path = os.path.join(self.reviews_dir, name)
        try:
            _atomic_write_json(path, artifact)
        except OSError as e:
            raise JobStoreError(f"Failed to write review {name}: {e}") from e
        return path

    def _read_review(self, name: str) -> dict | None:
        return _read_json(os.path.join(self.reviews_dir, name))

    def _latest_review_name(self) -> str | None:
        if not os.path.isdir(self.reviews_dir):
            return None
        names = [n for n in os.listdir(self.reviews_dir) if n.endswith(".json") and not n.startswith(".")]
        if not names:
            return None
        return max(names, key=lambda n: (os.path.getmtime(os.path.join(self.reviews_dir, n)), n))
