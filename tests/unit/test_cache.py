"""Tests for the durable local cache: keys, tolerant reads, typed helpers."""

import json
from pathlib import Path

import pytest

from careersync.core.cache import LocalCache, open_cache
from careersync.core.config import CacheConfig
from careersync.core.schemas import Application, Job, SavedResume


@pytest.fixture
def cache(tmp_path: Path) -> LocalCache:
    return open_cache(CacheConfig(path=str(tmp_path / "cache.db")))


def _job(job_id: str = "j1", employer_id: str | None = "e1") -> Job:
    return Job(id=job_id, employer_id=employer_id, title="Engineer", company="Acme")


class TestKeys:
    def test_default_namespace(self, cache: LocalCache) -> None:
        assert cache.global_jobs_key == "carrerx_global_jobs"
        assert cache.global_applications_key == "carrerx_global_applications"
        assert cache.pending_role_key == "carrerx_pending_role"
        assert cache.resumes_key("u1") == "carrerx_resumes_u1"
        assert cache.jobs_key("u1") == "carrerx_jobs_u1"
        assert cache.legacy_applications_key("u1") == "carrerx_apps_u1"

    def test_custom_namespace(self, tmp_path: Path) -> None:
        c = open_cache(CacheConfig(path=str(tmp_path / "c.db"), namespace="demo"))
        assert c.global_jobs_key == "demo_global_jobs"


class TestRawAccess:
    def test_missing_key(self, cache: LocalCache) -> None:
        assert cache.get_item("nope") is None
        assert cache.read_json("nope") is None

    def test_set_overwrites(self, cache: LocalCache) -> None:
        cache.set_item("k", "1")
        cache.set_item("k", "2")
        assert cache.get_item("k") == "2"

    def test_remove(self, cache: LocalCache) -> None:
        cache.set_item("k", "1")
        cache.remove_item("k")
        assert cache.get_item("k") is None

    def test_malformed_json_reads_as_none(self, cache: LocalCache) -> None:
        cache.set_item("k", "not-json{{{")
        assert cache.read_json("k") is None

    def test_persists_across_connections(self, tmp_path: Path) -> None:
        config = CacheConfig(path=str(tmp_path / "cache.db"))
        first = open_cache(config)
        first.save_global_jobs([_job()])
        first.close()
        assert [j.id for j in open_cache(config).load_global_jobs()] == ["j1"]


class TestReadRecords:
    def test_missing_is_empty(self, cache: LocalCache) -> None:
        assert cache.load_global_jobs() == []

    def test_malformed_is_empty(self, cache: LocalCache) -> None:
        cache.set_item(cache.global_jobs_key, "[{broken")
        assert cache.load_global_jobs() == []

    def test_non_array_is_empty(self, cache: LocalCache) -> None:
        cache.write_json(cache.global_jobs_key, {"id": "j1"})
        assert cache.load_global_jobs() == []

    def test_invalid_records_dropped(self, cache: LocalCache) -> None:
        cache.write_json(cache.global_jobs_key, [
            {"id": "j1", "title": "Engineer", "employerId": "e1"},
            {"id": "j2"},
            "garbage",
            None,
        ])
        jobs = cache.load_global_jobs()
        assert [j.id for j in jobs] == ["j1"]

    def test_writes_camel_case(self, cache: LocalCache) -> None:
        cache.save_global_jobs([_job()])
        raw = json.loads(cache.get_item(cache.global_jobs_key) or "[]")
        assert raw[0]["employerId"] == "e1"


class TestTypedHelpers:
    def test_user_jobs_isolated(self, cache: LocalCache) -> None:
        cache.save_user_jobs("u1", [_job("a")])
        cache.save_user_jobs("u2", [_job("b")])
        assert [j.id for j in cache.load_user_jobs("u1")] == ["a"]
        assert [j.id for j in cache.load_user_jobs("u2")] == ["b"]

    def test_applications_round_trip(self, cache: LocalCache) -> None:
        app = Application(id="a1", job_id="j1", candidate_email="c@x.com")
        cache.save_global_applications([app])
        assert [a.model_dump() for a in cache.load_global_applications()] == [app.model_dump()]

    def test_resumes(self, cache: LocalCache) -> None:
        resume = SavedResume(id="r1", data={"score": 80})
        cache.save_resumes("u1", [resume])
        assert [r.model_dump() for r in cache.load_resumes("u1")] == [resume.model_dump()]
        assert cache.load_resumes("u2") == []

    def test_legacy_applications(self, cache: LocalCache) -> None:
        cache.write_json(cache.legacy_applications_key("u1"), [
            {"id": "a1", "jobId": "j1", "candidateEmail": "c@x.com"},
        ])
        assert [a.id for a in cache.load_legacy_applications("u1")] == ["a1"]


class TestPendingRole:
    def test_absent(self, cache: LocalCache) -> None:
        assert cache.get_pending_role() is None

    def test_set_get_clear(self, cache: LocalCache) -> None:
        cache.set_pending_role("employer")
        assert cache.get_pending_role() == "employer"
        cache.clear_pending_role()
        assert cache.get_pending_role() is None

    def test_unknown_value_ignored(self, cache: LocalCache) -> None:
        cache.set_item(cache.pending_role_key, "admin")
        assert cache.get_pending_role() is None
