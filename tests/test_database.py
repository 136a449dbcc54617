"""
Tests for job persistence and durable deferred deletion.
"""

from datetime import datetime, timedelta

import pytest

from psd_translator_backend.cleanup import DeletionScheduler
from psd_translator_backend.database import JobDatabase
from psd_translator_backend.errors import StorageError

NOW = datetime(2024, 5, 1, 12, 0, 0)


def job_row(job_id="job-1", status="idle", created_at=NOW):
    return {
        "id": job_id,
        "status": status,
        "created_at": created_at,
        "updated_at": created_at,
        "source_filename": "poster.psd",
        "source_key": "poster.psd",
        "target_lang": "FR",
        "output_key": "poster-translated.psd",
        "events": [{"timestamp": created_at, "message": "registered"}],
    }


class TestJobDatabase:
    """Tests for job CRUD."""

    def test_save_and_get(self, database):
        database.save_job(job_row())
        row = database.get_job("job-1")

        assert row["status"] == "idle"
        assert row["created_at"] == NOW
        assert row["events"] == [{"timestamp": NOW, "message": "registered"}]
        assert row["download_url"] is None

    def test_get_unknown(self, database):
        assert database.get_job("nope") is None

    def test_list_newest_first(self, database):
        database.save_job(job_row("old", created_at=NOW))
        database.save_job(job_row("new", created_at=NOW + timedelta(minutes=1)))
        assert [row["id"] for row in database.list_jobs()] == ["new", "old"]

    def test_update_job(self, database):
        database.save_job(job_row())
        expires = NOW + timedelta(minutes=15)
        database.update_job("job-1", "ready", download_url="https://x", download_expires_at=expires, output_size=2048)

        row = database.get_job("job-1")
        assert row["status"] == "ready"
        assert row["download_url"] == "https://x"
        assert row["download_expires_at"] == expires
        assert row["output_size"] == 2048

    def test_update_rejects_unknown_columns(self, database):
        database.save_job(job_row())
        with pytest.raises(ValueError):
            database.update_job("job-1", "ready", status_hint=1)

    def test_add_event(self, database):
        database.save_job(job_row())
        database.add_job_event("job-1", "translating", timestamp=NOW + timedelta(seconds=5))
        assert [e["message"] for e in database.get_job("job-1")["events"]] == ["registered", "translating"]

    def test_survives_reopen(self, settings):
        JobDatabase(settings.service.db_path).save_job(job_row())
        assert JobDatabase(settings.service.db_path).get_job("job-1") is not None


class BrokenStore:
    def delete(self, key):
        raise StorageError(f"S3 delete failed for {key}: AccessDenied")


class TestDeletionScheduler:
    """Tests for the pending deletion sweep."""

    def test_nothing_deleted_before_due(self, database, store):
        store.objects["poster-translated.psd"] = b"x"
        scheduler = DeletionScheduler(database, store, clock=lambda: NOW)
        due_at = scheduler.schedule("poster-translated.psd", 1800)

        assert due_at == NOW + timedelta(seconds=1800)
        assert scheduler.sweep(now=NOW + timedelta(seconds=1799)) == 0
        assert "poster-translated.psd" in store.objects
        assert scheduler.pending() == 1

    def test_due_objects_are_deleted(self, database, store):
        store.objects["poster-translated.psd"] = b"x"
        scheduler = DeletionScheduler(database, store, clock=lambda: NOW)
        scheduler.schedule("poster-translated.psd", 1800)

        assert scheduler.sweep(now=NOW + timedelta(seconds=1800)) == 1
        assert store.deleted == ["poster-translated.psd"]
        assert scheduler.pending() == 0

    def test_missing_object_counts_as_deleted(self, database, store):
        scheduler = DeletionScheduler(database, store, clock=lambda: NOW)
        scheduler.schedule("gone.psd", 0)
        assert scheduler.sweep() == 1
        assert scheduler.pending() == 0

    def test_storage_failure_keeps_entry(self, database):
        scheduler = DeletionScheduler(database, BrokenStore(), clock=lambda: NOW)
        scheduler.schedule("poster-translated.psd", 0)

        assert scheduler.sweep() == 0
        entries = database.due_deletions(NOW)
        assert entries[0]["attempts"] == 1
        assert "AccessDenied" in entries[0]["last_error"]

    def test_schedule_survives_restart(self, settings, store):
        """A new scheduler over the same database sees earlier entries."""
        store.objects["poster-translated.psd"] = b"x"
        DeletionScheduler(JobDatabase(settings.service.db_path), store, clock=lambda: NOW).schedule(
            "poster-translated.psd", 60
        )

        restarted = DeletionScheduler(JobDatabase(settings.service.db_path), store, clock=lambda: NOW + timedelta(hours=1))
        assert restarted.sweep() == 1
        assert "poster-translated.psd" not in store.objects

    def test_rescheduling_replaces_due_time(self, database, store):
        scheduler = DeletionScheduler(database, store, clock=lambda: NOW)
        scheduler.schedule("a.psd", 10)
        scheduler.schedule("a.psd", 100)

        assert scheduler.pending() == 1
        assert database.due_deletions(NOW + timedelta(seconds=50)) == []
