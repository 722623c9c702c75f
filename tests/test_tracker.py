"""
Tests for tracker.py - the composed board.
"""

import pytest

from jobtracker import JobTracker, KanbanColumn
from jobtracker.config import TrackerConfig
from jobtracker.database import SqliteCache
from jobtracker.errors import GatewayError, InvalidOperationError
from jobtracker.gateway import RestGateway
from jobtracker.storage import JsonFileCache
from jobtracker.tracker import STALE_CACHE_WARNING

from conftest import FakeGateway, RawBoardGateway, make_job


class ProcessKilled(BaseException):
    """Stands in for the process dying mid-request."""


@pytest.fixture
def tracker(gateway, cache, clock):
    t = JobTracker(gateway=gateway, cache=cache, sync_interval=0, clock=clock)
    t.fetch_tracked_jobs()
    yield t
    t.close()


def column_ids(tracker, column):
    return [j.id for j in tracker.get_jobs_by_status(column)]


class TestInitialLoad:
    """Test server-first loading with cache fallback."""

    def test_loads_from_server(self, tracker, cache):
        assert tracker.get_stats()["total"] == 5
        assert tracker.error is None
        assert tracker.warning is None
        assert tracker.last_synced is not None
        assert tracker.is_loading is False
        assert len(cache.load().jobs) == 5

    def test_falls_back_to_cache(self, cache, board_jobs, clock):
        cache.save(board_jobs[:2])
        gateway = FakeGateway()
        gateway.fail("fetch_all")
        tracker = JobTracker(gateway=gateway, cache=cache, clock=clock)

        assert tracker.fetch_tracked_jobs() is False

        assert [j.id for j in tracker.tracked_jobs] == ["A", "B"]
        assert tracker.warning == STALE_CACHE_WARNING
        assert tracker.error == "Network unreachable"

    def test_fetch_failure_without_cache(self, clock):
        gateway = FakeGateway()
        gateway.fail("fetch_all")
        tracker = JobTracker(gateway=gateway, clock=clock)

        assert tracker.fetch_tracked_jobs() is False
        assert tracker.tracked_jobs == []
        assert tracker.warning is None
        assert tracker.error is not None

    def test_malformed_server_board_falls_back(self, cache, board_jobs, clock):
        cache.save(board_jobs)
        gateway = FakeGateway([make_job("X", "offer", 3)])
        tracker = JobTracker(gateway=gateway, cache=cache, clock=clock)

        assert tracker.fetch_tracked_jobs() is False
        assert tracker.get_stats()["total"] == 5
        assert tracker.warning == STALE_CACHE_WARNING

    @pytest.mark.parametrize("payload", [
        ["oops"],
        [{"id": "x", "status": "applied", "position": 0, "tags": 5}],
    ])
    def test_malformed_server_records_fall_back(self, cache, board_jobs, clock, payload):
        cache.save(board_jobs)
        tracker = JobTracker(gateway=RawBoardGateway(payload), cache=cache, clock=clock)

        assert tracker.fetch_tracked_jobs() is False

        assert tracker.get_stats()["total"] == 5
        assert tracker.warning == STALE_CACHE_WARNING
        assert tracker.error is not None
        assert tracker.is_loading is False

    def test_interrupted_create_dropped_on_offline_restart(self, tracker, gateway, cache, clock):
        gateway.fail_on["create"] = ProcessKilled()
        with pytest.raises(ProcessKilled):
            tracker.add_job({"title": "SRE", "company": "Gamma", "status": "applied"})
        assert any(j.is_temporary for j in cache.load().jobs)

        offline = FakeGateway()
        offline.fail("fetch_all")
        restarted = JobTracker(gateway=offline, cache=cache, sync_interval=0, clock=clock)
        assert restarted.fetch_tracked_jobs() is False

        assert column_ids(restarted, "applied") == ["A", "B", "C"]
        assert not any(j.is_temporary for j in restarted.tracked_jobs)

        restarted.reorder_in_column("applied", "C", 0)
        assert column_ids(restarted, "applied") == ["C", "A", "B"]

    def test_local_only_reads_cache(self, cache, board_jobs):
        cache.save(board_jobs)
        tracker = JobTracker(gateway=None, cache=cache)

        assert tracker.fetch_tracked_jobs() is False
        assert tracker.get_stats()["total"] == 5
        assert tracker.warning is None

    def test_loading_flag_during_fetch(self, gateway, clock):
        tracker = JobTracker(gateway=gateway, clock=clock)
        seen = []
        gateway.on_call = lambda method: seen.append(tracker.is_loading)
        tracker.fetch_tracked_jobs()
        assert seen == [True]
        assert tracker.is_loading is False


class TestQueries:
    """Test board projections."""

    def test_columns(self, tracker):
        columns = tracker.columns()
        assert [c.title for c in columns] == ["Wishlist", "Applied", "Interviewing", "Offer", "Rejected"]
        assert [j.id for j in columns[1].jobs] == ["A", "B", "C"]

    def test_get_jobs_by_status_accepts_names(self, tracker):
        assert column_ids(tracker, "APPLIED") == ["A", "B", "C"]
        assert column_ids(tracker, KanbanColumn.OFFER) == []

    def test_get_jobs_by_unknown_status(self, tracker):
        with pytest.raises(InvalidOperationError):
            tracker.get_jobs_by_status("archived")

    def test_stats(self, tracker):
        assert tracker.get_stats() == {
            "total": 5,
            "by_column": {"wishlist": 1, "applied": 3, "interviewing": 1, "offer": 0, "rejected": 0},
        }


class TestMutations:
    """Test the public mutation entry points."""

    def test_add_job(self, tracker):
        job = tracker.add_job({"title": "SRE", "company": "Gamma", "status": "offer"})
        assert column_ids(tracker, "offer") == [job.id]
        assert tracker.pending_changes is True

    def test_move_job_across_columns(self, tracker):
        tracker.move_job("B", "applied", "interviewing", 0)
        assert column_ids(tracker, "interviewing") == ["B", "D"]
        assert column_ids(tracker, "applied") == ["A", "C"]

    def test_move_job_same_column_is_reorder(self, tracker, gateway):
        tracker.move_job("A", "applied", "applied", 2)

        assert column_ids(tracker, "applied") == ["B", "C", "A"]
        assert len(gateway.called("batch_reorder")) == 1

    def test_move_job_ignores_wrong_source(self, tracker):
        tracker.move_job("D", "offer", "rejected")
        assert column_ids(tracker, "rejected") == ["D"]

    def test_update_job_status(self, tracker, gateway):
        job = tracker.update_job_status("W", "applied")
        assert (job.column, job.position) == (KanbanColumn.APPLIED, 3)
        assert gateway.called("patch_status")[-1] == ("patch_status", "W", KanbanColumn.APPLIED, 3)

    def test_update_job(self, tracker):
        job = tracker.update_job("A", {"salary_range": "100-120k"})
        assert job.salary_range == "100-120k"

    def test_delete_job(self, tracker):
        tracker.delete_job("C")
        assert column_ids(tracker, "applied") == ["A", "B"]

    def test_reorder_in_column(self, tracker):
        tracker.reorder_in_column("applied", "C", 0)
        assert column_ids(tracker, "applied") == ["C", "A", "B"]

    def test_failure_surfaces_and_rolls_back(self, tracker, gateway):
        gateway.fail("patch_status", "Server error", status_code=500)

        with pytest.raises(GatewayError):
            tracker.update_job_status("A", "offer")

        assert column_ids(tracker, "applied") == ["A", "B", "C"]
        assert tracker.error == "Server error"


class TestSyncAndEvents:
    """Test manual sync and change notification."""

    def test_sync_overwrites_local(self, tracker, gateway):
        tracker.add_job({"title": "SRE", "company": "Gamma"})
        gateway.seed([make_job("S1", "wishlist", 0)])

        assert tracker.sync_with_server() is True

        assert [j.id for j in tracker.tracked_jobs] == ["S1"]
        assert tracker.pending_changes is False

    def test_sync_failure_keeps_state(self, tracker, gateway):
        gateway.fail("fetch_all")
        assert tracker.sync_with_server() is False
        assert tracker.get_stats()["total"] == 5

    def test_subscribe_and_unsubscribe(self, tracker):
        events = []
        unsubscribe = tracker.subscribe(lambda t: events.append(t.get_stats()["total"]))

        tracker.delete_job("A")
        assert events == [4]

        unsubscribe()
        tracker.delete_job("B")
        assert events == [4]


class TestLifecycle:
    """Test construction from config and resource handling."""

    def test_from_config_remote_json(self, tmp_path):
        config = TrackerConfig(api_url="http://api.test", api_token="t",
                               cache_path=tmp_path / "cache.json", sync_interval=0)
        tracker = JobTracker.from_config(config)

        assert isinstance(tracker.gateway, RestGateway)
        assert isinstance(tracker.cache, JsonFileCache)
        tracker.close()

    def test_from_config_local_sqlite(self, tmp_path):
        config = TrackerConfig(sync_with_server=False, cache_path=tmp_path / "cache.db")
        tracker = JobTracker.from_config(config)

        assert tracker.gateway is None
        assert isinstance(tracker.cache, SqliteCache)
        tracker.close()

    def test_from_config_without_cache(self):
        tracker = JobTracker.from_config(TrackerConfig(sync_with_server=False, cache_enabled=False))
        assert tracker.cache is None
        assert tracker.add_job({"title": "Dev", "company": "Acme"}).id.startswith("local_")

    def test_context_manager_starts_and_stops(self, gateway, clock):
        with JobTracker(gateway=gateway, sync_interval=30, clock=clock) as tracker:
            assert tracker.get_stats()["total"] == 5
            assert tracker.scheduler.is_running
        assert not tracker.scheduler.is_running


class TestBoardScenarios:
    """End-to-end board scenarios through the facade."""

    def test_reorder_to_front(self, tracker):
        tracker.reorder_in_column("applied", "B", 0)

        jobs = tracker.get_jobs_by_status("applied")
        assert [j.id for j in jobs] == ["B", "A", "C"]
        assert [j.position for j in jobs] == [0, 1, 2]

    def test_move_from_two_job_column(self, gateway, clock):
        gateway.seed([
            make_job("A", "applied", 0),
            make_job("B", "applied", 1),
            make_job("D", "interviewing", 0),
        ])
        tracker = JobTracker(gateway=gateway, sync_interval=0, clock=clock)
        tracker.fetch_tracked_jobs()

        tracker.move_job("A", "applied", "interviewing", 0)

        assert [(j.id, j.position) for j in tracker.get_jobs_by_status("applied")] == [("B", 0)]
        assert [(j.id, j.position) for j in tracker.get_jobs_by_status("interviewing")] == [("A", 0), ("D", 1)]

    def test_failed_add_appears_then_disappears(self, tracker, gateway):
        during = []
        gateway.on_call = lambda method: during.append(
            [j.title for j in tracker.columns()[0].jobs]
        )
        gateway.fail("create")

        with pytest.raises(GatewayError):
            tracker.add_job({"title": "X", "company": "Y"})

        assert during == [["Role W", "X"]]
        assert [j.title for j in tracker.columns()[0].jobs] == ["Role W"]
        assert tracker.error == "Network unreachable"

    def test_delete_middle_closes_gap(self, tracker):
        tracker.delete_job("B")

        assert [(j.id, j.position) for j in tracker.get_jobs_by_status("applied")] == [("A", 0), ("C", 1)]
