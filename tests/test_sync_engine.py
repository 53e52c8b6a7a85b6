"""
Tests for the sync engine: push state machine, pull cursor, conflict
resolution and batch-level failure handling.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from agrisync.errors import InfrastructureError, NotAConflict, NotFound
from agrisync.models.job import Job
from agrisync.models.measurement import Measurement
from agrisync.models.sync_log import SyncLog
from agrisync.models.tracking_point import TrackingPoint
from agrisync.services.geo import calculator
from agrisync.services.sync.engine import SyncEngine
from agrisync.services.sync.kinds import EntityKind
from agrisync.services.tenant import TenantContext

T0 = "2024-03-01T08:00:00Z"
T1 = "2024-03-01T09:00:00Z"
T2 = "2024-03-01T10:00:00Z"


@pytest.fixture
def sync_engine(db):
    return SyncEngine(db)


def measurement_item(offline_id, updated_at, polygon, name="North field", **extra):
    return {
        "entity_type": "measurement",
        "offline_id": offline_id,
        "updated_at": updated_at,
        "data": {"name": name, "polygon": polygon, **extra},
    }


def job_item(offline_id, updated_at, **data):
    return {"entity_type": "job", "offline_id": offline_id, "updated_at": updated_at, "data": {"customer_id": 3, **data}}


def count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def logs(db, **filters):
    stmt = select(SyncLog).filter_by(**filters).order_by(SyncLog.id)
    return list(db.execute(stmt).scalars())


class TestPush:
    def test_absent_item_is_created_with_derived_geometry(self, db, sync_engine, tenant, make_square):
        polygon = make_square(side_m=100.0)
        result = sync_engine.push([measurement_item("m-1", T1, polygon, area_square_meters=1.0)], tenant)

        assert result["synced"] == 1 and result["conflicts"] == 0 and result["errors"] == 0
        detail = result["details"][0]
        assert detail["status"] == "synced"
        assert detail["action"] == "created"

        m = db.get(Measurement, detail["entity_id"])
        expected = calculator.compute(polygon)
        # client supplied area is ignored, geometry is derived
        assert m.area_square_meters == expected.area_square_meters
        assert m.center_latitude == expected.center.latitude
        assert m.organization_id == 1 and m.user_id == 7
        assert m.sync_status == "synced"
        assert m.updated_at.isoformat() == "2024-03-01T09:00:00"

        [entry] = logs(db)
        assert (entry.action, entry.status, entry.entity_id) == ("create", "synced", m.id)

    def test_repeated_push_with_same_timestamp_is_idempotent(self, db, sync_engine, tenant, make_square):
        item = measurement_item("m-1", T1, make_square())
        first = sync_engine.push([item], tenant)
        second = sync_engine.push([item], tenant)

        assert first["details"][0]["status"] == "synced"
        assert second["details"][0]["status"] == "synced"
        assert second["details"][0]["action"] == "updated"
        assert count(db, Measurement) == 1
        assert logs(db, status="conflict") == []

    def test_older_client_write_is_a_conflict_and_leaves_server_row(self, db, sync_engine, tenant, make_square):
        sync_engine.push([measurement_item("m-1", T2, make_square(side_m=100.0), name="Server name")], tenant)
        before = db.execute(select(Measurement)).scalar_one()
        area_before, version_before = before.area_square_meters, before.version

        result = sync_engine.push([measurement_item("m-1", T1, make_square(side_m=300.0), name="Client name")], tenant)

        assert result["conflicts"] == 1 and result["synced"] == 0
        detail = result["details"][0]
        assert detail["status"] == "conflict"
        assert detail["server_data"]["name"] == "Server name"
        assert detail["client_data"]["name"] == "Client name"

        db.expire_all()
        after = db.execute(select(Measurement)).scalar_one()
        assert after.name == "Server name"
        assert after.area_square_meters == area_before
        assert after.version == version_before

        entry = db.get(SyncLog, detail["sync_log_id"])
        assert (entry.action, entry.status) == ("conflict", "conflict")
        assert entry.conflict_data["server_updated_at"].startswith("2024-03-01T10:00:00")
        assert entry.conflict_data["client_updated_at"].startswith("2024-03-01T09:00:00")
        assert entry.conflict_data["client_data"]["name"] == "Client name"

    def test_newer_client_write_overwrites(self, db, sync_engine, tenant, make_square):
        sync_engine.push([measurement_item("m-1", T1, make_square(side_m=100.0), name="Old")], tenant)
        bigger = make_square(side_m=200.0)
        result = sync_engine.push([measurement_item("m-1", T2, bigger, name="New", status="archived")], tenant)

        assert result["details"][0]["action"] == "updated"
        db.expire_all()
        m = db.execute(select(Measurement)).scalar_one()
        assert m.name == "New"
        assert m.status == "archived"
        assert [(p["latitude"], p["longitude"]) for p in m.polygon] == [(p["latitude"], p["longitude"]) for p in bigger]
        assert m.area_square_meters == calculator.compute(bigger).area_square_meters
        assert m.updated_at.isoformat() == "2024-03-01T10:00:00"

    def test_timezone_offsets_compare_as_utc(self, db, sync_engine, tenant, make_square):
        sync_engine.push([measurement_item("m-1", "2024-03-01T10:00:00+00:00", make_square())], tenant)
        # 11:30+02:00 is 09:30Z, older than the stored 10:00Z
        result = sync_engine.push([measurement_item("m-1", "2024-03-01T11:30:00+02:00", make_square())], tenant)
        assert result["details"][0]["status"] == "conflict"

    def test_invalid_item_never_blocks_the_batch(self, db, sync_engine, tenant, make_square):
        items = [
            measurement_item("m-1", T1, make_square()),
            measurement_item("m-2", T1, make_square()[:2]),  # two points
            job_item("j-1", T1),
            {"entity_type": "invoice", "offline_id": "i-1", "updated_at": T1, "data": {}},
            "not an object",
            measurement_item("m-3", T1, make_square(lat=-1.3)),
        ]
        result = sync_engine.push(items, tenant)

        assert result["synced"] == 3
        assert result["errors"] == 3
        statuses = [d["status"] for d in result["details"]]
        assert statuses == ["synced", "error", "synced", "error", "error", "synced"]
        assert "at least 3" in result["details"][1]["message"]
        assert "unknown entity_type" in result["details"][3]["message"]
        assert count(db, Measurement) == 2
        assert count(db, Job) == 1
        assert len(logs(db, action="reject", status="failed")) == 3

    def test_payload_shape_errors_name_the_field(self, sync_engine, tenant):
        result = sync_engine.push([job_item("j-1", T1, status="flying")], tenant)
        detail = result["details"][0]
        assert detail["status"] == "error"
        assert detail["errors"][0]["field"] == "status"

    def test_missing_required_field_on_create_is_an_error(self, sync_engine, tenant):
        item = {"entity_type": "expense", "offline_id": "e-1", "updated_at": T1, "data": {"amount": 10}}
        result = sync_engine.push([item], tenant)
        assert result["errors"] == 1

    def test_partial_update_keeps_other_fields(self, db, sync_engine, tenant):
        sync_engine.push([job_item("j-1", T1, status="assigned", notes="bring seed")], tenant)
        sync_engine.push([{"entity_type": "job", "offline_id": "j-1", "updated_at": T2, "data": {"status": "in_progress", "customer_id": None}}], tenant)

        db.expire_all()
        job = db.execute(select(Job)).scalar_one()
        assert job.status == "in_progress"
        assert job.notes == "bring seed"
        assert job.customer_id == 3

    def test_offline_ids_are_scoped_per_organization(self, db, sync_engine, tenant, make_square):
        other = TenantContext(organization_id=2, user_id=9)
        sync_engine.push([measurement_item("m-1", T2, make_square())], tenant)
        result = sync_engine.push([measurement_item("m-1", T1, make_square())], other)

        assert result["details"][0]["action"] == "created"
        assert count(db, Measurement) == 2

    def test_tracking_points_are_always_inserted(self, db, sync_engine, tenant):
        item = {
            "entity_type": "tracking_point",
            "offline_id": "t-1",
            "updated_at": T1,
            "data": {"latitude": -1.29, "longitude": 36.82, "recorded_at": T0, "driver_id": 4},
        }
        first = sync_engine.push([item], tenant)
        second = sync_engine.push([item], tenant)

        assert first["synced"] == 1 and second["synced"] == 1
        assert count(db, TrackingPoint) == 2
        assert logs(db, status="conflict") == []

    def test_lost_compare_and_swap_is_retried(self, db, sync_engine, tenant, monkeypatch):
        sync_engine.push([job_item("j-1", T1)], tenant)

        store = sync_engine.stores[EntityKind.JOB]
        real_update = store.update
        calls = {"n": 0}

        def flaky_update(entity, data):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleDataError("UPDATE statement on table 'jobs' expected to update 1 row(s); 0 were matched.")
            return real_update(entity, data)

        monkeypatch.setattr(store, "update", flaky_update)
        result = sync_engine.push([job_item("j-1", T2, status="completed")], tenant)

        assert calls["n"] == 2
        assert result["details"][0]["status"] == "synced"
        db.expire_all()
        assert db.execute(select(Job)).scalar_one().status == "completed"

    def test_storage_failure_rolls_back_the_whole_batch(self, db, sync_engine, tenant, make_square, monkeypatch):
        store = sync_engine.stores[EntityKind.JOB]

        def broken_create(data):
            raise OperationalError("INSERT INTO jobs ...", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "create", broken_create)
        with pytest.raises(InfrastructureError):
            sync_engine.push([measurement_item("m-1", T1, make_square()), job_item("j-1", T1)], tenant)

        assert count(db, Measurement) == 0
        assert count(db, SyncLog) == 0


class TestPull:
    def test_pull_returns_rows_changed_after_cursor(self, db, sync_engine, tenant, make_square):
        sync_engine.push([
            measurement_item("m-old", T0, make_square()),
            measurement_item("m-new", T2, make_square(lat=-1.3)),
            job_item("j-1", T2),
        ], tenant)

        from datetime import datetime, timezone
        result = sync_engine.pull(tenant, since=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))

        assert [m["offline_id"] for m in result["measurements"]] == ["m-new"]
        assert [j["offline_id"] for j in result["jobs"]] == ["j-1"]
        assert result["expenses"] == [] and result["payments"] == []
        assert "sync_timestamp" in result
        assert result["measurements"][0]["center"]["latitude"] == pytest.approx(-1.3, abs=1e-6)

    def test_pull_without_cursor_returns_everything_for_requested_kinds(self, sync_engine, tenant, make_square):
        sync_engine.push([measurement_item("m-1", T0, make_square()), job_item("j-1", T0)], tenant)
        result = sync_engine.pull(tenant, kinds=sync_engine.parse_include("jobs"))
        assert set(result) == {"jobs", "sync_timestamp"}
        assert len(result["jobs"]) == 1

    def test_pull_is_scoped_to_organization(self, sync_engine, tenant, make_square):
        sync_engine.push([measurement_item("m-1", T0, make_square())], tenant)
        result = sync_engine.pull(TenantContext(organization_id=2))
        assert result["measurements"] == []

    def test_parse_include_rejects_unknown_collections(self, sync_engine):
        with pytest.raises(ValueError):
            sync_engine.parse_include("measurements,invoices")


class TestResolve:
    def _conflict(self, sync_engine, tenant, server_polygon, client_polygon):
        sync_engine.push([measurement_item("m-1", T2, server_polygon, name="Server")], tenant)
        result = sync_engine.push([measurement_item("m-1", T1, client_polygon, name="Client")], tenant)
        return result["details"][0]["sync_log_id"]

    def test_use_client_applies_client_snapshot(self, db, sync_engine, tenant, make_square):
        client_polygon = make_square(side_m=250.0)
        log_id = self._conflict(sync_engine, tenant, make_square(side_m=100.0), client_polygon)

        result = sync_engine.resolve_conflict(log_id, "use_client", tenant)

        assert result["status"] == "resolved"
        db.expire_all()
        m = db.execute(select(Measurement)).scalar_one()
        assert m.name == "Client"
        assert m.area_square_meters == calculator.compute(client_polygon).area_square_meters
        assert m.sync_status == "synced"
        assert m.updated_at.isoformat() > "2024-03-01T10:00:00"
        entry = db.get(SyncLog, log_id)
        assert (entry.status, entry.resolution) == ("resolved", "use_client")
        assert entry.resolved_at is not None

    def test_use_server_leaves_entity_untouched(self, db, sync_engine, tenant, make_square):
        server_polygon = make_square(side_m=100.0)
        log_id = self._conflict(sync_engine, tenant, server_polygon, make_square(side_m=250.0))
        before = db.execute(select(Measurement)).scalar_one()
        snapshot = (before.name, before.area_square_meters, before.updated_at, before.version)

        sync_engine.resolve_conflict(log_id, "use_server", tenant)

        db.expire_all()
        after = db.execute(select(Measurement)).scalar_one()
        assert (after.name, after.area_square_meters, after.updated_at, after.version) == snapshot
        assert db.get(SyncLog, log_id).status == "resolved"

    def test_resolving_twice_is_not_a_conflict(self, sync_engine, tenant, make_square):
        log_id = self._conflict(sync_engine, tenant, make_square(), make_square(side_m=120.0))
        sync_engine.resolve_conflict(log_id, "use_server", tenant)
        with pytest.raises(NotAConflict):
            sync_engine.resolve_conflict(log_id, "use_client", tenant)

    def test_non_conflict_entry_is_rejected(self, db, sync_engine, tenant, make_square):
        sync_engine.push([measurement_item("m-1", T1, make_square())], tenant)
        [entry] = logs(db, action="create")
        with pytest.raises(NotAConflict):
            sync_engine.resolve_conflict(entry.id, "use_server", tenant)

    def test_unknown_or_foreign_log_is_not_found(self, sync_engine, tenant, make_square):
        log_id = self._conflict(sync_engine, tenant, make_square(), make_square(side_m=120.0))
        with pytest.raises(NotFound):
            sync_engine.resolve_conflict(9999, "use_server", tenant)
        with pytest.raises(NotFound):
            sync_engine.resolve_conflict(log_id, "use_server", TenantContext(organization_id=2))

    def test_status_counts_open_conflicts(self, sync_engine, tenant, make_square):
        log_id = self._conflict(sync_engine, tenant, make_square(), make_square(side_m=120.0))
        assert sync_engine.status(tenant)["conflicts"] == 1
        assert [e.id for e in sync_engine.list_conflicts(tenant)] == [log_id]

        sync_engine.resolve_conflict(log_id, "use_server", tenant)
        status = sync_engine.status(tenant)
        assert status["conflicts"] == 0
        assert status["kinds"]["measurements"] == {"pending": 0}
