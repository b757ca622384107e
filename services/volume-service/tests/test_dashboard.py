from datetime import UTC, date, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from volume_service.config import Settings
from volume_service.exceptions import InvalidSpanError
from volume_service.models import MuscleGroupTranslation
from volume_service.repositories.aggregates_repository import AggregatesRepository
from volume_service.services.aggregation_service import AggregationService
from volume_service.services.dashboard_service import DashboardService

from reference_ids import BENCH, CHEST, HIP_AND_GLUTES, LEGS, SQUAT, USER_ID

TODAY = date(2024, 3, 14)


async def _seed_history(db, insert_sets):
    insert_sets(
        {"exercise_id": BENCH, "weight": 100, "reps": 10, "performed_at": datetime(2024, 3, 12, 18, 0)},
        {"exercise_id": SQUAT, "weight": 100, "reps": 5, "performed_at": datetime(2024, 3, 13, 18, 0)},
        {"exercise_id": BENCH, "weight": 90, "reps": 5, "performed_at": datetime(2024, 3, 5, 18, 0)},
    )
    await AggregationService(db).recompute_full_history(USER_ID)


async def test_dashboard_composes_this_week_last_week_and_trend(db, reference_data, insert_sets):
    await _seed_history(db, insert_sets)

    dashboard = await DashboardService(db).get_dashboard(USER_ID, "4w", today=TODAY)

    assert dashboard.week_starts == ["2024-02-19", "2024-02-26", "2024-03-04", "2024-03-11"]
    assert dashboard.this_week.week_start == "2024-03-11"
    assert dashboard.this_week.total_volume == pytest.approx(1500.0)
    assert dashboard.this_week.set_count == 2
    assert dashboard.last_week.week_start == "2024-03-04"
    assert dashboard.last_week.total_volume == pytest.approx(450.0)
    assert [p.total_volume for p in dashboard.trend] == pytest.approx([0.0, 0.0, 450.0, 1500.0])

    groups = {g.group_name: g for g in dashboard.muscle_groups}
    assert set(groups) == {"Chest", "Legs"}
    assert all(len(g.points) == 4 for g in groups.values())
    # squat: 500 * 0.5 to quadriceps plus 500 * 0.4 to glutes, folded into Legs
    assert groups["Legs"].points[-1].total_volume == pytest.approx(450.0)
    assert groups["Chest"].points[-1].total_volume == pytest.approx(720.0)

    metrics = {m.metric_key: m for m in dashboard.metrics}
    assert metrics["active_days"].unit == "days"
    assert [p.value for p in metrics["active_days"].points] == [0.0, 0.0, 1.0, 2.0]
    assert metrics[f"exercise_{BENCH}_1rm_epley"].points[-1].value == pytest.approx(133.33)


async def test_dashboard_without_data_returns_zero_points(db, reference_data):
    dashboard = await DashboardService(db).get_dashboard("nobody", "2w", today=TODAY)

    assert dashboard.this_week.total_volume == 0.0
    assert dashboard.this_week.week_start == "2024-03-11"
    assert dashboard.last_week.total_volume == 0.0
    assert dashboard.last_week.week_start == "2024-03-04"
    assert len(dashboard.trend) == 2
    assert dashboard.metrics == []
    assert [g.group_name for g in dashboard.muscle_groups] == ["Chest", "Legs"]


async def test_last_week_is_resolved_even_for_one_week_span(db, reference_data, insert_sets):
    await _seed_history(db, insert_sets)

    dashboard = await DashboardService(db).get_dashboard(USER_ID, "1w", today=TODAY)

    assert len(dashboard.trend) == 1
    assert dashboard.last_week.total_volume == pytest.approx(450.0)


async def test_dashboard_filters_metric_keys(db, reference_data, insert_sets):
    await _seed_history(db, insert_sets)

    dashboard = await DashboardService(db).get_dashboard(USER_ID, "4w", metric_keys=["active_days"], today=TODAY)

    assert [m.metric_key for m in dashboard.metrics] == ["active_days"]


async def test_dashboard_rejects_invalid_span(db):
    with pytest.raises(InvalidSpanError):
        await DashboardService(db).get_dashboard(USER_ID, "four", today=TODAY)


def test_health(client: TestClient):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_user_header_is_required(client: TestClient):
    r = client.get("/dashboard")
    assert r.status_code == 401


def test_aggregation_and_dashboard_flow(client: TestClient, reference_data, insert_sets):
    headers = {"X-User-Id": USER_ID}
    now = datetime.now(UTC).replace(tzinfo=None)
    monday = datetime.combine((now - timedelta(days=now.weekday())).date(), datetime.min.time())
    insert_sets({"exercise_id": BENCH, "weight": 100, "reps": 10, "performed_at": monday + timedelta(hours=9)})

    r_week = client.post("/aggregation/week", json={}, headers=headers)
    assert r_week.status_code == 200, r_week.text
    assert r_week.json()["weeks_written"] == [monday.date().isoformat()]

    r_dash = client.get("/dashboard", params={"span": "3w"}, headers=headers)
    assert r_dash.status_code == 200, r_dash.text
    data = r_dash.json()
    assert data["this_week"]["total_volume"] == 1000.0
    assert data["last_week"]["total_volume"] == 0.0
    assert len(data["trend"]) == 3
    assert {g["group_name"] for g in data["muscle_groups"]} == {"Chest", "Legs"}

    r_metrics = client.get(
        "/dashboard", params={"span": "3w", "metric_keys": f"exercise_{BENCH}_1rm_epley"}, headers=headers
    )
    assert [m["metric_key"] for m in r_metrics.json()["metrics"]] == [f"exercise_{BENCH}_1rm_epley"]

    r_clear = client.delete("/aggregation", headers=headers)
    assert r_clear.status_code == 200
    assert r_clear.json()["rows_deleted"] == 4

    r_rebuild = client.post("/aggregation/rebuild", headers=headers)
    assert r_rebuild.status_code == 200
    assert r_rebuild.json()["weeks_written"] == [monday.date().isoformat()]

    r_full = client.post("/aggregation/full-history", headers=headers)
    assert r_full.status_code == 200
    assert r_full.json()["sets_read"] == 1


def test_invalid_span_returns_422(client: TestClient):
    r = client.get("/dashboard", params={"span": "0w"}, headers={"X-User-Id": USER_ID})
    assert r.status_code == 422


@pytest.fixture()
def japanese_names(sync_engine, reference_data):
    with Session(sync_engine) as session:
        session.add_all(
            [
                MuscleGroupTranslation(muscle_group_id=CHEST, locale="ja", name="胸"),
                MuscleGroupTranslation(muscle_group_id=HIP_AND_GLUTES, locale="ja", name="臀部"),
            ]
        )
        session.commit()


async def test_dashboard_names_groups_in_requested_language(db, japanese_names, insert_sets):
    await _seed_history(db, insert_sets)

    dashboard = await DashboardService(db).get_dashboard(USER_ID, "4w", today=TODAY, language="ja-JP")

    groups = {g.group_id: g for g in dashboard.muscle_groups}
    assert {g.group_name for g in groups.values()} == {"胸", "脚"}
    assert groups[LEGS].group_name == "脚"
    assert groups[LEGS].points[-1].total_volume == pytest.approx(450.0)

    english = await DashboardService(db).get_dashboard(USER_ID, "4w", today=TODAY, language="fr")
    assert {g.group_name for g in english.muscle_groups} == {"Chest", "Legs"}


async def test_metric_key_filter_is_read_in_chunks(db, reference_data, insert_sets, monkeypatch):
    await _seed_history(db, insert_sets)
    calls: list[list[str]] = []
    original = AggregatesRepository.list_metric_rows

    async def spy(session, user_id, first_week, last_week, metric_keys=None):
        calls.append(list(metric_keys or []))
        return await original(session, user_id, first_week, last_week, metric_keys=metric_keys)

    monkeypatch.setattr(AggregatesRepository, "list_metric_rows", staticmethod(spy))
    service = DashboardService(db)
    service.settings = Settings(REFERENCE_CHUNK_SIZE=2)
    keys = ["active_days", f"exercise_{BENCH}_1rm_epley", "active_days", "missing_key"]

    dashboard = await service.get_dashboard(USER_ID, "4w", metric_keys=keys, today=TODAY)

    assert calls == [["active_days", f"exercise_{BENCH}_1rm_epley"], ["missing_key"]]
    assert [m.metric_key for m in dashboard.metrics] == ["active_days", f"exercise_{BENCH}_1rm_epley"]


def test_accept_language_header_localises_group_names(client: TestClient, japanese_names):
    headers = {"X-User-Id": USER_ID, "Accept-Language": "ja-JP,ja;q=0.9,en;q=0.8"}

    r = client.get("/dashboard", params={"span": "2w"}, headers=headers)
    assert r.status_code == 200, r.text
    assert [g["group_name"] for g in r.json()["muscle_groups"]] == ["胸", "脚"]

    r_param = client.get("/dashboard", params={"span": "2w", "language": "en"}, headers=headers)
    assert [g["group_name"] for g in r_param.json()["muscle_groups"]] == ["Chest", "Legs"]
