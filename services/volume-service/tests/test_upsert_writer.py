from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from volume_service.metrics import VOLUME_UPSERT_BATCHES_FAILED_TOTAL
from volume_service.models import WeeklyUserMetric, WeeklyUserMuscleVolume, WeeklyUserVolume
from volume_service.repositories.aggregates_repository import AggregatesRepository
from volume_service.services import upsert_writer
from volume_service.services.aggregation_service import AggregationService
from volume_service.services.upsert_writer import MUSCLE_TARGET, WEEKLY_ROWS, UpsertWriter, WriteReport
from volume_service.services.weekly_aggregator import WeekRows

from reference_ids import BENCH, GLUTEUS, MUSCLE_A, PECTORALIS, QUADRICEPS, USER_ID

WEEK = "2024-03-11"


def _rows(muscles: dict[int, float], metrics: dict[str, float], now: datetime, total: float = 1000.0) -> WeekRows:
    return WeekRows(
        volume={
            "user_id": USER_ID,
            "week_start": WEEK,
            "total_volume": total,
            "avg_set_volume": total / 2,
            "set_count": 2,
            "e1rm_avg": 120.0,
            "updated_at": now,
        },
        muscles=[
            {
                "user_id": USER_ID,
                "week_start": WEEK,
                "muscle_id": muscle_id,
                "volume": volume,
                "set_count": 1,
                "e1rm_sum": 120.0,
                "e1rm_count": 1,
                "updated_at": now,
            }
            for muscle_id, volume in muscles.items()
        ],
        metrics=[
            {
                "user_id": USER_ID,
                "week_start": WEEK,
                "metric_key": key,
                "metric_value": value,
                "metric_unit": "kg",
                "updated_at": now,
            }
            for key, value in metrics.items()
        ],
    )


def _stored(sync_engine):
    with Session(sync_engine) as session:
        volumes = [
            (r.week_start, r.total_volume, r.avg_set_volume, r.set_count, r.e1rm_avg)
            for r in session.scalars(select(WeeklyUserVolume).where(WeeklyUserVolume.user_id == USER_ID))
        ]
        muscles = {
            r.muscle_id: (r.volume, r.set_count, r.e1rm_sum, r.e1rm_count)
            for r in session.scalars(select(WeeklyUserMuscleVolume).where(WeeklyUserMuscleVolume.user_id == USER_ID))
        }
        metrics = {
            r.metric_key: (r.metric_value, r.metric_unit)
            for r in session.scalars(select(WeeklyUserMetric).where(WeeklyUserMetric.user_id == USER_ID))
        }
    return volumes, muscles, metrics


async def test_rewriting_a_week_overwrites_instead_of_accumulating(db, sync_engine, fixed_now):
    writer = UpsertWriter(db)
    rows = _rows({MUSCLE_A: 720.0, QUADRICEPS: 250.0}, {"active_days": 2}, fixed_now)

    await writer.write_week(USER_ID, WEEK, rows)
    first = _stored(sync_engine)
    report = await writer.write_week(USER_ID, WEEK, rows)
    second = _stored(sync_engine)

    assert first == second
    assert second[0] == [(WEEK, 1000.0, 500.0, 2, 120.0)]
    assert second[1][MUSCLE_A] == (720.0, 1, 120.0, 1)
    assert report.failed_batches == 0
    assert report.rows_written == 1 + 2 + 1


async def test_recompute_replaces_values_and_drops_stale_keys(db, sync_engine, fixed_now):
    writer = UpsertWriter(db)
    await writer.write_week(
        USER_ID,
        WEEK,
        _rows({MUSCLE_A: 720.0, QUADRICEPS: 250.0, GLUTEUS: 200.0}, {"active_days": 3, "exercise_1_1rm_epley": 100}, fixed_now),
    )

    report = await writer.write_week(USER_ID, WEEK, _rows({MUSCLE_A: 360.0}, {"active_days": 1}, fixed_now, total=500.0))

    volumes, muscles, metrics = _stored(sync_engine)
    assert volumes == [(WEEK, 500.0, 250.0, 2, 120.0)]
    assert muscles == {MUSCLE_A: (360.0, 1, 120.0, 1)}
    assert metrics == {"active_days": (1.0, "kg")}
    assert report.rows_deleted == 3


async def test_failed_batch_is_skipped_and_others_persist(db, sync_engine, fixed_now, monkeypatch):
    writer = UpsertWriter(db, batch_size=1)
    original = writer._execute_batch

    async def flaky(target, batch):
        if target is MUSCLE_TARGET and batch[0]["muscle_id"] == QUADRICEPS:
            raise OperationalError("INSERT ...", {}, Exception("too many SQL variables"))
        await original(target, batch)

    monkeypatch.setattr(writer, "_execute_batch", flaky)

    report = await writer.write_week(
        USER_ID, WEEK, _rows({MUSCLE_A: 720.0, QUADRICEPS: 250.0, PECTORALIS: 100.0}, {"active_days": 2}, fixed_now)
    )

    _, muscles, metrics = _stored(sync_engine)
    assert set(muscles) == {MUSCLE_A, PECTORALIS}
    assert "active_days" in metrics
    assert report.failed_batches == 1
    assert report.failed_tables == ["weekly_user_muscle_volumes"]
    assert report.batches == 5


async def test_rows_are_split_into_batches(db, sync_engine, fixed_now):
    writer = UpsertWriter(db, batch_size=2)
    metrics = {f"exercise_{i}_1rm_epley": float(i) for i in range(5)}

    report = await writer.write_week(USER_ID, WEEK, _rows({MUSCLE_A: 1.0}, metrics, fixed_now))

    # 1 volume batch, 1 muscle batch, 3 metric batches
    assert report.batches == 5
    assert len(_stored(sync_engine)[2]) == 5


async def test_clear_week_removes_all_three_tables(db, sync_engine, fixed_now):
    writer = UpsertWriter(db)
    await writer.write_week(USER_ID, WEEK, _rows({MUSCLE_A: 720.0}, {"active_days": 1}, fixed_now))

    report = await writer.clear_week(USER_ID, WEEK)

    assert _stored(sync_engine) == ([], {}, {})
    assert report.rows_deleted == 3


async def test_clear_user_only_touches_that_user(db, sync_engine, fixed_now):
    writer = UpsertWriter(db)
    await writer.write_week(USER_ID, WEEK, _rows({MUSCLE_A: 720.0}, {"active_days": 1}, fixed_now))
    other = _rows({MUSCLE_A: 10.0}, {"active_days": 1}, fixed_now)
    for row in [other.volume, *other.muscles, *other.metrics]:
        row["user_id"] = "user-2"
    await writer.write_week("user-2", WEEK, other)

    await writer.clear_user(USER_ID)

    assert _stored(sync_engine) == ([], {}, {})
    with Session(sync_engine) as session:
        assert session.scalar(select(WeeklyUserVolume.total_volume).where(WeeklyUserVolume.user_id == "user-2")) == 1000.0


async def test_stale_lookup_failure_skips_only_that_week(db, sync_engine, reference_data, insert_sets, monkeypatch):
    insert_sets(
        {"exercise_id": BENCH, "weight": 100, "reps": 10, "performed_at": datetime(2024, 3, 5, 9, 0)},
        {"exercise_id": BENCH, "weight": 100, "reps": 5, "performed_at": datetime(2024, 3, 12, 9, 0)},
    )
    original = AggregatesRepository.list_muscle_ids

    async def flaky(session, user_id, week_start):
        if week_start == "2024-03-04":
            raise OperationalError("SELECT ...", {}, Exception("database is locked"))
        return await original(session, user_id, week_start)

    monkeypatch.setattr(AggregatesRepository, "list_muscle_ids", staticmethod(flaky))
    before = VOLUME_UPSERT_BATCHES_FAILED_TOTAL.labels(table=WEEKLY_ROWS)._value.get()

    result = await AggregationService(db).recompute_full_history(USER_ID)

    volumes, _, _ = _stored(sync_engine)
    assert [v[0] for v in volumes] == [WEEK]
    assert result.weeks_written == [WEEK]
    assert result.failed_batches == 1
    assert VOLUME_UPSERT_BATCHES_FAILED_TOTAL.labels(table=WEEKLY_ROWS)._value.get() == before + 1


async def test_failed_clear_is_reported_not_raised(db, sync_engine, fixed_now, monkeypatch):
    writer = UpsertWriter(db)
    await writer.write_week(USER_ID, WEEK, _rows({MUSCLE_A: 720.0}, {"active_days": 1}, fixed_now))

    def broken(*args, **kwargs):
        raise OperationalError("DELETE ...", {}, Exception("disk I/O error"))

    monkeypatch.setattr(upsert_writer, "delete", broken)
    report = await writer.clear_week(USER_ID, WEEK)
    monkeypatch.undo()

    assert not report.ok
    assert report.failed_tables == [WEEKLY_ROWS]
    assert report.rows_deleted == 0
    assert len(_stored(sync_engine)[0]) == 1


def test_unsupported_dialect_is_rejected():
    session = SimpleNamespace(get_bind=lambda: SimpleNamespace(dialect=SimpleNamespace(name="mysql")))
    writer = UpsertWriter(session)

    with pytest.raises(ValueError, match="mysql"):
        writer._insert(WeeklyUserVolume)


async def test_explicit_zero_batch_size_is_not_replaced_by_default(db, fixed_now):
    writer = UpsertWriter(db, batch_size=0)

    assert writer.batch_size == 0
    with pytest.raises(ValueError):
        await writer._upsert(MUSCLE_TARGET, _rows({MUSCLE_A: 1.0}, {}, fixed_now).muscles, WriteReport())
