import os
import sys
from datetime import datetime
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

SERVICE_ROOT = Path(__file__).resolve().parents[1]
if str(SERVICE_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICE_ROOT))

from volume_service.models import (  # noqa: E402
    Base,
    ExerciseMuscle,
    Muscle,
    MuscleGroup,
    SetModifier,
    WorkoutSet,
)

from reference_ids import (  # noqa: E402
    BENCH,
    CHEST,
    GLUTEUS,
    HIP_AND_GLUTES,
    HIP_THRUST,
    LEGS,
    MUSCLE_A,
    PECTORALIS,
    QUADRICEPS,
    SQUAT,
    USER_ID,
)


def _alembic_upgrade_head(db_url: str) -> None:
    os.environ["VOLUME_DATABASE_URL"] = db_url
    cfg = Config(str(SERVICE_ROOT / "alembic.ini"))
    # Pin script_location explicitly to avoid picking up wrong migrations when running from repo root
    cfg.set_main_option("script_location", str(SERVICE_ROOT / "alembic"))
    command.upgrade(cfg, "head")


@pytest.fixture(scope="session")
def test_db_url(tmp_path_factory) -> str:
    tmp_dir = tmp_path_factory.mktemp("volume_db")
    db_path = tmp_dir / "test_volume.db"
    return f"sqlite:///{db_path}"


@pytest.fixture(scope="session")
def migrated_db(test_db_url: str):
    _alembic_upgrade_head(test_db_url)
    yield test_db_url


@pytest.fixture(scope="session")
def sync_engine(migrated_db: str):
    engine = create_engine(migrated_db)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def auto_clean_tables(request):
    """Fixture to automatically clean all tables after each test that touched the database."""
    yield
    if "sync_engine" not in request.fixturenames:
        return
    engine = request.getfixturevalue("sync_engine")
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(delete(table))


@pytest.fixture()
def reference_data(sync_engine):
    """Muscle groups, muscles and exercise attributions shared by the aggregation tests."""
    with Session(sync_engine) as session:
        session.add_all(
            [
                MuscleGroup(id=CHEST, name="Chest"),
                MuscleGroup(id=HIP_AND_GLUTES, name="Hip & Glutes"),
                MuscleGroup(id=LEGS, name="Legs"),
            ]
        )
        session.flush()
        session.add_all(
            [
                Muscle(id=MUSCLE_A, name="Muscle A", muscle_group_id=CHEST, tension_factor=1.2),
                Muscle(id=PECTORALIS, name="Pectoralis Major", muscle_group_id=CHEST, tension_factor=1.0),
                Muscle(id=QUADRICEPS, name="Quadriceps", muscle_group_id=LEGS, tension_factor=1.0),
                Muscle(id=GLUTEUS, name="Gluteus Maximus", muscle_group_id=HIP_AND_GLUTES, tension_factor=1.0),
            ]
        )
        session.flush()
        session.add_all(
            [
                ExerciseMuscle(exercise_id=BENCH, muscle_id=MUSCLE_A, relative_share=600),
                ExerciseMuscle(exercise_id=SQUAT, muscle_id=QUADRICEPS, relative_share=500),
                ExerciseMuscle(exercise_id=SQUAT, muscle_id=GLUTEUS, relative_share=400),
                ExerciseMuscle(exercise_id=HIP_THRUST, muscle_id=GLUTEUS, relative_share=1000),
            ]
        )
        session.commit()


@pytest.fixture()
def insert_sets(sync_engine):
    def _insert(*rows: dict) -> list[int]:
        with Session(sync_engine) as session:
            objs = [WorkoutSet(user_id=row.pop("user_id", USER_ID), **row) for row in map(dict, rows)]
            session.add_all(objs)
            session.commit()
            return [obj.id for obj in objs]

    return _insert


@pytest.fixture()
def insert_modifiers(sync_engine):
    def _insert(multipliers_by_set: dict[int, float]) -> None:
        with Session(sync_engine) as session:
            session.add_all(
                [
                    SetModifier(set_id=set_id, relative_share_multiplier=value)
                    for set_id, value in multipliers_by_set.items()
                ]
            )
            session.commit()

    return _insert


@pytest.fixture()
def delete_sets(sync_engine):
    def _delete(*set_ids: int) -> None:
        with sync_engine.begin() as connection:
            connection.execute(delete(WorkoutSet).where(WorkoutSet.id.in_(set_ids)))

    return _delete


@pytest.fixture()
async def db(sync_engine, migrated_db: str):
    engine = create_async_engine(migrated_db.replace("sqlite://", "sqlite+aiosqlite://", 1), poolclass=NullPool)
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture()
def fixed_now() -> datetime:
    return datetime(2024, 3, 14, 12, 0, 0)


@pytest.fixture()
def client(sync_engine):
    from volume_service.main import app

    with TestClient(app) as c:
        yield c
