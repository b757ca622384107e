from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


# Reference data, owned by exercises-service and read here only.


class MuscleGroup(Base):
    __tablename__ = "muscle_groups"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)

    muscles = relationship("Muscle", back_populates="group")


class MuscleGroupTranslation(Base):
    __tablename__ = "muscle_group_translations"

    muscle_group_id = Column(Integer, ForeignKey("muscle_groups.id", ondelete="CASCADE"), nullable=False)
    locale = Column(String(16), nullable=False)
    name = Column(String(255), nullable=False)

    __table_args__ = (PrimaryKeyConstraint("muscle_group_id", "locale"),)


class Muscle(Base):
    __tablename__ = "muscles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    muscle_group_id = Column(Integer, ForeignKey("muscle_groups.id"), nullable=False, index=True)
    tension_factor = Column(Float, nullable=False, default=1.0)

    group = relationship("MuscleGroup", back_populates="muscles")

    __table_args__ = (CheckConstraint("tension_factor >= 0", name="ck_muscles_tension_factor_non_negative"),)


class ExerciseMuscle(Base):
    __tablename__ = "exercise_muscles"

    exercise_id = Column(Integer, nullable=False)
    muscle_id = Column(Integer, ForeignKey("muscles.id", ondelete="CASCADE"), nullable=False)
    relative_share = Column(Integer, nullable=False)  # per mille
    source_id = Column(Integer, nullable=True)

    __table_args__ = (
        PrimaryKeyConstraint("exercise_id", "muscle_id"),
        CheckConstraint(
            "relative_share >= 0 AND relative_share <= 1000",
            name="ck_exercise_muscles_relative_share_range",
        ),
    )


class SetModifier(Base):
    __tablename__ = "set_modifiers"

    set_id = Column(Integer, primary_key=True)
    relative_share_multiplier = Column(Float, nullable=False, default=1.0)


# Raw facts, owned by workouts-service.


class WorkoutSet(Base):
    __tablename__ = "workout_sets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False)
    exercise_id = Column(Integer, nullable=True)
    weight = Column(Float, nullable=True)
    reps = Column(Integer, nullable=True)
    rpe = Column(Float, nullable=True)
    performed_at = Column(DateTime, nullable=True)

    __table_args__ = (Index("ix_workout_sets_user_performed_at", "user_id", "performed_at"),)

    def __repr__(self):
        return "<WorkoutSet(id=%s, user_id='%s', exercise_id=%s, performed_at=%s)>" % (
            self.id,
            self.user_id,
            self.exercise_id,
            self.performed_at,
        )


# Derived weekly aggregates, written only by a recompute run.


class WeeklyUserVolume(Base):
    __tablename__ = "weekly_user_volumes"

    user_id = Column(String(255), nullable=False)
    week_start = Column(String(10), nullable=False)
    total_volume = Column(Float, nullable=False, default=0.0)
    avg_set_volume = Column(Float, nullable=False, default=0.0)
    set_count = Column(Integer, nullable=False, default=0)
    e1rm_avg = Column(Float, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (PrimaryKeyConstraint("user_id", "week_start"),)


class WeeklyUserMuscleVolume(Base):
    __tablename__ = "weekly_user_muscle_volumes"

    user_id = Column(String(255), nullable=False)
    week_start = Column(String(10), nullable=False)
    muscle_id = Column(Integer, nullable=False)
    volume = Column(Float, nullable=False, default=0.0)
    set_count = Column(Integer, nullable=False, default=0)
    e1rm_sum = Column(Float, nullable=False, default=0.0)
    e1rm_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (PrimaryKeyConstraint("user_id", "week_start", "muscle_id"),)


class WeeklyUserMetric(Base):
    __tablename__ = "weekly_user_metrics"

    user_id = Column(String(255), nullable=False)
    week_start = Column(String(10), nullable=False)
    metric_key = Column(String(128), nullable=False)
    metric_value = Column(Float, nullable=False)
    metric_unit = Column(String(32), nullable=True)
    updated_at = Column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (PrimaryKeyConstraint("user_id", "week_start", "metric_key"),)
