"""initial volume tables

Revision ID: 0001_initial_volume_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial_volume_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "muscle_groups",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
    )
    op.create_table(
        "muscle_group_translations",
        sa.Column(
            "muscle_group_id", sa.Integer, sa.ForeignKey("muscle_groups.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("locale", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("muscle_group_id", "locale"),
    )
    op.create_table(
        "muscles",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("muscle_group_id", sa.Integer, sa.ForeignKey("muscle_groups.id"), nullable=False, index=True),
        sa.Column("tension_factor", sa.Float, nullable=False, server_default="1.0"),
        sa.CheckConstraint("tension_factor >= 0", name="ck_muscles_tension_factor_non_negative"),
    )
    op.create_table(
        "exercise_muscles",
        sa.Column("exercise_id", sa.Integer, nullable=False),
        sa.Column("muscle_id", sa.Integer, sa.ForeignKey("muscles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("relative_share", sa.Integer, nullable=False),
        sa.Column("source_id", sa.Integer, nullable=True),
        sa.PrimaryKeyConstraint("exercise_id", "muscle_id"),
        sa.CheckConstraint(
            "relative_share >= 0 AND relative_share <= 1000",
            name="ck_exercise_muscles_relative_share_range",
        ),
    )
    op.create_table(
        "set_modifiers",
        sa.Column("set_id", sa.Integer, primary_key=True),
        sa.Column("relative_share_multiplier", sa.Float, nullable=False, server_default="1.0"),
    )
    op.create_table(
        "workout_sets",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("exercise_id", sa.Integer, nullable=True),
        sa.Column("weight", sa.Float, nullable=True),
        sa.Column("reps", sa.Integer, nullable=True),
        sa.Column("rpe", sa.Float, nullable=True),
        sa.Column("performed_at", sa.DateTime, nullable=True),
    )
    op.create_index("ix_workout_sets_user_performed_at", "workout_sets", ["user_id", "performed_at"])

    op.create_table(
        "weekly_user_volumes",
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("week_start", sa.String(length=10), nullable=False),
        sa.Column("total_volume", sa.Float, nullable=False),
        sa.Column("avg_set_volume", sa.Float, nullable=False),
        sa.Column("set_count", sa.Integer, nullable=False),
        sa.Column("e1rm_avg", sa.Float, nullable=True),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.PrimaryKeyConstraint("user_id", "week_start"),
    )
    op.create_table(
        "weekly_user_muscle_volumes",
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("week_start", sa.String(length=10), nullable=False),
        sa.Column("muscle_id", sa.Integer, nullable=False),
        sa.Column("volume", sa.Float, nullable=False),
        sa.Column("set_count", sa.Integer, nullable=False),
        sa.Column("e1rm_sum", sa.Float, nullable=False),
        sa.Column("e1rm_count", sa.Integer, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.PrimaryKeyConstraint("user_id", "week_start", "muscle_id"),
    )
    op.create_table(
        "weekly_user_metrics",
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("week_start", sa.String(length=10), nullable=False),
        sa.Column("metric_key", sa.String(length=128), nullable=False),
        sa.Column("metric_value", sa.Float, nullable=False),
        sa.Column("metric_unit", sa.String(length=32), nullable=True),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.PrimaryKeyConstraint("user_id", "week_start", "metric_key"),
    )


def downgrade() -> None:
    op.drop_table("weekly_user_metrics")
    op.drop_table("weekly_user_muscle_volumes")
    op.drop_table("weekly_user_volumes")
    op.drop_index("ix_workout_sets_user_performed_at", table_name="workout_sets")
    op.drop_table("workout_sets")
    op.drop_table("set_modifiers")
    op.drop_table("exercise_muscles")
    op.drop_table("muscles")
    op.drop_table("muscle_group_translations")
    op.drop_table("muscle_groups")
