from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..domain import GroupRef

LEGACY_GROUP_NAME = "Hip & Glutes"
FOLD_TARGET_NAME = "Legs"
# Used when the fold target has no stored translation for the locale.
FOLD_TARGET_LABELS = {"ja": "脚"}


@dataclass
class MuscleGroupWeek:
    group_id: int
    group_name: str
    week_start: str
    volume: float = 0.0
    set_count: int = 0
    e1rm_sum: float = 0.0
    e1rm_count: int = 0

    @property
    def avg_e1rm(self) -> float | None:
        if self.e1rm_count == 0:
            return None
        return round(self.e1rm_sum / self.e1rm_count, 2)


def primary_language(value: str | None) -> str | None:
    """Primary subtag of a language tag or of the first Accept-Language entry, e.g. "ja-JP,en;q=0.8" -> "ja"."""
    if not value:
        return None
    first = value.split(",", 1)[0].split(";", 1)[0].strip()
    subtag = first.replace("_", "-").split("-", 1)[0].lower()
    if not subtag or subtag == "*":
        return None
    return subtag


def _normalize(name: str | None) -> str:
    return (name or "").strip().casefold()


def is_legacy_group(name: str | None) -> bool:
    return _normalize(name) == _normalize(LEGACY_GROUP_NAME)


def is_fold_target(name: str | None) -> bool:
    return _normalize(name) == _normalize(FOLD_TARGET_NAME)


def fold_target_label(locale: str | None, translated: str | None = None) -> str:
    if translated:
        return translated
    return FOLD_TARGET_LABELS.get(locale or "", FOLD_TARGET_NAME)


def visible_muscle_groups(groups: Iterable[GroupRef], locale: str | None = None) -> list[GroupRef]:
    """Reference groups as shown to users, named in ``locale``; the legacy group never appears."""
    visible = []
    for g in groups:
        if is_legacy_group(g.name):
            continue
        name = fold_target_label(locale, g.label) if is_fold_target(g.name) else g.display_name
        visible.append(GroupRef(id=g.id, name=name))
    return visible


def _fold_target(
    groups: Sequence[GroupRef], rows: Sequence[Mapping[str, Any]], locale: str | None
) -> tuple[int | None, str]:
    for group in groups:
        if is_fold_target(group.name):
            return group.id, fold_target_label(locale, group.label)
    for row in rows:
        if is_fold_target(row.get("group_name")):
            return row["group_id"], fold_target_label(locale, row.get("group_label"))
    return None, fold_target_label(locale)


def rollup_muscle_groups(
    rows: Iterable[Mapping[str, Any]],
    groups: Sequence[GroupRef] = (),
    locale: str | None = None,
) -> list[MuscleGroupWeek]:
    """Collapse per-muscle weekly rows into per-group weekly rows.

    Volume, set counts and e1RM sums/counts add up across a group's muscles,
    so the group e1RM is ``sum(e1rm_sum) / sum(e1rm_count)`` and not a mean
    of per-muscle means. Rows of the legacy "Hip & Glutes" group are always
    credited to "Legs". Groups are matched on their base ``group_name``; the
    emitted name is the ``group_label`` translation when one was joined.
    """
    rows = list(rows)
    target_id, target_name = _fold_target(groups, rows, locale)

    buckets: dict[tuple[int, str], MuscleGroupWeek] = {}
    for row in rows:
        group_id = row["group_id"]
        base_name = row.get("group_name") or ""
        if is_legacy_group(base_name):
            group_name = target_name
            group_id = target_id if target_id is not None else group_id
        elif is_fold_target(base_name):
            group_name = target_name
        else:
            group_name = row.get("group_label") or base_name

        key = (group_id, row["week_start"])
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = MuscleGroupWeek(
                group_id=group_id,
                group_name=group_name,
                week_start=row["week_start"],
            )
        bucket.volume += row.get("volume") or 0.0
        bucket.set_count += row.get("set_count") or 0
        bucket.e1rm_sum += row.get("e1rm_sum") or 0.0
        bucket.e1rm_count += row.get("e1rm_count") or 0

    return sorted(buckets.values(), key=lambda b: (b.week_start, b.group_id))
