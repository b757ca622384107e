from prometheus_client import Counter

VOLUME_SETS_SKIPPED_TOTAL = Counter(
    "volume_sets_skipped_total",
    "Number of malformed sets skipped by the weekly aggregator",
    ["reason"],  # missing_weight | missing_reps | missing_exercise | missing_performed_at | non_finite
)

VOLUME_UPSERT_BATCHES_FAILED_TOTAL = Counter(
    "volume_upsert_batches_failed_total",
    "Number of upsert batches that failed and were skipped",
    ["table"],
)

VOLUME_RECOMPUTES_TOTAL = Counter(
    "volume_recomputes_total",
    "Number of aggregation runs in volume-service",
    ["mode"],  # week | full_history | rebuild
)

VOLUME_WEEKS_CLEARED_TOTAL = Counter(
    "volume_weeks_cleared_total",
    "Number of user-weeks whose derived rows were deleted because no sets remained",
)

VOLUME_EVENTS_PUBLISHED_TOTAL = Counter(
    "volume_events_published_total",
    "Number of volume events handed to the broker",
)

VOLUME_EVENTS_FAILED_TOTAL = Counter(
    "volume_events_failed_total",
    "Number of volume events that could not be published",
)
