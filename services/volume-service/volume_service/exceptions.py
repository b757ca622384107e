class AggregationError(Exception):
    """Base class for failures inside a recompute run."""


class FatalReadFailure(AggregationError):
    """Raw sets or reference data could not be read; nothing is persisted for the run."""

    def __init__(self, user_id: str, stage: str, cause: Exception | None = None):
        self.user_id = user_id
        self.stage = stage
        self.cause = cause
        super().__init__(f"Failed to read {stage} for user {user_id}: {cause}")


class BatchWriteFailed(AggregationError):
    def __init__(self, table: str, payload: list[dict], cause: Exception):
        self.table = table
        self.payload = payload
        self.cause = cause
        super().__init__(f"Upsert batch into {table} failed ({len(payload)} rows): {cause}")


class InvalidSpanError(ValueError):
    def __init__(self, span: str, reason: str = "expected <N>w with N >= 1"):
        self.span = span
        super().__init__(f"Invalid span '{span}': {reason}")

