"""Prometheus metrics for submission outcomes, validation rejections and catalog health"""

from prometheus_client import Counter, Histogram

# Submission metrics
submission_counter = Counter(
    "cashier_submission_total",
    "Transaction submissions by direction and outcome",
    ["kind", "outcome"],  # succeeded | failed | replayed
)

submission_latency_histogram = Histogram(
    "cashier_submission_latency_seconds",
    "Submission endpoint response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

submission_retry_counter = Counter(
    "cashier_submission_retries_total",
    "Submission attempts repeated after a network error",
)

# Validation metrics
validation_rejection_counter = Counter(
    "cashier_validation_rejections_total",
    "Drafts rejected by the field validator",
    ["reason"],
)

# Catalog / limits health
catalog_fallback_counter = Counter(
    "cashier_catalog_fallback_total",
    "Workflows that degraded because a catalog fetch failed",
    ["source"],  # methods | limits
)


def record_submission(kind: str, succeeded: bool, replayed: bool = False) -> None:
    """Record submission outcome for monitoring success rates"""
    if not succeeded:
        outcome = "failed"
    elif replayed:
        outcome = "replayed"
    else:
        outcome = "succeeded"
    submission_counter.labels(kind=kind, outcome=outcome).inc()
