"""Prometheus metrics for money movement, alert emission and API latency"""

from prometheus_client import Counter, Histogram

# Ledger metrics
payments_counter = Counter(
    "agro_ledger_payments_total",
    "Payments and collections applied to documents",
    ["kind"],  # expense | income
)

orders_executed_counter = Counter(
    "agro_ledger_payment_orders_executed_total",
    "Payment orders executed",
)

rejected_operations_counter = Counter(
    "agro_ledger_rejected_operations_total",
    "Operations rejected by a business rule",
    ["error"],
)

# Alert metrics
alerts_emitted_counter = Counter(
    "agro_ledger_alerts_emitted_total",
    "Alerts created by the periodic checks",
    ["rule"],
)

alerts_suppressed_counter = Counter(
    "agro_ledger_alerts_suppressed_total",
    "Alerts skipped because a pending alert already exists",
    ["rule"],
)

alert_check_failures_counter = Counter(
    "agro_ledger_alert_check_failures_total",
    "Alert checks that failed and were skipped",
    ["check"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(kind: str) -> None:
    payments_counter.labels(kind=kind).inc()


def record_alert(rule_name: str, emitted: bool) -> None:
    """Count one dedup decision"""
    if emitted:
        alerts_emitted_counter.labels(rule=rule_name).inc()
    else:
        alerts_suppressed_counter.labels(rule=rule_name).inc()


# Audit webhook metrics
audit_latency_histogram = Histogram(
    "audit_webhook_latency_seconds",
    "Audit trail webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

audit_failure_counter = Counter(
    "audit_webhook_failures_total",
    "Failed audit trail deliveries",
)
