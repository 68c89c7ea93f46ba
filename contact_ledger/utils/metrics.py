"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


coin_operations_total = Counter(
    "coin_operations_total",
    "Total coin ledger operations",
    ["reason"],  # purchase, admin_grant, unlock_debit, refund_credit
)

coins_moved_total = Counter(
    "coins_moved_total",
    "Total coins credited or debited",
    ["direction"],  # credit, debit
)

unlocks_total = Counter(
    "unlocks_total",
    "Contact unlock attempts",
    ["mode", "outcome"],  # outcome: ok or the rejection code
)

refunds_total = Counter(
    "refunds_total",
    "Refund requests by kind and resulting status",
    ["kind", "status"],
)

retryable_errors_total = Counter(
    "retryable_errors_total",
    "Transactions that failed with a retryable storage error",
    ["operation"],
)


router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


class LedgerMetrics:
    """Thin helpers so services don't juggle label names."""

    def inc_coin_operation(self, reason: str, delta: int) -> None:
        coin_operations_total.labels(reason=reason).inc()
        coins_moved_total.labels(direction="credit" if delta > 0 else "debit").inc(abs(delta))

    def inc_unlock(self, mode: str, outcome: str = "ok") -> None:
        unlocks_total.labels(mode=mode, outcome=outcome).inc()

    def inc_refund(self, kind: str, status: str) -> None:
        refunds_total.labels(kind=kind, status=status).inc()

    def inc_retryable(self, operation: str) -> None:
        retryable_errors_total.labels(operation=operation).inc()


metrics = LedgerMetrics()
