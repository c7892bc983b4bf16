"""
Hybrid OCR Metrics

Keeps the append-only attempt history and derived cost/accuracy statistics
for one router. Statistics are updated incrementally on every record()
instead of rescanning the history.

Counting is per logical request: the first attempt of a request seen in
the current window increments total_requests and the simple/complex split
(normally sequence 0; a request still in flight across reset() is counted
by its first attempt after the reset).
Fallback attempts increment fallback_count; cheap retries only affect the
cheap success rate.

Attempts are also exported to Prometheus (process-wide, never reset).
"""
import threading
from typing import List, Set, Tuple

import structlog
from prometheus_client import Counter, Histogram

from receipt_ocr.common.schemas.extraction import (
    Attempt,
    AttemptErrorKind,
    HybridMetrics,
    ProviderKind,
)

logger = structlog.get_logger()

OCR_ATTEMPTS = Counter(
    "receipt_ocr_attempts_total",
    "Extraction provider attempts",
    ["provider", "outcome"],
)
OCR_COST = Counter(
    "receipt_ocr_cost_total",
    "Extraction cost in currency units",
    ["provider"],
)
OCR_DURATION = Histogram(
    "receipt_ocr_attempt_duration_seconds",
    "Wall-clock duration of provider attempts",
    ["provider"],
)
OCR_FALLBACKS = Counter(
    "receipt_ocr_fallbacks_total",
    "Cheap-provider failures retried with the precise provider",
)


def _rate(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


class MetricsAccumulator:
    """
    Thread-safe attempt log plus running statistics.

    Usage:
        metrics = MetricsAccumulator(precise_unit_cost=0.50)
        metrics.record(attempt)
        snapshot = metrics.snapshot()
    """

    def __init__(
        self,
        precise_unit_cost: float = 0.50,
        manual_review_threshold: float = 0.95,
        export_prometheus: bool = True,
    ):
        """
        Args:
            precise_unit_cost: Cost of one precise extraction (baseline for savings)
            manual_review_threshold: Results below this confidence need review
            export_prometheus: Also publish attempts as Prometheus metrics
        """
        self.precise_unit_cost = precise_unit_cost
        self.manual_review_threshold = manual_review_threshold
        self.export_prometheus = export_prometheus
        self._lock = threading.Lock()
        self._clear()

    def _clear(self) -> None:
        self._attempts: List[Attempt] = []
        self._seen_requests: Set[int] = set()
        self._total_requests = 0
        self._simple_count = 0
        self._complex_count = 0
        self._cheap_attempts = 0
        self._cheap_successes = 0
        self._fallback_count = 0
        self._cancelled_count = 0
        self._total_cost = 0.0
        self._manual_review_count = 0
        self._snapshot = HybridMetrics()

    def record(self, attempt: Attempt) -> None:
        """Append an attempt and update the statistics atomically"""
        with self._lock:
            self._attempts.append(attempt)

            if attempt.request_id not in self._seen_requests:
                self._seen_requests.add(attempt.request_id)
                self._total_requests += 1
                # A fallback attempt belongs to a request routed to the cheap path
                if attempt.provider is ProviderKind.CHEAP or attempt.is_fallback:
                    self._simple_count += 1
                else:
                    self._complex_count += 1

            if attempt.is_fallback:
                self._fallback_count += 1

            if attempt.provider is ProviderKind.CHEAP:
                self._cheap_attempts += 1
                if attempt.success:
                    self._cheap_successes += 1

            if attempt.error_kind is AttemptErrorKind.CANCELLED:
                self._cancelled_count += 1

            self._total_cost += attempt.cost

            if (attempt.result is not None
                    and attempt.result.effective_confidence < self.manual_review_threshold):
                self._manual_review_count += 1

            self._snapshot = self._build_snapshot()

        if self.export_prometheus:
            self._export(attempt)

    def _build_snapshot(self) -> HybridMetrics:
        total = self._total_requests
        return HybridMetrics(
            total_requests=total,
            total_attempts=len(self._attempts),
            simple_count=self._simple_count,
            complex_count=self._complex_count,
            cheap_attempts=self._cheap_attempts,
            cheap_success_rate=_rate(self._cheap_successes, self._cheap_attempts),
            fallback_count=self._fallback_count,
            cancelled_count=self._cancelled_count,
            total_cost=self._total_cost,
            avg_cost_per_request=_rate(self._total_cost, total),
            savings_vs_precise_only=total * self.precise_unit_cost - self._total_cost,
            manual_review_count=self._manual_review_count,
            manual_review_rate=_rate(self._manual_review_count, total),
        )

    @staticmethod
    def _export(attempt: Attempt) -> None:
        provider = attempt.provider.value
        if attempt.success:
            outcome = "success"
        else:
            outcome = (attempt.error_kind or AttemptErrorKind.PROVIDER_ERROR).value
        OCR_ATTEMPTS.labels(provider=provider, outcome=outcome).inc()
        OCR_COST.labels(provider=provider).inc(attempt.cost)
        OCR_DURATION.labels(provider=provider).observe(attempt.duration_ms / 1000)
        if attempt.is_fallback:
            OCR_FALLBACKS.inc()

    def snapshot(self) -> HybridMetrics:
        """Current statistics (immutable)"""
        with self._lock:
            return self._snapshot

    def attempts(self) -> Tuple[Attempt, ...]:
        """Attempt history in completion order"""
        with self._lock:
            return tuple(self._attempts)

    def reset(self) -> None:
        """Clear statistics and history (start a new measurement window)"""
        with self._lock:
            self._clear()
        logger.info("hybrid_metrics_reset")

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)


def format_metrics_report(metrics: HybridMetrics, precise_unit_cost: float = 0.50) -> str:
    """Render a metrics summary table"""
    total = metrics.total_requests
    baseline = total * precise_unit_cost

    def pct(value: float) -> str:
        return f"{value * 100:.0f}%"

    lines = [
        "=" * 50,
        "HYBRID OCR METRICS",
        "=" * 50,
        f"Total Receipts:       {total}",
        f"├─ Simple (cheap):    {metrics.simple_count} ({pct(_rate(metrics.simple_count, total))})",
        f"└─ Complex (precise): {metrics.complex_count} ({pct(_rate(metrics.complex_count, total))})",
        "",
        f"Cheap Success Rate:   {pct(metrics.cheap_success_rate)}",
        f"Precise Fallbacks:    {metrics.fallback_count} times",
        "",
        f"Total Cost:           ฿{metrics.total_cost:.2f}",
        f"Avg Cost/Receipt:     ฿{metrics.avg_cost_per_request:.2f}",
        f"Savings vs Precise:   ฿{metrics.savings_vs_precise_only:.2f} "
        f"({pct(_rate(metrics.savings_vs_precise_only, baseline))})",
        "",
        f"Manual Review Rate:   {pct(metrics.manual_review_rate)}",
        "=" * 50,
    ]
    return "\n".join(lines)
