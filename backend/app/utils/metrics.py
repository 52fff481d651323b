"""Prometheus metrics for generation and pipeline runs."""

from prometheus_client import Counter, Histogram

# Model call metrics
llm_call_latency_ms = Histogram(
    "llm_call_latency_ms",
    "Model call latency in milliseconds",
    ["kind", "outcome"],
    buckets=[100, 250, 500, 1000, 2000, 5000, 10000, 30000, 60000, 120000],
)

llm_errors_total = Counter(
    "llm_errors_total",
    "Total model call errors",
    ["kind", "reason"],
)

generation_retries_total = Counter(
    "generation_retries_total",
    "Total retried generation attempts",
    ["kind"],
)

# Pipeline metrics
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total study material pipeline runs",
    ["material_type", "outcome"],
)

difficulty_fallbacks_total = Counter(
    "difficulty_fallbacks_total",
    "Difficulty adjustments rejected and kept as original",
    ["content_type"],
)


class PrometheusGenerationMetrics:
    """Prometheus-based generation metrics implementation."""

    def record_latency(self, kind: str, outcome: str, latency_ms: float) -> None:
        """Record model call latency."""
        llm_call_latency_ms.labels(kind=kind, outcome=outcome).observe(latency_ms)

    def inc_error(self, kind: str, reason: str) -> None:
        """Increment error counter."""
        llm_errors_total.labels(kind=kind, reason=reason).inc()

    def inc_retry(self, kind: str) -> None:
        """Increment retry counter."""
        generation_retries_total.labels(kind=kind).inc()

    def inc_pipeline_run(self, material_type: str, outcome: str) -> None:
        """Increment pipeline run counter."""
        pipeline_runs_total.labels(material_type=material_type, outcome=outcome).inc()

    def inc_difficulty_fallback(self, content_type: str) -> None:
        """Increment difficulty fallback counter."""
        difficulty_fallbacks_total.labels(content_type=content_type).inc()
