from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class MetricsUpdater:
    """
    exposes the collector's own health as Prometheus metrics:
    run outcomes and durations per job, records delivered to the
    billing API and requests made to upstream APIs.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._runs: "Counter" = Counter(
            "billing_collector_runs_total",
            "Total billing runs by job and outcome",
            ["job", "outcome"],
            registry=registry,
        )
        self._run_duration: "Histogram" = Histogram(
            "billing_collector_run_duration_seconds",
            "Duration of billing runs",
            ["job"],
            registry=registry,
        )
        self._last_run_success: "Gauge" = Gauge(
            "billing_collector_last_run_success_timestamp_seconds",
            "Unix timestamp of the last successful run per job",
            ["job"],
            registry=registry,
        )
        self._records_sent: "Counter" = Counter(
            "billing_collector_records_sent_total",
            "Total billing records accepted by the billing API",
            ["job"],
            registry=registry,
        )
        self._odoo_failed: "Counter" = Counter(
            "billing_collector_odoo_requests_failed_total",
            "Total failed requests to the billing API",
            registry=registry,
        )
        self._provider_requests: "Counter" = Counter(
            "billing_collector_provider_requests_total",
            "Total requests to usage providers by outcome",
            ["provider", "outcome"],
            registry=registry,
        )

    def inc_run(self, job: "str", outcome: "str") -> "None":
        self._runs.labels(job=job, outcome=outcome).inc()

    def observe_run_duration(self, job: "str", duration_seconds: "float") -> "None":
        self._run_duration.labels(job=job).observe(duration_seconds)

    def set_last_run_success(self, job: "str", timestamp: "float") -> "None":
        self._last_run_success.labels(job=job).set(timestamp)

    def inc_records_sent(self, job: "str", count: "int") -> "None":
        self._records_sent.labels(job=job).inc(count)

    def inc_odoo_failed(self) -> "None":
        self._odoo_failed.inc()

    def inc_provider_request(self, provider: "str", outcome: "str") -> "None":
        self._provider_requests.labels(provider=provider, outcome=outcome).inc()
