"""Metrics for the certificate lifecycle engine.

A ``Telemetry`` instance owns its own prometheus ``CollectorRegistry``; it is
created once at process startup and passed to the service and scheduler.
Expose it with ``prometheus_client.generate_latest(telemetry.registry)`` or
``start_http_server(port, registry=telemetry.registry)``.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Challenge validation durations in milliseconds
_DURATION_BUCKETS = (100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000)


class Telemetry:
    """Counters, histogram and gauge describing certificate lifecycle activity."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.certificates_renewed = Counter(
            "acme_certificates_renewed",
            "Number of certificates successfully issued or renewed.",
            registry=self.registry,
        )
        self.renewal_failures = Counter(
            "acme_certificates_failed",
            "Number of failed certificate renewals.",
            registry=self.registry,
        )
        self.challenge_duration = Histogram(
            "acme_challenge_duration_ms",
            "Time taken to validate challenges, in milliseconds.",
            ["challenge_type"],
            buckets=_DURATION_BUCKETS,
            registry=self.registry,
        )
        self.expiry_days = Gauge(
            "acme_certificate_expiry_days",
            "Days until the stored certificate for a domain expires.",
            ["domain"],
            registry=self.registry,
        )

    def record_renewed(self) -> None:
        self.certificates_renewed.inc()

    def record_failure(self) -> None:
        self.renewal_failures.inc()

    def record_challenge_duration(self, elapsed_ms: float, challenge_type: str) -> None:
        self.challenge_duration.labels(challenge_type=challenge_type).observe(elapsed_ms)

    def set_expiry_days(self, domain: str, days: float) -> None:
        self.expiry_days.labels(domain=domain).set(days)

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Read the current value of a sample from this instance's registry."""
        return self.registry.get_sample_value(name, labels or {})
