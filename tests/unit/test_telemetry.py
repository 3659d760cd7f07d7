"""Unit tests for lifecycle metrics."""

from prometheus_client import generate_latest

from autocert.telemetry import Telemetry


def test_instances_do_not_share_registries():
    first, second = Telemetry(), Telemetry()

    first.record_renewed()

    assert first.sample("acme_certificates_renewed_total") == 1
    assert second.sample("acme_certificates_renewed_total") == 0


def test_failure_counter():
    telemetry = Telemetry()
    telemetry.record_failure()
    telemetry.record_failure()

    assert telemetry.sample("acme_certificates_failed_total") == 2


def test_challenge_duration_labelled_by_type():
    telemetry = Telemetry()

    telemetry.record_challenge_duration(1500, "dns-01")
    telemetry.record_challenge_duration(200, "http-01")

    assert telemetry.sample("acme_challenge_duration_ms_count", {"challenge_type": "dns-01"}) == 1
    assert telemetry.sample("acme_challenge_duration_ms_sum", {"challenge_type": "http-01"}) == 200


def test_expiry_gauge_per_domain():
    telemetry = Telemetry()

    telemetry.set_expiry_days("example.com", 42.5)
    telemetry.set_expiry_days("example.com", 41.5)

    assert telemetry.sample("acme_certificate_expiry_days", {"domain": "example.com"}) == 41.5
    assert telemetry.sample("acme_certificate_expiry_days", {"domain": "other.com"}) is None


def test_exposition_includes_all_metrics():
    output = generate_latest(Telemetry().registry).decode()

    for name in (
        "acme_certificates_renewed_total",
        "acme_certificates_failed_total",
        "acme_challenge_duration_ms",
        "acme_certificate_expiry_days",
    ):
        assert name in output
