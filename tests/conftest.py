"""Pytest fixtures for the autocert test suite."""

import contextlib
import logging
import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from autocert.crypto import PrivateKey, build_pkcs12, generate_ecdsa_key
from autocert.models import StoredCertificate

# Local docker-compose services; override through the environment
PEBBLE_DIRECTORY_URL = os.environ.get("PEBBLE_DIRECTORY_URL", "https://localhost:14000/dir")
CHALLTESTSRV_URL = os.environ.get("CHALLTESTSRV_URL", "http://localhost:8055")

POWERDNS_API_URL = os.environ.get("POWERDNS_API_URL", "http://localhost:8081")
POWERDNS_API_KEY = os.environ.get("POWERDNS_API_KEY", "test-api-key")

TEST_PASSWORD = "correct-horse-battery"


def make_certificate_pem(
    domains: list[str],
    key: PrivateKey,
    not_after: datetime | None = None,
    public_key=None,
) -> str:
    """Build a leaf for ``domains`` signed by ``key`` and return it as PEM.

    The leaf certifies ``public_key`` when given, otherwise ``key``'s own public key.
    """
    now = datetime.now(timezone.utc)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(public_key or key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=90))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode()


@pytest.fixture
def certificate_password() -> str:
    return TEST_PASSWORD


@pytest.fixture
def make_certificate() -> Callable[..., str]:
    return make_certificate_pem


@pytest.fixture
def make_stored_certificate() -> Callable[..., StoredCertificate]:
    """Factory for password-protected stored certificates.

    Usage:
        cert = make_stored_certificate(["example.com"], days=10)
    """

    def factory(
        domains: list[str],
        days: float = 90,
        password: str = TEST_PASSWORD,
    ) -> StoredCertificate:
        key = generate_ecdsa_key()
        not_after = datetime.now(timezone.utc) + timedelta(days=days)
        pfx = build_pkcs12(key, make_certificate_pem(domains, key, not_after), password, domains[0])
        return StoredCertificate.from_pkcs12(domains[0], pfx, password)

    return factory


@pytest.fixture
def chain_for() -> Callable[[x509.CertificateSigningRequest], str]:
    """Return a function that "issues" a PEM for a CSR, signing with a throwaway key."""

    def issue(csr: x509.CertificateSigningRequest) -> str:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        return make_certificate_pem(
            san.value.get_values_for_type(x509.DNSName),
            generate_ecdsa_key(),
            public_key=csr.public_key(),
        )

    return issue


# Integration services. Each fixture skips its tests when the service is down.


@pytest.fixture(scope="session")
def pebble_ca_cert() -> str | bool:
    """``verify`` value for Pebble's self-signed TLS: PEBBLE_CA_CERT if it exists, else off."""
    path = os.environ.get("PEBBLE_CA_CERT")
    return path if path and Path(path).is_file() else False


@pytest.fixture(scope="session")
def pebble_directory_url(pebble_ca_cert: str | bool) -> str:
    try:
        httpx.get(PEBBLE_DIRECTORY_URL, verify=pebble_ca_cert, timeout=5).raise_for_status()
    except httpx.HTTPError:
        pytest.skip("Pebble not available")
    return PEBBLE_DIRECTORY_URL


@pytest.fixture(scope="session")
def challtestsrv_url() -> str:
    try:
        httpx.post(f"{CHALLTESTSRV_URL}/clear-txt", json={"host": "probe.invalid."}, timeout=5)
    except httpx.HTTPError:
        pytest.skip("pebble-challtestsrv not available")
    return CHALLTESTSRV_URL


@pytest.fixture(scope="session")
def powerdns_api_url() -> str:
    return POWERDNS_API_URL


@pytest.fixture(scope="session")
def powerdns_api_key() -> str:
    return POWERDNS_API_KEY


@pytest.fixture(scope="session")
def powerdns_test_zone(powerdns_api_url: str, powerdns_api_key: str) -> Generator[str]:
    """The ``example.org.`` zone, created for the session and deleted afterwards."""
    zone = "example.org."
    zones_url = f"{powerdns_api_url}/api/v1/servers/localhost/zones"
    headers = {"X-API-Key": powerdns_api_key}
    body = {"name": zone, "kind": "Native", "nameservers": ["ns1.example.org."], "soa_edit_api": "DEFAULT"}

    try:
        response = httpx.post(zones_url, headers=headers, json=body, timeout=30)
    except httpx.HTTPError:
        pytest.skip("PowerDNS not available")
    if response.status_code != 409:  # left over from an earlier run
        response.raise_for_status()

    yield zone

    with contextlib.suppress(httpx.HTTPError):
        httpx.delete(f"{zones_url}/{zone}", headers=headers, timeout=30)


class LogCapture(logging.Handler):
    """Keeps every record emitted under the ``autocert`` logger."""

    def __init__(self) -> None:
        super().__init__(logging.DEBUG)
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)

    def get_records(self, level: int | None = None, name: str | None = None) -> list[logging.LogRecord]:
        """Records at exactly ``level`` from loggers under ``name``."""
        return [
            r
            for r in self.records
            if (level is None or r.levelno == level) and (name is None or r.name.startswith(name))
        ]

    def get_messages(self, level: int | None = None, name: str | None = None) -> list[str]:
        return [r.getMessage() for r in self.get_records(level, name)]

    def clear(self) -> None:
        self.records.clear()


@pytest.fixture
def log_capture() -> Generator[LogCapture]:
    """Capture autocert log records at DEBUG and above for one test.

    Usage:
        def test_something(log_capture):
            ...
            assert "Certificate stored" in log_capture.get_messages(logging.INFO)
    """
    capture = LogCapture()
    package_logger = logging.getLogger("autocert")
    previous_level = package_logger.level
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(capture)
    try:
        yield capture
    finally:
        package_logger.removeHandler(capture)
        package_logger.setLevel(previous_level)
