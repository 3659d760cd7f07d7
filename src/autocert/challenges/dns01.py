"""dns-01: prove control by publishing a TXT record under ``_acme-challenge``."""

import hashlib
import threading
from datetime import timedelta

from autocert import _cancel
from autocert._logging import get_logger
from autocert.challenges.base import ChallengeHandler, wait_for_validation
from autocert.client import AcmeClient
from autocert.crypto import base64url_encode
from autocert.models import Authorization, ChallengeStatus, ChallengeType
from autocert.providers.base import DnsProvider

logger = get_logger(__name__)


def compute_dns_txt_value(key_authorization: str) -> str:
    """TXT value for a key authorization: its SHA-256 digest, base64url without padding."""
    return base64url_encode(hashlib.sha256(key_authorization.encode()).digest())


def dns_record_name(domain: str) -> str:
    """Name of the TXT record that answers for ``domain``.

    A wildcard validates at its base name, so ``*.example.com`` and
    ``example.com`` share ``_acme-challenge.example.com``.
    """
    return "_acme-challenge." + domain.lstrip("*.")


class Dns01ChallengeHandler(ChallengeHandler):
    """Answers dns-01 challenges through a ``DnsProvider``.

    The record is created, left to propagate for ``propagation_delay``, and
    then the CA is asked to validate. It is deleted again after every
    attempt; a failed delete is logged and does not change the result.

    Args:
        dns_provider: Creates and deletes the TXT records.
        propagation_delay: Wait between creating the record and responding.
        validation_timeout: Upper bound on polling for the result.
        poll_interval: Seconds between status checks.
    """

    challenge_type = ChallengeType.DNS_01.value

    def __init__(
        self,
        dns_provider: DnsProvider,
        propagation_delay: timedelta = timedelta(seconds=30),
        validation_timeout: timedelta = timedelta(seconds=60),
        poll_interval: float = 2.0,
    ):
        self.dns_provider = dns_provider
        self.propagation_delay = propagation_delay
        self.validation_timeout = validation_timeout
        self.poll_interval = poll_interval

    def handle(
        self,
        client: AcmeClient,
        authorization: Authorization,
        cancel: threading.Event | None = None,
    ) -> bool:
        challenge = authorization.find_challenge(self.challenge_type)
        domain = authorization.identifier.value
        if challenge is None:
            logger.warning("No DNS-01 challenge offered", extra={"domain": domain})
            return False

        record_name = dns_record_name(domain)
        txt_value = compute_dns_txt_value(client.key_authorization(challenge))
        logger.info("Publishing DNS-01 TXT record", extra={"domain": domain, "record_name": record_name})

        try:
            self.dns_provider.create_txt_record(record_name, txt_value)
            _cancel.sleep(self.propagation_delay.total_seconds(), cancel)
            client.respond_challenge(challenge)
            result = wait_for_validation(
                client, challenge, self.poll_interval, self.validation_timeout, cancel
            )
        finally:
            self._remove_record(record_name, txt_value)

        if result.status != ChallengeStatus.VALID:
            logger.error(
                "DNS-01 challenge failed",
                extra={"domain": domain, "status": result.status, "error": result.error_detail},
            )
            return False
        logger.info("DNS-01 challenge valid", extra={"domain": domain})
        return True

    def _remove_record(self, record_name: str, txt_value: str) -> None:
        try:
            self.dns_provider.delete_txt_record(record_name, txt_value)
        except Exception:
            logger.warning("Failed to delete TXT record", extra={"record_name": record_name}, exc_info=True)
