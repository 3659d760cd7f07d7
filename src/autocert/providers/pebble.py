"""DNS provider for pebble-challtestsrv."""

import httpx

from autocert._logging import get_logger
from autocert.providers.base import DnsProvider

logger = get_logger(__name__)


def _fqdn(name: str) -> str:
    return name.rstrip(".") + "."


class PebbleProvider(DnsProvider):
    """Sets TXT records on the pebble-challtestsrv mock DNS server.

    Used with the Pebble test CA, which resolves challenge records through
    challtestsrv. Records are visible immediately.

    Args:
        challtestsrv_url: Base URL of the challtestsrv management API.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(self, challtestsrv_url: str, timeout: int = 10):
        self.challtestsrv_url = challtestsrv_url.rstrip("/")
        self.timeout = timeout

    def create_txt_record(self, name: str, value: str) -> None:
        response = httpx.post(
            f"{self.challtestsrv_url}/set-txt",
            json={"host": _fqdn(name), "value": value},
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.debug("challtestsrv TXT record set", extra={"record_name": name})

    def delete_txt_record(self, name: str, value: str) -> None:
        response = httpx.post(
            f"{self.challtestsrv_url}/clear-txt",
            json={"host": _fqdn(name)},
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.debug("challtestsrv TXT record cleared", extra={"record_name": name})
