"""PowerDNS provider for ACME DNS-01 challenges."""

import httpx

from autocert._logging import get_logger
from autocert.providers.base import DnsProvider

logger = get_logger(__name__)

# TTL for challenge records, in seconds
RECORD_TTL = 60


class PowerDnsProvider(DnsProvider):
    """Manages challenge TXT records through the PowerDNS HTTP API.

    Args:
        api_url: Base URL of the PowerDNS API (e.g., "http://localhost:8081").
        api_key: Value for the X-API-Key header.
        server_id: PowerDNS server ID.
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        server_id: str = "localhost",
        timeout: int = 30,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.server_id = server_id
        self.timeout = timeout

    @property
    def _zones_url(self) -> str:
        return f"{self.api_url}/api/v1/servers/{self.server_id}/zones"

    def find_zone(self, name: str) -> str:
        """Find the most specific zone hosted by PowerDNS that contains ``name``.

        Args:
            name: A fully qualified record name.

        Returns:
            The zone name with a trailing dot.

        Raises:
            ValueError: If no enclosing zone exists.
        """
        labels = name.rstrip(".").split(".")
        for i in range(len(labels)):
            candidate = ".".join(labels[i:]) + "."
            response = httpx.get(
                f"{self._zones_url}/{candidate}",
                headers={"X-API-Key": self.api_key},
                timeout=self.timeout,
            )
            if response.status_code == 200:
                logger.debug("Zone found", extra={"record_name": name, "zone": candidate})
                return candidate

        raise ValueError(f"No zone found for record: {name}")

    def _patch_rrset(self, name: str, rrset: dict) -> None:
        zone = self.find_zone(name)
        response = httpx.patch(
            f"{self._zones_url}/{zone}",
            headers={"X-API-Key": self.api_key},
            json={"rrsets": [rrset]},
            timeout=self.timeout,
        )
        if response.status_code == 204:
            return

        try:
            detail = response.json().get("error", response.text)
        except ValueError:
            detail = response.text or "Unknown error"

        logger.error(
            "PowerDNS API error",
            extra={"zone": zone, "status_code": response.status_code, "detail": detail},
        )
        raise ValueError(f"PowerDNS rejected change to {zone} ({response.status_code}): {detail}")

    def create_txt_record(self, name: str, value: str) -> None:
        record_name = name.rstrip(".") + "."
        self._patch_rrset(
            name,
            {
                "name": record_name,
                "type": "TXT",
                "changetype": "REPLACE",
                "ttl": RECORD_TTL,
                "records": [{"content": f'"{value}"', "disabled": False}],
            },
        )
        logger.info("TXT record created", extra={"record_name": record_name})

    def delete_txt_record(self, name: str, value: str) -> None:
        record_name = name.rstrip(".") + "."
        self._patch_rrset(name, {"name": record_name, "type": "TXT", "changetype": "DELETE"})
        logger.info("TXT record deleted", extra={"record_name": record_name})
