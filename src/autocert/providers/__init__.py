"""DNS providers for ACME challenge validation."""

from autocert.providers.base import DnsProvider
from autocert.providers.pebble import PebbleProvider
from autocert.providers.powerdns import PowerDnsProvider

__all__ = ["DnsProvider", "PebbleProvider", "PowerDnsProvider"]
