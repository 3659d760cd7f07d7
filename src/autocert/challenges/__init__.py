"""ACME challenge handlers."""

from autocert.challenges.base import ChallengeHandler
from autocert.challenges.dns01 import (
    Dns01ChallengeHandler,
    compute_dns_txt_value,
    dns_record_name,
)
from autocert.challenges.http01 import Http01ChallengeHandler

__all__ = [
    "ChallengeHandler",
    "Dns01ChallengeHandler",
    "Http01ChallengeHandler",
    "compute_dns_txt_value",
    "dns_record_name",
]
