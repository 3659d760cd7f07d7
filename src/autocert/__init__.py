"""autocert - automated ACME certificate issuance and renewal."""

from autocert.client import AcmeClient
from autocert.renewal import RenewalScheduler
from autocert.selector import CertificateSelector
from autocert.service import AcmeStores, AutoCertService
from autocert.settings import AutoCertSettings

__all__ = [
    "AcmeClient",
    "AcmeStores",
    "AutoCertService",
    "AutoCertSettings",
    "CertificateSelector",
    "RenewalScheduler",
]
__version__ = "0.1.0"
