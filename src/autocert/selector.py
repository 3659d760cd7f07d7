"""SNI-based certificate lookup."""

from autocert._logging import get_logger
from autocert.models import StoredCertificate
from autocert.stores.base import CertificateStore

logger = get_logger(__name__)


def wildcard_for(host: str) -> str | None:
    """Return the wildcard name covering ``host``, e.g. ``*.example.com`` for ``www.example.com``.

    Hosts with fewer than three labels have no wildcard form.
    """
    labels = host.split(".")
    if len(labels) < 3:
        return None
    return "*." + ".".join(labels[1:])


class CertificateSelector:
    """Picks the stored certificate to present for a TLS server name.

    An exact match wins over a wildcard one.
    """

    def __init__(self, store: CertificateStore):
        self.store = store

    def select(self, host: str | None) -> StoredCertificate | None:
        if not host:
            logger.debug("No server name to select a certificate for")
            return None

        certificate = self.store.get(host)
        if certificate is not None:
            logger.debug("Found certificate", extra={"host": host})
            return certificate

        wildcard = wildcard_for(host)
        if wildcard is not None:
            certificate = self.store.get(wildcard)
            if certificate is not None:
                logger.debug("Found wildcard certificate", extra={"host": host, "wildcard": wildcard})
                return certificate

        logger.warning("No certificate found", extra={"host": host})
        return None
