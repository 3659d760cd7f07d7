"""Callbacks fired on certificate lifecycle events."""

from abc import ABC, abstractmethod

from autocert._logging import get_logger
from autocert.models import StoredCertificate

logger = get_logger(__name__)


class CertificateLifecycle(ABC):
    """Receives notifications about issued certificates and failed renewals.

    Typical implementations reload a web server or alert an operator.
    Exceptions raised here are logged by the caller and never interrupt the
    lifecycle operation.
    """

    @abstractmethod
    def on_certificate_created(self, domain: str, certificate: StoredCertificate) -> None:
        """Called with the primary domain once the certificate is stored under every requested domain."""
        ...

    @abstractmethod
    def on_renewal_failed(self, domain: str, error: Exception) -> None:
        """Called when the renewal scheduler fails to (re)issue for ``domain``."""
        ...


def notify_created(
    hooks: list[CertificateLifecycle], domain: str, certificate: StoredCertificate
) -> None:
    for hook in hooks:
        try:
            hook.on_certificate_created(domain, certificate)
        except Exception:
            logger.exception(
                "Lifecycle hook failed",
                extra={"hook": type(hook).__name__, "event": "certificate_created", "domain": domain},
            )


def notify_renewal_failed(hooks: list[CertificateLifecycle], domain: str, error: Exception) -> None:
    for hook in hooks:
        try:
            hook.on_renewal_failed(domain, error)
        except Exception:
            logger.exception(
                "Lifecycle hook failed",
                extra={"hook": type(hook).__name__, "event": "renewal_failed", "domain": domain},
            )
