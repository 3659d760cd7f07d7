"""Background renewal of managed domains."""

import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from autocert import _cancel
from autocert._logging import domain_context, get_logger
from autocert.exceptions import OperationCancelled
from autocert.hooks import CertificateLifecycle, notify_renewal_failed
from autocert.service import AutoCertService
from autocert.settings import AutoCertSettings
from autocert.stores.base import CertificateStore
from autocert.telemetry import Telemetry

logger = get_logger(__name__)

_SECONDS_PER_DAY = 86400


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RenewalScheduler:
    """Periodically orders missing certificates and renews expiring ones.

    One worker thread runs a pass immediately on start and then every
    ``settings.renewal_check_interval``. Domains are processed one at a
    time. A failure for one domain is reported to the lifecycle hooks and
    counted, and the pass moves on to the next domain.

    Usage::

        scheduler = RenewalScheduler(settings, service, certificate_store)
        scheduler.start()
        ...
        scheduler.stop()

    Args:
        settings: Supplies ``managed_domains``, the check interval and the
            renewal threshold.
        service: Performs the actual orders.
        certificate_store: Where current certificates are looked up.
        lifecycle_hooks: Notified of per-domain failures.
        telemetry: Metrics sink; defaults to the service's.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        settings: AutoCertSettings,
        service: AutoCertService,
        certificate_store: CertificateStore,
        lifecycle_hooks: Iterable[CertificateLifecycle] = (),
        telemetry: Telemetry | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings
        self.service = service
        self.certificate_store = certificate_store
        self.lifecycle_hooks = list(lifecycle_hooks)
        self.telemetry = telemetry if telemetry is not None else service.telemetry
        self.clock = clock

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread. Does nothing if already running."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="autocert-renewal", daemon=True)
        self._thread.start()
        logger.info(
            "Renewal scheduler started",
            extra={
                "interval_seconds": self.settings.renewal_check_interval.total_seconds(),
                "managed_domains": self.settings.managed_domains,
            },
        )

    def stop(self, timeout: float | None = 30.0) -> None:
        """Signal the worker to stop and wait for it to exit.

        The stop signal also cancels an order in progress at its next wait.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Renewal worker did not stop in time", extra={"timeout": timeout})
            else:
                self._thread = None
        logger.info("Renewal scheduler stopped")

    def _run(self) -> None:
        interval = self.settings.renewal_check_interval.total_seconds()
        while not self._stop_event.is_set():
            try:
                self.check_and_renew(self._stop_event)
            except OperationCancelled:
                break
            except Exception:
                logger.exception("Renewal pass failed")

            if self._stop_event.wait(interval):
                break

    def check_and_renew(self, cancel: threading.Event | None = None) -> None:
        """Run one pass over every managed domain.

        Raises:
            OperationCancelled: If ``cancel`` is set during the pass.
        """
        for domain in self.settings.managed_domains:
            _cancel.raise_if_cancelled(cancel)
            with domain_context([domain]):
                try:
                    self._process_domain(domain, cancel)
                except OperationCancelled:
                    raise
                except Exception as e:
                    logger.exception("Failed to renew certificate")
                    notify_renewal_failed(self.lifecycle_hooks, domain, e)
                    self.telemetry.record_failure()

    def _process_domain(self, domain: str, cancel: threading.Event | None) -> None:
        certificate = self.certificate_store.get(domain)
        if certificate is None:
            logger.info("No certificate stored, ordering")
            self.service.order_certificate([domain], cancel)
            return

        remaining = certificate.not_after - self.clock()
        self.telemetry.set_expiry_days(domain, remaining.total_seconds() / _SECONDS_PER_DAY)

        if remaining < self.settings.renewal_threshold:
            logger.info("Certificate expiring, renewing", extra={"days_remaining": remaining.days})
            self.service.order_certificate([domain], cancel)
        else:
            logger.debug("Certificate is current", extra={"days_remaining": remaining.days})
