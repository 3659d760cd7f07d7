"""Certificate lifecycle orchestration.

``AutoCertService`` is the only component that mutates lifecycle state. Every
mutating operation runs under a keyed lock: ``cert:<primary domain>`` for
orders and ``account:rollover`` for key changes.
"""

import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization

from autocert import _cancel
from autocert._logging import Timer, domain_context, get_logger
from autocert.challenges.base import ChallengeHandler
from autocert.client import AcmeClient
from autocert.crypto import (
    PrivateKey,
    build_pkcs12,
    create_csr,
    generate_private_key,
    load_pkcs12,
    load_private_key_pem,
    private_key_to_pem,
)
from autocert.exceptions import (
    AccountMissing,
    CertificateNotFound,
    ConfigurationError,
    OperationCancelled,
    ValidationFailure,
)
from autocert.hooks import CertificateLifecycle, notify_created
from autocert.locks.base import LockProvider
from autocert.models import (
    Authorization,
    AuthorizationStatus,
    Order,
    OrderStatus,
    RevocationReason,
    StoredCertificate,
)
from autocert.settings import MIN_PASSWORD_LENGTH, AutoCertSettings
from autocert.stores.account import AccountStore
from autocert.stores.base import CertificateStore, OrderStore
from autocert.telemetry import Telemetry

logger = get_logger(__name__)

ClientFactory = Callable[[PrivateKey], AcmeClient]

ROLLOVER_LOCK_KEY = "account:rollover"

# Persisted orders in these states can still be validated and finalized
# with a freshly generated certificate key.
_RESUMABLE_ORDER_STATES = (OrderStatus.PENDING, OrderStatus.READY)


def certificate_lock_key(domain: str) -> str:
    return f"cert:{domain}"


@dataclass
class AcmeStores:
    """The three stores the service reads and writes."""

    certificates: CertificateStore
    accounts: AccountStore
    orders: OrderStore


class AutoCertService:
    """Orders, revokes and re-keys certificates against an ACME CA.

    Args:
        settings: Engine configuration.
        stores: Certificate, account and order stores.
        challenge_handlers: Tried in order for every pending authorization.
        lock_provider: Serializes mutating operations per key.
        lifecycle_hooks: Notified after a certificate is stored.
        telemetry: Metrics sink; a private one is created when omitted.
        client_factory: Builds an ACME client for an account key. Defaults to
            ``AcmeClient`` pointed at ``settings.directory_url``.

    Raises:
        ConfigurationError: If the certificate password is shorter than 8
            characters.
    """

    def __init__(
        self,
        settings: AutoCertSettings,
        stores: AcmeStores,
        challenge_handlers: Sequence[ChallengeHandler],
        lock_provider: LockProvider,
        lifecycle_hooks: Iterable[CertificateLifecycle] = (),
        telemetry: Telemetry | None = None,
        client_factory: ClientFactory | None = None,
    ):
        if len(settings.certificate_password) < MIN_PASSWORD_LENGTH:
            raise ConfigurationError(
                f"certificate_password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        self.settings = settings
        self.stores = stores
        self.challenge_handlers = list(challenge_handlers)
        self.lock_provider = lock_provider
        self.lifecycle_hooks = list(lifecycle_hooks)
        self.telemetry = telemetry if telemetry is not None else Telemetry()
        self._client_factory = client_factory or self._default_client

    def _default_client(self, account_key: PrivateKey) -> AcmeClient:
        return AcmeClient(self.settings.directory_url, account_key)

    # -------------------------------------------------------------------------
    # Ordering
    # -------------------------------------------------------------------------

    def order_certificate(
        self, domains: Sequence[str], cancel: threading.Event | None = None
    ) -> StoredCertificate:
        """Issue (or re-issue) a certificate covering ``domains``.

        The first domain is the primary: it becomes the CN, names the lock and
        keys the persisted order. The certificate is stored under every
        requested domain.

        Args:
            domains: Domain names, primary first. Wildcards are allowed.
            cancel: Set to abort lock waits and validation polling.

        Returns:
            The stored certificate.

        Raises:
            ValueError: If ``domains`` is empty.
            LockTimeout: If another operation holds the domain's lock.
            ValidationFailure: If no handler could validate an authorization.
                The persisted order is kept for the next attempt.
            OperationCancelled: If ``cancel`` was set.
            AcmeError: If the CA rejects a request.
        """
        domains = list(domains)
        if not domains:
            raise ValueError("At least one domain must be specified")

        primary = domains[0]
        with domain_context(domains), self.lock_provider.acquire(certificate_lock_key(primary), cancel):
            logger.info("Starting certificate order")
            client = self._open_account()
            try:
                order = self._load_or_create_order(client, primary, domains)
                self._validate_authorizations(client, order, cancel)
                certificate = self._finalize(client, order, domains, cancel)
            finally:
                client.close()

            for domain in domains:
                self.stores.certificates.save(domain, certificate)
            logger.info("Certificate stored", extra={"not_after": certificate.not_after.isoformat()})

            self.telemetry.record_renewed()
            notify_created(self.lifecycle_hooks, primary, certificate)
            self.stores.orders.delete(primary)
            return certificate

    def _open_account(self) -> AcmeClient:
        """Return a client bound to the stored account, registering one if none exists."""
        pem = self.stores.accounts.load()
        if pem:
            client = self._client_factory(load_private_key_pem(pem))
            try:
                client.register_account(only_return_existing=True)
            except Exception:
                client.close()
                raise
            logger.debug("Restored ACME account", extra={"account_url": client.account_url})
            return client

        account_key = generate_private_key(self.settings.key_algorithm)
        client = self._client_factory(account_key)
        try:
            eab = None
            if self.settings.uses_external_account_binding:
                logger.info("Registering ACME account with External Account Binding")
                eab = (self.settings.account_key_id, self.settings.account_hmac_key)
            else:
                logger.info("Registering ACME account", extra={"email": self.settings.email})
            client.register_account(
                email=self.settings.email or None,
                terms_of_service_agreed=self.settings.terms_of_service_agreed,
                external_account_binding=eab,
            )
        except Exception:
            client.close()
            raise

        self.stores.accounts.save(private_key_to_pem(account_key))
        logger.info("Saved new ACME account key", extra={"account_url": client.account_url})
        return client

    def _load_or_create_order(self, client: AcmeClient, primary: str, domains: list[str]) -> Order:
        order_url = self.stores.orders.get(primary)
        if order_url:
            try:
                order = client.get_order(order_url)
            except Exception as e:
                logger.warning(
                    "Could not fetch persisted order, creating a new one",
                    extra={"order_url": order_url, "error": str(e)},
                )
            else:
                ordered = {identifier.value for identifier in order.identifiers}
                if ordered != set(domains):
                    logger.warning(
                        "Persisted order covers different domains, creating a new one",
                        extra={"order_url": order_url, "ordered": sorted(ordered)},
                    )
                elif order.status in _RESUMABLE_ORDER_STATES:
                    logger.info("Resuming order", extra={"order_url": order_url, "status": order.status})
                    return order
                else:
                    logger.warning(
                        "Persisted order cannot be resumed, creating a new one",
                        extra={"order_url": order_url, "status": order.status},
                    )

        order = client.create_order(domains)
        if order.url:
            self.stores.orders.save(primary, order.url)
        logger.info("Created order", extra={"order_url": order.url})
        return order

    def _validate_authorizations(
        self, client: AcmeClient, order: Order, cancel: threading.Event | None
    ) -> None:
        for authorization in client.fetch_authorizations(order):
            if authorization.status == AuthorizationStatus.VALID:
                continue
            self._validate(client, authorization, cancel)

    def _validate(
        self, client: AcmeClient, authorization: Authorization, cancel: threading.Event | None
    ) -> None:
        """Try each handler in registration order until one validates the authorization.

        Raises:
            ValidationFailure: If every handler failed or raised.
        """
        identifier = authorization.identifier.value
        last_error: Exception | None = None

        for handler in self.challenge_handlers:
            _cancel.raise_if_cancelled(cancel)
            try:
                with Timer() as timer:
                    validated = handler.handle(client, authorization, cancel)
            except OperationCancelled:
                raise
            except Exception as e:
                logger.warning(
                    "Challenge handler raised",
                    extra={"identifier": identifier, "challenge_type": handler.challenge_type},
                    exc_info=True,
                )
                last_error = e
                continue

            self.telemetry.record_challenge_duration(timer.elapsed_ms, handler.challenge_type)
            if validated:
                logger.info(
                    "Authorization validated",
                    extra={"identifier": identifier, "challenge_type": handler.challenge_type},
                )
                return
            logger.warning(
                "Challenge handler did not validate authorization",
                extra={"identifier": identifier, "challenge_type": handler.challenge_type},
            )

        raise ValidationFailure(identifier) from last_error

    def _finalize(
        self,
        client: AcmeClient,
        order: Order,
        domains: list[str],
        cancel: threading.Event | None,
    ) -> StoredCertificate:
        primary = domains[0]
        password = self.settings.certificate_password

        order = client.poll_order(order.url, cancel)

        certificate_key = generate_private_key(self.settings.key_algorithm)
        csr = create_csr(certificate_key, domains, self.settings.csr_info)

        logger.info("Finalizing order", extra={"order_url": order.url})
        order = client.finalize_order(order, csr)
        if order.status != OrderStatus.VALID:
            order = client.poll_order(order.url, cancel)

        chain_pem = client.download_certificate(order)
        pfx = build_pkcs12(certificate_key, chain_pem, password, friendly_name=primary)
        return StoredCertificate.from_pkcs12(primary, pfx, password)

    # -------------------------------------------------------------------------
    # Revocation and key rollover
    # -------------------------------------------------------------------------

    def revoke_certificate(
        self, domain: str, reason: RevocationReason = RevocationReason.UNSPECIFIED
    ) -> None:
        """Revoke the certificate stored for ``domain`` and delete it.

        The certificate is removed under every name it covers, except names
        that already hold a different certificate.

        Raises:
            AccountMissing: If no account key is stored.
            CertificateNotFound: If no certificate is stored for ``domain``.
        """
        pem = self.stores.accounts.load()
        if not pem:
            raise AccountMissing()

        stored = self.stores.certificates.get(domain)
        if stored is None:
            raise CertificateNotFound(domain)

        _, leaf, _ = load_pkcs12(stored.pfx, self.settings.certificate_password)
        leaf_pem = leaf.public_bytes(serialization.Encoding.PEM).decode("ascii")

        client = self._client_factory(load_private_key_pem(pem))
        try:
            client.register_account(only_return_existing=True)
            client.revoke_certificate(leaf_pem, reason=int(reason))
        finally:
            client.close()

        for name in dict.fromkeys([domain, *stored.domains]):
            if name == domain or self._holds(name, stored):
                self.stores.certificates.delete(name)
        logger.info(
            "Certificate revoked", extra={"domain": domain, "names": stored.domains, "reason": reason.name}
        )

    def _holds(self, name: str, certificate: StoredCertificate) -> bool:
        current = self.stores.certificates.get(name)
        return current is not None and current.pfx == certificate.pfx

    def rollover_account_key(self, cancel: threading.Event | None = None) -> None:
        """Replace the account key with a newly generated one.

        Raises:
            AccountMissing: If no account key is stored.
            LockTimeout: If another rollover is in progress.
        """
        with self.lock_provider.acquire(ROLLOVER_LOCK_KEY, cancel):
            pem = self.stores.accounts.load()
            if not pem:
                raise AccountMissing()

            new_key = generate_private_key(self.settings.key_algorithm)
            client = self._client_factory(load_private_key_pem(pem))
            try:
                client.register_account(only_return_existing=True)
                client.rollover_key(new_key)
            finally:
                client.close()

            self.stores.accounts.save(private_key_to_pem(new_key))
            logger.info("Account key rolled over", extra={"algorithm": self.settings.key_algorithm.value})
