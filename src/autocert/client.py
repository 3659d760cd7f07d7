"""Synchronous ACME v2 client (RFC 8555) over ``httpx``.

Every request after the directory fetch is a JWS-signed POST. The client
keeps one cached nonce, taken from the last ``Replay-Nonce`` header, and
asks ``newNonce`` only when it has none.
"""

import threading
from typing import Any, TypeVar

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from pydantic import BaseModel

from autocert import _cancel
from autocert._logging import get_logger
from autocert.crypto import (
    PrivateKey,
    base64url_encode,
    get_jwk,
    key_thumbprint,
    pem_to_der,
    sign_eab_jws,
    sign_jws,
)
from autocert.exceptions import AcmeError, BadNonceError, OrderError
from autocert.models import Account, Authorization, Challenge, Directory, Order, OrderStatus

logger = get_logger(__name__)

_Resource = TypeVar("_Resource", bound=BaseModel)

_JOSE_HEADERS = {"Content-Type": "application/jose+json"}


def _problem(response: httpx.Response) -> AcmeError:
    """Turn an error response into the matching ``AcmeError`` subclass."""
    try:
        document = response.json()
    except ValueError:
        return AcmeError(type="unknown", detail=response.text, status_code=response.status_code)
    return AcmeError.from_response(document, response.status_code, headers=dict(response.headers))


class AcmeClient:
    """ACME client bound to one account key.

    Args:
        directory_url: The CA's directory URL.
        account_key: Account key; replaced in place by ``rollover_key``.
        ca_cert: CA bundle path, ``False`` to skip TLS verification, or
            ``None`` for the system store.
        timeout: Per-request timeout in seconds.
    """

    POLL_INTERVAL = 2
    MAX_POLL_ATTEMPTS = 30
    BAD_NONCE_RETRIES = 3

    def __init__(
        self,
        directory_url: str,
        account_key: PrivateKey,
        ca_cert: str | bool | None = None,
        timeout: float = 30,
    ):
        self.directory_url = directory_url
        self.account_key = account_key
        self._http = httpx.Client(verify=True if ca_cert is None else ca_cert, timeout=timeout)
        self._directory: Directory | None = None
        self._nonce: str | None = None
        self._account_url: str | None = None

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AcmeClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def directory(self) -> Directory:
        """The CA directory, fetched on first use."""
        if self._directory is None:
            response = self._http.get(self.directory_url)
            response.raise_for_status()
            self._directory = Directory.model_validate(response.json())
        return self._directory

    @property
    def account_url(self) -> str | None:
        """The account's ``kid``; None until ``register_account`` succeeds."""
        return self._account_url

    def _take_nonce(self) -> str:
        nonce, self._nonce = self._nonce, None
        if nonce:
            return nonce
        response = self._http.head(self.directory.new_nonce)
        response.raise_for_status()
        return response.headers["Replay-Nonce"]

    def _post(self, url: str, payload: dict | str, *, use_kid: bool = True) -> httpx.Response:
        """Send a signed request, retrying a ``badNonce`` rejection with a fresh nonce.

        ``use_kid=False`` embeds the JWK instead of the account URL, which is
        what ``newAccount`` expects.

        Raises:
            AcmeError: For any error response left after the retries.
        """
        kid = self._account_url if use_kid else None
        attempt = 0
        while True:
            body = sign_jws(self.account_key, payload, url, nonce=self._take_nonce(), kid=kid)
            response = self._http.post(url, json=body, headers=_JOSE_HEADERS)
            if "Replay-Nonce" in response.headers:
                self._nonce = response.headers["Replay-Nonce"]
            if response.status_code < 400:
                return response

            error = _problem(response)
            if not isinstance(error, BadNonceError) or attempt >= self.BAD_NONCE_RETRIES:
                raise error
            attempt += 1
            self._nonce = None
            logger.debug("Nonce rejected, retrying", extra={"url": url, "attempt": attempt})

    def _fetch(self, url: str, model: type[_Resource]) -> _Resource:
        """POST-as-GET ``url`` and parse the body as ``model``."""
        return model.model_validate(self._post(url, "").json())

    def register_account(
        self,
        email: str | None = None,
        terms_of_service_agreed: bool = True,
        external_account_binding: tuple[str, str] | None = None,
        only_return_existing: bool = False,
    ) -> Account:
        """Create the account for this key, or find the one that exists.

        Args:
            email: Contact address, sent as a ``mailto:`` URI.
            terms_of_service_agreed: Agreement flag sent to the CA.
            external_account_binding: ``(key id, base64url HMAC key)`` from
                the CA, for CAs that require EAB.
            only_return_existing: Look up only. The CA answers with an
                error instead of creating an account.
        """
        url = self.directory.new_account
        payload: dict[str, Any]
        if only_return_existing:
            payload = {"onlyReturnExisting": True}
        else:
            payload = {"termsOfServiceAgreed": terms_of_service_agreed}
            if email:
                payload["contact"] = [f"mailto:{email}"]
            if external_account_binding is not None:
                key_id, hmac_key = external_account_binding
                payload["externalAccountBinding"] = sign_eab_jws(self.account_key, key_id, hmac_key, url)

        response = self._post(url, payload, use_kid=False)
        self._account_url = response.headers.get("Location")

        account = Account.model_validate(response.json())
        account.url = self._account_url
        logger.info(
            "ACME account ready",
            extra={"account_url": self._account_url, "existing": only_return_existing},
        )
        return account

    def rollover_key(self, new_key: PrivateKey) -> None:
        """Move the account to ``new_key`` (RFC 8555 7.3.5).

        The inner JWS is signed by the new key without a nonce, the outer one
        by the current key. On success the client signs with ``new_key``.

        Raises:
            ValueError: If no account is registered yet.
            AcmeError: If the CA rejects the change.
        """
        if not self._account_url:
            raise ValueError("Account not registered. Call register_account() first.")

        url = self.directory.key_change
        inner = sign_jws(new_key, {"account": self._account_url, "oldKey": get_jwk(self.account_key)}, url)
        self._post(url, inner)

        self.account_key = new_key
        logger.info("Account key rolled over", extra={"account_url": self._account_url})

    def create_order(self, domains: list[str]) -> Order:
        """Open a new order for ``domains``; ``url`` comes from the Location header."""
        identifiers = [{"type": "dns", "value": domain} for domain in domains]
        response = self._post(self.directory.new_order, {"identifiers": identifiers})

        order = Order.model_validate(response.json())
        order.url = response.headers.get("Location")
        return order

    def get_order(self, order_url: str) -> Order:
        order = self._fetch(order_url, Order)
        order.url = order_url
        return order

    def fetch_authorizations(self, order: Order) -> list[Authorization]:
        authorizations = []
        for url in order.authorizations:
            authorization = self._fetch(url, Authorization)
            authorization.url = url
            authorizations.append(authorization)
        return authorizations

    def key_authorization(self, challenge: Challenge) -> str:
        """``token.thumbprint`` for ``challenge`` under the current account key."""
        if not challenge.token:
            raise ValueError(f"Challenge {challenge.url} has no token")
        return f"{challenge.token}.{key_thumbprint(self.account_key)}"

    def respond_challenge(self, challenge: Challenge) -> Challenge:
        """Ask the CA to validate ``challenge`` now."""
        return Challenge.model_validate(self._post(challenge.url, {}).json())

    def get_challenge_status(self, challenge_url: str) -> Challenge:
        return self._fetch(challenge_url, Challenge)

    def poll_order(self, order_url: str, cancel: threading.Event | None = None) -> Order:
        """Wait until the order is ``ready`` or ``valid``.

        Raises:
            OrderError: If the order turns ``invalid`` or is still pending
                after ``MAX_POLL_ATTEMPTS`` polls.
            OperationCancelled: If ``cancel`` is set between polls.
        """
        for _ in range(self.MAX_POLL_ATTEMPTS):
            order = self.get_order(order_url)
            if order.status in (OrderStatus.READY, OrderStatus.VALID):
                return order
            if order.status == OrderStatus.INVALID:
                detail = (order.error or {}).get("detail", "Order is invalid")
                raise OrderError(
                    type="urn:ietf:params:acme:error:orderNotReady", detail=detail, status_code=403
                )
            _cancel.sleep(self.POLL_INTERVAL, cancel)

        raise OrderError(
            type="urn:ietf:params:acme:error:serverInternal",
            detail="Order polling timed out",
            status_code=500,
        )

    def finalize_order(self, order: Order, csr: x509.CertificateSigningRequest) -> Order:
        """Submit the CSR to the order's ``finalize`` URL."""
        csr_der = csr.public_bytes(serialization.Encoding.DER)
        response = self._post(order.finalize, {"csr": base64url_encode(csr_der)})
        finalized = Order.model_validate(response.json())
        finalized.url = order.url
        return finalized

    def download_certificate(self, order: Order) -> str:
        """Fetch the issued PEM chain, leaf first.

        Raises:
            ValueError: If the order carries no certificate URL yet.
        """
        if not order.certificate:
            raise ValueError("Order has no certificate URL")
        return self._post(order.certificate, "").text

    def revoke_certificate(self, certificate_pem: str, reason: int | None = None) -> None:
        """Revoke a certificate, signed by the account key (RFC 8555 7.6).

        Args:
            certificate_pem: Certificate to revoke; only the first PEM block is used.
            reason: RFC 5280 reason code; omitted from the request when None.

        Raises:
            AcmeError: If the PEM cannot be parsed or the CA refuses.
        """
        try:
            der = pem_to_der(certificate_pem)
        except ValueError as e:
            raise AcmeError(
                type="urn:ietf:params:acme:error:malformed",
                detail=f"Invalid certificate PEM: {e}",
                status_code=400,
            ) from e

        payload: dict[str, str | int] = {"certificate": base64url_encode(der)}
        if reason is not None:
            payload["reason"] = int(reason)
        self._post(self.directory.revoke_cert, payload)
