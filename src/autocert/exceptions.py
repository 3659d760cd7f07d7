"""Exceptions raised by autocert.

``AcmeError`` and its subclasses carry RFC 7807 problem documents returned
by the CA. ``AutoCertError`` and its subclasses report failures of the
lifecycle engine around the protocol.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

_ACME_ERROR = "urn:ietf:params:acme:error:"


class AcmeError(Exception):
    """A problem document from the CA.

    Attributes:
        type: Problem type URN, or ``"unknown"`` for non-JSON bodies.
        detail: Human-readable explanation from the CA.
        status_code: HTTP status of the response.
        subproblems: Per-identifier problems, if the CA sent any.
        retry_after: Seconds from the ``Retry-After`` header, if present.
    """

    def __init__(
        self,
        type: str,
        detail: str,
        status_code: int,
        subproblems: list[dict[str, Any]] | None = None,
        retry_after: int | None = None,
    ):
        self.type = type
        self.detail = detail
        self.status_code = status_code
        self.subproblems = subproblems
        self.retry_after = retry_after
        super().__init__(f"{type}: {detail}")

    @classmethod
    def from_response(
        cls,
        data: dict[str, Any],
        status_code: int,
        headers: dict[str, str] | None = None,
    ) -> "AcmeError":
        """Build the subclass registered for ``data["type"]``, or a plain AcmeError."""
        error_type = data.get("type", "unknown")
        error_cls = _ERROR_TYPES.get(error_type, cls)
        return error_cls(
            type=error_type,
            detail=data.get("detail", "Unknown error"),
            status_code=status_code,
            subproblems=data.get("subproblems"),
            retry_after=cls._parse_retry_after((headers or {}).get("retry-after")),
        )

    @staticmethod
    def _parse_retry_after(value: str | None) -> int | None:
        # delta-seconds or an HTTP-date
        if not value:
            return None
        if value.isdigit():
            return int(value)
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))

    def get_retry_seconds(self, default: int = 3600) -> int:
        return default if self.retry_after is None else self.retry_after


class OrderError(AcmeError):
    """An order became invalid or never left the pending states."""


class RateLimitError(AcmeError):
    """rateLimited"""


class DnsValidationError(AcmeError):
    """dns"""


class CAAError(AcmeError):
    """caa: a CAA record forbids issuance by this CA."""


class ServerInternalError(AcmeError):
    """serverInternal"""


class BadNonceError(AcmeError):
    """badNonce: retried by the client with a fresh nonce."""


_ERROR_TYPES: dict[str, type[AcmeError]] = {
    f"{_ACME_ERROR}rateLimited": RateLimitError,
    f"{_ACME_ERROR}dns": DnsValidationError,
    f"{_ACME_ERROR}caa": CAAError,
    f"{_ACME_ERROR}serverInternal": ServerInternalError,
    f"{_ACME_ERROR}badNonce": BadNonceError,
}


class AutoCertError(Exception):
    """Base exception for certificate lifecycle failures."""

    pass


class ConfigurationError(AutoCertError):
    """Settings are unusable (e.g. a weak certificate password)."""

    pass


class ValidationFailure(AutoCertError):
    """No challenge handler could validate an authorization.

    The persisted order is kept so a later attempt can resume it.
    """

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"No challenge handler could validate {identifier}")


class ValidationTimeout(AutoCertError):
    """Challenge polling did not reach a terminal status in time."""

    pass


class LockTimeout(AutoCertError):
    """A keyed lock could not be acquired within its wait budget."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Timed out waiting for lock: {key}")


class AccountMissing(AutoCertError):
    """No ACME account key is stored."""

    def __init__(self) -> None:
        super().__init__("No ACME account key found")


class CertificateNotFound(AutoCertError):
    """No certificate is stored for the requested domain."""

    def __init__(self, domain: str):
        self.domain = domain
        super().__init__(f"Certificate not found for {domain}")


class OperationCancelled(AutoCertError):
    """The caller's cancellation event was set while waiting."""

    pass
