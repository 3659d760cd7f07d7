"""Pydantic models for ACME resources and the state autocert persists.

Resource models parse the CA's camelCase JSON through field aliases and
also accept the Python field names. The ``url`` of a resource is not part
of its JSON body; the client fills it from the request URL or the
``Location`` header, and it is excluded from serialization.
"""

from datetime import datetime
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RevocationReason(IntEnum):
    """RFC 5280 CRLReason codes accepted by ``revokeCert``."""

    UNSPECIFIED = 0
    KEY_COMPROMISE = 1
    CA_COMPROMISE = 2
    AFFILIATION_CHANGED = 3
    SUPERSEDED = 4
    CESSATION_OF_OPERATION = 5
    CERTIFICATE_HOLD = 6


class OrderStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


class AuthorizationStatus(StrEnum):
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"
    DEACTIVATED = "deactivated"
    EXPIRED = "expired"
    REVOKED = "revoked"


class ChallengeStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    VALID = "valid"
    INVALID = "invalid"


class AccountStatus(StrEnum):
    VALID = "valid"
    DEACTIVATED = "deactivated"
    REVOKED = "revoked"


class ChallengeType(StrEnum):
    """Challenge types autocert has handlers for."""

    HTTP_01 = "http-01"
    DNS_01 = "dns-01"


class KeyAlgorithm(StrEnum):
    """Key algorithm for generated account and certificate keys.

    The ES variants are ECDSA on P-256, P-384 and P-521; RS256 is RSA-2048.
    """

    ES256 = "ES256"
    ES384 = "ES384"
    ES521 = "ES521"
    RS256 = "RS256"


class Directory(BaseModel):
    """Endpoint URLs advertised by the CA."""

    model_config = ConfigDict(populate_by_name=True)

    new_nonce: str = Field(alias="newNonce")
    new_account: str = Field(alias="newAccount")
    new_order: str = Field(alias="newOrder")
    revoke_cert: str = Field(alias="revokeCert")
    key_change: str = Field(alias="keyChange")
    meta: dict[str, Any] | None = None


class Account(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: AccountStatus
    contact: list[str] | None = None
    orders: str | None = None
    terms_of_service_agreed: bool | None = Field(default=None, alias="termsOfServiceAgreed")
    url: str | None = Field(default=None, exclude=True)


class Identifier(BaseModel):
    type: str = "dns"
    value: str


class Challenge(BaseModel):
    type: str
    url: str
    status: ChallengeStatus
    token: str | None = None
    validated: datetime | None = None
    error: dict[str, Any] | None = None

    @property
    def error_detail(self) -> str | None:
        """The problem ``detail`` the CA attached when validation failed."""
        return (self.error or {}).get("detail")


class Authorization(BaseModel):
    """The CA's record of proving control of one identifier."""

    status: AuthorizationStatus
    identifier: Identifier
    challenges: list[Challenge]
    expires: datetime | None = None
    wildcard: bool | None = None
    url: str | None = Field(default=None, exclude=True)

    def find_challenge(self, challenge_type: str) -> Challenge | None:
        """First offered challenge of ``challenge_type``, or None."""
        return next((c for c in self.challenges if c.type == challenge_type), None)


class Order(BaseModel):
    """A request for one certificate covering ``identifiers``."""

    model_config = ConfigDict(populate_by_name=True)

    status: OrderStatus
    identifiers: list[Identifier]
    authorizations: list[str]
    finalize: str
    expires: datetime | None = None
    not_before: datetime | None = Field(default=None, alias="notBefore")
    not_after: datetime | None = Field(default=None, alias="notAfter")
    certificate: str | None = None
    error: dict[str, Any] | None = None
    url: str | None = Field(default=None, exclude=True)


class CsrInfo(BaseModel):
    """Subject fields placed in generated CSRs."""

    country: str = "US"
    state: str = ""
    locality: str = ""
    organization: str = ""
    organization_unit: str = ""


class StoredCertificate(BaseModel):
    """An issued certificate as kept by a certificate store.

    ``pfx`` is the password-protected PKCS#12 blob (key, leaf and chain);
    ``not_after`` and ``domains`` are derived from the leaf certificate.
    """

    domain: str
    pfx: bytes
    not_after: datetime
    domains: list[str] = Field(default_factory=list)

    @classmethod
    def from_pkcs12(cls, domain: str, data: bytes, password: str) -> "StoredCertificate":
        """Build a stored certificate from a PKCS#12 blob.

        Raises:
            ValueError: If the blob cannot be opened with the password.
        """
        from cryptography import x509

        from autocert.crypto import load_pkcs12

        _, certificate, _ = load_pkcs12(data, password)
        try:
            san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
            names = san.value.get_values_for_type(x509.DNSName)
        except x509.ExtensionNotFound:
            names = []
        return cls(
            domain=domain,
            pfx=data,
            not_after=certificate.not_valid_after_utc,
            domains=names,
        )
