"""Configuration for the certificate lifecycle engine.

Values are read from keyword arguments, then ``AUTOCERT_*`` environment
variables, then a ``.env`` file. Nested CSR fields use a double underscore,
e.g. ``AUTOCERT_CSR_INFO__ORGANIZATION=Example Inc``.
"""

from datetime import timedelta
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from autocert.directories import LETSENCRYPT
from autocert.models import CsrInfo, KeyAlgorithm

MIN_PASSWORD_LENGTH = 8


class AutoCertSettings(BaseSettings):
    """Settings shared by the service, scheduler, handlers and stores."""

    model_config = SettingsConfigDict(
        env_prefix="AUTOCERT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    email: str = Field(default="", description="Contact email for ACME account registration.")
    directory_url: str = Field(default=LETSENCRYPT, description="ACME directory URL.")
    certificate_path: Path = Field(
        default=Path("certificates"),
        description="Directory for filesystem stores and lock files.",
    )
    account_key_id: str | None = Field(default=None, description="External Account Binding key id.")
    account_hmac_key: str | None = Field(
        default=None, description="External Account Binding HMAC key (base64url)."
    )
    terms_of_service_agreed: bool = False
    csr_info: CsrInfo = Field(default_factory=CsrInfo)

    renewal_check_interval: timedelta = Field(default=timedelta(hours=24), gt=timedelta(0))
    renewal_threshold: timedelta = Field(default=timedelta(days=30))
    validation_timeout: timedelta = Field(default=timedelta(seconds=60))
    dns_propagation_delay: timedelta = Field(default=timedelta(seconds=30))

    certificate_password: str = Field(
        default="",
        description="Password protecting stored PKCS#12 blobs and the account key at rest.",
    )
    key_algorithm: KeyAlgorithm = KeyAlgorithm.ES256
    managed_domains: list[str] = Field(default_factory=list)

    @property
    def uses_external_account_binding(self) -> bool:
        return bool(self.account_key_id and self.account_hmac_key)
