"""Environment checks to run before starting the renewal scheduler."""

import httpx

from autocert._logging import get_logger
from autocert.settings import AutoCertSettings
from autocert.stores.account import AccountStore

logger = get_logger(__name__)


class DiagnosticsService:
    """Checks that the CA is reachable and the account store is readable.

    Args:
        settings: Supplies the directory URL.
        account_store: The store the service will load the account from.
        timeout: Seconds to wait for the CA directory.
    """

    def __init__(self, settings: AutoCertSettings, account_store: AccountStore, timeout: float = 5.0):
        self.settings = settings
        self.account_store = account_store
        self.timeout = timeout

    def validate_environment(self) -> bool:
        """Run every check.

        A missing account is only a warning, since the first order creates one.

        Returns:
            True if all checks passed.
        """
        logger.info("Starting ACME diagnostic checks")
        connectivity = self.check_connectivity()
        account = self.check_account()
        return connectivity and account

    def check_connectivity(self) -> bool:
        url = self.settings.directory_url
        try:
            response = httpx.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error("Connectivity check failed: CA unreachable", extra={"url": url, "error": str(e)})
            return False

        if response.is_success:
            logger.info("Connectivity check passed", extra={"url": url})
            return True

        logger.error(
            "Connectivity check failed: CA returned an error",
            extra={"url": url, "status_code": response.status_code},
        )
        return False

    def check_account(self) -> bool:
        try:
            pem = self.account_store.load()
        except Exception:
            logger.exception("Account check failed: cannot read account store")
            return False

        if pem:
            logger.info("Account check passed")
        else:
            logger.warning("Account check: no account found, one will be created on first order")
        return True
