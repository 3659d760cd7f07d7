"""HTTP-01 challenge implementation."""

import threading
from datetime import timedelta

from autocert._logging import get_logger
from autocert.challenges.base import ChallengeHandler, wait_for_validation
from autocert.client import AcmeClient
from autocert.models import Authorization, ChallengeStatus, ChallengeType
from autocert.stores.base import ChallengeStore

logger = get_logger(__name__)

# Seconds a published response stays servable
CHALLENGE_TTL = 300


class Http01ChallengeHandler(ChallengeHandler):
    """Answers http-01 challenges by publishing key authorizations to a challenge store.

    The hosting application must serve ``/.well-known/acme-challenge/{token}``
    from the same store.

    Args:
        challenge_store: Where responses are published.
        validation_timeout: Upper bound on polling for the result.
        poll_interval: Seconds between status checks.
    """

    challenge_type = ChallengeType.HTTP_01.value

    def __init__(
        self,
        challenge_store: ChallengeStore,
        validation_timeout: timedelta = timedelta(seconds=60),
        poll_interval: float = 1.0,
    ):
        self.challenge_store = challenge_store
        self.validation_timeout = validation_timeout
        self.poll_interval = poll_interval

    def handle(
        self,
        client: AcmeClient,
        authorization: Authorization,
        cancel: threading.Event | None = None,
    ) -> bool:
        challenge = authorization.find_challenge(self.challenge_type)
        domain = authorization.identifier.value
        if challenge is None:
            logger.warning("No HTTP-01 challenge offered", extra={"domain": domain})
            return False

        logger.debug("Received HTTP-01 challenge", extra={"domain": domain, "token": challenge.token})
        self.challenge_store.save(challenge.token, client.key_authorization(challenge), CHALLENGE_TTL)

        try:
            logger.info("Requesting validation for HTTP-01 challenge", extra={"domain": domain})
            client.respond_challenge(challenge)
            result = wait_for_validation(
                client, challenge, self.poll_interval, self.validation_timeout, cancel
            )
        finally:
            self.challenge_store.delete(challenge.token)

        if result.status == ChallengeStatus.VALID:
            logger.info("HTTP-01 challenge valid", extra={"domain": domain})
            return True

        logger.error(
            "HTTP-01 challenge failed",
            extra={"domain": domain, "status": result.status, "error": result.error_detail},
        )
        return False
