"""Base class for challenge handlers."""

import threading
import time
from abc import ABC, abstractmethod
from datetime import timedelta

from autocert import _cancel
from autocert._logging import get_logger
from autocert.client import AcmeClient
from autocert.exceptions import ValidationTimeout
from autocert.models import Authorization, Challenge, ChallengeStatus

logger = get_logger(__name__)


class ChallengeHandler(ABC):
    """Proves control of an authorization's identifier with one challenge type.

    Handlers return True when the server marks the challenge valid and False
    when it marks it invalid or the authorization does not offer the type.
    They raise only for timeouts, cancellation and transport errors.
    """

    challenge_type: str

    @abstractmethod
    def handle(
        self,
        client: AcmeClient,
        authorization: Authorization,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Publish the challenge response, request validation, and wait for the result.

        Args:
            client: ACME client for the account owning the order.
            authorization: The pending authorization to validate.
            cancel: Set to abort any wait promptly.

        Returns:
            True if the challenge was validated.

        Raises:
            ValidationTimeout: If the server did not decide in time.
            OperationCancelled: If ``cancel`` was set.
        """
        ...


def wait_for_validation(
    client: AcmeClient,
    challenge: Challenge,
    interval: float,
    timeout: timedelta,
    cancel: threading.Event | None = None,
) -> Challenge:
    """Poll a challenge until it reaches a terminal status.

    Returns:
        The challenge in ``valid`` or ``invalid`` status.

    Raises:
        ValidationTimeout: If still pending/processing after ``timeout``.
        OperationCancelled: If ``cancel`` is set while waiting.
    """
    deadline = time.monotonic() + timeout.total_seconds()
    result = client.get_challenge_status(challenge.url)

    while result.status in (ChallengeStatus.PENDING, ChallengeStatus.PROCESSING):
        if time.monotonic() >= deadline:
            logger.error(
                "Validation timed out",
                extra={"challenge_type": challenge.type, "challenge_url": challenge.url},
            )
            raise ValidationTimeout(f"Validation timed out for {challenge.type} challenge")
        _cancel.sleep(interval, cancel)
        result = client.get_challenge_status(challenge.url)

    return result
