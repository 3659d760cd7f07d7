"""Abstract base class for DNS providers."""

from abc import ABC, abstractmethod


class DnsProvider(ABC):
    """Publishes and removes the TXT records answering dns-01 challenges.

    Record names are fully qualified and already carry the
    ``_acme-challenge.`` label, e.g. ``_acme-challenge.example.com``.
    """

    @abstractmethod
    def create_txt_record(self, name: str, value: str) -> None:
        """Create (or replace) a TXT record.

        Args:
            name: Full record name.
            value: The TXT value to publish.

        Raises:
            Exception: If record creation fails.
        """
        ...

    @abstractmethod
    def delete_txt_record(self, name: str, value: str) -> None:
        """Delete a TXT record.

        Args:
            name: Full record name.
            value: The TXT value that was published, for providers holding
                several values under one name.

        Raises:
            Exception: If record deletion fails.
        """
        ...
