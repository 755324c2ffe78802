"""Calendar feed source interface."""

from typing import Protocol


class FeedSource(Protocol):
    """Interface for obtaining the raw text of a calendar feed."""

    def fetch(self) -> str:
        """Return the feed document."""
        ...
