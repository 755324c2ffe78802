"""Calendar feed adapter - fetches ICS text over HTTP or from disk."""

import logging
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class FeedError(Exception):
    """Raised when a calendar feed cannot be retrieved."""

    pass


class IcsFeedAdapter:
    """
    ICS feed source.

    Implements FeedSource protocol. ``http(s)://`` and ``webcal://``
    locations are downloaded, anything else is read as a local file.
    No parsing happens here - just I/O.
    """

    def __init__(self, location: str, timeout: int = DEFAULT_TIMEOUT, session: requests.Session | None = None):
        if not location:
            raise FeedError("No calendar feed configured. Set CALENDAR_FEED or pass a feed location.")
        self.location = location.strip()
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def is_remote(self) -> bool:
        return self.location.lower().startswith(("http://", "https://", "webcal://"))

    def _url(self) -> str:
        if self.location.lower().startswith("webcal://"):
            return "https://" + self.location[len("webcal://"):]
        return self.location

    def fetch(self) -> str:
        """Return the feed document."""
        if not self.is_remote:
            path = Path(self.location).expanduser()
            try:
                return path.read_text(encoding="utf-8")
            except OSError as e:
                raise FeedError(f"Could not read feed file {path}: {e}") from e

        url = self._url()
        logger.debug(f"Fetching calendar feed {url}")
        try:
            resp = self._session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise FeedError(f"Could not fetch feed {url}: {e}") from e

        # Servers often omit the charset for text/calendar
        if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
            resp.encoding = "utf-8"
        return resp.text
