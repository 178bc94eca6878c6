"""Shared plumbing for the Last.fm adapters."""
from datetime import date
from typing import Optional

from lifelog.config import get_settings
from lifelog.sources.lastfm.client import LastfmClient, LastfmConfig
from lifelog.sync.base import SourceAdapter


class LastfmSource(SourceAdapter):
    """
    Base for adapters backed by LastfmClient.

    The client is built from settings on first use (inside fetch_items), so a
    missing API key fails the run rather than the constructor.
    """

    def __init__(
        self,
        engine,
        client: Optional[LastfmClient] = None,
        *,
        settings=None,
        today: Optional[date] = None,
    ):
        self.engine = engine
        self._client = client
        self._settings = settings
        self._today = today

    @property
    def client(self) -> LastfmClient:
        if self._client is None:
            config = LastfmConfig.from_settings(self._settings or get_settings())
            self._client = LastfmClient(config)
        return self._client

    @property
    def today(self) -> date:
        return self._today or date.today()
