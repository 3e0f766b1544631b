"""Resolve titles to playable stream URLs using ordered embed providers."""

import logging
from typing import List, Optional

import requests

from stream_progress.models import ResolvedStream, StreamRequest
from stream_progress.providers import (
    DEFAULT_TIMEOUT,
    USER_AGENT,
    StreamProvider,
    VidSrcMeProvider,
    VidSrcToProvider,
)

logger = logging.getLogger(__name__)

HEALTH_CHECK_TIMEOUT = 5


class StreamResolver:
    """Tries each provider in order and returns the first stream found."""

    def __init__(
        self,
        providers: Optional[List[StreamProvider]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = USER_AGENT,
    ):
        """Initialize resolver.

        Defaults to vidsrc.to followed by vidsrc.me.
        """
        if providers is None:
            providers = [
                VidSrcToProvider(timeout=timeout, user_agent=user_agent),
                VidSrcMeProvider(timeout=timeout, user_agent=user_agent),
            ]
        self.providers = providers
        self.user_agent = user_agent

    def resolve(self, request: StreamRequest) -> Optional[ResolvedStream]:
        """Return the first resolved stream, or None if every provider fails."""
        logger.info("Resolving stream for %s", request)

        for provider in self.providers:
            url = provider.resolve(request)
            if url:
                return ResolvedStream(url=url, provider=provider.name)
            logger.info("%s failed, trying next provider", provider.name)

        logger.warning("All providers failed for %s", request)
        return None

    def check_stream_url(self, url: str, timeout: float = HEALTH_CHECK_TIMEOUT) -> bool:
        """Check that a stream URL answers a HEAD request.

        Returns True if reachable, False otherwise.
        """
        try:
            response = requests.head(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=timeout,
                allow_redirects=True,
            )
            return response.ok
        except requests.RequestException as e:
            logger.info("Stream URL check failed: %s", e)
            return False
