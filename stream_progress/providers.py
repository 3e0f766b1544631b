"""Embed providers that scrape direct stream URLs."""

import logging
import re
import time
from typing import Any, Optional

import requests

from stream_progress.models import StreamRequest

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
DEFAULT_TIMEOUT = 15


class ProviderError(Exception):
    """Provider could not produce a stream URL."""

    pass


class StreamProvider:
    """Base class for a provider that resolves a title to a stream URL.

    Subclasses implement ``_resolve``. Any network or payload failure is
    logged and reported as None by ``resolve``.
    """

    name = ""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, user_agent: str = USER_AGENT):
        """Initialize provider.

        Args:
            timeout: Total seconds allowed for all requests of one resolve call.
            user_agent: Browser User-Agent sent with every request.
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self._deadline = 0.0

    def resolve(self, request: StreamRequest) -> Optional[str]:
        """Return a stream URL for the request, or None if not found."""
        logger.debug("[%s] Resolving %s", self.name, request)
        self._deadline = time.monotonic() + self.timeout

        try:
            url = self._resolve(request)
        except ProviderError as e:
            logger.info("[%s] %s", self.name, e)
            return None
        except requests.RequestException as e:
            logger.warning("[%s] Request failed: %s", self.name, e)
            return None
        except (ValueError, KeyError, TypeError, IndexError, AttributeError) as e:
            logger.warning("[%s] Unexpected response: %s", self.name, e)
            return None

        if url:
            logger.info("[%s] Found stream URL: %s", self.name, url)
        return url or None

    def _resolve(self, request: StreamRequest) -> Optional[str]:
        raise NotImplementedError

    def _get_headers(self) -> dict:
        """Build request headers."""
        return {"User-Agent": self.user_agent}

    def _get(self, url: str, headers: Optional[dict] = None) -> requests.Response:
        """GET url within the remaining time budget."""
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise ProviderError(f"Timed out before requesting {url}")

        request_headers = self._get_headers()
        request_headers.update(headers or {})

        response = requests.get(url, headers=request_headers, timeout=remaining)
        if response.status_code != 200:
            raise ProviderError(f"HTTP {response.status_code} from {url}")
        return response

    @staticmethod
    def _require_episode(request: StreamRequest) -> None:
        if request.media_type == "tv" and not (request.season and request.episode):
            raise ProviderError("Season and episode are required for tv")


class VidSrcToProvider(StreamProvider):
    """vidsrc.to: embed page token, then ajax sources and source lookups."""

    name = "vidsrc.to"
    BASE_URL = "https://vidsrc.to"

    DATA_ID_PATTERN = re.compile(r'data-id="([^"]+)"')

    def _get_headers(self) -> dict:
        headers = super()._get_headers()
        headers["Referer"] = f"{self.BASE_URL}/"
        headers["Origin"] = self.BASE_URL
        return headers

    def embed_url(self, request: StreamRequest) -> str:
        self._require_episode(request)
        if request.media_type == "tv":
            return (
                f"{self.BASE_URL}/embed/tv/{request.media_id}"
                f"/{request.season}/{request.episode}"
            )
        return f"{self.BASE_URL}/embed/movie/{request.media_id}"

    def _resolve(self, request: StreamRequest) -> Optional[str]:
        embed_url = self.embed_url(request)
        html = self._get(embed_url).text

        match = self.DATA_ID_PATTERN.search(html)
        if not match:
            raise ProviderError("Could not find data-id")
        data_id = match.group(1)
        logger.debug("[%s] Found data-id: %s", self.name, data_id)

        ajax_headers = {
            "Referer": embed_url,
            "X-Requested-With": "XMLHttpRequest",
        }

        sources_url = f"{self.BASE_URL}/ajax/embed/episode/{data_id}/sources"
        sources = self._get_result(sources_url, ajax_headers)
        if not sources:
            raise ProviderError("No sources found")
        if not isinstance(sources, list):
            raise ProviderError("Unexpected sources format")
        source_id = sources[0]["id"]
        logger.debug("[%s] Using source: %s", self.name, source_id)

        source_url = f"{self.BASE_URL}/ajax/embed/source/{source_id}"
        result = self._get_result(source_url, ajax_headers)
        if isinstance(result, dict) and result.get("url"):
            return result["url"]

        raise ProviderError("Source has no url")

    def _get_result(self, url: str, headers: dict) -> Any:
        """Return the "result" member of an ajax JSON response."""
        data = self._get(url, headers).json()
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected response from {url}")
        return data.get("result")


class VidSrcMeProvider(StreamProvider):
    """vidsrc.me: scan the embed page for an m3u8 or mp4 URL."""

    name = "vidsrc.me"
    BASE_URL = "https://vidsrc.me"

    M3U8_PATTERN = re.compile(r"""(https?://[^"'\s]+\.m3u8[^"'\s]*)""")
    MP4_PATTERN = re.compile(r"""(https?://[^"'\s]+\.mp4[^"'\s]*)""")

    def embed_url(self, request: StreamRequest) -> str:
        self._require_episode(request)
        if request.media_type == "tv":
            return (
                f"{self.BASE_URL}/embed/{request.media_id}"
                f"/{request.season}-{request.episode}"
            )
        return f"{self.BASE_URL}/embed/{request.media_id}"

    def _resolve(self, request: StreamRequest) -> Optional[str]:
        html = self._get(self.embed_url(request)).text

        for pattern in (self.M3U8_PATTERN, self.MP4_PATTERN):
            match = pattern.search(html)
            if match:
                return match.group(1)

        raise ProviderError("No m3u8 or mp4 URL in page")
