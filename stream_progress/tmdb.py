"""TMDB catalog metadata: URL builders and a read-only API client."""

from typing import Optional

import requests

from stream_progress.models import MEDIA_TYPES, TitleMetadata

TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"

IMAGE_SIZES = {
    "backdrop": {
        "small": "w300",
        "medium": "w780",
        "large": "w1280",
        "original": "original",
    },
    "poster": {
        "small": "w185",
        "medium": "w342",
        "large": "w500",
        "original": "original",
    },
    "profile": {
        "small": "w45",
        "medium": "w185",
        "large": "h632",
        "original": "original",
    },
}


class TmdbError(Exception):
    """TMDB API error."""

    pass


def build_image_url(
    path: Optional[str],
    kind: str = "poster",
    size: str = "medium",
    base_url: str = TMDB_IMAGE_BASE_URL,
) -> Optional[str]:
    """Build a fully qualified image URL, or None when there is no path.

    Unknown kinds or sizes fall back to the medium poster size.
    """
    if not path:
        return None
    size_value = IMAGE_SIZES.get(kind, {}).get(size) or IMAGE_SIZES["poster"]["medium"]
    return f"{base_url.rstrip('/')}/{size_value}{path}"


class TmdbClient:
    """Client for the TMDB v3 REST API."""

    def __init__(self, api_key: str, base_url: str = TMDB_BASE_URL):
        """Initialize TMDB client."""
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def build_api_url(self, endpoint: str, params: Optional[dict] = None) -> str:
        """Build a full request URL for endpoint, skipping None params."""
        query = {"api_key": self.api_key}
        for key, value in (params or {}).items():
            if value is not None:
                query[key] = value

        request = requests.Request("GET", f"{self.base_url}{endpoint}", params=query)
        return request.prepare().url

    def _get(self, endpoint: str, params: Optional[dict] = None) -> dict:
        url = self.build_api_url(endpoint, params)

        try:
            response = requests.get(url, timeout=20)
        except requests.RequestException as e:
            raise TmdbError(f"Cannot connect to TMDB: {e}")

        if response.status_code == 401:
            raise TmdbError("Invalid TMDB API key")
        if response.status_code == 404:
            raise TmdbError(f"Not found on TMDB: {endpoint}")
        if response.status_code != 200:
            raise TmdbError(f"TMDB error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise TmdbError(f"Invalid TMDB response: {e}")
        if not isinstance(data, dict):
            raise TmdbError("Invalid TMDB response: expected an object")
        return data

    def get_details(self, media_type: str, media_id: int) -> dict:
        """Fetch movie or tv show details."""
        if media_type not in MEDIA_TYPES:
            raise ValueError(f"Invalid media type: {media_type}")
        return self._get(f"/{media_type}/{media_id}")

    def get_season(self, show_id: int, season_number: int) -> dict:
        """Fetch one season of a tv show, including its episodes."""
        return self._get(f"/tv/{show_id}/season/{season_number}")

    def search(self, query: str, page: int = 1) -> list:
        """Search movies and tv shows; people are filtered out."""
        data = self._get("/search/multi", {"query": query, "page": page})
        return [
            result
            for result in data.get("results", [])
            if result.get("media_type") in MEDIA_TYPES
        ]

    def get_title_metadata(self, media_type: str, media_id: int) -> TitleMetadata:
        """Fetch the display metadata used to seed a progress record."""
        data = self.get_details(media_type, media_id)
        return TitleMetadata(
            title=data.get("title") or data.get("name"),
            poster_path=data.get("poster_path"),
            backdrop_path=data.get("backdrop_path"),
            number_of_seasons=data.get("number_of_seasons"),
            number_of_episodes=data.get("number_of_episodes"),
        )
