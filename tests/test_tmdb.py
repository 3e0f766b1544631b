"""Tests for TMDB URL builders and client."""

import pytest
import requests
import responses

from stream_progress.models import TitleMetadata
from stream_progress.tmdb import TmdbClient, TmdbError, build_image_url


class TestBuildImageUrl:
    """Tests for image URL building."""

    def test_poster_sizes(self):
        """Poster sizes map to TMDB widths."""
        assert build_image_url("/p.jpg") == "https://image.tmdb.org/t/p/w342/p.jpg"
        assert build_image_url("/p.jpg", "poster", "large") == "https://image.tmdb.org/t/p/w500/p.jpg"

    def test_backdrop_sizes(self):
        """Backdrop sizes map to TMDB widths."""
        assert build_image_url("/b.jpg", "backdrop", "medium") == "https://image.tmdb.org/t/p/w780/b.jpg"
        assert build_image_url("/b.jpg", "backdrop", "original") == "https://image.tmdb.org/t/p/original/b.jpg"

    def test_unknown_size_falls_back(self):
        """Unknown kinds and sizes use the medium poster size."""
        assert build_image_url("/x.jpg", "banner", "huge") == "https://image.tmdb.org/t/p/w342/x.jpg"

    def test_empty_path(self):
        """No path means no URL."""
        assert build_image_url(None) is None
        assert build_image_url("") is None

    def test_custom_base_url(self):
        """The image host can be overridden."""
        url = build_image_url("/p.jpg", base_url="https://img.example.com/t/p/")
        assert url == "https://img.example.com/t/p/w342/p.jpg"


class TestTmdbClient:
    """Tests for the TMDB API client."""

    def test_build_api_url(self):
        """API URLs carry the key and skip None params."""
        client = TmdbClient(api_key="key123")
        url = client.build_api_url("/search/multi", {"query": "the wire", "page": None})

        assert url == "https://api.themoviedb.org/3/search/multi?api_key=key123&query=the+wire"

    @responses.activate
    def test_get_title_metadata_tv(self):
        """Show details become title metadata."""
        responses.add(
            responses.GET,
            "https://api.themoviedb.org/3/tv/1399",
            json={
                "id": 1399,
                "name": "Game of Thrones",
                "poster_path": "/got.jpg",
                "backdrop_path": "/got-bg.jpg",
                "number_of_seasons": 8,
                "number_of_episodes": 73,
            },
            status=200,
        )

        metadata = TmdbClient(api_key="key123").get_title_metadata("tv", 1399)

        assert metadata == TitleMetadata(
            title="Game of Thrones",
            poster_path="/got.jpg",
            backdrop_path="/got-bg.jpg",
            number_of_seasons=8,
            number_of_episodes=73,
        )
        assert "api_key=key123" in responses.calls[0].request.url

    @responses.activate
    def test_get_title_metadata_movie(self):
        """Movies use their title field."""
        responses.add(
            responses.GET,
            "https://api.themoviedb.org/3/movie/550",
            json={"id": 550, "title": "Fight Club", "poster_path": "/fc.jpg"},
            status=200,
        )

        metadata = TmdbClient(api_key="key123").get_title_metadata("movie", 550)

        assert metadata.title == "Fight Club"
        assert metadata.number_of_seasons is None

    @responses.activate
    def test_get_season(self):
        """Season details are returned as-is."""
        responses.add(
            responses.GET,
            "https://api.themoviedb.org/3/tv/1399/season/1",
            json={"season_number": 1, "episodes": [{"episode_number": 1}]},
            status=200,
        )

        season = TmdbClient(api_key="key123").get_season(1399, 1)
        assert season["episodes"][0]["episode_number"] == 1

    @responses.activate
    def test_search_filters_people(self):
        """Search keeps only movies and tv shows."""
        responses.add(
            responses.GET,
            "https://api.themoviedb.org/3/search/multi",
            json={
                "results": [
                    {"id": 1, "media_type": "movie", "title": "A"},
                    {"id": 2, "media_type": "person", "name": "B"},
                    {"id": 3, "media_type": "tv", "name": "C"},
                ]
            },
            status=200,
        )

        results = TmdbClient(api_key="key123").search("a")
        assert [r["id"] for r in results] == [1, 3]

    @responses.activate
    def test_invalid_key(self):
        """401 raises TmdbError."""
        responses.add(responses.GET, "https://api.themoviedb.org/3/movie/550", status=401)

        with pytest.raises(TmdbError, match="Invalid TMDB API key"):
            TmdbClient(api_key="bad").get_details("movie", 550)

    @responses.activate
    def test_not_found(self):
        """404 raises TmdbError."""
        responses.add(responses.GET, "https://api.themoviedb.org/3/movie/1", status=404)

        with pytest.raises(TmdbError, match="Not found"):
            TmdbClient(api_key="key123").get_details("movie", 1)

    @responses.activate
    def test_connection_error(self):
        """Connection failures raise TmdbError."""
        responses.add(
            responses.GET,
            "https://api.themoviedb.org/3/movie/550",
            body=requests.exceptions.ConnectionError("Network error"),
        )

        with pytest.raises(TmdbError, match="Cannot connect"):
            TmdbClient(api_key="key123").get_details("movie", 550)

    @responses.activate
    def test_invalid_json(self):
        """A 200 response that is not JSON raises TmdbError."""
        responses.add(
            responses.GET,
            "https://api.themoviedb.org/3/movie/550",
            body="<html>maintenance</html>",
            status=200,
        )

        with pytest.raises(TmdbError, match="Invalid TMDB response"):
            TmdbClient(api_key="key123").get_details("movie", 550)

        responses.replace(
            responses.GET,
            "https://api.themoviedb.org/3/movie/550",
            json=[],
            status=200,
        )

        with pytest.raises(TmdbError, match="expected an object"):
            TmdbClient(api_key="key123").get_details("movie", 550)

    def test_invalid_media_type(self):
        """Unknown media types are rejected before any request."""
        with pytest.raises(ValueError):
            TmdbClient(api_key="key123").get_details("person", 1)
