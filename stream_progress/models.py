"""Data models for watch progress records and stream lookups."""

import math
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional

MEDIA_TYPES = ("movie", "tv")

_LEADING_DIGITS = re.compile(r"\s*\+?(\d+)")


class InvalidRecordError(ValueError):
    """Record data is missing required fields."""

    pass


def to_number(value: Any, default: Optional[float] = 0) -> Optional[float]:
    """Return value as an int or float, parsing numeric strings.

    Stored values come from other clients and may be strings. Anything that
    is not a finite number gives default.
    """
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return default
        if math.isfinite(value) and value.is_integer():
            value = int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return value
    return default


def progress_percent(watched: Any, duration: Any) -> int:
    """Return watched/duration as a whole percentage clamped to 0-100."""
    duration = to_number(duration)
    if not duration or duration <= 0:
        return 0
    ratio = max(0, min(to_number(watched) / duration, 1))
    # Half-up rounding, not banker's rounding
    return math.floor(ratio * 100 + 0.5)


def parse_positive_int(value: Any) -> Optional[int]:
    """Parse the leading digits of value, returning None unless positive."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    match = _LEADING_DIGITS.match(str(value))
    if not match:
        return None
    number = int(match.group(1))
    return number if number > 0 else None


def episode_key(season: Any, episode: Any) -> str:
    """Build the show_progress key, e.g. ``s2e3``."""
    return f"s{int(season)}e{int(episode)}"


@dataclass
class Progress:
    """Playback position within a single video."""

    watched: float = 0
    duration: float = 0

    @property
    def percent(self) -> int:
        return progress_percent(self.watched, self.duration)

    def to_dict(self) -> dict:
        return {"watched": self.watched, "duration": self.duration}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["Progress"]:
        if not isinstance(data, dict):
            return None
        return cls(
            watched=to_number(data.get("watched")),
            duration=to_number(data.get("duration")),
        )


@dataclass
class EpisodeEntry:
    """Progress of one episode inside a tv record."""

    season: str
    episode: str
    progress: Optional[Progress] = None
    last_updated: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "season": self.season,
            "episode": self.episode,
            "progress": self.progress.to_dict() if self.progress else None,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EpisodeEntry":
        return cls(
            season=str(data.get("season", "")),
            episode=str(data.get("episode", "")),
            progress=Progress.from_dict(data.get("progress")),
            last_updated=to_number(data.get("last_updated"), None),
        )


# Keys handled explicitly by the record classes; anything else goes in `extra`
_RECORD_KEYS = {
    "id",
    "type",
    "title",
    "poster_path",
    "backdrop_path",
    "last_updated",
    "number_of_seasons",
    "number_of_episodes",
    "progress",
    "show_progress",
    "last_season_watched",
    "last_episode_watched",
}


@dataclass
class ProgressRecord:
    """Watch progress for one title. Use MovieRecord or TvRecord."""

    media_type: ClassVar[str] = ""

    id: Any
    title: str
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    last_updated: Optional[int] = None
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None

    # Fields written by other clients, preserved as-is
    extra: dict = field(default_factory=dict)

    @property
    def key(self) -> tuple:
        """Unique identity of the record: (media_type, id)."""
        return (self.media_type, self.id)

    def is_valid(self) -> bool:
        return bool(self.id) and self.media_type in MEDIA_TYPES and bool(self.title)

    def to_dict(self) -> dict:
        """Convert to the persisted JSON shape."""
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "type": self.media_type,
            "title": self.title,
            "poster_path": self.poster_path,
            "backdrop_path": self.backdrop_path,
            "last_updated": self.last_updated,
        })
        if self.number_of_seasons is not None:
            data["number_of_seasons"] = self.number_of_seasons
        if self.number_of_episodes is not None:
            data["number_of_episodes"] = self.number_of_episodes
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ProgressRecord":
        """Build the movie or tv variant from its persisted form.

        Raises:
            InvalidRecordError: If id, type or title is missing or unusable.
        """
        if not isinstance(data, dict):
            raise InvalidRecordError(f"Expected an object, got {type(data).__name__}")
        if not data.get("id") or not data.get("type") or not data.get("title"):
            raise InvalidRecordError("Record requires id, type and title")

        media_type = data["type"]
        if media_type == "movie":
            record_cls = MovieRecord
        elif media_type == "tv":
            record_cls = TvRecord
        else:
            raise InvalidRecordError(f"Invalid media type: {media_type}")

        record = record_cls(
            id=data["id"],
            title=data["title"],
            poster_path=data.get("poster_path"),
            backdrop_path=data.get("backdrop_path"),
            last_updated=to_number(data.get("last_updated"), None),
            number_of_seasons=data.get("number_of_seasons"),
            number_of_episodes=data.get("number_of_episodes"),
            extra={k: v for k, v in data.items() if k not in _RECORD_KEYS},
        )
        record._load_progress(data)
        return record

    def _load_progress(self, data: dict) -> None:
        pass


@dataclass
class MovieRecord(ProgressRecord):
    """Progress record for a movie."""

    media_type: ClassVar[str] = "movie"

    progress: Optional[Progress] = None

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.progress is not None:
            data["progress"] = self.progress.to_dict()
        return data

    def _load_progress(self, data: dict) -> None:
        self.progress = Progress.from_dict(data.get("progress"))


@dataclass
class TvRecord(ProgressRecord):
    """Progress record for a series, keyed per episode."""

    media_type: ClassVar[str] = "tv"

    last_season_watched: Optional[str] = None
    last_episode_watched: Optional[str] = None
    show_progress: Optional[Dict[str, EpisodeEntry]] = None

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.last_season_watched is not None:
            data["last_season_watched"] = self.last_season_watched
        if self.last_episode_watched is not None:
            data["last_episode_watched"] = self.last_episode_watched
        if self.show_progress is not None:
            data["show_progress"] = {
                key: entry.to_dict() for key, entry in self.show_progress.items()
            }
        return data

    def _load_progress(self, data: dict) -> None:
        season = data.get("last_season_watched")
        episode = data.get("last_episode_watched")
        self.last_season_watched = str(season) if season is not None else None
        self.last_episode_watched = str(episode) if episode is not None else None

        show_progress = data.get("show_progress")
        if isinstance(show_progress, dict):
            self.show_progress = {
                key: EpisodeEntry.from_dict(entry)
                for key, entry in show_progress.items()
                if isinstance(entry, dict)
            }

    def last_watched(self) -> tuple:
        """Return (season, episode) as positive ints, or None for each."""
        return (
            parse_positive_int(self.last_season_watched),
            parse_positive_int(self.last_episode_watched),
        )

    def episode(self, season: Any, episode: Any) -> Optional[EpisodeEntry]:
        if not self.show_progress:
            return None
        return self.show_progress.get(episode_key(season, episode))


@dataclass
class PlaybackPosition:
    """Current player position reported by the hosting app."""

    current_time: float
    duration: float
    season: Optional[int] = None
    episode: Optional[int] = None


@dataclass
class TitleMetadata:
    """Display metadata used to seed a new progress record."""

    title: Optional[str] = None
    poster_path: Optional[str] = None
    backdrop_path: Optional[str] = None
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None


@dataclass
class ProgressSnapshot:
    """Progress of a movie or a single episode."""

    watched: float
    duration: float
    progress_percent: int
    last_updated: Optional[int] = None


@dataclass
class DisplayItem:
    """A continue-watching entry ready for display."""

    id: Any
    media_type: str
    title: str
    poster_path: Optional[str]
    backdrop_path: Optional[str]
    image: Optional[str]
    backdrop: Optional[str]
    progress_percent: int
    last_updated: Optional[int]
    last_season_watched: Optional[int] = None
    last_episode_watched: Optional[int] = None
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None
    progress: Optional[Progress] = None
    show_progress: Optional[Dict[str, EpisodeEntry]] = None


@dataclass
class RemoveResult:
    """Outcome of removing a record."""

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    removed: Optional[ProgressRecord] = None
    remaining_count: Optional[int] = None


@dataclass
class StreamRequest:
    """A title to resolve; season and episode apply to tv only."""

    media_id: Any
    media_type: str
    season: Optional[int] = None
    episode: Optional[int] = None


@dataclass
class ResolvedStream:
    """A playable stream URL and the provider that produced it."""

    url: str
    provider: str
