"""Continue-watching progress ledger with a short-lived read cache."""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Union

from stream_progress.models import (
    MEDIA_TYPES,
    DisplayItem,
    EpisodeEntry,
    InvalidRecordError,
    MovieRecord,
    PlaybackPosition,
    Progress,
    ProgressRecord,
    ProgressSnapshot,
    RemoveResult,
    TitleMetadata,
    TvRecord,
    episode_key,
    to_number,
)
from stream_progress.storage import DataStore, StorageError
from stream_progress.tmdb import TMDB_IMAGE_BASE_URL, build_image_url

logger = logging.getLogger(__name__)

PROGRESS_KEY = "@vidrock_progress"
CACHE_TTL_MS = 5000


@dataclass
class ProgressCache:
    """Last loaded or saved collection and when it was refreshed (ms)."""

    value: Optional[List[ProgressRecord]] = None
    refreshed_at: float = 0

    def get(self, now_ms: float, ttl_ms: float) -> Optional[List[ProgressRecord]]:
        if self.value is None or now_ms - self.refreshed_at >= ttl_ms:
            return None
        return self.value

    def set(self, value: List[ProgressRecord], now_ms: float) -> None:
        self.value = value
        self.refreshed_at = now_ms

    def clear(self) -> None:
        self.value = None
        self.refreshed_at = 0


def _last_updated(record: ProgressRecord) -> float:
    return to_number(record.last_updated) or 0


class ProgressStore:
    """Persists watch progress records under a single storage key."""

    def __init__(
        self,
        backend: DataStore,
        key: str = PROGRESS_KEY,
        cache_ttl_ms: float = CACHE_TTL_MS,
        image_base_url: str = TMDB_IMAGE_BASE_URL,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize progress store.

        Args:
            backend: Key-value storage holding the JSON-encoded records.
            key: Storage key for the record list.
            cache_ttl_ms: How long a loaded collection is served from memory.
            image_base_url: Base URL for poster and backdrop images.
            clock: Returns the current time in seconds.
        """
        self.backend = backend
        self.key = key
        self.cache_ttl_ms = cache_ttl_ms
        self.image_base_url = image_base_url
        self._clock = clock
        self._cache = ProgressCache()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def save(self, records: Iterable[Union[ProgressRecord, dict]]) -> List[ProgressRecord]:
        """Validate, deduplicate and persist records, replacing stored data.

        Accepts record objects or their persisted dict form. Of two records
        with the same (type, id) the one with the larger last_updated wins.

        Returns the list that was written, or an empty list on failure.
        """
        unique = {}
        for candidate in records:
            record = self._coerce(candidate)
            if record is None:
                continue
            existing = unique.get(record.key)
            if existing is None or _last_updated(record) > _last_updated(existing):
                unique[record.key] = record

        cleaned = list(unique.values())

        try:
            payload = json.dumps([record.to_dict() for record in cleaned])
            self.backend.set_item(self.key, payload)
        except (StorageError, TypeError, ValueError) as e:
            logger.error("Error saving progress: %s", e)
            return []

        self._cache.set(cleaned, self._now_ms())
        logger.debug("Saved %d items to storage", len(cleaned))
        return cleaned

    def _coerce(self, candidate: Any) -> Optional[ProgressRecord]:
        if isinstance(candidate, ProgressRecord):
            return candidate if candidate.is_valid() else None
        try:
            return ProgressRecord.from_dict(candidate)
        except InvalidRecordError:
            return None

    def load_raw(self) -> List[ProgressRecord]:
        """Return all persisted records, served from cache within the TTL."""
        now = self._now_ms()
        cached = self._cache.get(now, self.cache_ttl_ms)
        if cached is not None:
            return cached

        try:
            stored = self.backend.get_item(self.key)
        except StorageError as e:
            logger.error("Error loading progress: %s", e)
            return []

        if not stored:
            self._cache.set([], now)
            return []

        try:
            data = json.loads(stored)
        except ValueError as e:
            logger.error("Corrupt progress data, starting empty: %s", e)
            self._cache.set([], now)
            return []

        if not isinstance(data, list):
            logger.error(
                "Invalid progress data format: expected a list, got %s",
                type(data).__name__,
            )
            self._cache.set([], now)
            return []

        records = []
        for item in data:
            try:
                records.append(ProgressRecord.from_dict(item))
            except InvalidRecordError as e:
                logger.warning("Skipping invalid stored record: %s", e)

        self._cache.set(records, now)
        return records

    def load_for_display(self) -> List[DisplayItem]:
        """Return continue-watching items, most recently updated first.

        Tv items without a valid last watched season and episode are left out.
        """
        ordered = sorted(self.load_raw(), key=_last_updated, reverse=True)
        items = [self._to_display(record) for record in ordered]

        valid = [
            item
            for item in items
            if item.media_type != "tv"
            or (item.last_season_watched and item.last_episode_watched)
        ]
        logger.debug("Loaded %d continue watching items", len(valid))
        return valid

    def _to_display(self, record: ProgressRecord) -> DisplayItem:
        item = DisplayItem(
            id=record.id,
            media_type=record.media_type,
            title=record.title,
            poster_path=record.poster_path,
            backdrop_path=record.backdrop_path,
            image=build_image_url(
                record.poster_path, "poster", "large", self.image_base_url
            ),
            backdrop=build_image_url(
                record.backdrop_path, "backdrop", "medium", self.image_base_url
            ),
            progress_percent=0,
            last_updated=record.last_updated,
            number_of_seasons=record.number_of_seasons,
            number_of_episodes=record.number_of_episodes,
        )

        if isinstance(record, MovieRecord):
            item.progress = record.progress
            if record.progress:
                item.progress_percent = record.progress.percent
        elif isinstance(record, TvRecord):
            season, episode = record.last_watched()
            item.last_season_watched = season
            item.last_episode_watched = episode
            item.show_progress = record.show_progress
            if season and episode:
                entry = record.episode(season, episode)
                if entry and entry.progress:
                    item.progress_percent = entry.progress.percent

        return item

    def _find(
        self, records: List[ProgressRecord], media_id: Any, media_type: str
    ) -> Optional[ProgressRecord]:
        for record in records:
            if record.id == media_id and record.media_type == media_type:
                return record
        return None

    def get_episode_progress(
        self, media_id: Any, season: int, episode: int
    ) -> Optional[ProgressSnapshot]:
        """Return progress for one episode of a show, or None."""
        try:
            show = self._find(self.load_raw(), media_id, "tv")
            if show is None or not show.show_progress:
                return None

            entry = show.episode(season, episode)
            if entry is None or entry.progress is None:
                return None
        except (TypeError, ValueError) as e:
            logger.error("Error getting episode progress: %s", e)
            return None

        return ProgressSnapshot(
            watched=entry.progress.watched,
            duration=entry.progress.duration,
            progress_percent=entry.progress.percent,
            last_updated=entry.last_updated,
        )

    def get_movie_progress(self, media_id: Any) -> Optional[ProgressSnapshot]:
        """Return progress for a movie, or None."""
        movie = self._find(self.load_raw(), media_id, "movie")
        if movie is None or movie.progress is None:
            return None

        return ProgressSnapshot(
            watched=movie.progress.watched,
            duration=movie.progress.duration,
            progress_percent=movie.progress.percent,
        )

    def update_current_progress(
        self,
        media_id: Any,
        media_type: str,
        playback: PlaybackPosition,
        metadata: Optional[TitleMetadata] = None,
    ) -> bool:
        """Record the current playback position for a title.

        Updates the existing record for (media_type, media_id) in place or
        creates one seeded from metadata, then saves the whole collection.

        Returns True on success. Failures are logged, never raised.
        """
        if media_type not in MEDIA_TYPES:
            logger.error("Cannot update progress: invalid media type %r", media_type)
            return False

        try:
            records = list(self.load_raw())
            timestamp = self._now_ms()
            record = self._find(records, media_id, media_type)

            if record is None:
                record = self._new_record(media_id, media_type, metadata or TitleMetadata())
                records.append(record)

            record.last_updated = timestamp

            if isinstance(record, TvRecord):
                if playback.season and playback.episode:
                    season = str(int(playback.season))
                    episode = str(int(playback.episode))
                    record.last_season_watched = season
                    record.last_episode_watched = episode
                    if record.show_progress is None:
                        record.show_progress = {}
                    record.show_progress[episode_key(season, episode)] = EpisodeEntry(
                        season=season,
                        episode=episode,
                        progress=Progress(playback.current_time, playback.duration),
                        last_updated=timestamp,
                    )
            else:
                record.progress = Progress(playback.current_time, playback.duration)

            saved = self.save(records)
        except (StorageError, TypeError, ValueError) as e:
            logger.error("Error updating current progress: %s", e)
            return False

        if not any(item is record for item in saved):
            logger.error("Progress for %s %s was not saved", media_type, media_id)
            return False
        return True

    def _new_record(
        self, media_id: Any, media_type: str, metadata: TitleMetadata
    ) -> ProgressRecord:
        record_cls = TvRecord if media_type == "tv" else MovieRecord
        return record_cls(
            id=media_id,
            title=metadata.title or "Unknown",
            poster_path=metadata.poster_path,
            backdrop_path=metadata.backdrop_path,
            number_of_seasons=metadata.number_of_seasons,
            number_of_episodes=metadata.number_of_episodes,
        )

    def remove_item(self, media_id: Any, media_type: str) -> RemoveResult:
        """Remove the record for (media_type, media_id)."""
        if not media_id or not media_type:
            return RemoveResult(success=False, error="Invalid parameters")
        if media_type not in MEDIA_TYPES:
            return RemoveResult(success=False, error="Invalid media type")

        records = self.load_raw()
        removed = self._find(records, media_id, media_type)
        if removed is None:
            return RemoveResult(success=True, message="Item not found")

        logger.info("Removing %s (%s %s)", removed.title, media_type, media_id)
        remaining = [record for record in records if record is not removed]

        try:
            payload = json.dumps([record.to_dict() for record in remaining])
            self.backend.set_item(self.key, payload)
        except (StorageError, TypeError, ValueError) as e:
            logger.error("Error removing item: %s", e)
            return RemoveResult(success=False, error=str(e))

        self._cache.set(remaining, self._now_ms())
        logger.info("Removed. Remaining: %d", len(remaining))
        return RemoveResult(
            success=True,
            removed=removed,
            remaining_count=len(remaining),
        )

    def clear_all(self) -> bool:
        """Delete all progress data. Safe to call repeatedly."""
        self.invalidate_cache()
        try:
            self.backend.remove_item(self.key)
        except StorageError as e:
            logger.error("Error clearing progress: %s", e)
            return False

        logger.info("Progress cleared")
        return True

    def invalidate_cache(self) -> None:
        """Force the next read to go to storage (after external writes)."""
        self._cache.clear()

    def count(self) -> int:
        """Return the number of stored records."""
        return len(self.load_raw())
