"""Song catalogues: load KaraFun CSV + JKaraoke JSON at startup, search in memory.

Every song is a plain dict in one shape regardless of where it came from:

    id, title, title_hebrew, artist, artist_id, collaborators,
    album, year, source

Missing string fields become "" and missing ids/years become None. Loading
never raises: an unreadable file is logged to errors.log and the catalogue
is simply empty.
"""
import csv
import json
import logging
from pathlib import Path
from typing import Any, Optional

from .config import (
    DATA_DIR,
    KARAFUN_CSV,
    KARAFUN_SEPARATOR,
    KARAFUN_GENRES_JSON,
    JK_CATALOGUE_JSON,
    JK_POPULAR_JSON,
    JK_ARTISTS_JSON,
    SEARCH_LIMIT,
    SEARCH_MIN_QUERY,
)
from .errors import FileReadError, format_error

logger = logging.getLogger(__name__)

SOURCE_KARAFUN = "karafun"
SOURCE_JKARAOKE = "jkaraoke"

_STRING_FIELDS = ("title", "title_hebrew", "artist", "collaborators", "album")


def normalize_song(raw: dict, source: str) -> dict:
    """Map a raw record (any key case) onto the common song shape."""
    lowered = {str(k).strip().lower(): v for k, v in raw.items()}
    song = {"id": lowered.get("id")}
    for field in _STRING_FIELDS:
        value = lowered.get(field)
        song[field] = "" if value is None else str(value)
    song["artist_id"] = lowered.get("artist_id")
    song["year"] = lowered.get("year") or None
    song["source"] = source
    return song


def _karafun_song(row: dict) -> dict:
    song = normalize_song(row, SOURCE_KARAFUN)
    song["duo"] = row.get("Duo") == "1"
    song["explicit"] = row.get("Explicit") == "1"
    song["styles"] = row.get("Styles") or ""
    song["languages"] = row.get("Languages") or ""
    return song


def _read_json(path: Path) -> Any:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(f"{path}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise FileReadError(f"{path}: invalid JSON ({e})") from e


def _read_rows(path: Path, separator: str) -> list[dict]:
    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            return list(csv.DictReader(f, delimiter=separator))
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise FileReadError(f"{path}: {e}") from e


def _load_failed(path: Path, raw: str, warnings: Optional[list]):
    message = format_error("catalogue_load", params={"name": Path(path).name, "path": str(path)}, raw=raw)
    if warnings is not None:
        warnings.append(message)


def load_delimited(
    path: Path,
    separator: str = KARAFUN_SEPARATOR,
    source: str = SOURCE_KARAFUN,
    warnings: Optional[list] = None,
) -> list[dict]:
    """Read a delimited file with a header row. Empty list on failure."""
    try:
        rows = _read_rows(path, separator)
    except FileReadError as e:
        _load_failed(path, str(e), warnings)
        return []

    if source == SOURCE_KARAFUN:
        songs = [_karafun_song(r) for r in rows]
    else:
        songs = [normalize_song(r, source) for r in rows]
    logger.info("Loaded %d %s songs from %s", len(songs), source, Path(path).name)
    return songs


def load_json(path: Path, default: Any = None, warnings: Optional[list] = None) -> Any:
    """Decoded JSON document, or default if the file is missing or broken."""
    try:
        return _read_json(path)
    except FileReadError as e:
        _load_failed(path, str(e), warnings)
        return default


def load_songs_json(path: Path, source: str = SOURCE_JKARAOKE, warnings: Optional[list] = None) -> list[dict]:
    data = load_json(path, default=[], warnings=warnings)
    if not isinstance(data, list):
        _load_failed(path, "expected a JSON array", warnings)
        return []
    songs = [normalize_song(s, source) for s in data if isinstance(s, dict)]
    logger.info("Loaded %d %s songs from %s", len(songs), source, Path(path).name)
    return songs


class Catalogue:
    """Read-only song tables, filled once by load()."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        self.karafun: list[dict] = []
        self.jk: list[dict] = []
        self.jk_popular: list = []
        self.kf_genres: dict = {}
        # One line per file that could not be loaded, reported by /api/health
        self.warnings: list[str] = []

    def load(self) -> "Catalogue":
        d = self.data_dir
        w = self.warnings = []
        self.karafun = load_delimited(d / KARAFUN_CSV, KARAFUN_SEPARATOR, SOURCE_KARAFUN, warnings=w)
        self.jk = load_songs_json(d / JK_CATALOGUE_JSON, SOURCE_JKARAOKE, warnings=w)

        popular = load_json(d / JK_POPULAR_JSON, default=[], warnings=w)
        self.jk_popular = popular if isinstance(popular, list) else []

        genres = load_json(d / KARAFUN_GENRES_JSON, default={}, warnings=w)
        self.kf_genres = genres if isinstance(genres, dict) else {}

        artists = load_json(d / JK_ARTISTS_JSON, default=None, warnings=w)
        if isinstance(artists, dict):
            self._apply_artist_images(artists)
        return self

    def _apply_artist_images(self, artist_map: dict):
        """artist_map: {artist_id: {"image": url, ...}} keyed by string id."""
        for song in self.jk:
            info = artist_map.get(str(song.get("artist_id")))
            song["artistImage"] = info.get("image") if isinstance(info, dict) else None
        logger.info("Artist images applied to %d songs", len(self.jk))

    def songs(self, source: str) -> list[dict]:
        if source == SOURCE_KARAFUN:
            return self.karafun
        if source == SOURCE_JKARAOKE:
            return self.jk
        return []

    def search(self, query: str, source: str = SOURCE_KARAFUN) -> list[dict]:
        """Case-insensitive substring match over title and artist, capped."""
        q = (query or "").strip().lower()
        if len(q) < SEARCH_MIN_QUERY:
            return []

        results = []
        for song in self.songs(source):
            if q in song["title"].lower() or q in song["artist"].lower():
                results.append(song)
                if len(results) >= SEARCH_LIMIT:
                    break
        return results

    def counts(self) -> dict:
        return {
            "karafun": len(self.karafun),
            "jkaraoke": len(self.jk),
            "jkaraoke_popular": len(self.jk_popular),
        }
