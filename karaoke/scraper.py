"""JKaraoke scraper: walk the paginated /music listing, save JSON + CSV.

The site renders each listing page with an Inertia-style ``data-page``
attribute holding the page props as HTML-escaped JSON. Songs live under
``props.songs.data`` and the paginator link under ``props.songs.links.next``.
"""
import asyncio
import html
import json
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable, Optional

import httpx

from .config import (
    JK_BASE_URL,
    SCRAPE_USER_AGENT,
    SCRAPE_TIMEOUT,
    SCRAPE_MAX_RETRIES,
    SCRAPE_RETRY_DELAY,
    SCRAPE_PAGE_DELAY,
    SCRAPE_CHECKPOINT_EVERY,
    SCRAPE_JSON_PATH,
    SCRAPE_CSV_PATH,
)
from .errors import NetworkError, ParseError, format_error

logger = logging.getLogger(__name__)

DATA_PAGE_REGEX = re.compile(r'data-page="([^"]+)"')

CSV_HEADER = "id,title,title_hebrew,artist,collaborators,album,year"
_CSV_QUOTED_FIELDS = ("title", "title_hebrew", "artist", "collaborators", "album")

# Loop phases
PHASE_FETCHING = "fetching"
PHASE_PARSING = "parsing"
PHASE_ACCUMULATING = "accumulating"
PHASE_DECIDING = "deciding"
PHASE_DONE = "done"
PHASE_ABORTED = "aborted"


def page_url(page: int, base_url: str = JK_BASE_URL) -> str:
    return f"{base_url}/music?page={page}"


async def fetch_page(client: httpx.AsyncClient, page: int, base_url: str = JK_BASE_URL) -> str:
    """GET one listing page. Raises NetworkError on any transport or HTTP failure."""
    url = page_url(page, base_url)
    try:
        r = await client.get(url)
        r.raise_for_status()
    except httpx.TimeoutException as e:
        raise NetworkError(f"timeout fetching {url}") from e
    except httpx.HTTPStatusError as e:
        raise NetworkError(f"HTTP {e.response.status_code} fetching {url}") from e
    except httpx.HTTPError as e:
        raise NetworkError(f"{type(e).__name__} fetching {url}: {e}") from e
    return r.text


def parse_page(page_html: str) -> Optional[dict]:
    """Return the page's songs block, or None when the page carries no data marker."""
    match = DATA_PAGE_REGEX.search(page_html)
    if not match:
        return None
    try:
        payload = json.loads(html.unescape(match.group(1)))
        songs = payload["props"]["songs"]
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise ParseError(f"undecodable data-page payload: {e}") from e
    if not isinstance(songs, dict):
        raise ParseError("props.songs is not an object")
    if not isinstance(songs.get("data") or [], list):
        raise ParseError("props.songs.data is not a list")
    return songs


def _name(obj) -> str:
    if not isinstance(obj, dict):
        return ""
    return obj.get("name") or ""


def extract_songs(page_data: dict) -> list[dict]:
    """Map raw JKaraoke records onto the common song shape. Non-object records are skipped."""
    songs = []
    for s in page_data.get("data") or []:
        if not isinstance(s, dict):
            continue
        artist = s.get("artist") if isinstance(s.get("artist"), dict) else {}
        album = s.get("album") if isinstance(s.get("album"), dict) else {}
        collaborators = s.get("collaborating_artists")
        if not isinstance(collaborators, list):
            collaborators = []
        songs.append({
            "id": s.get("id"),
            "title": s.get("title") or "",
            "title_hebrew": s.get("title_hebrew") or "",
            "artist": _name(artist),
            "artist_id": artist.get("id"),
            "collaborators": ", ".join(_name(a) for a in collaborators),
            "album": album.get("title") or "",
            "year": album.get("release_year"),
            "source": "jkaraoke",
        })
    return songs


# ── Output files ─────────────────────────────────────────────────────────────

def _csv_quote(value) -> str:
    return '"' + str(value or "").replace('"', '""') + '"'


def _csv_plain(value) -> str:
    return "" if value is None or value == "" else str(value)


def songs_to_csv(songs: list[dict]) -> str:
    """id and year unquoted, text fields always quoted. No trailing newline."""
    lines = [CSV_HEADER]
    for s in songs:
        fields = [_csv_plain(s.get("id"))]
        fields += [_csv_quote(s.get(k)) for k in _CSV_QUOTED_FIELDS]
        fields.append(_csv_plain(s.get("year") or None))
        lines.append(",".join(fields))
    return "\n".join(lines)


def write_checkpoint(songs: list[dict], json_path: Path):
    json_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(json.dumps(songs, ensure_ascii=False, separators=(",", ":")), encoding="utf-8")


def write_outputs(songs: list[dict], json_path: Path, csv_path: Path):
    json_path.parent.mkdir(parents=True, exist_ok=True)
    csv_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(json.dumps(songs, ensure_ascii=False, indent=2), encoding="utf-8")
    csv_path.write_text(songs_to_csv(songs), encoding="utf-8")


# ── Scrape loop ──────────────────────────────────────────────────────────────

class JKaraokeScraper:
    """One-shot scrape run. Sequential: one page is fully handled before the next."""

    def __init__(
        self,
        json_path: Path = SCRAPE_JSON_PATH,
        csv_path: Path = SCRAPE_CSV_PATH,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = JK_BASE_URL,
        start_page: int = 1,
        max_retries: int = SCRAPE_MAX_RETRIES,
        retry_delay: float = SCRAPE_RETRY_DELAY,
        page_delay: float = SCRAPE_PAGE_DELAY,
        checkpoint_every: int = SCRAPE_CHECKPOINT_EVERY,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.json_path = Path(json_path)
        self.csv_path = Path(csv_path)
        self.base_url = base_url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.page_delay = page_delay
        self.checkpoint_every = checkpoint_every
        self._client = client
        self._sleep = sleep

        self.songs: list[dict] = []
        self.page = start_page
        self.pages_done = 0
        self.retries = 0
        self.phase = PHASE_FETCHING
        self.abort_message = ""

    @property
    def aborted(self) -> bool:
        return self.phase == PHASE_ABORTED

    async def run(self) -> list[dict]:
        """Scrape until the paginator runs out or retries are exhausted, then save.

        Whatever was accumulated is written even if the loop dies on an
        unexpected error; that error still propagates afterwards.
        """
        try:
            if self._client is not None:
                await self._loop(self._client)
            else:
                async with httpx.AsyncClient(
                    timeout=SCRAPE_TIMEOUT,
                    headers={"User-Agent": SCRAPE_USER_AGENT},
                    follow_redirects=True,
                ) as client:
                    await self._loop(client)
        finally:
            logger.info("Scrape %s: %d songs from %d pages", self.phase, len(self.songs), self.pages_done)
            write_outputs(self.songs, self.json_path, self.csv_path)
        return self.songs

    async def _loop(self, client: httpx.AsyncClient):
        page_html = ""
        page_data: Optional[dict] = None

        while self.phase not in (PHASE_DONE, PHASE_ABORTED):
            try:
                if self.phase == PHASE_FETCHING:
                    logger.info("Page %d (%d songs)...", self.page, len(self.songs))
                    page_html = await fetch_page(client, self.page, self.base_url)
                    self.phase = PHASE_PARSING

                elif self.phase == PHASE_PARSING:
                    page_data = parse_page(page_html)
                    if not page_data or not page_data.get("data"):
                        self.phase = PHASE_DONE
                    else:
                        self.phase = PHASE_ACCUMULATING

                elif self.phase == PHASE_ACCUMULATING:
                    self.songs.extend(extract_songs(page_data))
                    self.pages_done += 1
                    if self.page % self.checkpoint_every == 0:
                        write_checkpoint(self.songs, self.json_path)
                        logger.info("Checkpoint saved (%d songs)", len(self.songs))
                    self.phase = PHASE_DECIDING

                elif self.phase == PHASE_DECIDING:
                    links = page_data.get("links")
                    self.retries = 0
                    # Laravel can also send links as a list; no usable next link then
                    if not isinstance(links, dict) or not links.get("next"):
                        self.phase = PHASE_DONE
                    else:
                        self.page += 1
                        self.phase = PHASE_FETCHING
                        await self._sleep(self.page_delay)

            except (NetworkError, ParseError) as e:
                self.retries += 1
                message = format_error(
                    "scrape_page",
                    params={"page": self.page, "attempt": self.retries},
                    raw=str(e),
                )
                if self.retries >= self.max_retries:
                    self.abort_message = format_error(
                        "scrape_abort",
                        params={"page": self.page, "songs": len(self.songs)},
                        raw=f"giving up after {self.retries} attempts",
                    )
                    self.phase = PHASE_ABORTED
                else:
                    logger.warning("%s", message)
                    self.phase = PHASE_FETCHING
                    await self._sleep(self.retry_delay)
