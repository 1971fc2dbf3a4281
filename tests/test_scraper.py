"""Tests for the JKaraoke scraper."""
import asyncio
import csv
import html
import io
import json

import httpx
import pytest

from karaoke.errors import NetworkError, ParseError
from karaoke.scraper import (
    CSV_HEADER,
    JKaraokeScraper,
    extract_songs,
    fetch_page,
    parse_page,
    songs_to_csv,
)


def _raw_song(n, **extra):
    song = {
        "id": n,
        "title": f"Song {n}",
        "title_hebrew": f"שיר {n}",
        "artist": {"id": 100 + n, "name": f"Artist {n}"},
        "collaborating_artists": [],
        "album": {"title": f"Album {n}", "release_year": 2000 + n},
    }
    song.update(extra)
    return song


def _page_html(songs, has_next):
    payload = {
        "component": "Music/Index",
        "props": {
            "songs": {
                "data": songs,
                "links": {"next": "https://jkaraoke.com/music?page=x" if has_next else None},
            }
        },
    }
    escaped = html.escape(json.dumps(payload, ensure_ascii=False), quote=True)
    return f'<html><body><div id="app" data-page="{escaped}"></div></body></html>'


async def _no_sleep(seconds):
    return None


def _scraper(tmp_path, handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JKaraokeScraper(
        json_path=tmp_path / "jk.json",
        csv_path=tmp_path / "jk.csv",
        client=client,
        base_url="https://jkaraoke.test",
        sleep=_no_sleep,
        **kwargs,
    )


class TestParsing:
    def test_parse_page_finds_payload(self):
        data = parse_page(_page_html([_raw_song(1)], has_next=True))
        assert data["data"][0]["title"] == "Song 1"
        assert data["links"]["next"]

    def test_parse_page_without_marker_is_end_of_data(self):
        assert parse_page("<html>maintenance</html>") is None

    def test_parse_page_bad_payload_raises(self):
        with pytest.raises(ParseError):
            parse_page('<div data-page="{not json"></div>')

    def test_parse_page_missing_songs_raises(self):
        with pytest.raises(ParseError):
            parse_page('<div data-page="{&quot;props&quot;:{}}"></div>')

    def test_extract_fills_missing_nested_fields(self):
        raw = {"id": 5, "title": "Solo", "artist": None, "album": None}
        (song,) = extract_songs({"data": [raw]})
        assert song == {
            "id": 5, "title": "Solo", "title_hebrew": "", "artist": "",
            "artist_id": None, "collaborators": "", "album": "", "year": None,
            "source": "jkaraoke",
        }

    def test_extract_joins_collaborators(self):
        raw = _raw_song(1, collaborating_artists=[{"name": "A"}, {"name": "B"}])
        (song,) = extract_songs({"data": [raw]})
        assert song["collaborators"] == "A, B"
        assert song["artist"] == "Artist 1"
        assert song["artist_id"] == 101
        assert song["year"] == 2001


class TestCsv:
    def test_header_and_quoting(self):
        text = songs_to_csv([
            {"id": 1, "title": 'He said "hi"', "title_hebrew": "", "artist": "X",
             "collaborators": "", "album": "", "year": None},
        ])
        lines = text.split("\n")
        assert lines[0] == CSV_HEADER
        assert lines[1] == '1,"He said ""hi""","","X","","",'
        assert not text.endswith("\n")

    def test_quotes_survive_a_csv_reader(self):
        title = 'She "really" said, "no"'
        text = songs_to_csv([
            {"id": 7, "title": title, "title_hebrew": "", "artist": "Y",
             "collaborators": "", "album": "", "year": 1999},
        ])
        rows = list(csv.DictReader(io.StringIO(text)))
        assert rows[0]["title"] == title
        assert rows[0]["year"] == "1999"
        assert rows[0]["id"] == "7"


class TestFetch:
    def test_http_error_status_raises_network_error(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        with pytest.raises(NetworkError):
            asyncio.run(fetch_page(client, 1, "https://jkaraoke.test"))

    def test_transport_failure_raises_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        with pytest.raises(NetworkError):
            asyncio.run(fetch_page(client, 1, "https://jkaraoke.test"))


class TestScrapeLoop:
    def test_two_pages_then_no_next(self, tmp_path):
        pages = {
            "1": _page_html([_raw_song(1)], has_next=True),
            "2": _page_html([_raw_song(2)], has_next=False),
        }
        requested = []

        def handler(request):
            page = request.url.params["page"]
            requested.append(page)
            return httpx.Response(200, text=pages[page])

        scraper = _scraper(tmp_path, handler)
        songs = asyncio.run(scraper.run())

        assert requested == ["1", "2"]
        assert [s["id"] for s in songs] == [1, 2]
        assert scraper.phase == "done"
        assert not scraper.aborted

        saved = json.loads((tmp_path / "jk.json").read_text(encoding="utf-8"))
        assert [s["id"] for s in saved] == [1, 2]
        assert (tmp_path / "jk.json").read_text(encoding="utf-8").startswith("[\n  {")

        rows = list(csv.DictReader(io.StringIO((tmp_path / "jk.csv").read_text(encoding="utf-8"))))
        assert [r["title"] for r in rows] == ["Song 1", "Song 2"]
        assert rows[0]["title_hebrew"] == "שיר 1"

    def test_empty_page_ends_normally(self, tmp_path):
        def handler(request):
            return httpx.Response(200, text=_page_html([], has_next=True))

        scraper = _scraper(tmp_path, handler)
        assert asyncio.run(scraper.run()) == []
        assert scraper.phase == "done"
        assert json.loads((tmp_path / "jk.json").read_text()) == []

    def test_three_failures_abort_with_partial_results(self, tmp_path, errors_log):
        def handler(request):
            if request.url.params["page"] == "1":
                return httpx.Response(200, text=_page_html([_raw_song(1)], has_next=True))
            raise httpx.ReadTimeout("slow", request=request)

        scraper = _scraper(tmp_path, handler)
        songs = asyncio.run(scraper.run())

        assert scraper.aborted
        assert scraper.retries == 3
        assert scraper.page == 2
        assert [s["id"] for s in songs] == [1]
        saved = json.loads((tmp_path / "jk.json").read_text())
        assert [s["id"] for s in saved] == [1]
        stages = [json.loads(line)["stage"] for line in errors_log.read_text().splitlines()]
        assert stages == ["scrape_page"] * 3 + ["scrape_abort"]

    def test_success_resets_retry_counter(self, tmp_path):
        calls = {"1": 0, "2": 0}

        def handler(request):
            page = request.url.params["page"]
            calls[page] += 1
            if calls[page] <= 2:
                return httpx.Response(500)
            return httpx.Response(200, text=_page_html([_raw_song(int(page))], has_next=page == "1"))

        delays = []

        async def sleep(seconds):
            delays.append(seconds)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        scraper = JKaraokeScraper(
            json_path=tmp_path / "jk.json",
            csv_path=tmp_path / "jk.csv",
            client=client,
            base_url="https://jkaraoke.test",
            retry_delay=2.0,
            page_delay=0.15,
            sleep=sleep,
        )
        songs = asyncio.run(scraper.run())

        assert [s["id"] for s in songs] == [1, 2]
        assert not scraper.aborted
        assert delays == [2.0, 2.0, 0.15, 2.0, 2.0]

    def test_checkpoint_written_every_n_pages(self, tmp_path):
        snapshots = []

        def handler(request):
            page = int(request.url.params["page"])
            if page == 3:
                # The checkpoint from page 2 must already be on disk
                snapshots.append(json.loads((tmp_path / "jk.json").read_text()))
            return httpx.Response(200, text=_page_html([_raw_song(page)], has_next=page < 3))

        scraper = _scraper(tmp_path, handler, checkpoint_every=2)
        asyncio.run(scraper.run())

        assert [[s["id"] for s in snap] for snap in snapshots] == [[1, 2]]


class TestMessyRecords:
    def test_null_collaborator_names_become_empty(self):
        raw = _raw_song(1, collaborating_artists=[{"id": 3, "name": None}, {"name": "B"}, "junk"])
        (song,) = extract_songs({"data": [raw]})
        assert song["collaborators"] == ", B, "

    def test_null_text_fields_become_empty_strings(self):
        raw = _raw_song(1, title=None, artist={"id": 4, "name": None}, album={"title": None, "release_year": None})
        (song,) = extract_songs({"data": [raw]})
        assert song["title"] == ""
        assert song["artist"] == ""
        assert song["artist_id"] == 4
        assert song["album"] == ""
        assert song["year"] is None

    def test_non_object_records_are_skipped(self):
        songs = extract_songs({"data": [None, "x", _raw_song(2)]})
        assert [s["id"] for s in songs] == [2]

    def test_data_that_is_not_a_list_is_a_parse_error(self):
        payload = html.escape(json.dumps({"props": {"songs": {"data": {"1": {}}}}}), quote=True)
        with pytest.raises(ParseError):
            parse_page(f'<div data-page="{payload}"></div>')

    def test_null_collaborator_on_later_page_keeps_the_run_going(self, tmp_path):
        pages = {
            "1": _page_html([_raw_song(1)], has_next=True),
            "2": _page_html([_raw_song(2, collaborating_artists=[{"id": 3, "name": None}])], has_next=False),
        }

        def handler(request):
            return httpx.Response(200, text=pages[request.url.params["page"]])

        scraper = _scraper(tmp_path, handler)
        songs = asyncio.run(scraper.run())

        assert [s["id"] for s in songs] == [1, 2]
        saved = json.loads((tmp_path / "jk.json").read_text(encoding="utf-8"))
        assert saved[1]["collaborators"] == ""
        assert (tmp_path / "jk.csv").exists()

    def test_links_as_a_list_ends_the_run(self, tmp_path):
        payload = {"props": {"songs": {"data": [_raw_song(1)], "links": [{"url": None, "label": "1"}]}}}
        page = f'<div data-page="{html.escape(json.dumps(payload), quote=True)}"></div>'
        requested = []

        def handler(request):
            requested.append(request.url.params["page"])
            return httpx.Response(200, text=page)

        scraper = _scraper(tmp_path, handler)
        songs = asyncio.run(scraper.run())

        assert requested == ["1"]
        assert scraper.phase == "done"
        assert [s["id"] for s in songs] == [1]

    def test_unexpected_error_still_writes_outputs(self, tmp_path, monkeypatch):
        from karaoke import scraper as scraper_module

        real_extract = scraper_module.extract_songs

        def flaky_extract(page_data):
            if page_data["data"][0]["id"] == 2:
                raise RuntimeError("boom")
            return real_extract(page_data)

        monkeypatch.setattr(scraper_module, "extract_songs", flaky_extract)

        def handler(request):
            page = int(request.url.params["page"])
            return httpx.Response(200, text=_page_html([_raw_song(page)], has_next=True))

        scraper = _scraper(tmp_path, handler)
        with pytest.raises(RuntimeError):
            asyncio.run(scraper.run())

        saved = json.loads((tmp_path / "jk.json").read_text(encoding="utf-8"))
        assert [s["id"] for s in saved] == [1]
        rows = list(csv.DictReader(io.StringIO((tmp_path / "jk.csv").read_text(encoding="utf-8"))))
        assert [r["id"] for r in rows] == ["1"]


class TestOutputFormats:
    def test_checkpoint_is_compact_and_final_write_is_pretty(self, tmp_path):
        checkpoints = []

        def handler(request):
            page = int(request.url.params["page"])
            if page == 3:
                checkpoints.append((tmp_path / "jk.json").read_text(encoding="utf-8"))
            return httpx.Response(200, text=_page_html([_raw_song(page)], has_next=page < 3))

        scraper = _scraper(tmp_path, handler, checkpoint_every=2)
        asyncio.run(scraper.run())

        (checkpoint,) = checkpoints
        assert "\n" not in checkpoint
        assert ": " not in checkpoint
        assert checkpoint.startswith('[{"id":1,')

        final = (tmp_path / "jk.json").read_text(encoding="utf-8")
        assert final.startswith('[\n  {\n    "id": 1,')
        assert [s["id"] for s in json.loads(final)] == [1, 2, 3]

    def test_abort_message_names_the_page(self, tmp_path):
        def handler(request):
            return httpx.Response(502)

        scraper = _scraper(tmp_path, handler)
        asyncio.run(scraper.run())

        assert scraper.aborted
        assert "page 1" in scraper.abort_message
        assert "0 songs" in scraper.abort_message
