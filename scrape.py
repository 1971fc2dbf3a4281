"""Harvest the JKaraoke catalogue into JSON + CSV for the server."""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from karaoke.config import SCRAPE_JSON_PATH, SCRAPE_CSV_PATH
from karaoke.scraper import JKaraokeScraper

console = Console()


async def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Scrape the JKaraoke song list.")
    parser.add_argument("--json", type=Path, default=SCRAPE_JSON_PATH, help="JSON output path")
    parser.add_argument("--csv", type=Path, default=SCRAPE_CSV_PATH, help="CSV output path")
    parser.add_argument("--start-page", type=int, default=1)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    scraper = JKaraokeScraper(json_path=args.json, csv_path=args.csv, start_page=args.start_page)
    songs = await scraper.run()

    if scraper.aborted:
        console.print(f"\n  [yellow]{escape(scraper.abort_message)}[/yellow]")
    console.print(f"\n  [bold]Done![/bold] {len(songs)} songs from {scraper.pages_done} pages.")
    console.print(f"  Saved to [bold]{args.json}[/bold] and [bold]{args.csv}[/bold]\n")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        console.print("\n  Interrupted. Last checkpoint is on disk.\n")
        sys.exit(130)
