"""Karaoke Night server: entry point."""
import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.logging import RichHandler

from karaoke.config import WEB_HOST, WEB_PORT, DEV_MODE
from karaoke.preflight import run_preflight
from karaoke.web.server import create_app

console = Console()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Serve the karaoke guest and host pages.")
    parser.add_argument("--host", default=WEB_HOST)
    parser.add_argument("--port", type=int, default=WEB_PORT)
    parser.add_argument("--skip-preflight", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if DEV_MODE else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    if not args.skip_preflight and not run_preflight():
        sys.exit(1)

    app = create_app()

    console.print(f"  [bold cyan]♪[/bold cyan]  Karaoke server running on http://{args.host}:{args.port}")
    console.print(f"  Guest page: [bold]http://<your-ip>:{args.port}/guest.html[/bold]")
    console.print(f"  Host page:  [bold]http://localhost:{args.port}/host.html[/bold]\n")

    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        console.print("\n  Goodbye.\n")
        sys.exit(0)
