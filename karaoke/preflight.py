"""Startup preflight: dependencies, catalogue files, static pages."""
from pathlib import Path
from typing import Optional

from rich.console import Console

from .config import (
    APP_VERSION,
    DATA_DIR,
    PUBLIC_DIR,
    KARAFUN_CSV,
    KARAFUN_GENRES_JSON,
    JK_CATALOGUE_JSON,
    JK_POPULAR_JSON,
    JK_ARTISTS_JSON,
)

console = Console()

# (ok, message, fix, fatal)
CheckResult = tuple[bool, str, str, bool]


def run_preflight(data_dir: Optional[Path] = None, public_dir: Optional[Path] = None) -> bool:
    """
    Run all startup checks and print them. Missing catalogues or pages only
    warn, the server degrades to empty data. Returns False on a fatal failure.
    """
    data_dir = Path(data_dir) if data_dir else DATA_DIR
    public_dir = Path(public_dir) if public_dir else PUBLIC_DIR

    console.print(f"\n  [bold]♪  Karaoke Night v{APP_VERSION}[/bold] preflight check\n")

    checks = [
        ("Python deps", _check_python_deps),
        ("KaraFun catalogue", lambda: _check_file(data_dir / KARAFUN_CSV, "search will be empty")),
        ("KaraFun genres", lambda: _check_file(data_dir / KARAFUN_GENRES_JSON, "genre browser will be empty")),
        ("JKaraoke catalogue", lambda: _check_file(data_dir / JK_CATALOGUE_JSON, "run: python scrape.py")),
        ("JKaraoke popular", lambda: _check_file(data_dir / JK_POPULAR_JSON, "popular list will be empty")),
        ("JKaraoke artists", lambda: _check_file(data_dir / JK_ARTISTS_JSON, "no artist images")),
        ("Guest/host pages", lambda: _check_public(public_dir)),
    ]

    results = []
    for i, (label, fn) in enumerate(checks, 1):
        ok, msg, fix, fatal = fn()
        results.append((ok, label, fix, fatal))
        if ok:
            icon, status = "[green]✓[/green]", f"[green]{msg}[/green]"
        elif fatal:
            icon, status = "[red]✗[/red]", f"[red]{msg}[/red]"
        else:
            icon, status = "[yellow]![/yellow]", f"[yellow]{msg}[/yellow]"
        dots = "." * max(30 - len(label), 3)
        console.print(f"  [{i}/{len(checks)}] {label} {dots} {icon} {status}")

    failures = [(label, fix) for ok, label, fix, fatal in results if not ok and fatal]
    if failures:
        console.print("")
        for label, fix in failures:
            console.print(f"  [red]Fix for {label}:[/red] {fix}")
        console.print("")
        return False

    console.print("")
    return True


def _check_python_deps() -> CheckResult:
    missing = []
    versions = []
    try:
        import starlette
        versions.append(f"starlette {starlette.__version__}")
    except ImportError:
        missing.append("starlette")

    try:
        import httpx
        versions.append(f"httpx {httpx.__version__}")
    except ImportError:
        missing.append("httpx")

    try:
        import uvicorn
        versions.append(f"uvicorn {uvicorn.__version__}")
    except ImportError:
        missing.append("uvicorn")

    if missing:
        return False, f"missing: {', '.join(missing)}", "Run: pip install -e .", True
    return True, ", ".join(versions), "", True


def _check_file(path: Path, consequence: str) -> CheckResult:
    if path.is_file():
        size_kb = path.stat().st_size / 1024
        return True, f"{path.name} ({size_kb:.0f} KB)", "", False
    return False, f"{path.name} missing, {consequence}", "", False


def _check_public(public_dir: Path) -> CheckResult:
    if not public_dir.is_dir():
        return False, f"{public_dir.name}/ missing, API only", "", False
    pages = sorted(p.name for p in public_dir.glob("*.html"))
    if not pages:
        return False, f"no .html pages in {public_dir.name}/", "", False
    return True, ", ".join(pages), "", False
