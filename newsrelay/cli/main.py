from typing import Optional

import typer
from rich import print
from rich.table import Table

from newsrelay.config.settings import STAGE_NAMES, Settings, load_settings
from newsrelay.models.errors import ConfigError
from newsrelay.services.ingest import ingest_item, parse_published_at
from newsrelay.tools.lock import RunLock
from newsrelay.tools.logging_setup import setup_logging
from newsrelay.workflows.pipeline import build_runner, open_stores
from newsrelay.workflows.status_machine import Status

app = typer.Typer(help="Staged news pipeline: download, scrape, translate, rewrite, illustrate, publish")


def _bootstrap() -> Settings:
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"[bold red]Configuration error[/bold red]: {e}")
        raise SystemExit(1)
    setup_logging(settings)
    return settings


@app.command()
def doctor():
    """Check config + DB connectivity."""
    s = _bootstrap()
    print("[bold green]Config loaded[/bold green]")
    print("Database:", s.database_url, "| Data dir:", s.data_dir)
    for role in ("translator", "rewriter", "illustrator"):
        cfg = getattr(s, role)
        if cfg is None:
            print(f"{role}: [yellow]not configured[/yellow]")
        else:
            print(f"{role}: {cfg.provider} / {cfg.model}")
    print("Telegram:", "configured" if s.telegram_bot_token and s.telegram_chat_id else "[yellow]not configured[/yellow]")
    try:
        open_stores(s)
    except Exception as e:
        print(f"[bold red]DB check failed[/bold red]: {e}")
        raise SystemExit(1)
    print("[bold green]DB OK[/bold green]")


@app.command("init-db")
def init_db_command():
    """Create tables."""
    s = _bootstrap()
    open_stores(s)
    print("[bold green]DB initialized[/bold green]")


@app.command()
def ingest(
    url: str = typer.Argument(..., help="Source article URL"),
    title: str = typer.Option(..., "--title", help="Article title"),
    published_at: Optional[str] = typer.Option(None, "--published-at", help="ISO 8601 timestamp, default now"),
):
    """Register one article at status 'new'."""
    s = _bootstrap()
    store, _ = open_stores(s)
    try:
        item_id, inserted = ingest_item(store, title, url, parse_published_at(published_at))
    except ValueError as e:
        print(f"[bold red]Invalid item[/bold red]: {e}")
        raise SystemExit(1)
    if inserted:
        print(f"[bold green]Ingested[/bold green] {item_id}")
    else:
        print(f"[yellow]Already ingested[/yellow] {item_id}")


@app.command()
def run(
    stage: str = typer.Argument(..., help=f"One of: {', '.join(STAGE_NAMES)}"),
    once: bool = typer.Option(False, "--once", help="Run a single cycle and exit"),
    max_cycles: Optional[int] = typer.Option(None, "--max-cycles", help="Stop after N cycles"),
):
    """Run one stage worker."""
    s = _bootstrap()
    if stage not in STAGE_NAMES:
        print(f"[bold red]Unknown stage[/bold red] '{stage}'. Expected one of: {', '.join(STAGE_NAMES)}")
        raise SystemExit(1)
    try:
        store, blobs = open_stores(s)
        runner = build_runner(stage, s, store, blobs)
    except ConfigError as e:
        print(f"[bold red]Configuration error[/bold red]: {e}")
        raise SystemExit(1)

    cycles = 1 if once else max_cycles
    try:
        with RunLock(stage, lock_dir=f"{s.data_dir}/locks"):
            done = runner.run(max_cycles=cycles)
    except RuntimeError as e:
        print(f"[bold red]Run failed[/bold red]: {e}")
        raise SystemExit(1)
    except KeyboardInterrupt:
        print(f"[yellow]{stage} worker stopped[/yellow]")
        return
    print(f"[bold green]{stage} worker finished[/bold green] after {done} cycle(s)")


@app.command()
def status():
    """Item counts per status."""
    s = _bootstrap()
    store, _ = open_stores(s)
    counts = store.counts()

    table = Table(title="Pipeline status")
    table.add_column("Status")
    table.add_column("Items", justify="right")
    for st in Status:
        table.add_row(st.value, str(counts.get(st.value, 0)))
    print(table)


if __name__ == "__main__":
    app()
