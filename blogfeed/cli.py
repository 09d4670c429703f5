"""Typer CLI for blogfeed: serve, one-shot fetch and upstream validation."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import List, Optional, Tuple

import structlog
import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="blogfeed",
    help="Resilient blog post ingestion: REST API with RSS fallback, cached.",
    add_completion=False,
)
console = Console()

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_settings(log_level: Optional[str] = None) -> "Settings":  # type: ignore[name-defined]
    from blogfeed.config import Settings

    overrides: dict = {}
    if log_level:
        overrides["log_level"] = log_level.upper()
    return Settings(**overrides)  # type: ignore[arg-type]


def json_log_formatter() -> logging.Formatter:
    """One JSON object per record, ``extra={...}`` fields and tracebacks included."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ExtraAdder(),
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(default=str),
        ],
    )


def setup_logging(level: str = "INFO", json_fmt: bool = False) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    if not json_fmt:
        fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
        logging.basicConfig(level=numeric, format=fmt)
        return

    handler = logging.StreamHandler()
    handler.setFormatter(json_log_formatter())
    logging.basicConfig(level=numeric, handlers=[handler])


async def _ingest_once(cfg: "Settings") -> "IngestResult":  # type: ignore[name-defined]
    from blogfeed.pipeline import build_orchestrator
    from blogfeed.scraping.http import AsyncHTTPClient

    async with AsyncHTTPClient(timeout=cfg.request_timeout) as client:
        return await build_orchestrator(cfg, client).run()


async def _check_upstreams(cfg: "Settings") -> List[Tuple[str, str, str]]:  # type: ignore[name-defined]
    from blogfeed.errors import NetworkFailure
    from blogfeed.models import PayloadKind
    from blogfeed.scraping.blocking import inspect_response
    from blogfeed.scraping.http import AsyncHTTPClient

    targets = [
        (
            "REST API",
            cfg.rest_url,
            {"per_page": 1, "page": 1, "_embed": 1},
            {"User-Agent": cfg.rest_user_agent, "Accept": "application/json"},
            PayloadKind.JSON,
        ),
        (
            "Feed",
            cfg.feed_url,
            None,
            {"User-Agent": cfg.feed_user_agent},
            PayloadKind.XML,
        ),
    ]

    checks: List[Tuple[str, str, str]] = []
    async with AsyncHTTPClient(timeout=cfg.request_timeout) as client:
        for name, url, params, headers, kind in targets:
            try:
                response = await client.get(url, params=params, headers=headers)
            except NetworkFailure as exc:
                checks.append((name, "❌", exc.reason))
                continue
            verdict = inspect_response(
                response.status_code, response.text, kind, response.content_type
            )
            if verdict.usable:
                checks.append((name, "✅", f"HTTP {response.status_code}"))
            else:
                checks.append((name, "❌", verdict.reason or "blocked"))
    return checks


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Run the HTTP service (posts endpoints + optional refresh cron)."""
    cfg = _get_settings(log_level=log_level)
    setup_logging(cfg.log_level, cfg.log_json)

    import uvicorn

    from blogfeed.api import create_app

    console.print(
        f"[bold]Serving blogfeed[/]  rest={cfg.rest_url!r}  feed={cfg.feed_url!r}"
    )
    uvicorn.run(
        create_app(cfg),
        host=host or cfg.host,
        port=port or cfg.port,
        log_level=cfg.log_level.lower(),
    )


@app.command()
def fetch(
    limit: int = typer.Option(20, "--limit", help="Rows to print."),
    as_json: bool = typer.Option(False, "--json", is_flag=True, help="Print JSON instead of a table."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
) -> None:
    """Run one ingestion (REST, then feed fallback) and print the result."""
    cfg = _get_settings(log_level=log_level)
    setup_logging(cfg.log_level, cfg.log_json)

    try:
        result = asyncio.run(_ingest_once(cfg))
    except Exception as exc:
        console.print(f"[bold red]Fatal: {exc}[/]")
        raise typer.Exit(2)

    if as_json:
        payload = {
            "success": True,
            "count": len(result.posts),
            "source": result.source.value,
            "posts": [p.model_dump(mode="json") for p in result.posts[:limit]],
        }
        if result.message:
            payload["message"] = result.message
        typer.echo(json.dumps(payload, indent=2))
    else:
        colour = "green" if result.posts else "red"
        console.print(
            f"[bold {colour}]Fetched {len(result.posts)} posts[/]  source={result.source.value}"
        )
        _print_posts_table(result.posts[:limit])
        for reason in result.reasons:
            console.print(f"  [yellow]{reason}[/]")

    if not result.posts:
        raise typer.Exit(1)


@app.command()
def validate(
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Probe both upstreams once through the block detector."""
    cfg = _get_settings(log_level=log_level)
    setup_logging(cfg.log_level, cfg.log_json)

    checks = asyncio.run(_check_upstreams(cfg))

    table = Table(title="Upstream Validation")
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Detail")
    for name, status, detail in checks:
        table.add_row(name, status, detail)
    console.print(table)

    # Connectivity failures are informational
    raise typer.Exit(0)


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _print_posts_table(posts: list) -> None:
    if not posts:
        console.print("[dim]No posts.[/]")
        return
    table = Table(title="Posts")
    table.add_column("ID", style="bold", width=8)
    table.add_column("Date", width=10)
    table.add_column("Title")
    table.add_column("Image", width=5)
    for post in posts:
        table.add_row(
            str(post.id),
            post.date.strftime("%Y-%m-%d"),
            post.title[:60],
            "yes" if post.image else "—",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point registered in pyproject.toml."""
    app()


if __name__ == "__main__":
    main()
