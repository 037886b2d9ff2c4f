"""Click CLI for listing-crawler.

Commands:
    crawl        -- Crawl search listings for one or more queries.
    pages        -- Print the page-wise breakdown of stored records.
    export       -- Write stored records to a JSON file.
    reset-ledger -- Forget every record key seen by earlier runs.
    pipeline     -- Invoke the pypyr crawl pipeline.
"""

from __future__ import annotations

import json
import logging
import os

import click
from dotenv import load_dotenv

from listing_crawler import DEFAULT_DB_PATH

logger = logging.getLogger("listing_crawler.cli")


def _resolve_db_path(ctx_db: str | None) -> str:
    """Return the database path from --db flag, env var, or default."""
    if ctx_db:
        return ctx_db
    env_path = os.environ.get("LISTING_CRAWLER_DB")
    if env_path:
        return env_path
    return DEFAULT_DB_PATH


def _ensure_db_dir(db_path: str) -> None:
    """Create parent directory for the database file if it does not exist."""
    parent = os.path.dirname(db_path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _open_db(ctx: click.Context):
    from listing_crawler.db.manager import get_connection, init_db

    db_path = ctx.obj["db_path"]
    if db_path != ":memory:":
        _ensure_db_dir(db_path)
    conn = get_connection(db_path)
    init_db(conn)
    return conn


@click.group()
@click.option(
    "--db",
    default=None,
    envvar="LISTING_CRAWLER_DB",
    help="Path to the SQLite database file.",
)
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
@click.pass_context
def main(ctx: click.Context, db: str | None, log_level: str) -> None:
    """listing-crawler: paginated, deduplicating job-search crawler."""
    load_dotenv()
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = _resolve_db_path(db)


@main.command()
@click.option("--input", "input_path", type=click.Path(dir_okay=False), default=None,
              help="JSON input file (position, bulkQueries, startUrls, ...).")
@click.option("--position", default=None, help="Search term.")
@click.option("--location", default=None, help="Location hint, e.g. 'Remote' or 'Austin, TX'.")
@click.option("--country", default=None, help="Country code: US, IN, GB, UK, CA, AU.")
@click.option("--max-items", type=int, default=None, help="Cap on unique records this run.")
@click.option("--max-concurrency", type=int, default=None, help="Worker pool size.")
@click.option("--details/--no-details", "scrape_company_details", default=None,
              help="Also scrape company profile pages.")
@click.option("--max-company-pages", type=int, default=None,
              help="Cap on company profile pages (0 = unlimited).")
@click.option("--reset-seen-keys/--keep-seen-keys", "reset_seen_keys", default=None,
              help="Ignore record keys remembered from earlier runs.")
@click.option("--proxy-url", "proxy_urls", multiple=True,
              help="Proxy URL; repeat for rotation.")
@click.option("--export", "export_path", type=click.Path(dir_okay=False), default=None,
              help="Also write this run's records to a JSON file.")
@click.pass_context
def crawl(
    ctx: click.Context,
    input_path: str | None,
    position: str | None,
    location: str | None,
    country: str | None,
    max_items: int | None,
    max_concurrency: int | None,
    scrape_company_details: bool | None,
    max_company_pages: int | None,
    reset_seen_keys: bool | None,
    proxy_urls: tuple[str, ...],
    export_path: str | None,
) -> None:
    """Crawl search listings and store unique records."""
    from listing_crawler.config import load_config
    from listing_crawler.crawler.run import run_crawl
    from listing_crawler.db.manager import export_records_json, get_record_count
    from listing_crawler.errors import ConfigError
    from listing_crawler.reporting.summary import format_summary

    try:
        config = load_config(
            input_path,
            position=position,
            location=location,
            country=country,
            max_items=max_items,
            max_concurrency=max_concurrency,
            scrape_company_details=scrape_company_details,
            max_company_pages=max_company_pages,
            reset_seen_keys=reset_seen_keys,
            proxy_urls=list(proxy_urls) or None,
        )
    except ConfigError as exc:
        click.echo(click.style(f"Error: {exc}", fg="red"))
        raise SystemExit(1)

    conn = _open_db(ctx)
    try:
        click.echo(
            click.style(
                f"Crawling {len(config.queries())} queries, "
                f"{len(config.start_urls)} start URLs ({config.country}, "
                f"max_items={config.max_items})...",
                fg="cyan",
            )
        )
        try:
            summary = run_crawl(config, conn)
        except ConfigError as exc:
            click.echo(click.style(f"Error: {exc}", fg="red"))
            raise SystemExit(1)

        if export_path:
            count = export_records_json(conn, export_path, summary["run_id"])
            click.echo(f"Exported {count} records to {export_path}")

        for line in format_summary(summary, get_record_count(conn)):
            click.echo(line)
        click.echo(click.style("Done.", fg="green"))
    finally:
        conn.close()


@main.command()
@click.option("--run-id", type=int, default=None, help="Only records from this run.")
@click.pass_context
def pages(ctx: click.Context, run_id: int | None) -> None:
    """Print stored records grouped by the result page they came from."""
    from listing_crawler.db.manager import get_records
    from listing_crawler.reporting.summary import render_page_breakdown

    conn = _open_db(ctx)
    try:
        records = get_records(conn, run_id)
    finally:
        conn.close()

    if not records:
        click.echo(click.style("No records stored yet.", fg="yellow"))
        return
    click.echo(render_page_breakdown(records))


@main.command()
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--run-id", type=int, default=None, help="Only records from this run.")
@click.pass_context
def export(ctx: click.Context, path: str, run_id: int | None) -> None:
    """Write stored records to PATH as JSON."""
    from listing_crawler.db.manager import export_records_json

    conn = _open_db(ctx)
    try:
        count = export_records_json(conn, path, run_id)
    finally:
        conn.close()
    click.echo(click.style(f"Exported {count} records to {path}.", fg="green"))


@main.command("reset-ledger")
@click.confirmation_option(prompt="Forget every record key seen by earlier runs?")
@click.pass_context
def reset_ledger(ctx: click.Context) -> None:
    """Clear the persisted dedup key set."""
    from listing_crawler.crawler.ledger import SEEN_KEYS_KV
    from listing_crawler.db.manager import kv_delete

    conn = _open_db(ctx)
    try:
        removed = kv_delete(conn, SEEN_KEYS_KV)
    finally:
        conn.close()
    if removed:
        click.echo(click.style("Seen keys cleared.", fg="green"))
    else:
        click.echo("No seen keys stored.")


@main.command()
@click.argument("name", type=click.Choice(["crawl"]))
@click.option("--input", "input_path", type=click.Path(dir_okay=False), default=None,
              help="JSON input file for the crawl.")
@click.option("--set", "overrides", multiple=True, metavar="KEY=VALUE",
              help="Configuration override, e.g. --set max_items=200.")
@click.option("--export", "export_path", type=click.Path(dir_okay=False), default=None,
              help="Write the run's records to a JSON file.")
@click.pass_context
def pipeline(
    ctx: click.Context,
    name: str,
    input_path: str | None,
    overrides: tuple[str, ...],
    export_path: str | None,
) -> None:
    """Run the pypyr crawl pipeline."""
    from pypyr import pipelinerunner
    from listing_crawler import PACKAGE_DIR

    db_path = ctx.obj["db_path"]
    _ensure_db_dir(db_path)

    crawl_overrides: dict = {}
    for item in overrides:
        key, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--set")
        try:
            crawl_overrides[key.strip()] = json.loads(value)
        except ValueError:
            crawl_overrides[key.strip()] = value

    pipeline_path = str(PACKAGE_DIR / "pipelines" / name)
    click.echo(click.style(f"Running pipeline: {name}", fg="cyan"))

    try:
        pipelinerunner.run(
            pipeline_name=pipeline_path,
            dict_in={
                "db_path": db_path,
                "input_path": input_path,
                "crawl": crawl_overrides,
                "export_path": export_path,
            },
        )
        click.echo(click.style(f"Pipeline '{name}' completed.", fg="green"))
    except Exception as exc:
        logger.error("Pipeline failed: %s", exc)
        click.echo(click.style(f"Pipeline failed: {exc}", fg="red"))
        raise SystemExit(1)
