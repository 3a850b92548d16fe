from __future__ import annotations

import asyncio
import importlib.util
import os
import signal
from pathlib import Path
from typing import Callable, List, Optional

import typer

from dailyscan.ai.summarise import OpenAISummarizer
from dailyscan.config import AppConfig, load_config
from dailyscan.discovery.serpapi import SerpApiClient
from dailyscan.errors import Cancelled, ScanError
from dailyscan.extractors.encoding import resolve_encoding
from dailyscan.extractors.readability import ReadabilityExtractor
from dailyscan.extractors.render import RenderPolicy
from dailyscan.fetchers.http import HttpFetcher
from dailyscan.fetchers.images import ImageDownloader
from dailyscan.fetchers.playwright_renderer import PlaywrightRenderer
from dailyscan.models import ArticleRecord, QualityTier
from dailyscan.pipeline import BatchResult, ScanPipeline
from dailyscan.scoring.quality import QualityClassifier, QualityThresholds, reassess
from dailyscan.scoring.terms import TERM_LIST_NAMES, QualityTermsStore
from dailyscan.storage.base import ArticleRepository
from dailyscan.storage.memory_repo import MemoryRepo
from dailyscan.storage.postgres_repo import PostgresConfigError, PostgresRepo
from dailyscan.utils import load_env_file

app = typer.Typer(help="DailyScan: search, extract and grade web articles")
terms_app = typer.Typer(help="Show or edit the quality term lists.")
app.add_typer(terms_app, name="terms")

CONFIG_OPTION = typer.Option(Path("config.yaml"), "--config", help="Path to config.yaml.")


@app.callback()
def main() -> None:
    """DailyScan CLI."""
    return None


def _load(config: Path) -> AppConfig:
    load_env_file(Path(".env"))
    try:
        return load_config(config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _classifier(config: AppConfig) -> QualityClassifier:
    quality = config.quality
    thresholds = QualityThresholds(
        min_word_count=quality.min_word_count,
        min_reading_time=quality.min_reading_time,
        max_link_density=quality.max_link_density,
        min_content_length=quality.min_content_length,
    )
    return QualityClassifier(QualityTermsStore(quality.terms_file), thresholds)


def _try_postgres(logger: Callable[[str], None], warnings: list[str]) -> Optional[PostgresRepo]:
    try:
        repo = PostgresRepo.from_env()
    except PostgresConfigError:
        return None
    try:
        repo.ping()
        logger("Postgres connected")
        return repo
    except Exception as exc:
        warnings.append(f"Postgres unavailable: {exc}")
        return None


def _require_postgres() -> PostgresRepo:
    warnings: list[str] = []
    repo = _try_postgres(lambda _message: None, warnings)
    if repo is None:
        for warning in warnings:
            typer.secho(f"Warning: {warning}", fg=typer.colors.YELLOW)
        typer.secho("This command needs a Postgres database (POSTGRES_* env vars).", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return repo


def _build_pipeline(
    config: AppConfig,
    repository: ArticleRepository,
    render: bool,
    summarise: bool,
    warnings: list[str],
    log: Callable[[str], None],
    log_detail: Callable[[str], None],
) -> ScanPipeline:
    extraction = config.extraction
    renderer = None
    if render and extraction.render_enabled:
        if importlib.util.find_spec("playwright") is None:
            warnings.append("playwright is not installed; JS render fallback disabled.")
        else:
            renderer = PlaywrightRenderer(
                timeout_s=config.fetch.timeout,
                settle_seconds=extraction.render_settle_seconds,
                user_agent=config.fetch.user_agent,
            )

    summarizer = None
    if summarise and config.pipeline.summarise:
        if os.environ.get("OPENAI_API_KEY"):
            summarizer = OpenAISummarizer()
        else:
            warnings.append("OPENAI_API_KEY is not set; summaries fall back to snippets.")

    downloader = None
    if extraction.download_images:
        downloader = ImageDownloader(images_dir=extraction.images_dir, config=config.fetch)

    return ScanPipeline(
        fetcher=HttpFetcher(config.fetch),
        repository=repository,
        classifier=_classifier(config),
        extractor=ReadabilityExtractor(
            document_order=extraction.document_order,
            max_images=extraction.max_images,
        ),
        renderer=renderer,
        render_policy=RenderPolicy(
            min_words=extraction.render_min_words,
            max_link_density=extraction.render_max_link_density,
        ),
        image_downloader=downloader,
        summarizer=summarizer,
        max_results=config.pipeline.max_results,
        concurrency=config.pipeline.concurrency,
        events_path=config.logging.events_path,
        log=log,
        log_detail=log_detail,
    )


async def _scan_with_interrupt(pipeline: ScanPipeline, provider: SerpApiClient, query: str) -> BatchResult:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, pipeline.cancel_current)
    except (NotImplementedError, RuntimeError):
        pass
    try:
        return await pipeline.search_and_scan(provider, query)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def _echo_record(record: ArticleRecord) -> None:
    visible = "visible" if record.is_visible else "hidden"
    typer.echo(f"{record.record_id}  [{record.verdict.tier.value}/{visible}] {record.title}")
    typer.echo(f"    {record.url}")
    typer.echo(f"    {record.verdict.reason}")
    if record.tags:
        typer.echo(f"    tags: {', '.join(sorted(record.tags))}")


@app.command()
def scan(
    query: str = typer.Argument(..., help="Search query."),
    max_results: Optional[int] = typer.Option(
        None, "--max-results", help="Fetch at most this many search results."
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", help="Process this many results in parallel."
    ),
    render: bool = typer.Option(True, "--render/--no-render", help="Allow the JS render fallback."),
    summarise: bool = typer.Option(True, "--summarise/--no-summarise", help="Summarise snippets."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed per-URL progress logs."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Search, then fetch, extract, grade and store the top results."""
    config_data = _load(config)
    if max_results is not None:
        config_data.pipeline.max_results = max_results
    if concurrency is not None:
        config_data.pipeline.concurrency = concurrency

    log = typer.echo
    log_detail = typer.echo if verbose else (lambda _message: None)
    warnings: list[str] = []

    repository: ArticleRepository | None = _try_postgres(log, warnings)
    if repository is None:
        warnings.append("No database configured; results are kept in memory for this run only.")
        repository = MemoryRepo()

    pipeline = _build_pipeline(config_data, repository, render, summarise, warnings, log, log_detail)
    try:
        result = asyncio.run(_scan_with_interrupt(pipeline, SerpApiClient(), query))
    except Cancelled:
        typer.secho("Cancelled.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)
    except ScanError as exc:
        typer.secho(f"Scan failed ({exc.error_class}): {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if result.search is not None:
        typer.echo(f"Search {result.search.search_id}: {result.search.result_count} results")
    for record in result.records:
        _echo_record(record)
    summary = result.summary
    typer.echo(
        "Counts: "
        f"results={summary.total_results}, "
        f"fetched={summary.fetched}, "
        f"extracted={summary.extracted}, "
        f"persisted={summary.persisted}, "
        f"failed={summary.failed}, "
        f"degraded={summary.degraded}"
    )
    for warning in warnings + result.warnings:
        typer.secho(f"Warning: {warning}", fg=typer.colors.YELLOW)


@app.command()
def extract(
    source: str = typer.Argument(..., help="Local HTML file or http(s) URL."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Resolve relative image URLs."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Extract and grade a single page without storing it."""
    config_data = _load(config)
    if source.startswith(("http://", "https://")):
        try:
            fetched = asyncio.run(HttpFetcher(config_data.fetch).fetch(source))
        except ScanError as exc:
            typer.secho(f"Fetch failed ({exc.error_class}): {exc}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        raw, content_type, url = fetched.content, fetched.content_type, fetched.final_url
    else:
        path = Path(source)
        if not path.exists():
            raise typer.BadParameter(f"{source} does not exist")
        raw, content_type, url = path.read_bytes(), None, base_url or path.resolve().as_uri()

    try:
        decoded = resolve_encoding(raw, content_type)
    except ScanError as exc:
        typer.secho(f"Decoding failed: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    extractor = ReadabilityExtractor(
        document_order=config_data.extraction.document_order,
        max_images=config_data.extraction.max_images,
    )
    extraction = extractor.extract(decoded.text, base_url or url)
    verdict = _classifier(config_data).assess(
        url,
        extraction.title,
        extraction.as_markdown(),
        extraction.word_count,
        extraction.reading_time_minutes,
    )
    metadata = extraction.metadata
    typer.echo(f"Title: {extraction.title}")
    typer.echo(f"Encoding: {decoded.encoding} ({decoded.source})")
    typer.echo(f"Author: {metadata.author or '-'}")
    typer.echo(f"Published: {metadata.publish_date.isoformat() if metadata.publish_date else '-'}")
    typer.echo(f"Language: {metadata.language or '-'}")
    typer.echo(f"Words: {metadata.word_count} ({metadata.reading_time_minutes} min)")
    typer.echo(f"Images: {len(extraction.images)}")
    typer.echo(f"Quality: {verdict.tier.value} ({verdict.reason})")
    typer.echo("")
    typer.echo(extraction.as_markdown())


@terms_app.command("show")
def terms_show(
    name: Optional[str] = typer.Argument(None, help="Show only this list."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Print the term lists."""
    store = QualityTermsStore(_load(config).quality.terms_file)
    names = [name] if name else list(TERM_LIST_NAMES)
    for list_name in names:
        try:
            values = store.get(list_name)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        typer.echo(f"{list_name} ({len(values)}):")
        for value in values:
            typer.echo(f"  {value}")


@terms_app.command("set")
def terms_set(
    name: str = typer.Argument(..., help=f"One of: {', '.join(TERM_LIST_NAMES)}."),
    values: List[str] = typer.Argument(..., help="The complete new list."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Replace one term list as a whole."""
    store = QualityTermsStore(_load(config).quality.terms_file)
    try:
        terms = store.set(name, values)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"{name}: {len(terms.get(name))} terms saved to {store.path}")


@terms_app.command("reset")
def terms_reset(config: Path = CONFIG_OPTION) -> None:
    """Restore the multilingual default term lists."""
    store = QualityTermsStore(_load(config).quality.terms_file)
    store.reset()
    typer.echo(f"Term lists reset to defaults in {store.path}")


@app.command("list")
def list_articles(
    quality: Optional[QualityTier] = typer.Option(None, "--quality", help="Only this quality tier."),
    search: Optional[str] = typer.Option(None, "--search", help="Only articles from this search id."),
    config: Path = CONFIG_OPTION,
) -> None:
    """List stored articles."""
    _load(config)
    repo = _require_postgres()
    if search is not None:
        records = repo.list_articles(search_record_id=search)
        if quality is not None:
            records = [record for record in records if record.verdict.tier is quality]
    elif quality is not None:
        records = repo.list_by_quality(quality)
    else:
        records = repo.list_articles()
    for record in records:
        _echo_record(record)
    typer.echo(f"{len(records)} articles")


@app.command("searches")
def list_searches(config: Path = CONFIG_OPTION) -> None:
    """List stored search runs."""
    _load(config)
    repo = _require_postgres()
    searches = repo.list_searches()
    for search in searches:
        params = " ".join(f"{key}={value}" for key, value in sorted(search.params.items()))
        typer.echo(f"{search.search_id}  {search.created_at:%Y-%m-%d %H:%M}  {search.query}")
        typer.echo(f"    {search.result_count} results in {search.duration_seconds:.2f}s {params}".rstrip())
    typer.echo(f"{len(searches)} searches")


@app.command()
def tag(
    record_id: str = typer.Argument(..., help="Article record id."),
    tags: List[str] = typer.Argument(None, help="Tags to set; none clears all tags."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Replace the tags of a stored article."""
    _load(config)
    repo = _require_postgres()
    try:
        saved = repo.update_tags(record_id, tags or [])
    except ScanError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"{record_id}: {', '.join(sorted(saved)) or '(no tags)'}")


@app.command()
def delete(
    record_id: str = typer.Argument(..., help="Article record id."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Delete a stored article with its images and tags."""
    _load(config)
    repo = _require_postgres()
    try:
        deleted = repo.delete_article(record_id)
    except ScanError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not deleted:
        typer.secho(f"Unknown record {record_id}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {record_id}")


@app.command("delete-search")
def delete_search(
    search_id: str = typer.Argument(..., help="Search id."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Delete a stored search and every article it produced."""
    _load(config)
    repo = _require_postgres()
    try:
        deleted = repo.delete_search(search_id)
    except ScanError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not deleted:
        typer.secho(f"Unknown search {search_id}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted search {search_id}")


@app.command("reassess")
def reassess_articles(
    record_id: Optional[str] = typer.Option(None, "--record-id", help="Only this article."),
    config: Path = CONFIG_OPTION,
) -> None:
    """Recompute quality verdicts against the current term lists."""
    config_data = _load(config)
    repo = _require_postgres()
    classifier = _classifier(config_data)
    if record_id:
        record = repo.get_article(record_id)
        records = [record] if record is not None else []
    else:
        records = repo.list_articles()
    changed = 0
    for record in records:
        updated = reassess(record, classifier)
        if updated.verdict != record.verdict:
            repo.update_quality(record.record_id, updated.verdict)
            changed += 1
            typer.echo(
                f"{record.record_id}: {record.verdict.tier.value} -> {updated.verdict.tier.value}"
                f" ({updated.verdict.reason})"
            )
    typer.echo(f"Reassessed {len(records)} articles, {changed} changed")


if __name__ == "__main__":
    app()
