import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import httpx
import typer

from pegeldict.clients.geocode import GeocodeClient
from pegeldict.config import DEFAULT_GEOCODE_URL, DEFAULT_REGISTRY_URL, ServiceConfig
from pegeldict.enrichment.pipeline import run_enrichment
from pegeldict.errors import MissingQueryError, UnsupportedQueryError, UpstreamError
from pegeldict.geo.aliases import AliasTable
from pegeldict.geo.boundaries import BoundaryLookup
from pegeldict.scheduling.scheduler import Scheduler
from pegeldict.schemas.station import StationQuery
from pegeldict.service import StationService
from pegeldict.store import StationStore
from pegeldict.utils.http import DEFAULT_MAX_CONCURRENT, RequestThrottle, ThrottledHttpClient
from pegeldict.utils.logging import setup_logging

app = typer.Typer(add_completion=False, help="Pegelonline station enrichment and search")


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _client_error(exc: Exception) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    return typer.Exit(code=2)


def _load_store(config: ServiceConfig) -> StationStore:
    store = StationStore(config.paths.snapshot_path)
    store.load()
    return store


@app.callback()
def main(
    ctx: typer.Context,
    data_dir: Path = typer.Option(Path("data"), "--data-dir", envvar="PEGELDICT_DATA_DIR"),
    registry_url: str = typer.Option(DEFAULT_REGISTRY_URL, "--registry-url", envvar="PEGELDICT_REGISTRY_URL"),
    geocode_url: str = typer.Option(DEFAULT_GEOCODE_URL, "--geocode-url", envvar="PEGELDICT_GEOCODE_URL"),
    language: str = typer.Option("de", "--language", envvar="PEGELDICT_LANGUAGE"),
    extra_languages: Optional[list[str]] = typer.Option(
        None, "--extra-language", envvar="PEGELDICT_EXTRA_LANGUAGES"
    ),
    max_concurrent: int = typer.Option(
        DEFAULT_MAX_CONCURRENT, "--max-concurrent", min=1, envvar="PEGELDICT_MAX_CONCURRENT"
    ),
    timeout_seconds: float = typer.Option(20.0, "--timeout-seconds", envvar="PEGELDICT_TIMEOUT_SECONDS"),
    user_agent: str = typer.Option(
        "pegeldict/0.1 (+contact: none)", "--user-agent", envvar="PEGELDICT_USER_AGENT"
    ),
    no_progress: bool = typer.Option(False, "--no-progress"),
) -> None:
    setup_logging()
    ctx.obj = ServiceConfig(
        registry_base_url=registry_url,
        geocode_base_url=geocode_url,
        baseline_language=language,
        extra_languages=tuple(extra_languages or ()),
        max_concurrent=max_concurrent,
        timeout_seconds=timeout_seconds,
        user_agent=user_agent,
        data_dir=data_dir,
        show_progress=not no_progress,
    )


@app.command("enrich")
def enrich(ctx: typer.Context) -> None:
    config: ServiceConfig = ctx.obj
    try:
        metrics = asyncio.run(run_enrichment(config))
    except UpstreamError as exc:
        typer.echo(f"Enrichment aborted: {exc}", err=True)
        raise typer.Exit(code=1)
    _echo_json(metrics)


@app.command("schedule")
def schedule(
    ctx: typer.Context,
    cron: str = typer.Option("0 3 * * *", "--cron", envvar="PEGELDICT_CRON"),
    run_now: bool = typer.Option(True, "--run-now/--no-run-now", envvar="PEGELDICT_RUN_ON_STARTUP"),
    max_runs: Optional[int] = typer.Option(None, "--max-runs", min=1),
) -> None:
    config: ServiceConfig = ctx.obj
    config.cron = cron
    config.run_on_startup = run_now
    paths = config.paths
    store = _load_store(config)
    boundaries = BoundaryLookup.from_geojson(paths.boundaries_path, config.boundary_tier_keys)
    aliases = AliasTable.from_file(paths.aliases_path)

    async def run() -> int:
        throttle = RequestThrottle(config.max_concurrent)

        async def job() -> None:
            await run_enrichment(config, store=store, boundaries=boundaries, aliases=aliases, throttle=throttle)

        scheduler = Scheduler(config.cron, job, run_immediately=config.run_on_startup, max_runs=max_runs)
        return await scheduler.run()

    try:
        asyncio.run(run())
    except ValueError as exc:
        raise _client_error(exc)


async def _search_place(config: ServiceConfig, store: StationStore, text: str) -> dict[str, Any]:
    throttle = RequestThrottle(config.max_concurrent)
    async with httpx.AsyncClient(timeout=config.timeout_seconds) as client:
        http = ThrottledHttpClient(client, throttle, config.user_agent)
        service = StationService(store, config, GeocodeClient(http, config.geocode_base_url))
        response = await service.search_place(text)
    return response.model_dump(exclude_none=True)


@app.command("search")
def search(
    ctx: typer.Context,
    station: Optional[str] = typer.Option(None, "--station"),
    water: Optional[str] = typer.Option(None, "--water", "--gewaesser"),
    agency: Optional[str] = typer.Option(None, "--agency"),
    region: Optional[str] = typer.Option(None, "--region", "--land"),
    country: Optional[str] = typer.Option(None, "--country"),
    drainage_basin: Optional[str] = typer.Option(None, "--drainage-basin", "--einzugsgebiet"),
    district: Optional[str] = typer.Option(None, "--district", "--kreis"),
    parameter: Optional[str] = typer.Option(None, "--parameter"),
    bbox: Optional[str] = typer.Option(None, "--bbox"),
    q: Optional[str] = typer.Option(None, "--q"),
    place: Optional[str] = typer.Option(None, "--place"),
) -> None:
    config: ServiceConfig = ctx.obj
    store = _load_store(config)
    if place is not None:
        try:
            payload = asyncio.run(_search_place(config, store, place))
        except (MissingQueryError, UnsupportedQueryError) as exc:
            raise _client_error(exc)
        except UpstreamError as exc:
            typer.echo(f"Place search failed: {exc}", err=True)
            raise typer.Exit(code=1)
        _echo_json(payload)
        return

    query = StationQuery(
        station=station,
        water=water,
        agency=agency,
        region=region,
        country=country,
        drainage_basin=drainage_basin,
        district=district,
        parameter=parameter,
        bbox=bbox,
        q=q,
    )
    response = StationService(store, config).search(query)
    _echo_json(response.model_dump(exclude_none=True))


@app.command("options")
def options(ctx: typer.Context, field: Optional[str] = typer.Argument(None)) -> None:
    config: ServiceConfig = ctx.obj
    store = _load_store(config)
    try:
        values = StationService(store, config).list_distinct_values(field)
    except (MissingQueryError, UnsupportedQueryError) as exc:
        raise _client_error(exc)
    _echo_json(values)
