import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Sequence

import httpx
from pydantic import ValidationError
from tqdm import tqdm

from pegeldict.clients.geocode import GeocodeClient
from pegeldict.clients.registry import RegistryClient
from pegeldict.config import ServiceConfig
from pegeldict.enrichment.address import extend_alternatives, merge_languages
from pegeldict.geo.aliases import AliasCategory, AliasTable
from pegeldict.geo.boundaries import BoundaryLookup
from pegeldict.io.paths import utc_now, write_json
from pegeldict.schemas.station import AddressData, EnrichedField, Station
from pegeldict.store import StationStore
from pegeldict.utils.http import HttpMetrics, RequestThrottle, ThrottledHttpClient
from pegeldict.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RunReport:
    fetched: int = 0
    rejected: int = 0
    skipped_without_coordinates: int = 0
    evicted: int = 0
    attempted: int = 0
    enriched: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class EnrichmentPipeline:
    """Fetch the registry, geocode every station and persist after each one.

    Stations are enriched concurrently; the only bound on outbound calls is
    the request throttle shared by the clients. Merging a station and writing
    the snapshot happen under one lock.
    """

    def __init__(
        self,
        registry: RegistryClient,
        geocoder: GeocodeClient,
        boundaries: BoundaryLookup,
        aliases: AliasTable,
        store: StationStore,
        languages: Sequence[str] = ("de",),
        show_progress: bool = True,
    ) -> None:
        if not languages:
            raise ValueError("at least the baseline language is required")
        self._registry = registry
        self._geocoder = geocoder
        self._boundaries = boundaries
        self._aliases = aliases
        self._store = store
        self.languages = list(languages)
        self.show_progress = show_progress

    async def run(self) -> RunReport:
        report = RunReport()
        logger.info("Enrichment run started")
        raw_stations = await self._registry.fetch_stations()
        report.fetched = len(raw_stations)

        eligible = self._reconcile(raw_stations, report)
        await self._persist()

        report.attempted = len(eligible)
        lock = asyncio.Lock()
        with tqdm(
            total=len(eligible), desc="Enrich stations", unit="station", disable=not self.show_progress
        ) as progress:
            await asyncio.gather(*(self._process(station, lock, report, progress) for station in eligible))

        logger.info(
            "Enrichment run finished: %d enriched, %d failed, %d evicted, %d without coordinates",
            report.enriched,
            report.failed,
            report.evicted,
            report.skipped_without_coordinates,
        )
        return report

    def _reconcile(self, raw_stations: list[dict[str, Any]], report: RunReport) -> list[Station]:
        """Align the store with the fetched registry and return the stations to geocode."""
        current_uuids = {item["uuid"] for item in raw_stations if isinstance(item.get("uuid"), str)}
        evicted = self._store.evict_missing(current_uuids)
        report.evicted = len(evicted)
        for uuid in evicted:
            logger.info("Evicted station %s, no longer listed by the registry", uuid)

        merged: list[Station] = []
        eligible: list[Station] = []
        for item in raw_stations:
            try:
                station = Station.model_validate(item)
            except ValidationError as exc:
                report.rejected += 1
                logger.warning("Skipping malformed registry station %s: %s", item.get("uuid"), exc)
                uuid = item.get("uuid")
                previous = self._store.get(uuid) if isinstance(uuid, str) else None
                if previous is not None:
                    merged.append(previous)
                continue
            known = self._store.get(station.uuid)
            if not station.has_coordinates:
                report.skipped_without_coordinates += 1
                logger.warning("%s has no coordinates", station.shortname or station.uuid)
                if known is None:
                    continue
            if known is not None:
                station = station.model_copy(update=known.enrichment())
            merged.append(station)
            if station.has_coordinates:
                eligible.append(station)

        self._store.replace_all(merged)
        return eligible

    async def _process(self, station: Station, lock: asyncio.Lock, report: RunReport, progress: tqdm) -> None:
        updated: Station | None = None
        try:
            updated = await self.enrich(station)
        except Exception as exc:
            report.failed += 1
            logger.warning("Enrichment failed for %s (%s): %s", station.shortname, station.uuid, exc)

        async with lock:
            if updated is not None:
                self._store.upsert(updated)
                report.enriched += 1
            await self._persist()
        progress.update(1)

    async def _persist(self) -> None:
        try:
            await asyncio.to_thread(self._store.save)
        except OSError as exc:
            logger.error("Could not write station snapshot %s: %s", self._store.snapshot_path, exc)

    async def enrich(self, station: Station) -> Station:
        if station.latitude is None or station.longitude is None:
            raise ValueError(f"station {station.uuid} has no coordinates")
        addresses = await self._reverse_all(station.latitude, station.longitude)
        baseline = addresses[self.languages[0]]
        others = [addresses[language] for language in self.languages[1:]]
        fields = merge_languages(baseline, others)

        basin = self._boundaries.resolve(station.latitude, station.longitude)
        fields["drainage_basin"] = EnrichedField(
            canonical=basin,
            alternatives=self._aliases.alternatives_for(AliasCategory.DRAINAGE_BASIN, basin) or [],
        )
        fields["district"] = extend_alternatives(
            fields["district"],
            self._aliases.alternatives_for(AliasCategory.DISTRICT, fields["district"].canonical),
        )

        water_name = None
        if station.water is not None:
            water_name = station.water.longname or station.water.shortname
        water_alt = self._aliases.alternatives_for(AliasCategory.WATERCOURSE, water_name)
        return station.with_enrichment(fields, water_alt)

    async def _reverse_all(self, lat: float, lon: float) -> dict[str, AddressData]:
        results = await asyncio.gather(
            *(self._geocoder.reverse(lat, lon, language) for language in self.languages),
            return_exceptions=True,
        )
        addresses: dict[str, AddressData] = {}
        for language, result in zip(self.languages, results):
            if isinstance(result, BaseException):
                raise result
            addresses[language] = result
        return addresses


async def run_enrichment(
    config: ServiceConfig,
    store: StationStore | None = None,
    boundaries: BoundaryLookup | None = None,
    aliases: AliasTable | None = None,
    throttle: RequestThrottle | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    start = time.monotonic()
    paths = config.paths
    if store is None:
        store = StationStore(paths.snapshot_path)
        store.load()
    if boundaries is None:
        boundaries = BoundaryLookup.from_geojson(paths.boundaries_path, config.boundary_tier_keys)
    if aliases is None:
        aliases = AliasTable.from_file(paths.aliases_path)
    throttle = throttle or RequestThrottle(config.max_concurrent)
    http_metrics = HttpMetrics()

    async with httpx.AsyncClient(timeout=config.timeout_seconds, transport=transport) as client:
        http = ThrottledHttpClient(client, throttle, config.user_agent, http_metrics)
        pipeline = EnrichmentPipeline(
            registry=RegistryClient(http, config.registry_base_url),
            geocoder=GeocodeClient(http, config.geocode_base_url),
            boundaries=boundaries,
            aliases=aliases,
            store=store,
            languages=config.languages,
            show_progress=config.show_progress,
        )
        report = await pipeline.run()

    runtime = time.monotonic() - start
    metrics: dict[str, Any] = {
        "snapshot": str(store.snapshot_path),
        "languages": config.languages,
        "stations": len(store),
        "runtime_seconds": round(runtime, 3),
        "generated_at": utc_now(),
    }
    metrics.update(report.to_dict())
    metrics.update(http_metrics.to_dict())
    write_json(paths.metrics_path, metrics)
    return metrics
