from typing import Any

from pegeldict.clients.geocode import GeocodeClient
from pegeldict.config import ServiceConfig
from pegeldict.errors import MissingQueryError, UnsupportedQueryError
from pegeldict.query.engine import aggregate, distinct_values, filter_free_text, filter_stations
from pegeldict.schemas.station import AggregatedStationResponse, StationQuery
from pegeldict.store import StationStore
from pegeldict.utils.logging import get_logger

logger = get_logger(__name__)

PLACE_TYPE_FIELDS = {
    "state": "region",
    "county": "district",
    "district": "district",
    "state_district": "district",
    "country": "country",
    "city": "q",
    "town": "q",
    "village": "q",
    "municipality": "q",
}


class StationService:
    """Read side used by an outer transport layer."""

    def __init__(self, store: StationStore, config: ServiceConfig, geocoder: GeocodeClient | None = None) -> None:
        self._store = store
        self._config = config
        self._geocoder = geocoder

    def search(self, query: StationQuery | dict[str, Any] | None = None) -> AggregatedStationResponse:
        if query is None:
            query = StationQuery()
        elif isinstance(query, dict):
            query = StationQuery.model_validate(query)
        stations = self._store.snapshot()
        if query.q:
            if query.has_structured_filters():
                logger.warning("Free-text query %r given, ignoring structured filters", query.q)
            logger.info("Query with term: %s", query.q)
            matched = filter_free_text(stations, query.q)
        else:
            matched = filter_stations(stations, query)
        return aggregate(matched, self._config.topic_base, self._config.resolved_link_base_url)

    async def search_place(self, text: str | None) -> AggregatedStationResponse:
        """Resolve free text to a place and search stations by its administrative type."""
        if not text or not text.strip():
            raise MissingQueryError("missing query")
        if self._geocoder is None:
            raise UnsupportedQueryError("place search needs a geocoder")
        candidates = await self._geocoder.search(text)
        if not candidates:
            raise UnsupportedQueryError("could not resolve your query")
        place = candidates[0]
        logger.info("Result type: %s with value: %s", place.type, place.name)
        field = PLACE_TYPE_FIELDS.get((place.type or "").lower())
        if field is None or not place.name:
            raise UnsupportedQueryError(f"could not resolve type: {place.type}")
        return self.search(StationQuery.model_validate({field: place.name}))

    def list_distinct_values(self, field: str | None) -> list[str]:
        return distinct_values(self._store.snapshot(), field)
