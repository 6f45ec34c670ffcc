from typing import Callable, Iterable

from pegeldict.errors import MissingQueryError, UnsupportedQueryError
from pegeldict.schemas.station import AggregatedStationResponse, EnrichedField, Station, StationQuery
from pegeldict.utils.logging import get_logger
from pegeldict.utils.text import contains, parse_float

logger = get_logger(__name__)

FIELDS_WITH_ALTERNATIVES = ("region", "agency", "country", "drainage_basin", "district")

FIELD_ALIASES = {
    "gewaesser": "water",
    "land": "region",
    "kreis": "district",
    "einzugsgebiet": "drainage_basin",
}


def enriched_field(station: Station, name: str) -> EnrichedField:
    if name == "agency":
        return EnrichedField(canonical=station.agency)
    return station.enriched(name)


def filter_stations(stations: Iterable[Station], query: StationQuery) -> list[Station]:
    """Apply every structured predicate present in ``query``; all must hold."""
    result = list(stations)
    if query.station:
        logger.debug("Filter with station: %s", query.station)
        result = [st for st in result if contains(st.shortname, query.station)]
    if query.water:
        logger.debug("Filter with water: %s", query.water)
        result = [st for st in result if st.water is not None and contains(st.water.shortname, query.water)]
    for name in FIELDS_WITH_ALTERNATIVES:
        term = getattr(query, name)
        if term:
            logger.debug("Filter with %s: %s", name, term)
            result = [st for st in result if enriched_field(st, name).matches(term)]
    if query.parameter:
        logger.debug("Filter with parameter: %s", query.parameter)
        result = [st for st in result if _has_parameter(st, query.parameter)]
    bbox = parse_bbox(query.bbox)
    if bbox is not None:
        logger.debug("Filter with bbox: %s", bbox)
        result = [st for st in result if _in_bbox(st, bbox)]
    return result


def filter_free_text(stations: Iterable[Station], text: str) -> list[Station]:
    return [st for st in stations if any(contains(value, text) for value in _free_text_values(st))]


def _free_text_values(station: Station) -> Iterable[str | None]:
    yield station.uuid
    yield station.shortname
    yield station.longname
    yield station.agency
    for name in ("country", "region", "district", "city", "drainage_basin"):
        yield from station.enriched(name).values()
    if station.water is not None:
        yield station.water.shortname
        yield station.water.longname
    yield from station.water_alt or []
    for ts in station.timeseries:
        yield ts.shortname
        yield ts.longname


def _has_parameter(station: Station, parameter: str) -> bool:
    wanted = parameter.lower()
    for ts in station.timeseries:
        if (ts.longname or "").lower() == wanted or (ts.shortname or "").lower() == wanted:
            return True
    return False


def parse_bbox(text: str | None) -> tuple[float, float, float, float] | None:
    """Parse ``minLon,minLat,maxLon,maxLat``; anything else yields None."""
    if not text:
        return None
    parts = text.split(",")
    if len(parts) != 4:
        return None
    values = [parse_float(part) for part in parts]
    if any(value is None for value in values):
        return None
    min_lon, min_lat, max_lon, max_lat = values
    return min_lon, min_lat, max_lon, max_lat


def _in_bbox(station: Station, bbox: tuple[float, float, float, float]) -> bool:
    if not station.has_coordinates:
        return False
    min_lon, min_lat, max_lon, max_lat = bbox
    return min_lon <= station.longitude <= max_lon and min_lat <= station.latitude <= max_lat


def aggregate(stations: Iterable[Station], topic_base: str, link_base_url: str) -> AggregatedStationResponse:
    """Decorate copies of ``stations`` with topics and measurement links."""
    topic_base = topic_base.rstrip("/")
    link_base_url = link_base_url.rstrip("/")
    response = AggregatedStationResponse()
    for station in stations:
        decorated = station.model_copy(deep=True)
        decorated.topic = f"{topic_base}/+/+/+/+/{station.uuid}/+"
        response.topics.append(decorated.topic)
        for ts in decorated.timeseries:
            if not ts.shortname:
                continue
            ts.topic = f"{topic_base}/+/+/+/+/{station.uuid}/{ts.shortname}"
            ts.link = f"{link_base_url}/stations/{station.uuid}/{ts.shortname}/measurements.json"
            response.topics.append(ts.topic)
            response.links.append(ts.link)
        response.stations.append(decorated)
    return response


def _field_values(name: str) -> Callable[[Station], Iterable[str | None]]:
    def values(station: Station) -> Iterable[str | None]:
        return enriched_field(station, name).values()

    return values


def _water_values(station: Station) -> Iterable[str | None]:
    if station.water is not None:
        yield station.water.shortname
    yield from station.water_alt or []


def _parameter_values(station: Station) -> Iterable[str | None]:
    for ts in station.timeseries:
        yield ts.longname
        yield ts.shortname


DISTINCT_FIELDS: dict[str, Callable[[Station], Iterable[str | None]]] = {
    "district": _field_values("district"),
    "drainage_basin": _field_values("drainage_basin"),
    "region": _field_values("region"),
    "country": _field_values("country"),
    "agency": _field_values("agency"),
    "station": lambda station: [station.shortname],
    "water": _water_values,
    "parameter": _parameter_values,
}


def resolve_field_name(field: str | None) -> str:
    if not field or not field.strip():
        raise MissingQueryError("missing parameter")
    name = field.strip().lower()
    name = FIELD_ALIASES.get(name, name)
    if name not in DISTINCT_FIELDS:
        raise UnsupportedQueryError(f"unsupported parameter: {field}")
    return name


def distinct_values(stations: Iterable[Station], field: str | None) -> list[str]:
    """Sorted unique canonical and alternative values of ``field``."""
    extract = DISTINCT_FIELDS[resolve_field_name(field)]
    found: set[str] = set()
    for station in stations:
        found.update(value for value in extract(station) if value)
    return sorted(found)
