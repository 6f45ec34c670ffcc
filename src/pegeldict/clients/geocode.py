from pydantic import ValidationError

from pegeldict.errors import MalformedPayloadError
from pegeldict.schemas.station import AddressData, PlaceCandidate
from pegeldict.utils.http import ThrottledHttpClient
from pegeldict.utils.logging import get_logger

logger = get_logger(__name__)


class GeocodeClient:
    """Nominatim-style reverse geocoding and place search.

    No retries: a failed call raises and the caller decides what to do.
    """

    def __init__(self, http: ThrottledHttpClient, base_url: str) -> None:
        self._http = http
        self.base_url = base_url.rstrip("/")

    async def reverse(self, lat: float, lon: float, language: str) -> AddressData:
        url = f"{self.base_url}/reverse"
        payload = await self._http.get_json(
            url,
            params={"lat": lat, "lon": lon, "format": "json"},
            headers={"Accept-Language": language},
        )
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"reverse geocode for {lat},{lon} returned {type(payload).__name__}")
        address = payload.get("address")
        if address is None:
            if payload.get("error"):
                logger.warning("No address for %s,%s (%s): %s", lat, lon, language, payload["error"])
            return AddressData()
        if not isinstance(address, dict):
            raise MalformedPayloadError(f"reverse geocode for {lat},{lon} has a malformed address")
        try:
            return AddressData.model_validate(address)
        except ValidationError as exc:
            raise MalformedPayloadError(f"reverse geocode for {lat},{lon} has a malformed address") from exc

    async def search(self, text: str) -> list[PlaceCandidate]:
        url = f"{self.base_url}/search"
        payload = await self._http.get_json(url, params={"q": text, "format": "jsonv2"})
        if not isinstance(payload, list):
            raise MalformedPayloadError(f"place search for {text!r} returned {type(payload).__name__}")
        candidates = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            try:
                candidates.append(PlaceCandidate.model_validate(item))
            except ValidationError as exc:
                logger.warning("Skipping malformed place candidate for %r: %s", text, exc)
        return candidates
