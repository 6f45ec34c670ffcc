from typing import Any

from pegeldict.errors import MalformedPayloadError
from pegeldict.utils.http import ThrottledHttpClient
from pegeldict.utils.logging import get_logger

logger = get_logger(__name__)


class RegistryClient:
    def __init__(self, http: ThrottledHttpClient, base_url: str) -> None:
        self._http = http
        self.base_url = base_url.rstrip("/")

    async def fetch_stations(self) -> list[dict[str, Any]]:
        """Return the raw station list including nested timeseries."""
        url = f"{self.base_url}/stations.json"
        payload = await self._http.get_json(url, params={"includeTimeseries": "true"})
        if not isinstance(payload, list):
            raise MalformedPayloadError(f"expected a station array from {url}, got {type(payload).__name__}")
        stations = [item for item in payload if isinstance(item, dict)]
        logger.info("Fetched %d stations from registry", len(stations))
        return stations
