from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from pegeldict.errors import ParseError
from pegeldict.io.json_files import iter_json_array
from pegeldict.io.paths import write_json
from pegeldict.schemas.station import Station
from pegeldict.utils.logging import get_logger

logger = get_logger(__name__)


class StationStore:
    """Enriched stations keyed by uuid, backed by a JSON snapshot file.

    Station order follows the most recent registry fetch, so snapshots of
    unchanged upstream data are identical across runs.
    """

    def __init__(self, snapshot_path: Path) -> None:
        self.snapshot_path = snapshot_path
        self._stations: dict[str, Station] = {}

    def __len__(self) -> int:
        return len(self._stations)

    def __contains__(self, uuid: object) -> bool:
        return uuid in self._stations

    def get(self, uuid: str) -> Station | None:
        return self._stations.get(uuid)

    def load(self) -> list[Station]:
        if not self.snapshot_path.exists():
            logger.warning("No station snapshot at %s, starting empty", self.snapshot_path)
            self._stations = {}
            return []
        stations: dict[str, Station] = {}
        try:
            for item in iter_json_array(self.snapshot_path):
                try:
                    station = Station.model_validate(item)
                except ValidationError as exc:
                    logger.warning("Skipping malformed snapshot record %s: %s", item.get("uuid"), exc)
                    continue
                stations[station.uuid] = station
        except (OSError, ParseError) as exc:
            logger.warning("Could not read station snapshot %s, starting empty: %s", self.snapshot_path, exc)
            stations = {}
        self._stations = stations
        logger.info("Loaded %d stations from %s", len(stations), self.snapshot_path)
        return list(stations.values())

    def snapshot(self) -> list[Station]:
        return list(self._stations.values())

    def replace_all(self, stations: Iterable[Station]) -> None:
        self._stations = {station.uuid: station for station in stations}

    def upsert(self, station: Station) -> None:
        self._stations[station.uuid] = station

    def evict_missing(self, current_uuids: Iterable[str]) -> list[str]:
        keep = set(current_uuids)
        evicted = [uuid for uuid in self._stations if uuid not in keep]
        for uuid in evicted:
            del self._stations[uuid]
        return evicted

    def save(self) -> None:
        write_json(self.snapshot_path, [station.to_record() for station in self._stations.values()])
