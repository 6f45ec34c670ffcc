from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from shapely.errors import GEOSException
from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree

from pegeldict.config import DEFAULT_TIER_KEYS
from pegeldict.errors import ParseError
from pegeldict.io.json_files import read_json
from pegeldict.utils.logging import get_logger
from pegeldict.utils.text import clean

logger = get_logger(__name__)


@dataclass
class BoundaryFeature:
    geometry: BaseGeometry
    names: dict[str, str]

    def name(self, tier_keys: Sequence[str]) -> str | None:
        for key in tier_keys:
            value = self.names.get(key)
            if value:
                return value
        return None


class BoundaryLookup:
    """Point-in-polygon lookup over named boundary features.

    Features are assumed not to overlap. When they do, the feature listed
    first in the source file wins.
    """

    def __init__(self, features: Iterable[BoundaryFeature], tier_keys: Sequence[str] = DEFAULT_TIER_KEYS) -> None:
        self.features = list(features)
        self.tier_keys = tuple(tier_keys)
        geoms = [feature.geometry for feature in self.features]
        self._tree = STRtree(geoms) if geoms else None

    def __len__(self) -> int:
        return len(self.features)

    def resolve(self, lat: float, lon: float) -> str | None:
        if self._tree is None:
            return None
        point = Point(lon, lat)
        candidates = sorted(int(index) for index in self._tree.query(point))
        for index in candidates:
            feature = self.features[index]
            if feature.geometry.covers(point):
                return feature.name(self.tier_keys)
        return None

    @classmethod
    def from_geojson(cls, path: Path, tier_keys: Sequence[str] = DEFAULT_TIER_KEYS) -> "BoundaryLookup":
        if not path.exists():
            logger.warning("Boundary dataset %s not found, drainage basins stay unresolved", path)
            return cls([], tier_keys)
        try:
            payload = read_json(path)
        except ParseError as exc:
            logger.warning("Could not read boundary dataset %s: %s", path, exc)
            return cls([], tier_keys)
        features = list(_iter_features(payload, tier_keys))
        logger.info("Loaded %d boundary features from %s", len(features), path)
        return cls(features, tier_keys)


def _iter_features(payload: Any, tier_keys: Sequence[str]) -> Iterable[BoundaryFeature]:
    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        logger.warning("Boundary dataset is not a FeatureCollection")
        return
    for position, feature in enumerate(payload.get("features") or []):
        if not isinstance(feature, dict) or not feature.get("geometry"):
            continue
        try:
            geometry = shape(feature["geometry"])
        except (GEOSException, ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning("Skipping boundary feature %d with invalid geometry: %s", position, exc)
            continue
        if geometry.is_empty:
            continue
        properties = feature.get("properties") or {}
        names = {key: name for key in tier_keys if (name := clean(_as_text(properties.get(key))))}
        yield BoundaryFeature(geometry=geometry, names=names)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
