import json
import logging
from pathlib import Path

from pegeldict.schemas.station import Station
from pegeldict.store import StationStore


def _station(uuid: str, **fields) -> Station:
    return Station.model_validate({"uuid": uuid, "shortname": uuid.upper(), "latitude": 52.0, "longitude": 7.0, **fields})


def test_missing_snapshot_starts_empty(tmp_path: Path) -> None:
    store = StationStore(tmp_path / "stations.json")
    assert store.load() == []
    assert len(store) == 0


def test_malformed_snapshot_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "stations.json"
    path.write_text('[{"uuid": "a"}, {"uuid": ', encoding="utf-8")
    store = StationStore(path)
    assert store.load() == []


def test_invalid_records_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "stations.json"
    path.write_text(json.dumps([{"uuid": "a", "km": 1.5}, {"shortname": "no uuid"}]), encoding="utf-8")
    store = StationStore(path)
    loaded = store.load()
    assert [st.uuid for st in loaded] == ["a"]
    assert loaded[0].km == 1.5


def test_save_and_load_round_trip_keeps_order(tmp_path: Path) -> None:
    path = tmp_path / "stations.json"
    store = StationStore(path)
    store.replace_all([_station("b", region="Bayern", region_alt=["Bavaria"]), _station("a")])
    store.save()

    reloaded = StationStore(path)
    stations = reloaded.load()
    assert [st.uuid for st in stations] == ["b", "a"]
    assert stations[0].region_alt == ["Bavaria"]
    assert not list(tmp_path.glob("*.tmp.*"))


def test_upsert_replaces_in_place_and_evict_removes_missing(tmp_path: Path) -> None:
    store = StationStore(tmp_path / "stations.json")
    store.replace_all([_station("a"), _station("b"), _station("c")])
    store.upsert(_station("b", country="Deutschland"))
    assert [st.uuid for st in store.snapshot()] == ["a", "b", "c"]
    assert store.get("b").country == "Deutschland"

    assert store.evict_missing(["a", "c"]) == ["b"]
    assert "b" not in store


def test_alternatives_never_repeat_the_canonical_value() -> None:
    station = _station("a", city="Köln", city_alt=["Köln", "Cologne"], country_alt=["Germany"])
    assert station.city_alt == ["Cologne"]
    assert station.country_alt is None
    assert station.enriched("city").values() == ["Köln", "Cologne"]


def test_snapshot_with_object_top_level_warns_and_starts_empty(tmp_path: Path, caplog) -> None:
    path = tmp_path / "stations.json"
    path.write_text(json.dumps({"stations": [{"uuid": "a"}]}), encoding="utf-8")
    store = StationStore(path)

    with caplog.at_level(logging.WARNING, logger="pegeldict"):
        assert store.load() == []

    assert any(record.levelno == logging.WARNING and "stations.json" in record.getMessage() for record in caplog.records)
