import csv
import json
from pathlib import Path

import openpyxl

from pegeldict.geo.aliases import AliasCategory, AliasEntry, AliasTable
from pegeldict.geo.boundaries import BoundaryLookup


def _square(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> list[list[list[float]]]:
    return [[[min_lon, min_lat], [max_lon, min_lat], [max_lon, max_lat], [min_lon, max_lat], [min_lon, min_lat]]]


def _write_geojson(path: Path, features: list[dict]) -> Path:
    path.write_text(json.dumps({"type": "FeatureCollection", "features": features}), encoding="utf-8")
    return path


def test_boundary_prefers_finest_tier(tmp_path: Path) -> None:
    path = _write_geojson(
        tmp_path / "basins.geojson",
        [
            {
                "type": "Feature",
                "properties": {"NAME_2500": "Ems", "NAME_500": "Nordsee"},
                "geometry": {"type": "Polygon", "coordinates": _square(7, 52, 8, 53)},
            }
        ],
    )
    lookup = BoundaryLookup.from_geojson(path)
    assert lookup.resolve(52.5, 7.5) == "Ems"


def test_boundary_falls_back_to_coarser_tier(tmp_path: Path) -> None:
    path = _write_geojson(
        tmp_path / "basins.geojson",
        [
            {
                "type": "Feature",
                "properties": {"NAME_1000": "Weser", "NAME_500": "Nordsee"},
                "geometry": {"type": "Polygon", "coordinates": _square(8, 52, 9, 53)},
            }
        ],
    )
    assert BoundaryLookup.from_geojson(path).resolve(52.5, 8.5) == "Weser"


def test_boundary_handles_multipolygons_and_misses(tmp_path: Path) -> None:
    path = _write_geojson(
        tmp_path / "basins.geojson",
        [
            {
                "type": "Feature",
                "properties": {"NAME_2500": "Elbe"},
                "geometry": {
                    "type": "MultiPolygon",
                    "coordinates": [_square(10, 50, 11, 51), _square(12, 52, 13, 53)],
                },
            }
        ],
    )
    lookup = BoundaryLookup.from_geojson(path)
    assert lookup.resolve(52.5, 12.5) == "Elbe"
    assert lookup.resolve(50.5, 10.5) == "Elbe"
    assert lookup.resolve(51.5, 11.5) is None


def test_boundary_first_feature_in_file_order_wins(tmp_path: Path) -> None:
    path = _write_geojson(
        tmp_path / "basins.geojson",
        [
            {"type": "Feature", "properties": {"NAME_2500": "First"}, "geometry": {"type": "Polygon", "coordinates": _square(0, 0, 10, 10)}},
            {"type": "Feature", "properties": {"NAME_2500": "Second"}, "geometry": {"type": "Polygon", "coordinates": _square(4, 4, 6, 6)}},
        ],
    )
    assert BoundaryLookup.from_geojson(path).resolve(5, 5) == "First"


def test_boundary_missing_dataset_resolves_nothing(tmp_path: Path) -> None:
    lookup = BoundaryLookup.from_geojson(tmp_path / "missing.geojson")
    assert len(lookup) == 0
    assert lookup.resolve(52.5, 7.5) is None


def _table() -> AliasTable:
    return AliasTable(
        [
            AliasEntry(AliasCategory.DISTRICT, "Emsland", ["Emsländer Land"], ["Emsland County"]),
            AliasEntry(AliasCategory.WATERCOURSE, "Rhein, Rhine", [], ["Rhine", "Rhin"]),
            AliasEntry(AliasCategory.WATERCOURSE, "Rheinarm", ["Altrhein"], []),
            AliasEntry(AliasCategory.DRAINAGE_BASIN, "Weser", [], []),
        ]
    )


def test_district_prefix_is_stripped_before_matching() -> None:
    table = _table()
    expected = ["Emsländer Land", "Emsland County"]
    assert table.alternatives_for(AliasCategory.DISTRICT, "Landkreis Emsland") == expected
    assert table.alternatives_for(AliasCategory.DISTRICT, "Emsland") == expected
    assert table.alternatives_for(AliasCategory.DISTRICT, "kreis emsland") == expected


def test_alias_first_match_wins_within_category() -> None:
    table = _table()
    assert table.alternatives_for(AliasCategory.WATERCOURSE, "rhein") == ["Rhine", "Rhin"]
    assert table.alternatives_for(AliasCategory.DISTRICT, "Rhein") is None


def test_alias_entry_without_alternatives_is_absent() -> None:
    table = _table()
    assert table.alternatives_for(AliasCategory.DRAINAGE_BASIN, "Weser") is None
    assert table.alternatives_for(AliasCategory.DRAINAGE_BASIN, None) is None


HEADER = ["Suchwortkategorie", "Suchworte", "Synonyme", "Übersetzungen"]
ROWS = [
    ["Gewässer / Flüsse", "Mosel", "Moselle", " Moselle river , Moezel"],
    ["Unbekannt", "Mosel", "ignored", None],
    ["Einzugsgebiete", "Donau", None, "Danube"],
]


def test_alias_table_reads_xlsx(tmp_path: Path) -> None:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Tabelle1"
    sheet.append(HEADER)
    for row in ROWS:
        sheet.append(row)
    path = tmp_path / "aliases.xlsx"
    workbook.save(path)

    table = AliasTable.from_file(path)
    assert len(table) == 2
    assert table.alternatives_for(AliasCategory.WATERCOURSE, "Mosel") == ["Moselle", "Moselle river", "Moezel"]
    assert table.alternatives_for(AliasCategory.DRAINAGE_BASIN, "donau") == ["Danube"]


def test_alias_table_reads_csv(tmp_path: Path) -> None:
    path = tmp_path / "aliases.csv"
    with open(path, "w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for row in ROWS:
            writer.writerow(["" if cell is None else cell for cell in row])

    table = AliasTable.from_file(path)
    assert table.alternatives_for(AliasCategory.DRAINAGE_BASIN, "Donau") == ["Danube"]


def test_alias_table_missing_file_is_empty(tmp_path: Path) -> None:
    assert len(AliasTable.from_file(tmp_path / "aliases.xlsx")) == 0


def test_boundary_dataset_with_invalid_utf8_resolves_nothing(tmp_path: Path) -> None:
    path = tmp_path / "basins.geojson"
    path.write_bytes(b'{"type":"FeatureCollection","features":[],"x":"\xf6"}')
    lookup = BoundaryLookup.from_geojson(path)
    assert len(lookup) == 0
    assert lookup.resolve(52.5, 7.5) is None


def test_alias_table_corrupt_workbook_is_empty(tmp_path: Path) -> None:
    path = tmp_path / "aliases.xlsx"
    path.write_bytes(b"not a zip")
    assert len(AliasTable.from_file(path)) == 0


def test_alias_table_csv_with_invalid_utf8_is_empty(tmp_path: Path) -> None:
    path = tmp_path / "aliases.csv"
    path.write_bytes("Suchwortkategorie,Suchworte\n".encode("utf-8") + b"Landkreis,\xf6\xff\n")
    assert len(AliasTable.from_file(path)) == 0
