import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

SNAPSHOT_FILENAME = "stations.json"
BOUNDARIES_FILENAME = "einzugsgebiete.geojson"
ALIASES_STEM = "aliases"
METRICS_FILENAME = "enrichment_metrics.json"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class DataPaths:
    data_dir: Path

    @property
    def snapshot_path(self) -> Path:
        return self.data_dir / SNAPSHOT_FILENAME

    @property
    def boundaries_path(self) -> Path:
        return self.data_dir / BOUNDARIES_FILENAME

    @property
    def aliases_path(self) -> Path:
        xlsx_path = self.data_dir / f"{ALIASES_STEM}.xlsx"
        csv_path = self.data_dir / f"{ALIASES_STEM}.csv"
        if not xlsx_path.exists() and csv_path.exists():
            return csv_path
        return xlsx_path

    @property
    def metrics_path(self) -> Path:
        return self.data_dir / METRICS_FILENAME


def build_data_paths(data_dir: Path) -> DataPaths:
    data_dir.mkdir(parents=True, exist_ok=True)
    return DataPaths(data_dir=data_dir)


def write_json(path: Path, payload: Any) -> None:
    """Write ``payload`` to a temporary sibling and swap it in place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + f".tmp.{os.getpid()}")
    with open(tmp, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, ensure_ascii=False, indent=2)
        handle.write("\n")
    os.replace(tmp, path)
