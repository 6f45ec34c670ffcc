import csv
import zipfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException

from pegeldict.errors import ParseError
from pegeldict.utils.logging import get_logger
from pegeldict.utils.text import clean, split_list, strip_district_prefix

logger = get_logger(__name__)

SHEET_NAME = "Tabelle1"
CATEGORY_COLUMN = "Suchwortkategorie"
TERMS_COLUMN = "Suchworte"
SYNONYMS_COLUMN = "Synonyme"
TRANSLATIONS_COLUMN = "Übersetzungen"


class AliasCategory(str, Enum):
    WATERCOURSE = "Gewässer / Flüsse"
    DRAINAGE_BASIN = "Einzugsgebiete"
    DISTRICT = "Landkreis"


@dataclass
class AliasEntry:
    category: AliasCategory
    terms: str
    synonyms: list[str] = field(default_factory=list)
    translations: list[str] = field(default_factory=list)


class AliasTable:
    """Curated synonyms and translations, matched in source-table order."""

    def __init__(self, entries: Iterable[AliasEntry]) -> None:
        self.entries = list(entries)

    def __len__(self) -> int:
        return len(self.entries)

    def alternatives_for(self, category: AliasCategory, term: str | None) -> list[str] | None:
        if not term:
            return None
        if category is AliasCategory.DISTRICT:
            term = strip_district_prefix(term)
            if not term:
                return None
        needle = term.lower()
        for entry in self.entries:
            if entry.category is category and needle in entry.terms.lower():
                alternatives = [*entry.synonyms, *entry.translations]
                return alternatives or None
        return None

    @classmethod
    def from_rows(cls, rows: Iterable[dict[str, Any]]) -> "AliasTable":
        entries = []
        for row in rows:
            entry = _entry_from_row(row)
            if entry is not None:
                entries.append(entry)
        return cls(entries)

    @classmethod
    def from_file(cls, path: Path) -> "AliasTable":
        if not path.exists():
            logger.warning("Alias table %s not found, no curated alternatives available", path)
            return cls([])
        try:
            if path.suffix.lower() == ".csv":
                rows = _read_csv_rows(path)
            else:
                rows = _read_xlsx_rows(path)
        except ParseError as exc:
            logger.warning("Could not read alias table %s, no curated alternatives available: %s", path, exc)
            return cls([])
        table = cls.from_rows(rows)
        logger.info("Loaded %d alias entries from %s", len(table), path)
        return table


def _entry_from_row(row: dict[str, Any]) -> AliasEntry | None:
    category_text = clean(_as_text(row.get(CATEGORY_COLUMN)))
    terms = clean(_as_text(row.get(TERMS_COLUMN)))
    if not category_text or not terms:
        return None
    try:
        category = AliasCategory(category_text)
    except ValueError:
        return None
    return AliasEntry(
        category=category,
        terms=terms,
        synonyms=split_list(_as_text(row.get(SYNONYMS_COLUMN))),
        translations=split_list(_as_text(row.get(TRANSLATIONS_COLUMN))),
    )


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _read_csv_rows(path: Path) -> list[dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8-sig", newline="") as handle:
            return list(csv.DictReader(handle))
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise ParseError(f"{path} is not a readable CSV file: {exc}") from exc


def _read_xlsx_rows(path: Path) -> list[dict[str, Any]]:
    try:
        workbook = openpyxl.load_workbook(path, data_only=True, read_only=True)
    except (OSError, zipfile.BadZipFile, InvalidFileException, KeyError) as exc:
        raise ParseError(f"{path} is not a readable workbook: {exc}") from exc
    try:
        worksheet = workbook[SHEET_NAME] if SHEET_NAME in workbook.sheetnames else workbook.active
        rows = worksheet.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        columns = [clean(_as_text(cell)) for cell in header]
        return [
            {column: value for column, value in zip(columns, row) if column}
            for row in rows
            if row and any(cell is not None for cell in row)
        ]
    finally:
        workbook.close()
