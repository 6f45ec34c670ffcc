import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import ijson

from pegeldict.errors import ParseError

WHITESPACE = b" \t\r\n\xef\xbb\xbf"


def iter_json_array(path: Path) -> Iterator[dict[str, Any]]:
    """Stream the objects of a top-level JSON array without loading the whole file."""
    with open(path, "rb") as handle:
        head = handle.read(64).lstrip(WHITESPACE)
        if not head.startswith(b"["):
            raise ParseError(f"{path} does not hold a top-level JSON array")
        handle.seek(0)
        try:
            for item in ijson.items(handle, "item", use_float=True):
                if isinstance(item, dict):
                    yield item
        except ijson.JSONError as exc:
            raise ParseError(f"{path} is not a valid JSON array: {exc}") from exc


def read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ParseError(f"{path} is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise ParseError(f"could not read {path}: {exc}") from exc
