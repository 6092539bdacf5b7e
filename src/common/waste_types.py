import json
import os
import logging as log
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

BIODEGRADABLE = "biodegradable"
NON_BIODEGRADABLE = "non-biodegradable"

DEFAULT_PATH = os.path.join(os.path.dirname(__file__), "data", "waste_types.json")


def load_waste_types(path: Optional[str] = None) -> Mapping[str, str]:
    """
    Load the label -> waste kind table from a JSON object file.
    Keys are lower-cased; the result is a read-only mapping.
    """
    path = path or os.getenv("WASTE_TYPES_PATH") or DEFAULT_PATH
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)

    if not isinstance(raw, dict):
        raise ValueError(f"Waste type table must be a JSON object: {path}")

    table = {}
    for label, kind in raw.items():
        kind = str(kind).strip().lower()
        if kind not in (BIODEGRADABLE, NON_BIODEGRADABLE):
            raise ValueError(f"Unknown waste kind {kind!r} for label {label!r}")
        table[str(label).strip().lower()] = kind

    log.info("Loaded %d waste type entries from %s", len(table), path)
    return MappingProxyType(table)


def lookup(table: Mapping[str, str], label: str) -> str:
    # unknown labels count as non-biodegradable
    return table.get((label or "").strip().lower(), NON_BIODEGRADABLE)


waste_types = load_waste_types()
