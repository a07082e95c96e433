"""
Raw unit file loader (JSON or YAML).

Accepted layouts:
- a single unit mapping ({"name": ..., "declarations": [...]})
- a list of unit mappings
- {"units": [...]}

Units are returned raw; ModelBuilder validates them one at a time so a
malformed unit never takes the rest of the batch down with it.
"""

import json
from pathlib import Path
from typing import Any, List, Mapping

import yaml

from crucible.shared.domain.exceptions import ModelConstructionError
from crucible.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def load_raw_units(path: Path) -> List[Mapping[str, Any]]:
    """
    Load raw unit mappings from a file.

    Raises:
        FileNotFoundError: If the file does not exist
        ModelConstructionError: If the file is not valid JSON/YAML or has no units
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ModelConstructionError(f"Cannot decode unit file {path}: {e}", {"path": str(path)}) from e

    if isinstance(data, Mapping) and "units" in data:
        units = data["units"]
    elif isinstance(data, Mapping):
        units = [data]
    elif isinstance(data, list):
        units = data
    else:
        raise ModelConstructionError(f"Unit file {path} holds no units", {"path": str(path)})

    logger.info("unit_file_loaded", path=str(path), units=len(units))
    return list(units)
