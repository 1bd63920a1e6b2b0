"""Load Graph object definitions (groups, CA policies, Intune policies) from disk.

A path may be a single ``.json``/``.yaml``/``.yml`` file or a directory of
them. A file holds one definition object or a list of them.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".json", ".yaml", ".yml")


class PolicyLoadError(Exception):
    """Raised when a definition file cannot be read or is malformed."""

    pass


def _load_file(path: Path) -> list[dict[str, Any]]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PolicyLoadError(f"{path}: cannot read file: {e}") from e

    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise PolicyLoadError(f"{path}: parse error: {e}") from e

    if data is None:
        return []
    items = data if isinstance(data, list) else [data]

    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise PolicyLoadError(f"{path}: entry {index} is not an object")
        if not isinstance(item.get("displayName"), str) or not item["displayName"].strip():
            raise PolicyLoadError(f"{path}: entry {index} has no displayName")
    return items


def load_definitions(path: str | Path) -> list[dict[str, Any]]:
    """Load every definition under ``path``.

    Directories are read in file-name order; subdirectories are ignored.

    Raises:
        PolicyLoadError: If the path is missing, unsupported or malformed
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise PolicyLoadError(f"{path}: no such file or directory")

    if path.is_dir():
        files = sorted(
            p for p in path.iterdir() if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES
        )
        if not files:
            raise PolicyLoadError(f"{path}: no .json or .yaml definition files found")
    elif path.suffix.lower() in SUPPORTED_SUFFIXES:
        files = [path]
    else:
        raise PolicyLoadError(f"{path}: unsupported file type (use .json, .yaml or .yml)")

    definitions: list[dict[str, Any]] = []
    for file in files:
        loaded = _load_file(file)
        logger.debug(f"Loaded {len(loaded)} definition(s) from {file}")
        definitions.extend(loaded)
    return definitions


__all__ = ["PolicyLoadError", "load_definitions"]
