"""
Mission Information File Loader
Reads operator-prepared mission information (JSON) from disk so a run can be
set up without the presentation layer.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from pydantic import ValidationError

from .information import MissionInformation


class MissionLoadError(Exception):
    """Custom exception for errors during mission file loading."""
    pass


def load_mission_file(file_path: Path) -> Any:
    """
    Reads a JSON mission information file from the specified path.

    Args:
        file_path: The Path object pointing to the .json file.

    Returns:
        The raw, unparsed JSON document.

    Raises:
        MissionLoadError: If the file is not found, is not a file,
                          or contains invalid JSON.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise MissionLoadError(f"Mission file not found: {file_path}")
    if not file_path.is_file():
        raise MissionLoadError(f"Path is not a file: {file_path}")

    try:
        with open(file_path, 'r') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise MissionLoadError(f"Failed to parse JSON in {file_path}: {e}")
    except IOError as e:
        raise MissionLoadError(f"Failed to read file {file_path}: {e}")


def load_mission_information(file_path: Path) -> Dict[str, MissionInformation]:
    """
    Loads mission information payloads keyed by mission name.

    The file holds either a single payload or a list of payloads, each
    shaped {"missionName": ..., "parameters": {...}}.
    """
    data = load_mission_file(file_path)
    payloads: List[Dict[str, Any]] = data if isinstance(data, list) else [data]

    information: Dict[str, MissionInformation] = {}
    for payload in payloads:
        try:
            info = MissionInformation.from_payload(payload)
        except ValidationError as e:
            raise MissionLoadError(f"Invalid mission information in {file_path}: {e}")
        information[info.mission_name] = info
    return information
