"""
Mission Information Parser & Validator
Responsible for validating operator-entered mission parameters against a
schema before any tasks are generated from them.
"""

from typing import Any, Dict, Iterable, List

import jsonschema


class MissionParseError(Exception):
    """Custom exception for errors during mission information parsing."""
    pass


# Shared fragments. Coordinates are plain decimal degrees.
POINT = {
    "type": "object",
    "required": ["lat", "lng"],
    "properties": {
        "lat": {"type": "number", "minimum": -90, "maximum": 90},
        "lng": {"type": "number", "minimum": -180, "maximum": 180},
        "alt": {"type": "number"},
    },
}

WAYPOINTS = {
    "type": "array",
    "items": POINT,
    "minItems": 1,
}

TAKEOFF = {
    "type": "object",
    "required": ["lat", "lng", "alt", "loiter"],
    "properties": {
        "lat": {"type": "number"},
        "lng": {"type": "number"},
        "alt": {"type": "number"},
        "loiter": {
            "type": "object",
            "required": ["lat", "lng", "alt", "radius", "direction"],
            "properties": {
                "lat": {"type": "number"},
                "lng": {"type": "number"},
                "alt": {"type": "number"},
                "radius": {"type": "number", "exclusiveMinimum": 0},
                "direction": {"type": "number"},
            },
        },
    },
}

LAND = {
    "type": "object",
    "required": ["waypoints"],
    "properties": {"waypoints": WAYPOINTS},
}


def build_schema(properties: Dict[str, Any], required: Iterable[str]) -> Dict[str, Any]:
    """
    Wraps per-mission parameter schemas into a schema for the
    "parameters" object of a MissionInformation payload.
    """
    return {
        "type": "object",
        "required": list(required),
        "properties": dict(properties),
    }


def _format_error(error: jsonschema.ValidationError) -> str:
    location = ".".join(str(p) for p in error.absolute_path)
    if location:
        return f"{location}: {error.message}"
    return error.message


def information_errors(parameters: Dict[str, Any], schema: Dict[str, Any]) -> List[str]:
    """
    Lists every schema violation in the parameters, in a stable order.
    An empty list means the parameters are complete.
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(validator.iter_errors(parameters), key=lambda e: list(e.absolute_path))
    return [_format_error(e) for e in errors]
