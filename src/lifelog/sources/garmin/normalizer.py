"""
Garmin activity normalizer.

Converts get_activities() list items into plain field dicts that map
directly onto Activity columns. No DB access here.

List items are flat: activityType, startTimeGMT and startTimeLocal sit at
the top level, and times look like "YYYY-MM-DD HH:MM:SS" (no timezone).
Detail payloads nest the same values under summaryDTO with ISO "T" times;
both shapes are accepted.
"""
import json
from datetime import datetime
from typing import Any, Dict, Optional


def parse_garmin_datetime(s: str) -> datetime:
    """Parse "YYYY-MM-DD HH:MM:SS" or "YYYY-MM-DDTHH:MM:SS.f"."""
    s = s.strip()
    if "T" in s:
        return datetime.strptime(s.split(".")[0], "%Y-%m-%dT%H:%M:%S")
    return datetime.strptime(s, "%Y-%m-%d %H:%M:%S")


def pace_from_speed(speed_ms: Optional[float]) -> Optional[float]:
    """m/s to s/km. None if speed is zero or missing."""
    if speed_ms is None or speed_ms <= 0:
        return None
    return 1000.0 / speed_ms


def activity_start_time(raw: Dict[str, Any]) -> datetime:
    """UTC start time, falling back to the local timestamp when GMT is absent."""
    summary = raw.get("summaryDTO", raw)
    time_str = (
        raw.get("startTimeGMT")
        or summary.get("startTimeGMT")
        or raw.get("startTimeLocal")
        or summary.get("startTimeLocal")
    )
    if time_str is None:
        raise KeyError(
            "Neither 'startTimeGMT' nor 'startTimeLocal' found in activity response. "
            "Keys present: " + str(list(raw.keys()))
        )
    return parse_garmin_datetime(time_str)


def normalize_activity(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a Garmin activity dict into Activity field values.

    Raises:
        KeyError: if the payload lacks an activityId or a start time.
    """
    activity_type = raw.get("activityType") or raw.get("activityTypeDTO") or {}
    if isinstance(activity_type, dict):
        type_key = activity_type.get("typeKey", "other")
    else:
        type_key = str(activity_type)

    summary = raw.get("summaryDTO", raw)

    def pick(key: str) -> Any:
        value = summary.get(key)
        return value if value is not None else raw.get(key)

    return {
        "garmin_activity_id": str(raw["activityId"]),
        "name": raw.get("activityName") or "",
        "activity_type": type_key,
        "start_time_utc": activity_start_time(raw),
        "duration_seconds": float(pick("duration") or 0),
        "distance_meters": float(pick("distance") or 0),
        "avg_hr": pick("averageHR"),
        "max_hr": pick("maxHR"),
        "avg_pace_seconds_per_km": pace_from_speed(pick("averageSpeed")),
        "total_ascent_meters": pick("elevationGain"),
        "calories": pick("calories"),
        "location_name": raw.get("locationName"),
        "raw_summary_json": json.dumps(raw, sort_keys=True),
    }
