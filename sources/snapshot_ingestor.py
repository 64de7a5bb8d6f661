# snapshot_ingestor.py
"""
Turns one raw poll response into the latest record per bottle.

The data service answers with a JSON array holding one object per bottle
per instant.  Only the scanning / decoding logic lives here: the result is
merged into the session by ``MonitorSession.merge``, never substituted for it.
"""

import math
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from app_logger import logger
from exceptions import ParseException
from models import TelemetryRecord

# ----------------------------------------------------------------------
# Wire field names → model field names
# ----------------------------------------------------------------------
DEVICE_ID_FIELD = "bottle_id"
TIMESTAMP_FIELD = "timestamp"
REMAINING_VOLUME_FIELD = "remaining_volume"

OPTIONAL_NUMERIC_FIELDS = {
    "current_level": "current_level",
    "fill_h": "fill_capacity",
    "infusion_rate": "infusion_rate",
    "time_remaining": "time_remaining_hint",
    "current_percentage": "current_percentage_hint",
}


# ------------------------------------------------------------------
# Field coercion helpers
# ------------------------------------------------------------------
def _to_float(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _to_epoch_seconds(value: Any) -> int:
    """
    Decode a timestamp.  Epoch seconds (number or numeric string) are taken
    as is; ``"YYYY-MM-DD HH:MM:SS"`` and ISO‑8601 strings are read as local
    time unless they carry an offset.
    """
    number = _to_float(value)
    if number is not None:
        return int(number)
    if isinstance(value, str):
        try:
            return int(datetime.fromisoformat(value.strip().replace(" ", "T")).timestamp())
        except ValueError as exc:
            raise ParseException(f"unreadable timestamp {value!r}") from exc
    raise ParseException(f"missing or invalid timestamp {value!r}")


def parse_record(raw: Any) -> TelemetryRecord:
    """
    Decode one element of the poll response.

    Raises
    ------
    ParseException
        If the element is not an object, has no bottle id, has no usable
        timestamp, or carries a remaining volume that is not a number.
    """
    if not isinstance(raw, Mapping):
        raise ParseException(f"record is not an object: {type(raw).__name__}")

    device_id = raw.get(DEVICE_ID_FIELD)
    if device_id is None or isinstance(device_id, bool) or str(device_id).strip() == "":
        raise ParseException("record has no bottle id")

    observed_at = _to_epoch_seconds(raw.get(TIMESTAMP_FIELD))

    raw_volume = raw.get(REMAINING_VOLUME_FIELD)
    remaining_volume = _to_float(raw_volume)
    if raw_volume is not None and remaining_volume is None:
        raise ParseException(f"non-numeric remaining volume {raw_volume!r}")

    optional = {
        model_field: _to_float(raw.get(wire_field))
        for wire_field, model_field in OPTIONAL_NUMERIC_FIELDS.items()
    }
    return TelemetryRecord(
        device_id=str(device_id).strip(),
        observed_at=observed_at,
        remaining_volume=remaining_volume,
        **optional,
    )


def ingest_snapshot(payload: Any) -> Dict[str, TelemetryRecord]:
    """
    Reduce a poll response to one record per bottle, the newest one.

    A payload that is not a list means "no data this cycle" and yields an
    empty dict.  On equal timestamps the record seen last wins.  Malformed
    elements are skipped; the rest of the snapshot is still used.
    """
    if not isinstance(payload, list):
        if payload is not None:
            logger.debug("snapshot is not a list (%s), ignoring", type(payload).__name__)
        return {}

    latest: Dict[str, TelemetryRecord] = {}
    skipped = 0
    for raw in payload:
        try:
            record = parse_record(raw)
        except ParseException as exc:
            skipped += 1
            logger.debug("skipping record: %s", exc)
            continue

        current = latest.get(record.device_id)
        if current is None or record.observed_at >= current.observed_at:
            latest[record.device_id] = record

    if skipped:
        logger.debug("skipped %d of %d records", skipped, len(payload))
    return latest
