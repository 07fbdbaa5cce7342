"""CSV rendering of data samples."""

from __future__ import annotations

from speckctl.core.capabilities import Capabilities
from speckctl.core.model import Sample

# (Sample attribute, CSV column, capability flag or None when always present)
SAMPLE_FIELDS: tuple[tuple[str, str, str | None], ...] = (
    ("sample_time_secs", "sample_timestamp_utc_secs", None),
    ("temperature", "temperature", "has_temperature_sensor"),
    ("humidity", "humidity", "has_humidity_sensor"),
    ("raw_particle_count", "raw_particles", None),
    ("particle_count", "particle_count", "has_particle_count"),
    ("particle_concentration", "particle_concentration", "has_particle_concentration"),
)


def get_csv_header(caps: Capabilities) -> str:
    columns = [
        column
        for _, column, flag in SAMPLE_FIELDS
        if flag is None or getattr(caps, flag)
    ]
    return ",".join(columns)


def sample_as_csv(sample: Sample | None) -> str:
    if sample is None:
        return ""
    values = []
    for attribute, _, _ in SAMPLE_FIELDS:
        value = getattr(sample, attribute)
        if value is not None:
            values.append(str(value))
    return ",".join(values)
