"""Destination-specific serializers for batches of normalized readings.

Every encoder is a pure function of its inputs. The current time is passed in
explicitly, so two calls with the same readings and ``now`` produce identical
output.
"""

from __future__ import annotations

import csv
import io
import json
import xml.etree.ElementTree as ET
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

from models.readings import NormalizedReading
from services.errors import EncodingFailed

CSV_HEADERS = (
    "Sensor ID",
    "Name",
    "Timestamp",
    "PM1.0 (μg/m³)",
    "PM2.5 (μg/m³)",
    "PM10 (μg/m³)",
    "Humidity (%)",
    "Temperature (°C)",
    "Pressure (hPa)",
    "Latitude",
    "Longitude",
)

# (parameter name, metric key, unit) in payload order.
EAGLE_IO_PARAMETERS = (
    ("PM1.0", "pm1_0", "μg/m³"),
    ("PM2.5", "pm2_5", "μg/m³"),
    ("PM10", "pm10_0", "μg/m³"),
    ("Humidity", "humidity", "%"),
    ("Temperature", "temperature", "°C"),
    ("Pressure", "pressure", "hPa"),
)

AQS_NAMESPACE = "http://www.epa.gov/aqs"
XSI_NAMESPACE = "http://www.w3.org/2001/XMLSchema-instance"
SUBMISSION_PREFIX = "LAVENDAIR"


@dataclass(frozen=True)
class EncodedPayload:
    content: str
    media_type: str
    record_count: int
    filename: Optional[str] = None
    submission_id: Optional[str] = None
    document: Any = None

    @property
    def data(self) -> bytes:
        return self.content.encode("utf-8")

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AqsSubmission:
    """Site codes and submitter details written into an AQS document."""

    state_code: str = "06"
    county_code: str = "001"
    site_number: str = "0001"
    submitter_name: str = "Lavendair User"
    submitter_email: str = "user@example.com"
    organization_name: str = "Lavendair"


@contextmanager
def _encoding(label: str) -> Iterator[None]:
    try:
        yield
    except EncodingFailed:
        raise
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise EncodingFailed(f"Could not encode readings as {label}: {exc}") from exc


def _checked(readings: Sequence[NormalizedReading]) -> List[NormalizedReading]:
    try:
        batch = list(readings)
    except TypeError as exc:
        raise EncodingFailed("Reading batch is not iterable.") from exc
    for index, reading in enumerate(batch):
        if not isinstance(reading, NormalizedReading):
            raise EncodingFailed(
                f"Item {index} of the batch is {type(reading).__name__}, not a normalized reading."
            )
    return batch


def isoformat(moment: Optional[datetime]) -> str:
    """ISO-8601 in UTC with milliseconds and a ``Z`` suffix."""
    if moment is None:
        return ""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def _reading_time(reading: NormalizedReading) -> datetime:
    # History rows carry their sample hour in last_seen; captured_at is only the fetch time.
    return reading.last_seen or reading.captured_at


def reading_to_dict(reading: NormalizedReading) -> Dict[str, Any]:
    return {
        "sensor_id": reading.sensor_id,
        "name": reading.name,
        "last_seen": isoformat(reading.last_seen) or None,
        "location": {
            "latitude": reading.location.latitude,
            "longitude": reading.location.longitude,
        },
        "measurements": dict(reading.measurements),
        "captured_at": isoformat(reading.captured_at),
    }


def _export_filename(now: datetime, extension: str) -> str:
    return f"lavendair_export_{now.astimezone(timezone.utc):%Y-%m-%d}.{extension}"


def encode_csv(readings: Sequence[NormalizedReading], now: datetime) -> EncodedPayload:
    batch = _checked(readings)
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    with _encoding("CSV"):
        writer.writerow(CSV_HEADERS)
        for reading in batch:
            writer.writerow(
                [
                    reading.sensor_id,
                    reading.name or "",
                    isoformat(_reading_time(reading)),
                    format_number(reading.measurement("pm1_0")),
                    format_number(reading.measurement("pm2_5")),
                    format_number(reading.measurement("pm10_0")),
                    format_number(reading.measurement("humidity")),
                    format_number(reading.measurement("temperature")),
                    format_number(reading.measurement("pressure")),
                    format_number(reading.location.latitude),
                    format_number(reading.location.longitude),
                ]
            )
    return EncodedPayload(
        content=buffer.getvalue(),
        media_type="text/csv; charset=utf-8",
        record_count=len(batch),
        filename=_export_filename(now, "csv"),
    )


def encode_json(readings: Sequence[NormalizedReading], now: datetime) -> EncodedPayload:
    batch = _checked(readings)
    with _encoding("JSON"):
        content = json.dumps(
            [reading_to_dict(reading) for reading in batch],
            indent=2,
            ensure_ascii=False,
            allow_nan=False,
        )
    return EncodedPayload(
        content=content,
        media_type="application/json; charset=utf-8",
        record_count=len(batch),
        filename=_export_filename(now, "json"),
    )


def build_eagle_io_document(
    readings: Sequence[NormalizedReading], now: datetime
) -> Dict[str, Any]:
    """Wrap readings into the ``{timestamp, data}`` body Eagle.io ingests."""
    batch = _checked(readings)
    with _encoding("Eagle.io payload"):
        data = []
        for reading in batch:
            parameters = {}
            for label, metric, unit in EAGLE_IO_PARAMETERS:
                value = reading.measurement(metric)
                parameters[label] = {
                    "value": value,
                    "unit": unit,
                    "quality": "good" if value is not None else "bad",
                }
            data.append(
                {
                    "nodeId": reading.sensor_id,
                    "name": reading.name,
                    "timestamp": isoformat(_reading_time(reading)),
                    "parameters": parameters,
                }
            )
    return {"timestamp": isoformat(now), "data": data}


def encode_eagle_io(readings: Sequence[NormalizedReading], now: datetime) -> EncodedPayload:
    document = build_eagle_io_document(readings, now)
    with _encoding("Eagle.io payload"):
        content = json.dumps(document, ensure_ascii=False, allow_nan=False)
    return EncodedPayload(
        content=content,
        media_type="application/json",
        record_count=len(document["data"]),
        document=document,
    )


def submission_id_for(now: datetime) -> str:
    return f"{SUBMISSION_PREFIX}_{int(now.timestamp() * 1000)}"


def _child(parent: ET.Element, tag: str, value: Any = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if value is not None and value != "":
        element.text = str(value)
    return element


def encode_aqs_xml(
    readings: Sequence[NormalizedReading],
    now: datetime,
    submission: Optional[AqsSubmission] = None,
) -> EncodedPayload:
    """Render an EPA AQS submission document.

    Record children are written in a fixed order because downstream parsers
    are position-sensitive. A missing PM2.5 value yields an empty
    ``<SampleValue/>`` element rather than dropping the field.
    """
    batch = _checked(readings)
    submission = submission or AqsSubmission()
    submission_id = submission_id_for(now)

    with _encoding("AQS XML"):
        root = ET.Element("AQSSubmission", {"xmlns": AQS_NAMESPACE, "xmlns:xsi": XSI_NAMESPACE})
        header = ET.SubElement(root, "Header")
        _child(header, "SubmissionId", submission_id)
        _child(header, "SubmissionDate", isoformat(now))
        _child(header, "SubmitterName", submission.submitter_name)
        _child(header, "SubmitterEmail", submission.submitter_email)
        _child(header, "OrganizationName", submission.organization_name)

        raw_data = ET.SubElement(root, "RawData")
        for reading in batch:
            collected = reading.last_seen.astimezone(timezone.utc) if reading.last_seen else None
            record = ET.SubElement(raw_data, "Record")
            _child(record, "StateCode", submission.state_code)
            _child(record, "CountyCode", submission.county_code)
            _child(record, "SiteNumber", submission.site_number)
            _child(record, "ParameterCode", "88101")
            _child(record, "POC", 1)
            _child(record, "Latitude", format_number(reading.location.latitude))
            _child(record, "Longitude", format_number(reading.location.longitude))
            _child(record, "Datum", "WGS84")
            _child(record, "CollectionDate", f"{collected:%Y-%m-%d}" if collected else None)
            _child(record, "CollectionTime", f"{collected:%H:%M:%S}" if collected else None)
            _child(record, "SampleValue", format_number(reading.measurement("pm2_5")))
            _child(record, "UnitsOfMeasure", "Micrograms/cubic meter (LC)")
            _child(record, "MDL", "0.1")
            _child(record, "MethodType", "FEM")
            _child(record, "MethodCode", "170")
            _child(record, "MethodDescription", "PurpleAir Sensor")
            _child(record, "SampleDuration", "1 HOUR")
            _child(record, "SampleFrequency", "CONTINUOUS")

        ET.indent(root, space="  ")
        body = ET.tostring(root, encoding="unicode")

    return EncodedPayload(
        content=f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n',
        media_type="application/xml",
        record_count=len(batch),
        filename=f"AQS_Export_{submission_id}.xml",
        submission_id=submission_id,
    )
