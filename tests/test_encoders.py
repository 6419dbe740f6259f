"""Unit tests for the CSV, JSON, Eagle.io and AQS encoders."""

from __future__ import annotations

import csv
import io
import json
import xml.etree.ElementTree as ET

import pytest

from services.encoders import (
    CSV_HEADERS,
    AqsSubmission,
    encode_aqs_xml,
    encode_csv,
    encode_eagle_io,
    encode_json,
)
from services.errors import EncodingFailed
from services.normalizer import normalize
from tests.helpers import FIXED_NOW, raw_payload

NS = "{http://www.epa.gov/aqs}"

AQS_RECORD_FIELDS = [
    "StateCode",
    "CountyCode",
    "SiteNumber",
    "ParameterCode",
    "POC",
    "Latitude",
    "Longitude",
    "Datum",
    "CollectionDate",
    "CollectionTime",
    "SampleValue",
    "UnitsOfMeasure",
    "MDL",
    "MethodType",
    "MethodCode",
    "MethodDescription",
    "SampleDuration",
    "SampleFrequency",
]


def _readings(*payloads):
    return [normalize(payload, 1.0, captured_at=FIXED_NOW) for payload in payloads]


def _parse_csv(content: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content)))


def test_csv_has_header_and_rows_in_order() -> None:
    readings = _readings(
        raw_payload(sensor_index=1, name="First"),
        raw_payload(sensor_index=2, name="Second"),
        raw_payload(sensor_index=3, name="Third"),
    )

    payload = encode_csv(readings, FIXED_NOW)
    rows = _parse_csv(payload.content)

    assert rows[0] == list(CSV_HEADERS)
    assert len(rows) == 4
    assert [row[0] for row in rows[1:]] == ["1", "2", "3"]
    assert payload.record_count == 3


def test_csv_quotes_every_field_and_blanks_nulls() -> None:
    readings = _readings(raw_payload(pressure=5000, humidity=0))

    payload = encode_csv(readings, FIXED_NOW)
    lines = payload.content.split("\n")
    row = _parse_csv(payload.content)[1]

    assert lines[1].startswith('"') and lines[1].endswith('"')
    assert len(lines[1][1:-1].split('","')) == len(CSV_HEADERS)
    assert row[2] == "2024-01-01T00:00:00.000Z"
    assert row[4] == "12.3"
    assert row[6] == "0"
    assert row[8] == ""
    assert row[9:] == ["37.7749", "-122.4194"]
    assert '""' in lines[1]


def test_csv_with_no_readings_still_has_header() -> None:
    payload = encode_csv([], FIXED_NOW)

    assert _parse_csv(payload.content) == [list(CSV_HEADERS)]
    assert payload.record_count == 0
    assert payload.filename == "lavendair_export_2024-01-02.csv"


def test_csv_uses_newline_separator() -> None:
    payload = encode_csv(_readings(raw_payload()), FIXED_NOW)

    assert "\r" not in payload.content
    assert payload.content.count("\n") == 2


def test_json_keeps_nulls_and_uses_two_space_indent() -> None:
    readings = _readings(raw_payload(temperature=200))

    payload = encode_json(readings, FIXED_NOW)
    decoded = json.loads(payload.content)

    assert payload.content.startswith("[\n  {\n    ")
    assert decoded[0]["measurements"]["temperature"] is None
    assert decoded[0]["measurements"]["pm2_5"] == 12.3
    assert decoded[0]["sensor_id"] == "131075"
    assert decoded[0]["last_seen"] == "2024-01-01T00:00:00.000Z"
    assert decoded[0]["captured_at"] == "2024-01-02T03:04:05.000Z"
    assert decoded[0]["location"] == {"latitude": 37.7749, "longitude": -122.4194}
    assert payload.filename.endswith(".json")


def test_eagle_io_payload_tags_quality() -> None:
    readings = _readings(raw_payload(sensor_index=9, humidity=None))

    payload = encode_eagle_io(readings, FIXED_NOW)
    document = json.loads(payload.content)

    assert document == payload.document
    assert document["timestamp"] == "2024-01-02T03:04:05.000Z"
    node = document["data"][0]
    assert node["nodeId"] == "9"
    assert node["name"] == "Backyard"
    assert list(node["parameters"]) == [
        "PM1.0",
        "PM2.5",
        "PM10",
        "Humidity",
        "Temperature",
        "Pressure",
    ]
    assert node["parameters"]["PM2.5"] == {"value": 12.3, "unit": "μg/m³", "quality": "good"}
    assert node["parameters"]["Humidity"] == {"value": None, "unit": "%", "quality": "bad"}
    assert node["parameters"]["Temperature"]["unit"] == "°C"
    assert node["parameters"]["Pressure"]["unit"] == "hPa"


def test_aqs_document_has_one_record_per_reading_with_fixed_fields() -> None:
    readings = _readings(
        raw_payload(sensor_index=1),
        raw_payload(sensor_index=2, **{"pm2.5_atm": None}),
    )

    payload = encode_aqs_xml(readings, FIXED_NOW)
    root = ET.fromstring(payload.content)
    records = root.findall(f"{NS}RawData/{NS}Record")

    assert payload.content.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert payload.record_count == 2
    assert len(records) == 2
    for record in records:
        assert [child.tag.removeprefix(NS) for child in record] == AQS_RECORD_FIELDS

    first, second = records
    assert first.findtext(f"{NS}StateCode") == "06"
    assert first.findtext(f"{NS}CountyCode") == "001"
    assert first.findtext(f"{NS}SiteNumber") == "0001"
    assert first.findtext(f"{NS}ParameterCode") == "88101"
    assert first.findtext(f"{NS}POC") == "1"
    assert first.findtext(f"{NS}Datum") == "WGS84"
    assert first.findtext(f"{NS}CollectionDate") == "2024-01-01"
    assert first.findtext(f"{NS}CollectionTime") == "00:00:00"
    assert first.findtext(f"{NS}SampleValue") == "12.3"
    assert first.findtext(f"{NS}UnitsOfMeasure") == "Micrograms/cubic meter (LC)"
    assert first.findtext(f"{NS}MethodType") == "FEM"
    assert first.findtext(f"{NS}MethodCode") == "170"
    assert first.findtext(f"{NS}MethodDescription") == "PurpleAir Sensor"
    assert first.findtext(f"{NS}SampleDuration") == "1 HOUR"
    assert first.findtext(f"{NS}SampleFrequency") == "CONTINUOUS"
    assert second.find(f"{NS}SampleValue") is not None
    assert not second.findtext(f"{NS}SampleValue")


def test_aqs_header_and_filename() -> None:
    submission = AqsSubmission(
        state_code="53",
        county_code="033",
        site_number="0080",
        submitter_name="Air Team",
        submitter_email="air@example.org",
        organization_name="Clean Air Agency",
    )

    payload = encode_aqs_xml(_readings(raw_payload()), FIXED_NOW, submission)
    root = ET.fromstring(payload.content)
    header = root.find(f"{NS}Header")

    expected_id = f"LAVENDAIR_{int(FIXED_NOW.timestamp() * 1000)}"
    assert payload.submission_id == expected_id
    assert payload.filename == f"AQS_Export_{expected_id}.xml"
    assert [child.tag.removeprefix(NS) for child in header] == [
        "SubmissionId",
        "SubmissionDate",
        "SubmitterName",
        "SubmitterEmail",
        "OrganizationName",
    ]
    assert header.findtext(f"{NS}SubmissionId") == expected_id
    assert header.findtext(f"{NS}SubmissionDate") == "2024-01-02T03:04:05.000Z"
    assert header.findtext(f"{NS}OrganizationName") == "Clean Air Agency"
    record = root.find(f"{NS}RawData/{NS}Record")
    assert record.findtext(f"{NS}StateCode") == "53"
    assert record.findtext(f"{NS}SiteNumber") == "0080"


def test_aqs_escapes_markup_in_submitter_fields() -> None:
    submission = AqsSubmission(organization_name="Smith & <Sons>")

    payload = encode_aqs_xml([], FIXED_NOW, submission)
    root = ET.fromstring(payload.content)

    assert root.findtext(f"{NS}Header/{NS}OrganizationName") == "Smith & <Sons>"
    assert root.findall(f"{NS}RawData/{NS}Record") == []


def test_encoders_are_deterministic_for_fixed_time() -> None:
    readings = _readings(raw_payload(), raw_payload(sensor_index=5))

    for encoder in (encode_csv, encode_json, encode_eagle_io, encode_aqs_xml):
        assert encoder(readings, FIXED_NOW).content == encoder(readings, FIXED_NOW).content


@pytest.mark.parametrize("encoder", [encode_csv, encode_json, encode_eagle_io, encode_aqs_xml])
def test_malformed_batch_raises_encoding_failed(encoder) -> None:
    with pytest.raises(EncodingFailed):
        encoder([{"sensor_id": "not normalized"}], FIXED_NOW)

    with pytest.raises(EncodingFailed):
        encoder(None, FIXED_NOW)
