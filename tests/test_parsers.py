from datetime import datetime, timezone

import pytest

from exceptions import AlignmentError, ChannelFetchError, ReadingsFetchError, RegistryFormatError
from models import ChannelDefinition, ChannelSchema, Reading, ReadingSet
from parsers import (
    decode_channel_schema,
    decode_label,
    decode_multiplier,
    decode_readings,
    decode_registry,
    decode_unit,
    decode_value,
)


REGISTRY = (
    "------ REGISTRY ------\r\n"
    "PKEY;ID_DEVICE;NAME_CUSTOMER;MANF_CODE;VERSION;MEDIUM\r\n"
    "1;12345678;Flat 1;CAL;01;04\r\n"
    "2;87654321;Flat 2;CAL;02;07\r\n"
    "\r\n"
)


def test_registry_zips_headers_with_each_row_in_order():
    records = decode_registry(REGISTRY)

    assert len(records) == 2
    assert records[0].as_dict() == {
        "PKEY": "1", "ID_DEVICE": "12345678", "NAME_CUSTOMER": "Flat 1",
        "MANF_CODE": "CAL", "VERSION": "01", "MEDIUM": "04",
    }
    assert records[1].device_serial == "87654321"
    assert records[1].customer_name == "Flat 2"


def test_registry_device_path_uses_manufacturer_medium_version():
    record = decode_registry(REGISTRY)[0]
    assert record.device_path == "DB/12345678-CAL0401"


def test_registry_short_row_leaves_missing_columns_empty():
    payload = "title\r\nA;B;C\r\n1;2\r\n"
    (record,) = decode_registry(payload)
    assert record.get("B") == "2"
    assert record.get("C") is None


def test_registry_error_marker_wins_over_structure():
    with pytest.raises(RegistryFormatError):
        decode_registry("title\r\nA;B\r\nERROR;1\r\n")


def test_registry_without_header_is_rejected():
    with pytest.raises(RegistryFormatError):
        decode_registry("just a title\r\n")


def test_registry_records_are_read_only():
    record = decode_registry(REGISTRY)[0]
    with pytest.raises(TypeError):
        record.values["ID_DEVICE"] = "other"


# --- Channel schema ---

def _schema_dump(*pairs):
    return "\n".join(line for pair in pairs for line in pair)


def test_schema_drops_pairs_with_two_fields_or_fewer():
    payload = _schema_dump(
        (";LABEL;", ";Unused"),
        (";LABEL;Units;Multiplier;", ";Energy;kWh;0.001;"),
    )
    schema = decode_channel_schema(payload)

    assert len(schema) == 1
    assert schema[0].LABEL == "Energy"
    assert schema[0].Units == "kWh"
    assert schema[0].Multiplier == "0.001"


def test_schema_keeps_filtered_pair_order():
    payload = _schema_dump(
        (";LABEL;", ";A;"),
        (";LABEL;", "x;y"),
        (";LABEL;", ";B;"),
    )
    schema = decode_channel_schema(payload)
    assert [c.LABEL for c in schema] == ["A", "B"]


def test_schema_ignores_trailing_unpaired_line():
    payload = _schema_dump((";LABEL;", ";A;")) + "\n;LABEL;"
    assert [c.LABEL for c in decode_channel_schema(payload)] == ["A"]


def test_schema_splits_on_line_feed_only():
    # A CRLF dump leaves '\r' on the boundary field, which is discarded.
    payload = ";LABEL;T;\r\n;Flow;0;\r\n"
    (channel,) = decode_channel_schema(payload)
    assert channel.LABEL == "Flow"
    assert channel.T == "0"


def test_schema_full_definition():
    keys = ";SU;ST;T;TV;Description;Units;LABEL;TOLOG;MAINDB;TYPELOG;Multiplier;"
    values = ";0;1;0;2;Supply temp;C;Temp;1;1;0;0.01;"
    (channel,) = decode_channel_schema(keys + "\n" + values)
    assert channel == ChannelDefinition(
        SU="0", ST="1", T="0", TV="2", Description="Supply temp", Units="C",
        LABEL="Temp", TOLOG="1", MAINDB="1", TYPELOG="0", Multiplier="0.01",
    )


def test_schema_error_marker():
    with pytest.raises(ChannelFetchError):
        decode_channel_schema("ERROR 404\n")


# --- Channel helpers ---

def test_label_appends_non_zero_t_su_st_in_order():
    assert decode_label(ChannelDefinition(LABEL="Temp", T="0", SU="1", ST="0")) == "Temp - 1"
    assert decode_label(ChannelDefinition(LABEL="E", T="2", SU="3", ST="4")) == "E - 2 - 3 - 4"
    assert decode_label(ChannelDefinition(LABEL="E", T="0", SU="0", ST="0")) == "E"


@pytest.mark.parametrize(
    "units, expected",
    [
        (" kWh ", "kWh"),
        ("", None),
        ("   ", None),
        ("date e time", None),
        (None, None),
    ],
)
def test_decode_unit(units, expected):
    assert decode_unit(ChannelDefinition(Units=units)) == expected


def test_multiplier_defaults():
    assert decode_multiplier(ChannelDefinition()) == 1.0
    assert decode_multiplier(ChannelDefinition(Multiplier="")) == 0.0
    assert decode_multiplier(ChannelDefinition(Multiplier="2.5")) == 2.5


def test_value_scaling_rules():
    assert decode_value("10", ChannelDefinition(Multiplier="2.5")) == 25.0
    assert decode_value("7", ChannelDefinition()) == 7
    assert decode_value("ABC", ChannelDefinition(Multiplier="2.5")) == "ABC"
    assert decode_value(None, ChannelDefinition()) is None
    # Multiplier 0 publishes the raw number
    assert decode_value("1234.5678", ChannelDefinition(Multiplier="0")) == 1234.5678
    # Two decimals, half rounds up
    assert decode_value("1.005", ChannelDefinition(Multiplier="10")) == 10.05
    assert decode_value("12345", ChannelDefinition(Multiplier="0.001")) == 12.35


@pytest.mark.parametrize("raw", ["Infinity", "-inf", "1e400"])
def test_non_finite_values_pass_through_as_text(raw):
    assert decode_value(raw, ChannelDefinition(Multiplier="0.001")) == raw
    assert decode_value(raw, ChannelDefinition(Multiplier="0")) == raw


def test_underscore_literals_are_not_numbers():
    assert decode_value("1_000", ChannelDefinition(Multiplier="2")) == "1_000"


def test_scaling_overflow_keeps_unrounded_value():
    assert decode_value("1e307", ChannelDefinition()) == 1e307


def test_non_finite_channel_does_not_block_the_others():
    schema = ChannelSchema((
        ChannelDefinition(LABEL="Energy", Multiplier="0.001"),
        ChannelDefinition(LABEL="Volume"),
    ))
    reading_set = decode_readings("1700000000$x$1e400$12", schema, tz_offset=0)
    assert [r.value for r in reading_set] == ["1e400", 12]


def test_integral_values_are_published_as_int():
    value = decode_value("7", ChannelDefinition())
    assert value == 7
    assert isinstance(value, int)


# --- Log line ---

SCHEMA = ChannelSchema((
    ChannelDefinition(LABEL="Energy", Units="kWh", Multiplier="0.001", T="0", SU="0", ST="0", Description="Heat"),
    ChannelDefinition(LABEL="Status", Units="date e time", T="0", SU="0", ST="0"),
    ChannelDefinition(LABEL="Volume", Units="m3", T="0", SU="0", ST="0"),
))


def test_readings_align_to_schema_and_use_offset_two():
    reading_set = decode_readings("1700000000$x$12345$OK$9.5\nsecond line$ignored", SCHEMA, tz_offset=0)

    assert reading_set.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert [r.channel_index for r in reading_set] == [0, 1, 2]
    assert reading_set.readings[0].value == 12.35
    assert reading_set.readings[0].unit == "kWh"
    assert reading_set.readings[0].description == "Heat"
    assert reading_set.readings[1].value == "OK"
    assert reading_set.readings[1].unit is None
    assert reading_set.readings[2].value == 9.5


def test_readings_missing_trailing_fields_are_absent():
    reading_set = decode_readings("1700000000$x$1", SCHEMA, tz_offset=0)
    assert len(reading_set) == len(SCHEMA)
    assert reading_set.readings[1].value is None
    assert reading_set.readings[2].value is None


def test_readings_apply_host_offset():
    # A host in UTC+1 reports an offset of -3600.
    reading_set = decode_readings("1700003600$x$1$2$3", SCHEMA, tz_offset=-3600)
    assert reading_set.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_readings_default_offset_comes_from_host(mocker):
    mocker.patch("parsers.host_tz_offset", return_value=7200)
    reading_set = decode_readings("0$x$1$2$3", SCHEMA)
    assert reading_set.timestamp == datetime(1970, 1, 1, 2, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("payload", ["", "ERROR: no log", "1$ERROR$3"])
def test_readings_error_payloads(payload):
    with pytest.raises(ReadingsFetchError):
        decode_readings(payload, SCHEMA, tz_offset=0)


def test_readings_bad_timestamp():
    with pytest.raises(ReadingsFetchError):
        decode_readings("yesterday$x$1", SCHEMA, tz_offset=0)


def test_reading_set_rejects_misaligned_readings():
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    one = Reading(0, "Energy", None, 1, "kWh")
    with pytest.raises(AlignmentError):
        ReadingSet(ts, (one,), SCHEMA)
    with pytest.raises(AlignmentError):
        ReadingSet(ts, (one, Reading(2, "x", None, 1, None), Reading(1, "y", None, 1, None)), SCHEMA)
