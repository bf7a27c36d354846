import pytest

from elm327.decoders import (
    CHANNEL_DEFINITIONS,
    CHANNEL_ORDER,
    decode_channel,
    is_no_data,
)
from elm327.errors import DecodeError, ProtocolError


@pytest.mark.parametrize(
    "channel, frame, expected",
    [
        ("engine_speed", "41 0C 1A F8", 1726.0),
        ("engine_speed", "410C0000", 0.0),
        ("vehicle_speed", "41 0D 32", 50.0),
        ("coolant_temperature", "41 05 7B", 83.0),
        ("oil_temperature", "41 5C 28", 0.0),
        ("fuel_level", "41 2F FF", 100.0),
        ("throttle_position", "41 11 00", 0.0),
        ("engine_load", "41 04 80", 128 * 100.0 / 255.0),
        ("intake_airflow", "41 10 01 F4", 5.0),
    ],
)
def test_channel_formulas(channel, frame, expected):
    assert decode_channel(channel, frame) == pytest.approx(expected)


@pytest.mark.parametrize("channel", CHANNEL_ORDER)
def test_frame_shorter_than_minimum_is_rejected(channel):
    decoder = CHANNEL_DEFINITIONS[channel].decoder
    short = (decoder.header + "0" * (2 * decoder.data_bytes))[: decoder.min_length - 1]
    with pytest.raises(DecodeError):
        decoder(short)


def test_header_mismatch_is_rejected():
    with pytest.raises(DecodeError):
        decode_channel("engine_speed", "41 0D 1A F8")


def test_percentage_channels_check_their_own_pid():
    # A throttle response must not be accepted for the fuel level channel.
    with pytest.raises(DecodeError):
        decode_channel("fuel_level", "41 11 40")


def test_non_hex_payload_is_rejected():
    with pytest.raises(DecodeError):
        decode_channel("vehicle_speed", "41 0D ZZ")


@pytest.mark.parametrize("frame", ["41 0D -1", "41 0D +F", "41 0C -1 00"])
def test_signed_hex_payload_is_rejected(frame):
    channel = "engine_speed" if frame.startswith("41 0C") else "vehicle_speed"
    with pytest.raises(DecodeError):
        decode_channel(channel, frame)


def test_multi_line_response_uses_matching_line():
    frame = "SEARCHING...\r41 0C 0F A0"
    assert decode_channel("engine_speed", frame) == pytest.approx(1000.0)


def test_lowercase_hex_is_accepted():
    assert decode_channel("intake_airflow", "41 10 0a 00") == pytest.approx(25.6)


def test_unknown_channel():
    with pytest.raises(DecodeError):
        decode_channel("boost_pressure", "41 0B 10")


def test_decode_error_is_a_protocol_error():
    assert issubclass(DecodeError, ProtocolError)
    assert issubclass(DecodeError, ValueError)


def test_no_data_marker():
    assert is_no_data("NO DATA")
    assert is_no_data("NO DATA\r")
    assert not is_no_data("41 04 80")


def test_request_texts():
    requests = [CHANNEL_DEFINITIONS[channel].decoder.request for channel in CHANNEL_ORDER]
    assert requests == ["010C", "010D", "0105", "015C", "012F", "0111", "0104", "0110"]
