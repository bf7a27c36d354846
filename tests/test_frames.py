import pytest

from elm327.frames import FrameAssembler, encode_request


def test_frame_split_across_chunks():
    assembler = FrameAssembler()
    assert assembler.feed(b"41 0C") is None
    assert assembler.pending == b"41 0C"
    assert assembler.feed(b" 1A F8\r\r>") == "41 0C 1A F8"
    assert assembler.pending == b""


def test_bytes_after_prompt_are_discarded():
    assembler = FrameAssembler()
    assert assembler.feed(b"41 0D 32\r>41 05") == "41 0D 32"
    assert assembler.pending == b""
    assert assembler.feed(b"\r>") == ""


def test_only_one_frame_per_feed():
    assembler = FrameAssembler()
    assert assembler.feed(b"OK>OK>") == "OK"
    assert assembler.feed(b"") is None


def test_clear_drops_partial_frame():
    assembler = FrameAssembler()
    assembler.feed(b"NO DA")
    assembler.clear()
    assert assembler.feed(b"TA>") == "TA"


def test_non_ascii_bytes_do_not_raise():
    assembler = FrameAssembler()
    assert assembler.feed(b"\xff41 0D 10>") == "\ufffd41 0D 10"


def test_terminator_must_be_single_byte():
    with pytest.raises(ValueError):
        FrameAssembler(b">>")


def test_encode_request_appends_carriage_return():
    assert encode_request("010C") == b"010C\r"


def test_prompt_less_stream_is_bounded():
    assembler = FrameAssembler(max_pending=16)
    assert assembler.feed(b"0" * 16) is None
    assert len(assembler.pending) == 16
    assert assembler.feed(b"1") is None
    assert assembler.pending == b""
    assert assembler.feed(b"41 0D 32\r>") == "41 0D 32"
