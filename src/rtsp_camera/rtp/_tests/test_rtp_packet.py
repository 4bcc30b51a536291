import pytest

from rtsp_camera.errors import DepacketizeError
from rtsp_camera.rtp import SequenceTracker, TimestampDecoder, build_rtp, parse_rtp


def _header(*, x=0, p=0, m=0, pt=96, seq=1, ts=1000, ssrc=5) -> bytes:
    b0 = 0x80 | (p << 5) | (x << 4)
    b1 = (m << 7) | pt
    return bytes([b0, b1]) + seq.to_bytes(2, "big") + ts.to_bytes(4, "big") + ssrc.to_bytes(4, "big")


def test_parse_plain_packet():
    pkt = parse_rtp(_header(m=1, seq=42, ts=123456) + b"\x65abc")
    assert pkt.seq == 42
    assert pkt.ts == 123456
    assert pkt.m == 1
    assert pkt.pt == 96
    assert bytes(pkt.data) == b"\x65abc"


def test_parse_strips_extension_and_padding():
    ext = b"\xbe\xde\x00\x01" + b"\x01\x02\x03\x04"
    padding = b"\x00\x00\x03"
    pkt = parse_rtp(_header(x=1, p=1) + ext + b"\x41xyz" + padding)
    assert bytes(pkt.data) == b"\x41xyz"


@pytest.mark.parametrize("raw", [b"\x80\x60", b"\x40" + b"\x00" * 15])
def test_parse_rejects_garbage(raw):
    with pytest.raises(DepacketizeError):
        parse_rtp(raw)


def test_build_round_trips_header_fields():
    pkt = build_rtp(b"\x65", payload_type=96, sequence_number=70000, timestamp=(1 << 32) + 5, ssrc=9, marker=True)
    again = parse_rtp(bytes(pkt))
    assert again.seq == 70000 % 65536
    assert again.ts == 5
    assert again.m == 1
    assert again.ssrc == 9


def test_timestamp_decoder_handles_wrap():
    dec = TimestampDecoder(90000)
    assert dec.decode((1 << 32) - 4500) == 0.0
    assert dec.decode(4500) == pytest.approx(0.1)
    assert dec.decode(9000) == pytest.approx(0.15)


def test_sequence_tracker_counts_gaps():
    tracker = SequenceTracker()
    assert tracker.lost_before(65534) == 0
    assert tracker.lost_before(65535) == 0
    assert tracker.lost_before(2) == 2
    # late duplicate is not a loss
    assert tracker.lost_before(1) == 0
    assert tracker.lost_before(3) == 0
