import threading
import time
import uuid

import pytest

from rtsp_camera.codec.nalu import Codec
from rtsp_camera.codec.units import DecodedUnit
from rtsp_camera.errors import PassthroughNotEnabledError, SubscriptionNotFoundError
from rtsp_camera.metrics import SUBSCRIPTION_DROPS_TOTAL, SUBSCRIPTIONS_GAUGE, Metrics
from rtsp_camera.passthrough.encoder import PassthroughEncoder
from rtsp_camera.passthrough.registry import SubscriptionRegistry
from rtsp_camera.rtp import H264Packetizer, build_rtp


def _packet(seq):
    return build_rtp(b"\x41\x00", payload_type=96, sequence_number=seq, timestamp=seq * 3000, ssrc=1, marker=True)


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_subscribe_requires_passthrough():
    reg = SubscriptionRegistry(False)
    with pytest.raises(PassthroughNotEnabledError, match="passthrough"):
        reg.subscribe(4, lambda packets: None)
    assert len(reg) == 0


def test_every_subscriber_gets_every_batch_in_order():
    metrics = Metrics()
    reg = SubscriptionRegistry(True, metrics=metrics)
    got_a, got_b = [], []
    a = reg.subscribe(8, got_a.append)
    b = reg.subscribe(8, got_b.append)
    assert a != b
    assert set(reg.ids()) == {a, b}
    assert metrics.gauge(SUBSCRIPTIONS_GAUGE) == 2
    for seq in (1, 2, 3):
        assert reg.publish([_packet(seq)]) == 2
    assert _wait_for(lambda: len(got_a) == 3 and len(got_b) == 3)
    assert [batch[0].seq for batch in got_a] == [1, 2, 3]
    assert [batch[0].seq for batch in got_b] == [1, 2, 3]
    reg.unsubscribe_all()
    assert len(reg) == 0
    assert metrics.gauge(SUBSCRIPTIONS_GAUGE) == 0


def test_unsubscribe_unknown_id_leaves_registry_unchanged():
    reg = SubscriptionRegistry(True)
    assert not reg.has_subscribers
    sub_id = reg.subscribe(2, lambda packets: None)
    assert reg.has_subscribers
    missing = uuid.uuid4()
    with pytest.raises(SubscriptionNotFoundError, match=str(missing)):
        reg.unsubscribe(missing)
    assert reg.ids() == [sub_id]
    reg.unsubscribe(sub_id)
    assert sub_id not in reg
    assert not reg.has_subscribers
    with pytest.raises(SubscriptionNotFoundError):
        reg.unsubscribe(sub_id)


def test_slow_subscriber_does_not_hold_back_others():
    metrics = Metrics()
    reg = SubscriptionRegistry(True, metrics=metrics)
    release = threading.Event()
    fast = []
    errors = []
    reg.subscribe(1, lambda packets: release.wait(5.0), errors.append)
    reg.subscribe(16, fast.append)
    for seq in range(6):
        reg.publish([_packet(seq)])
    assert _wait_for(lambda: len(fast) == 6)
    assert errors
    assert metrics.counter(SUBSCRIPTION_DROPS_TOTAL) == len(errors)
    release.set()
    reg.unsubscribe_all()


def test_empty_batch_not_published():
    reg = SubscriptionRegistry(True)
    received = []
    reg.subscribe(2, received.append)
    assert reg.publish([]) == 0
    reg.unsubscribe_all()
    assert received == []


def _three_packet_unit():
    packetizer = H264Packetizer(payload_max_size=10, payload_type=96, ssrc=77, initial_sequence_number=100)
    encoder = PassthroughEncoder(packetizer, inject_parameter_sets=False)
    idr = b"\x65" + bytes(range(1, 21))
    unit = DecodedUnit(codec=Codec.H264, nalus=(idr,), pts=0.0)
    packets = encoder.encode(unit)
    assert len(packets) == 3
    return packets


def test_encoded_unit_reaches_each_subscriber_once_with_all_packets():
    reg = SubscriptionRegistry(True)
    calls_a, calls_b = [], []
    reg.subscribe(4, calls_a.append)
    reg.subscribe(4, calls_b.append)
    assert reg.publish(_three_packet_unit()) == 2
    assert _wait_for(lambda: len(calls_a) == 1 and len(calls_b) == 1)
    time.sleep(0.05)
    reg.unsubscribe_all()
    for calls in (calls_a, calls_b):
        assert len(calls) == 1
        assert [p.seq for p in calls[0]] == [100, 101, 102]
        assert [p.m for p in calls[0]] == [0, 0, 1]


def test_subscribers_get_independent_packet_copies():
    reg = SubscriptionRegistry(True)
    rewritten = threading.Event()
    seen_by_b = []

    def rewrite(packets):
        for pkt in packets:
            pkt.seq = 9999
        rewritten.set()

    def read(packets):
        rewritten.wait(2.0)
        seen_by_b.append([p.seq for p in packets])

    reg.subscribe(4, rewrite)
    reg.subscribe(4, read)
    packets = _three_packet_unit()
    reg.publish(packets)
    assert _wait_for(lambda: seen_by_b)
    reg.unsubscribe_all()
    assert seen_by_b == [[100, 101, 102]]
    # the producer's packets are untouched too
    assert [p.seq for p in packets] == [100, 101, 102]
