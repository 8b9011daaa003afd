import pytest

from ping_exporter.collection.correlator import Correlator, Lost, Success


def test_resolve_returns_success_with_rtt():
    correlator = Correlator(identifier=100)
    correlator.register(0, send_time=10.0)

    outcome = correlator.resolve(100, 0, receive_time=10.025, nbytes=64, source_address="192.0.2.1")
    assert isinstance(outcome, Success)
    assert outcome.sequence == 0
    assert outcome.rtt_ms == pytest.approx(25.0)
    assert outcome.nbytes == 64
    assert len(correlator) == 0


def test_duplicate_registration_is_an_error():
    correlator = Correlator(identifier=1)
    correlator.register(5, 0.0)
    with pytest.raises(ValueError):
        correlator.register(5, 1.0)


def test_foreign_identifier_leaves_pending_set_untouched():
    correlator = Correlator(identifier=1)
    correlator.register(0, 0.0)

    assert correlator.resolve(2, 0, 0.01) is None
    assert len(correlator) == 1
    assert isinstance(correlator.resolve(1, 0, 0.01), Success)


def test_reply_is_matched_only_once():
    correlator = Correlator(identifier=1)
    correlator.register(0, 0.0)
    assert correlator.resolve(1, 0, 0.01) is not None
    assert correlator.resolve(1, 0, 0.02) is None
    assert correlator.resolve(1, 9, 0.02) is None


def test_sweep_evicts_only_expired_probes():
    correlator = Correlator(identifier=1)
    for sequence, sent_at in enumerate([0.0, 1.0, 2.0]):
        correlator.register(sequence, sent_at)

    lost = correlator.sweep_timeouts(now=2.5, timeout=1.0)
    assert lost == [Lost(0), Lost(1)]
    assert len(correlator) == 1
    assert correlator.sweep_timeouts(now=2.5, timeout=1.0) == []


def test_wire_sequence_wraps_at_16_bits():
    correlator = Correlator(identifier=1)
    correlator.register(65536 + 3, 0.0)

    outcome = correlator.resolve(1, 3, 0.001)
    assert outcome.sequence == 65539


def test_discard_and_expire_all():
    correlator = Correlator(identifier=1)
    correlator.register(0, 0.0)
    correlator.register(1, 0.0)
    correlator.register(2, 0.0)

    assert correlator.discard(1) == Lost(1, reason="send-error")
    assert correlator.discard(1) is None
    assert correlator.expire_all() == [Lost(0), Lost(2)]
    assert len(correlator) == 0
