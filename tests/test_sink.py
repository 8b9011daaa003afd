import httpx
import pytest

from ping_exporter.collection.correlator import Lost, Success
from ping_exporter.collection.statistics import StatisticsAggregator
from ping_exporter.exposition.sink import MemorySink, PrometheusSink, SinkError

LABELS = {"targetHost": "example.org", "hostname": "probe-host"}


@pytest.fixture
def sink():
    sink = PrometheusSink(hostname="probe-host")
    yield sink
    sink.close()


def test_memory_sink_overwrites():
    sink = MemorySink()
    sink.set("a", 1.0)
    sink.set("a", 2.5)
    assert sink.get("a") == 2.5
    assert sink.get("b") is None
    assert sink.updates == 2


def test_gauge_holds_latest_value(sink):
    sink.set("example.org", 12.5)
    sink.set("example.org", 8.25)
    assert sink.registry.get_sample_value("ping_rtt", LABELS) == 8.25
    assert b"Historical ping RTTs over time (ms)" in sink.exposition()


def test_statistics_read_at_scrape_time(sink):
    aggregator = StatisticsAggregator()
    sink.track_statistics("example.org", aggregator.snapshot)
    assert sink.registry.get_sample_value("ping_packets_sent", LABELS) == 0
    assert sink.registry.get_sample_value("ping_rtt_avg_ms", LABELS) is None

    aggregator.update(Success(sequence=0, rtt_ms=10.0, nbytes=64, source_address=None))
    aggregator.update(Lost(1))

    assert sink.registry.get_sample_value("ping_packets_sent", LABELS) == 2
    assert sink.registry.get_sample_value("ping_packets_received", LABELS) == 1
    assert sink.registry.get_sample_value("ping_packet_loss_percent", LABELS) == 50.0
    assert sink.registry.get_sample_value("ping_rtt_avg_ms", LABELS) == 10.0


def test_serves_only_metrics_path(sink):
    sink.set("example.org", 3.0)
    port = sink.serve("127.0.0.1:0", "/probe-metrics")

    response = httpx.get(f"http://127.0.0.1:{port}/probe-metrics", timeout=5)
    assert response.status_code == 200
    assert 'ping_rtt{' in response.text
    assert 'targetHost="example.org"' in response.text

    assert httpx.get(f"http://127.0.0.1:{port}/other", timeout=5).status_code == 404


def test_bind_failure_raises(sink):
    port = sink.serve("127.0.0.1:0")
    other = PrometheusSink(hostname="probe-host")
    with pytest.raises(SinkError):
        other.serve(f"127.0.0.1:{port}")


def test_tracking_same_label_again_replaces_collector(sink):
    first, second = StatisticsAggregator(), StatisticsAggregator()
    first.update(Lost(0))
    sink.track_statistics("example.org", first.snapshot)

    second.update(Success(sequence=0, rtt_ms=4.0, nbytes=64, source_address=None))
    second.update(Success(sequence=1, rtt_ms=6.0, nbytes=64, source_address=None))
    sink.track_statistics("example.org", second.snapshot)

    assert sink.registry.get_sample_value("ping_packets_sent", LABELS) == 2
    assert sink.registry.get_sample_value("ping_packet_loss_percent", LABELS) == 0.0
    assert sink.exposition().count(b"ping_packets_sent{") == 1


def test_close_releases_tracked_statistics(sink):
    sink.track_statistics("example.org", StatisticsAggregator().snapshot)
    sink.close()
    assert sink.registry.get_sample_value("ping_packets_sent", LABELS) is None
    sink.track_statistics("example.org", StatisticsAggregator().snapshot)
