import pytest

from ping_exporter import main as cli
from ping_exporter.collection import lifecycle
from ping_exporter.collection.fake_transport import FakeTransport
from ping_exporter.collection.prober import Sample, SessionSummary
from ping_exporter.collection.statistics import Statistics
from ping_exporter.collection.transport import TransportError
from ping_exporter.utils.report import format_sample, format_summary


def _config(tmp_path):
    path = tmp_path / "ping.ini"
    path.write_text(f"[Logging]\nlog_dir = {tmp_path / 'logs'}\n", encoding="utf-8")
    return str(path)


def test_format_sample():
    sample = Sample("example.org", "192.0.2.10", 3, "success", 1.5, 64, "192.0.2.10")
    assert format_sample(sample) == "64 bytes from 192.0.2.10: icmp_seq=3 time=1.500 ms"
    assert format_sample(Sample("example.org", "192.0.2.10", 4, "timeout")) == "Request timeout for icmp_seq=4"


def test_format_summary():
    stats = Statistics(sent=4, received=3, min_rtt=1.0, max_rtt=3.0, mean_rtt=2.0, variance_rtt=0.25)
    text = format_summary(SessionSummary("example.org", "192.0.2.10", stats))
    assert "--- 192.0.2.10 ping statistics ---" in text
    assert "4 packets transmitted, 3 packets received, 25% packet loss" in text
    assert "round-trip min/avg/max/stddev = 1.000ms/2.000ms/3.000ms/0.500ms" in text


def test_probe_run_end_to_end(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(lifecycle, "open_socket_transport", lambda session: FakeTransport(reply_delay=0.005))
    record = tmp_path / "raw_data.jsonl"

    code = cli.main([
        "--config", _config(tmp_path), "-c", "3", "-i", "50ms", "-t", "500ms",
        "--bind-addr", "127.0.0.1:0", "--record", str(record), "192.0.2.10",
    ])

    out = capsys.readouterr().out
    assert code == 0
    assert "PING 192.0.2.10 (192.0.2.10):" in out
    assert out.count("bytes from 192.0.2.10") == 3
    assert "3 packets transmitted, 3 packets received, 0% packet loss" in out
    assert len(record.read_text(encoding="utf-8").splitlines()) == 3

    assert cli.main(["--config", _config(tmp_path), "--mode", "analyze", "--input", str(record)]) == 0
    assert (tmp_path / "packet_loss.csv").exists()


def test_transport_failure_exits_nonzero(tmp_path, monkeypatch, capsys):
    def refuse(session):
        raise TransportError("Permission denied opening ICMP socket")

    monkeypatch.setattr(lifecycle, "open_socket_transport", refuse)
    code = cli.main(["--config", _config(tmp_path), "--bind-addr", "127.0.0.1:0", "192.0.2.10"])
    assert code == 1
    assert "FATAL: Permission denied" in capsys.readouterr().err


def test_unresolvable_target_exits_nonzero(tmp_path, capsys):
    assert cli.main(["--config", _config(tmp_path), "2001:db8::1"]) == 1
    assert "FATAL" in capsys.readouterr().err


def test_missing_target_prints_usage(tmp_path, capsys):
    assert cli.main(["--config", _config(tmp_path)]) == 2
    assert "usage" in capsys.readouterr().err.lower()


def test_analyze_missing_input(tmp_path):
    assert cli.main(["--config", _config(tmp_path), "--mode", "analyze", "--input", str(tmp_path / "none")]) == 2


@pytest.mark.parametrize("flags", [
    ["-t", "inf"],
    ["-t", "nan"],
    ["-i", "inf"],
    ["-i", "1ms", "-t", "100s"],
])
def test_unusable_timing_exits_before_serving(tmp_path, monkeypatch, capsys, flags):
    def unexpected(session):
        raise AssertionError("transport must not be opened")

    monkeypatch.setattr(lifecycle, "open_socket_transport", unexpected)
    code = cli.main(["--config", _config(tmp_path), "--bind-addr", "127.0.0.1:0", *flags, "192.0.2.10"])

    captured = capsys.readouterr()
    assert code == 1
    assert "FATAL" in captured.err
    assert "Now listening" not in captured.out
