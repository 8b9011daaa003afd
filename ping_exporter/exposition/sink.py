import logging
import socket
import threading
from abc import ABC, abstractmethod
from socketserver import ThreadingMixIn
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, Gauge, generate_latest, make_wsgi_app
from prometheus_client.core import GaugeMetricFamily

from ping_exporter.utils.config_loader import parse_bind_addr

logger = logging.getLogger("PingExporter.Sink")


class SinkError(Exception):
    """The metrics exposition endpoint could not be started."""


class MetricsSink(ABC):
    """
    Destination for live per-probe samples. Implementations must be thread-safe.
    """

    @abstractmethod
    def set(self, label, value):
        """Overwrites the latest value for `label`."""

    def track_statistics(self, label, snapshot):
        """Exposes session statistics read through `snapshot()` at scrape time."""

    def close(self):
        pass


class MemorySink(MetricsSink):
    """Keeps the latest value per label in memory."""

    def __init__(self):
        self._values = {}
        self._snapshots = {}
        self._lock = threading.Lock()
        self.updates = 0

    def set(self, label, value):
        with self._lock:
            self._values[label] = float(value)
            self.updates += 1

    def get(self, label, default=None):
        with self._lock:
            return self._values.get(label, default)

    def track_statistics(self, label, snapshot):
        self._snapshots[label] = snapshot

    def statistics(self, label):
        return self._snapshots[label]()


class StatisticsCollector:
    """Custom collector reading a StatisticsAggregator snapshot on every scrape."""

    def __init__(self, label, hostname, snapshot):
        self.label = label
        self.hostname = hostname
        self.snapshot = snapshot

    def _gauge(self, name, documentation, value):
        family = GaugeMetricFamily(name, documentation, labels=["targetHost", "hostname"])
        family.add_metric([self.label, self.hostname], value)
        return family

    def collect(self):
        stats = self.snapshot()
        yield self._gauge("ping_packets_sent", "Echo requests settled (replied or lost)", stats.sent)
        yield self._gauge("ping_packets_received", "Echo replies received", stats.received)
        yield self._gauge("ping_packet_loss_percent", "Packet loss (%)", stats.loss_percent)
        if stats.received:
            yield self._gauge("ping_rtt_min_ms", "Minimum RTT (ms)", stats.min_rtt)
            yield self._gauge("ping_rtt_avg_ms", "Mean RTT (ms)", stats.mean_rtt)
            yield self._gauge("ping_rtt_max_ms", "Maximum RTT (ms)", stats.max_rtt)
            yield self._gauge("ping_rtt_stddev_ms", "RTT standard deviation (ms)", stats.stddev_rtt)


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


class PrometheusSink(MetricsSink):
    """
    Prometheus gauge `ping_rtt{targetHost, hostname}` on a private registry.

    `serve()` starts a scrape endpoint in a daemon thread; only `metrics_path`
    is answered, other paths get a 404.
    """

    def __init__(self, hostname=None, registry=None):
        self.hostname = hostname or socket.gethostname()
        self.registry = registry or CollectorRegistry()
        self._gauge = Gauge(
            "ping_rtt",
            "Historical ping RTTs over time (ms)",
            ["targetHost", "hostname"],
            registry=self.registry,
        )
        self._collectors = {}
        self._collectors_lock = threading.Lock()
        self._server = None
        self._thread = None

    def set(self, label, value):
        self._gauge.labels(targetHost=label, hostname=self.hostname).set(value)

    def track_statistics(self, label, snapshot):
        """Replaces any collector already tracking `label`."""
        collector = StatisticsCollector(label, self.hostname, snapshot)
        with self._collectors_lock:
            previous = self._collectors.pop(label, None)
            if previous is not None:
                self.registry.unregister(previous)
            self.registry.register(collector)
            self._collectors[label] = collector

    def untrack_statistics(self, label):
        with self._collectors_lock:
            collector = self._collectors.pop(label, None)
            if collector is not None:
                self.registry.unregister(collector)

    def exposition(self):
        return generate_latest(self.registry)

    def serve(self, bind_addr=":9999", metrics_path="/metrics"):
        """
        Starts the scrape endpoint.

        Returns:
            int: The bound port (useful when binding port 0).

        Raises:
            SinkError: When the address cannot be bound.
        """
        host, port = parse_bind_addr(bind_addr)
        metrics_app = make_wsgi_app(self.registry)

        def dispatch(environ, start_response):
            if environ.get("PATH_INFO", "") != metrics_path:
                start_response("404 Not Found", [("Content-Type", "text/plain")])
                return [b"Not Found\n"]
            return metrics_app(environ, start_response)

        try:
            self._server = make_server(
                host or "0.0.0.0", port, dispatch,
                server_class=_ThreadingWSGIServer, handler_class=_QuietHandler,
            )
        except OSError as e:
            raise SinkError(f"Unable to bind metrics server on {bind_addr}: {e}") from e

        self._thread = threading.Thread(target=self._server.serve_forever, name="metrics-server", daemon=True)
        self._thread.start()
        bound_port = self._server.server_port
        logger.info(f"Serving metrics on {host or '0.0.0.0'}:{bound_port}{metrics_path}")
        return bound_port

    def close(self):
        for label in list(self._collectors):
            self.untrack_statistics(label)
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._thread.join(timeout=5)
            self._server = None
