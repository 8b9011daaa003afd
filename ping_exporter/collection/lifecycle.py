import logging
import threading

from ping_exporter.collection.prober import ProberLoop
from ping_exporter.collection.transport import IcmpSocketTransport

logger = logging.getLogger("PingExporter.Lifecycle")


def open_socket_transport(session):
    return IcmpSocketTransport(privileged=session.privileged)


class ProberHandle:
    """A running session: its loop, its thread and the final summary."""

    def __init__(self, loop, transport):
        self.loop = loop
        self.transport = transport
        self.summary = None
        self.error = None
        self._thread = None
        self._stop_lock = threading.Lock()
        self._stop_requested = False

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    @property
    def stop_requested(self):
        return self._stop_requested

    def _run(self):
        try:
            self.summary = self.loop.run()
        except Exception as e:
            self.error = e
            logger.error(f"Prober for {self.loop.session.label} failed: {e}", exc_info=True)
        finally:
            self.transport.close()

    def stop(self):
        """Requests draining. Only the first call has an effect."""
        with self._stop_lock:
            if self._stop_requested:
                logger.debug("Stop already requested; ignoring")
                return False
            self._stop_requested = True
        logger.info(f"Stopping prober for {self.loop.session.label}")
        self.loop.cancel()
        return True

    def wait(self, timeout=None):
        """Joins the prober thread. Returns the SessionSummary once stopped, else None."""
        if self._thread is not None:
            self._thread.join(timeout)
        return None if self.running else self.summary


class LifecycleController:
    """
    Starts and stops prober sessions.

    The injected sink receives every RTT synchronously from the receive path,
    so a scrape always sees the most recently resolved probe.
    """

    def __init__(self, sink=None, transport_factory=None):
        self.sink = sink
        self.transport_factory = transport_factory or open_socket_transport

    def start(self, session, sample_observers=(), summary_observers=()):
        """
        Opens the transport and launches the prober thread.

        Raises:
            TransportError: When the ICMP channel cannot be opened.
        """
        transport = self.transport_factory(session)
        loop = ProberLoop(session, transport)
        if self.sink is not None:
            self.sink.track_statistics(session.label, loop.aggregator.snapshot)
            loop.on_sample(self._publish)
        for callback in sample_observers:
            loop.on_sample(callback)
        for callback in summary_observers:
            loop.on_summary(callback)

        handle = ProberHandle(loop, transport)
        handle._thread = threading.Thread(target=handle._run, name=f"prober-{session.label}", daemon=True)
        handle._thread.start()
        logger.info(
            f"Probing {session.label} ({session.target}) every {session.interval}s, "
            f"timeout {session.timeout}s, count {session.count}"
        )
        return handle

    def stop(self, handle):
        return handle.stop()

    def _publish(self, sample):
        if sample.rtt_ms is None:
            return
        try:
            self.sink.set(sample.target_label, sample.rtt_ms)
        except Exception as e:
            logger.error(f"Failed to publish sample for {sample.target_label}: {e}")
