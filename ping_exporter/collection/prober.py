"""
The probing engine: one session, one target, echo request/reply only.

`ProberLoop.run()` blocks the calling thread with the send/tick path while a
second thread reads replies with a bounded wait. Outcomes are delivered to
sample observers as they happen and a single summary is delivered once the
loop reaches STOPPED.
"""
import logging
import math
import random
import threading
import time
from dataclasses import dataclass, field
from enum import Enum

from ping_exporter.collection.codec import DecodeError, build_payload, decode_reply, encode_request
from ping_exporter.collection.correlator import SEQUENCE_MODULO, Correlator, Success
from ping_exporter.collection.statistics import Statistics, StatisticsAggregator

logger = logging.getLogger("PingExporter.Prober")

# Upper bound on a single wait while draining.
DRAIN_POLL_SECONDS = 0.01


class ProberState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class Session:
    target: str
    interval: float = 1.0
    timeout: float = 2.0
    count: int = -1
    identifier: int = field(default_factory=lambda: random.getrandbits(16))
    payload_size: int = 56
    receive_poll: float = 0.1
    privileged: bool = True
    label: str = ""

    def __post_init__(self):
        if not self.label:
            self.label = self.target
        if self.interval <= 0:
            raise ValueError(f"interval must be positive, got {self.interval}")
        if self.timeout <= 0 or not math.isfinite(self.timeout):
            raise ValueError(f"timeout must be positive and finite, got {self.timeout}")
        if self.count < -1:
            raise ValueError(f"count must be -1 or >= 0, got {self.count}")
        if self.receive_poll <= 0:
            raise ValueError(f"receive_poll must be positive, got {self.receive_poll}")
        if math.ceil(self.timeout / self.interval) >= SEQUENCE_MODULO:
            raise ValueError("timeout/interval allows more in-flight probes than 16-bit sequences can tell apart")

    @property
    def receive_wait(self):
        return min(self.receive_poll, self.interval)


@dataclass(frozen=True)
class Sample:
    """Per-probe event. `rtt_ms` is None for lost probes."""
    target_label: str
    target_address: str
    sequence: int
    status: str
    rtt_ms: float | None = None
    nbytes: int = 0
    source_address: str | None = None

    @classmethod
    def from_outcome(cls, session, outcome):
        if isinstance(outcome, Success):
            return cls(
                target_label=session.label,
                target_address=session.target,
                sequence=outcome.sequence,
                status="success",
                rtt_ms=outcome.rtt_ms,
                nbytes=outcome.nbytes,
                source_address=outcome.source_address,
            )
        status = "timeout" if outcome.reason == "timeout" else "error"
        return cls(session.label, session.target, outcome.sequence, status)


@dataclass(frozen=True)
class SessionSummary:
    target_label: str
    target_address: str
    statistics: Statistics


class ProberLoop:
    def __init__(self, session, transport, aggregator=None):
        self.session = session
        self.transport = transport
        # datagram ICMP sockets dictate the identifier
        self.identifier = transport.identifier if transport.identifier is not None else session.identifier
        self.correlator = Correlator(self.identifier)
        self.aggregator = aggregator or StatisticsAggregator()
        self.packets_sent = 0
        self._payload = build_payload(session.payload_size)
        self._cancel = threading.Event()
        self._receiver_stop = threading.Event()
        self._state = ProberState.IDLE
        self._state_lock = threading.Lock()
        self._sample_observers = []
        self._summary_observers = []

    @property
    def state(self):
        return self._state

    @property
    def cancelled(self):
        return self._cancel.is_set()

    def on_sample(self, callback):
        """Registers callback(Sample). Called from both probing threads."""
        self._sample_observers.append(callback)
        return callback

    def on_summary(self, callback):
        """Registers callback(SessionSummary), called once after all samples."""
        self._summary_observers.append(callback)
        return callback

    def cancel(self):
        self._cancel.set()

    def _set_state(self, state):
        with self._state_lock:
            logger.debug(f"{self.session.label}: {self._state.value} -> {state.value}")
            self._state = state

    def run(self):
        with self._state_lock:
            if self._state is not ProberState.IDLE:
                raise RuntimeError(f"ProberLoop already {self._state.value}")
            self._state = ProberState.RUNNING

        receiver = threading.Thread(
            target=self._receive_loop, name=f"prober-recv-{self.session.label}", daemon=True
        )
        receiver.start()
        try:
            self._tick_loop()
            self._set_state(ProberState.DRAINING)
            self._drain()
        finally:
            self._receiver_stop.set()
            receiver.join()
            for lost in self.correlator.expire_all():
                self._record(lost)
            self._set_state(ProberState.STOPPED)

        summary = SessionSummary(self.session.label, self.session.target, self.aggregator.snapshot())
        for callback in self._summary_observers:
            try:
                callback(summary)
            except Exception as e:
                logger.error(f"Summary observer {callback!r} failed: {e}", exc_info=True)
        return summary

    def _tick_loop(self):
        interval = self.session.interval
        count = self.session.count
        next_tick = time.monotonic()
        while True:
            if self._cancel.is_set():
                logger.info(f"Cancellation observed after {self.packets_sent} probes")
                return
            if 0 <= count <= self.packets_sent:
                logger.debug(f"Count limit {count} reached")
                return

            self._send_probe()
            self._sweep()

            next_tick += interval
            now = time.monotonic()
            if next_tick < now - interval:
                # fell more than a tick behind (e.g. host suspended); do not burst
                next_tick = now
            if self._cancel.wait(max(0.0, next_tick - now)):
                logger.info(f"Cancellation observed after {self.packets_sent} probes")
                return

    def _send_probe(self):
        sequence = self.packets_sent
        self.packets_sent += 1
        packet = encode_request(self.identifier, sequence % SEQUENCE_MODULO, self._payload)
        self.correlator.register(sequence, time.monotonic())
        try:
            self.transport.send(packet, self.session.target)
        except OSError as e:
            logger.warning(f"Send failed for icmp_seq={sequence} to {self.session.target}: {e}")
            lost = self.correlator.discard(sequence)
            if lost is not None:
                self._record(lost)
        else:
            logger.debug(f"Sent icmp_seq={sequence} to {self.session.target}")

    def _sweep(self):
        for lost in self.correlator.sweep_timeouts(time.monotonic(), self.session.timeout):
            logger.debug(f"icmp_seq={lost.sequence} timed out after {self.session.timeout}s")
            self._record(lost)

    def _drain(self):
        deadline = time.monotonic() + self.session.timeout
        while len(self.correlator):
            self._sweep()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(remaining, DRAIN_POLL_SECONDS))
        leftover = self.correlator.expire_all()
        if leftover:
            logger.debug(f"Marking {len(leftover)} outstanding probes lost at end of draining")
        for lost in leftover:
            self._record(lost)

    def _receive_loop(self):
        wait = self.session.receive_wait
        while not self._receiver_stop.is_set():
            try:
                received = self.transport.receive(wait)
            except OSError as e:
                logger.warning(f"Receive failed: {e}")
                self._receiver_stop.wait(wait)
                continue
            except Exception as e:
                # the receive thread must outlive a misbehaving transport
                logger.error(f"Unexpected receive failure: {e}", exc_info=True)
                self._receiver_stop.wait(wait)
                continue
            if received is None:
                continue

            data, source = received
            receive_time = time.monotonic()
            try:
                reply = decode_reply(data, source)
            except DecodeError as e:
                logger.debug(f"Discarding packet from {source}: {e}")
                continue

            outcome = self.correlator.resolve(
                reply.identifier, reply.sequence, receive_time,
                nbytes=reply.nbytes, source_address=reply.source_address,
            )
            if outcome is not None:
                self._record(outcome)

    def _record(self, outcome):
        self.aggregator.update(outcome)
        sample = Sample.from_outcome(self.session, outcome)
        for callback in self._sample_observers:
            try:
                callback(sample)
            except Exception as e:
                logger.error(f"Sample observer {callback!r} failed: {e}", exc_info=True)
