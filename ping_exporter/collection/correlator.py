import logging
import threading
from dataclasses import dataclass

logger = logging.getLogger("PingExporter.Correlator")

SEQUENCE_MODULO = 1 << 16


@dataclass(frozen=True)
class Probe:
    sequence: int
    identifier: int
    send_time: float

    @property
    def wire_sequence(self):
        return self.sequence % SEQUENCE_MODULO


@dataclass(frozen=True)
class Success:
    sequence: int
    rtt_ms: float
    nbytes: int
    source_address: str | None


@dataclass(frozen=True)
class Lost:
    sequence: int
    reason: str = "timeout"


class Correlator:
    """
    Matches echo replies to the probes this session sent.

    Pending probes are keyed by their 16-bit wire sequence. Every probe leaves
    the pending set exactly once: through `resolve`, `sweep_timeouts`,
    `discard` or `expire_all`.
    """

    def __init__(self, identifier):
        self.identifier = identifier
        self._pending = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._pending)

    def register(self, sequence, send_time):
        probe = Probe(sequence=sequence, identifier=self.identifier, send_time=send_time)
        with self._lock:
            if probe.wire_sequence in self._pending:
                raise ValueError(f"Sequence {sequence} is already in flight")
            self._pending[probe.wire_sequence] = probe
        return probe

    def resolve(self, identifier, sequence, receive_time, nbytes=0, source_address=None):
        """
        Returns a Success for a pending probe, or None when the reply is not ours
        (foreign identifier, unknown or already settled sequence).
        """
        if identifier != self.identifier:
            return None
        with self._lock:
            probe = self._pending.pop(sequence % SEQUENCE_MODULO, None)
        if probe is None:
            logger.debug(f"Reply for unknown or settled icmp_seq={sequence}")
            return None
        rtt_ms = max(0.0, (receive_time - probe.send_time) * 1000.0)
        return Success(sequence=probe.sequence, rtt_ms=rtt_ms, nbytes=nbytes, source_address=source_address)

    def sweep_timeouts(self, now, timeout):
        """Evicts every probe older than `timeout` seconds and reports it lost."""
        with self._lock:
            expired = [key for key, probe in self._pending.items() if now - probe.send_time > timeout]
            probes = [self._pending.pop(key) for key in expired]
        return [Lost(sequence=p.sequence) for p in sorted(probes, key=lambda p: p.sequence)]

    def discard(self, sequence, reason="send-error"):
        """Settles a probe that never made it onto the wire."""
        with self._lock:
            probe = self._pending.pop(sequence % SEQUENCE_MODULO, None)
        if probe is None:
            return None
        return Lost(sequence=probe.sequence, reason=reason)

    def expire_all(self):
        """Marks whatever is still pending as lost (end of draining)."""
        with self._lock:
            probes = sorted(self._pending.values(), key=lambda p: p.sequence)
            self._pending.clear()
        return [Lost(sequence=p.sequence) for p in probes]
