import math
import threading
from dataclasses import dataclass

from ping_exporter.collection.correlator import Success


@dataclass(frozen=True)
class Statistics:
    """Point-in-time view of a session. RTT values are in milliseconds."""
    sent: int = 0
    received: int = 0
    min_rtt: float | None = None
    max_rtt: float | None = None
    mean_rtt: float | None = None
    variance_rtt: float | None = None

    @property
    def lost(self):
        return self.sent - self.received

    @property
    def loss_percent(self):
        if self.sent == 0:
            return 0.0
        return (self.sent - self.received) / self.sent * 100.0

    @property
    def stddev_rtt(self):
        if self.variance_rtt is None:
            return None
        return math.sqrt(self.variance_rtt)

    def summary(self):
        """The final-session event payload."""
        return {
            "sent": self.sent,
            "received": self.received,
            "lossPercent": self.loss_percent,
            "minRtt": self.min_rtt,
            "avgRtt": self.mean_rtt,
            "maxRtt": self.max_rtt,
            "stdDevRtt": self.stddev_rtt,
        }


class StatisticsAggregator:
    """
    Running statistics over probe outcomes, O(1) memory.

    Mean and variance use Welford's online algorithm; the variance is the
    population variance of the received RTTs. `update` and `snapshot` share a
    lock so readers never see a half-applied update.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sent = 0
        self._received = 0
        self._min = None
        self._max = None
        self._mean = 0.0
        self._m2 = 0.0

    def update(self, outcome):
        with self._lock:
            self._sent += 1
            if not isinstance(outcome, Success):
                return
            rtt = outcome.rtt_ms
            self._received += 1
            if self._min is None or rtt < self._min:
                self._min = rtt
            if self._max is None or rtt > self._max:
                self._max = rtt
            delta = rtt - self._mean
            self._mean += delta / self._received
            self._m2 += delta * (rtt - self._mean)

    def snapshot(self):
        with self._lock:
            if self._received == 0:
                return Statistics(sent=self._sent, received=0)
            # clamp against rounding drift so min <= mean <= max holds exactly
            mean = min(max(self._mean, self._min), self._max)
            return Statistics(
                sent=self._sent,
                received=self._received,
                min_rtt=self._min,
                max_rtt=self._max,
                mean_rtt=mean,
                variance_rtt=max(0.0, self._m2 / self._received),
            )
