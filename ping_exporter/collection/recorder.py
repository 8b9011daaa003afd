import json
import logging
import os
import queue
import threading
from datetime import datetime, timezone

logger = logging.getLogger("PingExporter.Recorder")


def sample_to_record(sample, timestamp=None):
    """Converts a Sample into a raw_data.jsonl row."""
    return {
        "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
        "target_ip": sample.target_address,
        "probe_type": "icmp",
        "rtt_ms": sample.rtt_ms,
        "status": sample.status,
        "metadata": {
            "target": sample.target_label,
            "icmp_seq": sample.sequence,
            "bytes": sample.nbytes,
            "source": sample.source_address,
        },
    }


class OutcomeRecorder:
    """
    Appends every probe outcome to a JSONL file.

    Samples are queued by the probing threads and written by a dedicated
    writer thread so file I/O never blocks probing. `close()` sends the
    sentinel and waits for the writer to flush.
    """

    def __init__(self, output_file):
        self.output_file = output_file
        self._queue = queue.Queue()
        self._thread = None
        self.written = 0

    def start(self):
        directory = os.path.dirname(self.output_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._thread = threading.Thread(target=self._writer, name="outcome-recorder", daemon=True)
        self._thread.start()
        logger.info(f"Recording probe outcomes to {self.output_file}")
        return self

    def __call__(self, sample):
        self._queue.put(sample_to_record(sample))

    def _writer(self):
        with open(self.output_file, 'a', encoding='utf-8') as f:
            while True:
                record = self._queue.get()
                if record is None:  # Sentinel value to stop the writer
                    break
                try:
                    f.write(json.dumps(record) + '\n')
                    f.flush()
                    self.written += 1
                except (OSError, TypeError, ValueError) as e:
                    logger.error(f"Failed to write record: {e}", exc_info=True)
        logger.debug(f"Recorder finished after {self.written} records")

    def close(self, timeout=5):
        if self._thread is None:
            return
        self._queue.put(None)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Recorder did not finish writing in time")
        self._thread = None
