import heapq
import itertools
import struct
import threading
import time

from ping_exporter.collection.codec import (
    HEADER,
    HEADER_LENGTH,
    ICMP_ECHO_REQUEST,
    checksum,
    encode_reply,
)
from ping_exporter.collection.transport import Transport


def _ipv4_header(source, destination, payload_length):
    header = struct.pack(
        "!BBHHHBBH4s4s",
        0x45, 0, 20 + payload_length, 0, 0, 64, 1, 0,
        bytes(int(part) for part in source.split(".")),
        bytes(int(part) for part in destination.split(".")),
    )
    chk = checksum(header)
    return header[:10] + struct.pack("!H", chk) + header[12:]


class FakeTransport(Transport):
    """
    In-memory stand-in for the ICMP socket.

    Every echo request is answered after `reply_delay` seconds unless
    `drop(sequence)` returns True. Sequences listed in `fail_sends` raise
    OSError from `send`. `inject` queues arbitrary bytes for the receive path.
    """

    def __init__(self, reply_delay=0.005, drop=None, fail_sends=(), with_ip_header=True,
                 local_address="192.0.2.1"):
        self.reply_delay = reply_delay
        self.drop = drop or (lambda sequence: False)
        self.fail_sends = set(fail_sends)
        self.with_ip_header = with_ip_header
        self.local_address = local_address
        self.sent = []
        self.closed = False
        self._queue = []
        self._counter = itertools.count()
        self._cond = threading.Condition()

    def _push(self, deliver_at, data, source):
        with self._cond:
            heapq.heappush(self._queue, (deliver_at, next(self._counter), data, source))
            self._cond.notify_all()

    def inject(self, data, source="198.51.100.7", delay=0.0):
        self._push(time.monotonic() + delay, data, source)

    def send(self, packet, address):
        icmp_type, _, _, identifier, sequence = HEADER.unpack_from(packet)
        if icmp_type != ICMP_ECHO_REQUEST:
            raise ValueError(f"FakeTransport only sends echo requests, got type {icmp_type}")
        if sequence in self.fail_sends:
            raise OSError(f"simulated send failure for icmp_seq={sequence}")
        with self._cond:
            self.sent.append((identifier, sequence))
        if self.drop(sequence):
            return

        reply = encode_reply(identifier, sequence, packet[HEADER_LENGTH:])
        if self.with_ip_header:
            reply = _ipv4_header(address, self.local_address, len(reply)) + reply
        self._push(time.monotonic() + self.reply_delay, reply, address)

    def receive(self, timeout):
        deadline = time.monotonic() + max(0.0, timeout)
        with self._cond:
            while True:
                now = time.monotonic()
                if self._queue and self._queue[0][0] <= now:
                    _, _, data, source = heapq.heappop(self._queue)
                    return data, source
                remaining = deadline - now
                if remaining <= 0:
                    return None
                if self._queue:
                    remaining = min(remaining, self._queue[0][0] - now)
                self._cond.wait(remaining)

    def close(self):
        self.closed = True
