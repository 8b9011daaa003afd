import logging
import select
import socket
from abc import ABC, abstractmethod

logger = logging.getLogger("PingExporter.Transport")


class TransportError(Exception):
    """The ICMP channel could not be opened."""


class Transport(ABC):
    """
    Abstract ICMP channel owned by a single session.

    The prober sends only from its tick thread and receives only from its
    receive thread.
    """

    # Set when the channel dictates the echo identifier (datagram ICMP sockets).
    identifier = None

    @abstractmethod
    def send(self, packet, address):
        """Sends one ICMP message to address. Raises OSError on failure."""

    @abstractmethod
    def receive(self, timeout):
        """
        Waits at most `timeout` seconds for one packet.

        Returns:
            tuple | None: (data, source_address), or None when nothing arrived.
        """

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class IcmpSocketTransport(Transport):
    """
    ICMPv4 over a raw socket (privileged) or a datagram ICMP socket.

    Raw sockets need root or CAP_NET_RAW. Datagram ICMP sockets need the gid
    to be inside net.ipv4.ping_group_range; the kernel then rewrites the echo
    identifier to the socket's local port, which is exposed as `identifier`.
    """

    def __init__(self, privileged=True):
        self.privileged = privileged
        kind = socket.SOCK_RAW if privileged else socket.SOCK_DGRAM
        try:
            self._sock = socket.socket(socket.AF_INET, kind, socket.IPPROTO_ICMP)
        except PermissionError as e:
            hint = ("raw sockets require root/CAP_NET_RAW" if privileged
                    else "check net.ipv4.ping_group_range")
            raise TransportError(f"Permission denied opening ICMP socket ({hint}): {e}") from e
        except OSError as e:
            raise TransportError(f"Unable to open ICMP socket: {e}") from e

        if not privileged:
            self._sock.bind(("", 0))
            self.identifier = self._sock.getsockname()[1]
        logger.debug(f"Opened {'raw' if privileged else 'datagram'} ICMP socket")

    def send(self, packet, address):
        self._sock.sendto(packet, (address, 0))

    def receive(self, timeout):
        ready, _, _ = select.select([self._sock], [], [], max(0.0, timeout))
        if not ready:
            return None
        data, addr = self._sock.recvfrom(65535)
        return data, addr[0]

    def close(self):
        self._sock.close()
