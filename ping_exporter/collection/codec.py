"""
ICMPv4 echo request/reply encoding and decoding.

Raw sockets deliver the IPv4 header in front of the ICMP message, datagram
ICMP sockets do not; `decode_reply` accepts both.
"""
import struct
from dataclasses import dataclass

ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8

HEADER = struct.Struct("!BBHHH")
HEADER_LENGTH = HEADER.size


class DecodeError(ValueError):
    """The packet is not a well-formed echo reply."""


@dataclass(frozen=True)
class EchoReply:
    identifier: int
    sequence: int
    payload: bytes
    source_address: str | None = None

    @property
    def nbytes(self):
        """Size of the ICMP message (header plus payload)."""
        return HEADER_LENGTH + len(self.payload)


def checksum(data: bytes) -> int:
    """RFC 1071 internet checksum."""
    if len(data) % 2:
        data += b"\x00"
    total = sum(struct.unpack("!%dH" % (len(data) // 2), data))
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def _encode(icmp_type: int, identifier: int, sequence: int, payload: bytes) -> bytes:
    if not 0 <= identifier <= 0xFFFF:
        raise ValueError(f"identifier out of range: {identifier}")
    if not 0 <= sequence <= 0xFFFF:
        raise ValueError(f"sequence out of range: {sequence}")
    header = HEADER.pack(icmp_type, 0, 0, identifier, sequence)
    chk = checksum(header + payload)
    return HEADER.pack(icmp_type, 0, chk, identifier, sequence) + payload


def encode_request(identifier: int, sequence: int, payload: bytes = b"") -> bytes:
    return _encode(ICMP_ECHO_REQUEST, identifier, sequence, payload)


def encode_reply(identifier: int, sequence: int, payload: bytes = b"") -> bytes:
    """Builds the echo reply a target would send back for a request."""
    return _encode(ICMP_ECHO_REPLY, identifier, sequence, payload)


def _strip_ip_header(data: bytes):
    """Returns (icmp_message, source_address_or_None)."""
    if len(data) >= 20 and data[0] >> 4 == 4:
        ihl = (data[0] & 0x0F) * 4
        if ihl < 20 or len(data) < ihl:
            raise DecodeError(f"Truncated IPv4 header (ihl={ihl}, length={len(data)})")
        if data[9] != 1:
            raise DecodeError(f"Not an ICMP datagram (protocol={data[9]})")
        source = ".".join(str(b) for b in data[12:16])
        return data[ihl:], source
    return data, None


def decode_reply(data: bytes, source_address: str | None = None) -> EchoReply:
    """
    Parses an echo reply, with or without a leading IPv4 header.

    Args:
        data (bytes): Bytes as read from the socket.
        source_address (str | None): Peer address reported by the socket; used
            when the packet carries no IPv4 header.

    Returns:
        EchoReply: The decoded reply.

    Raises:
        DecodeError: On truncation, a type other than echo reply, or a
            checksum mismatch.
    """
    message, header_source = _strip_ip_header(bytes(data))
    if len(message) < HEADER_LENGTH:
        raise DecodeError(f"Truncated ICMP message ({len(message)} bytes)")

    icmp_type, code, _, identifier, sequence = HEADER.unpack_from(message)
    if icmp_type != ICMP_ECHO_REPLY or code != 0:
        raise DecodeError(f"Not an echo reply (type={icmp_type}, code={code})")
    if checksum(message) != 0:
        raise DecodeError("Checksum mismatch")

    return EchoReply(
        identifier=identifier,
        sequence=sequence,
        payload=message[HEADER_LENGTH:],
        source_address=header_source or source_address,
    )


def build_payload(size: int) -> bytes:
    """Deterministic filler payload of the given size."""
    return bytes(i & 0xFF for i in range(size))
