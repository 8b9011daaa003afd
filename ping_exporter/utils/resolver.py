import ipaddress
import logging
import socket

logger = logging.getLogger("PingExporter.Resolver")


class ResolutionError(Exception):
    """Raised when the probe target cannot be turned into an IPv4 address."""


def resolve_target(host):
    """
    Resolves a hostname or IP literal to a single IPv4 address string.

    Names go through the system resolver, so /etc/hosts entries such as
    `localhost` resolve the same way they do for the ping utility.

    Args:
        host (str): Hostname or IPv4 address.

    Returns:
        str: The first IPv4 address found for the host.
    """
    if not host:
        raise ResolutionError("No target host given")

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        address = None
    if address is not None:
        if address.version != 4:
            raise ResolutionError(f"Only IPv4 targets are supported, got {host}")
        return str(address)

    try:
        infos = socket.getaddrinfo(host, None, socket.AF_INET)
    except socket.gaierror as e:
        raise ResolutionError(f"Unable to resolve {host}: {e}") from e
    except UnicodeError as e:
        # raised by the idna codec for empty or over-long labels
        raise ResolutionError(f"Invalid hostname {host!r}: {e}") from e

    addresses = list(dict.fromkeys(info[4][0] for info in infos))
    if not addresses:
        raise ResolutionError(f"No IPv4 address for {host}")
    logger.debug(f"Resolved {host} -> {addresses}")
    return addresses[0]
