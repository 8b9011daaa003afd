import ipaddress
import socket

import pytest

from ping_exporter.utils.resolver import ResolutionError, resolve_target


def test_ip_literal_passes_through(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("literals must not be looked up")

    monkeypatch.setattr(socket, "getaddrinfo", fail)
    assert resolve_target("192.0.2.10") == "192.0.2.10"


@pytest.mark.parametrize("host", ["", "2001:db8::1"])
def test_unsupported_targets(host):
    with pytest.raises(ResolutionError):
        resolve_target(host)


def test_hosts_file_name_resolves():
    assert ipaddress.ip_address(resolve_target("localhost")).is_loopback


def test_hostname_resolves_to_first_ipv4_address(monkeypatch):
    calls = []

    def fake_getaddrinfo(host, port, family):
        calls.append((host, family))
        return [
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("198.51.100.4", 0)),
            (socket.AF_INET, socket.SOCK_DGRAM, 17, "", ("198.51.100.4", 0)),
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("198.51.100.5", 0)),
        ]

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
    assert resolve_target("example.org") == "198.51.100.4"
    assert calls == [("example.org", socket.AF_INET)]


def test_lookup_failure_is_reported(monkeypatch):
    def fake_getaddrinfo(host, port, family):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
    with pytest.raises(ResolutionError, match="Unable to resolve"):
        resolve_target("does-not-exist.invalid")


@pytest.mark.parametrize("host", ["foo..bar", "a" * 64 + ".com"])
def test_malformed_names_are_reported(host):
    with pytest.raises(ResolutionError):
        resolve_target(host)
