"""Splitting and dialling protocol-prefixed network addresses."""

from __future__ import annotations

import socket

_INET_FAMILIES = {
    "tcp": (socket.AF_UNSPEC, socket.SOCK_STREAM),
    "tcp4": (socket.AF_INET, socket.SOCK_STREAM),
    "tcp6": (socket.AF_INET6, socket.SOCK_STREAM),
    "udp": (socket.AF_UNSPEC, socket.SOCK_DGRAM),
    "udp4": (socket.AF_INET, socket.SOCK_DGRAM),
    "udp6": (socket.AF_INET6, socket.SOCK_DGRAM),
}


def protocol_and_address(listen_addr: str) -> tuple[str, str]:
    """Split ``proto://address`` into its parts; the protocol defaults to tcp."""
    protocol, sep, address = listen_addr.partition("://")
    if not sep:
        return "tcp", listen_addr
    return protocol, address


def _split_host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"address {address}: missing port in address")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        return host, int(port)
    except ValueError as exc:
        raise ValueError(f"address {address}: invalid port") from exc


def connect(proto_addr: str) -> socket.socket:
    """Open a connection to ``proto_addr`` such as tcp://127.0.0.1:8080."""
    proto, address = protocol_and_address(proto_addr)
    if proto == "unix":
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.connect(address)
        except OSError:
            sock.close()
            raise
        return sock

    if proto not in _INET_FAMILIES:
        raise ValueError(f"dial {proto}: unknown network {proto}")
    family, sock_type = _INET_FAMILIES[proto]
    host, port = _split_host_port(address)
    last_error: OSError | None = None
    for af, stype, proto_num, _, sockaddr in socket.getaddrinfo(
        host or None, port, family, sock_type
    ):
        sock = socket.socket(af, stype, proto_num)
        try:
            sock.connect(sockaddr)
        except OSError as exc:
            sock.close()
            last_error = exc
            continue
        return sock
    raise last_error or OSError(f"dial {proto} {address}: no addresses found")