"""
Network utilities for fetch_core.

Helpers shared by the backends and the protocol layers: TLS context
construction and host formatting.
"""

import socket
import ssl
from typing import List, Optional


def create_ssl_context(
    alpn_protocols: Optional[List[str]] = None,
    verify: bool = True,
    cert_file: Optional[str] = None,
    key_file: Optional[str] = None,
) -> ssl.SSLContext:
    """
    Create a client SSL context.

    Args:
        alpn_protocols: Optional list of ALPN protocols to advertise
        verify: Whether to verify the server certificate and hostname
        cert_file: Path to certificate file (for client auth)
        key_file: Path to private key file (for client auth)

    Returns:
        Configured SSL context

    Raises:
        ssl.SSLError: If SSL context creation fails
    """
    context = ssl.create_default_context()

    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if alpn_protocols:
        context.set_alpn_protocols(alpn_protocols)

    context.options |= ssl.OP_NO_COMPRESSION
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    if cert_file:
        context.load_cert_chain(cert_file, key_file)

    return context


def is_ipv6_address(host: str) -> bool:
    """Check if a host string is an IPv6 address."""
    try:
        socket.inet_pton(socket.AF_INET6, host)
        return True
    except (OSError, ValueError):
        return False


def normalize_host(host: str) -> str:
    """
    Normalize hostname for consistent comparison.

    Strips IPv6 brackets and trailing dots and lower-cases the name.
    """
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host.rstrip(".").lower()


def format_host_header(host: str, port: int, scheme: str) -> str:
    """
    Format the Host header (or HTTP/2 :authority) for a request.

    The port is omitted when it is the default for the scheme.
    """
    if is_ipv6_address(host):
        host = f"[{host}]"
    if (scheme == "https" and port == 443) or (scheme == "http" and port == 80):
        return host
    return f"{host}:{port}"
