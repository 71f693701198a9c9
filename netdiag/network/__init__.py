"""Network probe primitives."""

from .family import AddressFamily
from .dns import DNSTester, DNSLookupResult, DnsError
from .connectivity import (
    ConnectivityTester,
    TCPCheckResult,
    HTTPCheckResult,
    TcpError,
    HttpError,
    FamilyBoundAdapter,
    ReachabilityResult,
    GATEWAY_PORTS,
    status_accepted,
)

__all__ = [
    "AddressFamily",
    # DNS
    "DNSTester",
    "DNSLookupResult",
    "DnsError",
    # TCP / HTTP
    "ConnectivityTester",
    "TCPCheckResult",
    "HTTPCheckResult",
    "TcpError",
    "HttpError",
    "FamilyBoundAdapter",
    "ReachabilityResult",
    "GATEWAY_PORTS",
    "status_accepted",
]
