"""Probe requests, probe results and the runner that executes them."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from ..network import (
    AddressFamily,
    ConnectivityTester,
    DNSTester,
    DnsError,
    GATEWAY_PORTS,
    HttpError,
    ReachabilityResult,
    TcpError,
)
from ..utils import get_logger, Config
from ..utils.config import split_gateway
from .endpoints import Endpoint

logger = get_logger(__name__)

ProbeError = Union[DnsError, TcpError, HttpError]


class ProbeKind(Enum):
    """Network layer checked by a probe."""
    DNS = "dns"
    TCP = "tcp"
    HTTP = "http"

    @property
    def timeout_error(self) -> ProbeError:
        return {
            ProbeKind.DNS: DnsError.TIMEOUT,
            ProbeKind.TCP: TcpError.TIMEOUT,
            ProbeKind.HTTP: HttpError.TIMEOUT,
        }[self]


class Outcome(Enum):
    """Outcome of a single probe."""
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"


def probe_kinds(endpoint: Endpoint) -> Tuple[ProbeKind, ...]:
    """Probe sequence for an endpoint: DNS, TCP and HTTP when it has a path."""
    if endpoint.http_path is None:
        return (ProbeKind.DNS, ProbeKind.TCP)
    return (ProbeKind.DNS, ProbeKind.TCP, ProbeKind.HTTP)


@dataclass(frozen=True)
class ProbeRequest:
    """One probe to run against one endpoint."""
    endpoint: Endpoint
    index: int          # endpoint registration index
    kind: ProbeKind
    timeout: float
    family: AddressFamily

    @property
    def sequence(self) -> int:
        return probe_kinds(self.endpoint).index(self.kind)


@dataclass(frozen=True)
class ProbeResult:
    """Immutable outcome of one probe."""
    endpoint: str
    kind: ProbeKind
    outcome: Outcome
    family: AddressFamily = AddressFamily.ANY
    addresses: Tuple[str, ...] = ()
    status_code: Optional[int] = None
    content_type: Optional[str] = None
    body_excerpt: Optional[str] = None
    elapsed_ms: float = 0.0
    error: Optional[ProbeError] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @classmethod
    def from_error(
        cls,
        request: ProbeRequest,
        error: Optional[ProbeError],
        elapsed_ms: float,
        detail: Optional[str] = None,
        **extra
    ) -> "ProbeResult":
        if error is None:
            outcome = Outcome.SUCCESS
        elif error is request.kind.timeout_error:
            outcome = Outcome.TIMEOUT
        else:
            outcome = Outcome.FAILURE
        return cls(
            endpoint=request.endpoint.name,
            kind=request.kind,
            outcome=outcome,
            family=request.family,
            elapsed_ms=elapsed_ms,
            error=error,
            detail=detail,
            **extra
        )

    @classmethod
    def timed_out(cls, request: ProbeRequest, elapsed_ms: float,
                  detail: str = "Run timeout expired") -> "ProbeResult":
        return cls.from_error(request, request.kind.timeout_error, elapsed_ms, detail)

    @classmethod
    def skipped(cls, request: ProbeRequest, reason: str) -> "ProbeResult":
        return cls(
            endpoint=request.endpoint.name,
            kind=request.kind,
            outcome=Outcome.SKIPPED,
            family=request.family,
            detail=reason,
        )


class ProbeRunner:
    """
    Executes probe requests with the DNS and connectivity testers.

    Network conditions never raise out of run(); they come back as
    failure or timeout results.
    """

    def __init__(
        self,
        dns_tester: Optional[DNSTester] = None,
        connectivity: Optional[ConnectivityTester] = None
    ):
        self._dns = dns_tester or DNSTester()
        self._connectivity = connectivity or ConnectivityTester()

    @classmethod
    def from_config(cls, config: Config) -> "ProbeRunner":
        return cls(
            dns_tester=DNSTester(
                timeout=config.default_timeout,
                nameservers=config.nameservers
            ),
            connectivity=ConnectivityTester(
                timeout=config.default_timeout,
                body_excerpt_chars=config.body_excerpt_chars
            ),
        )

    def cancel(self) -> None:
        self._connectivity.cancel()

    def reset_cancel(self) -> None:
        self._connectivity.reset_cancel()

    def resolve_dns(self, host: str, family: AddressFamily, timeout: float):
        return self._dns.resolve(host, family, timeout)

    def check_tcp(self, host: str, port: int, family: AddressFamily, timeout: float):
        return self._connectivity.check_tcp(host, port, family, timeout)

    def check_http(self, url: str, family: AddressFamily, timeout: float, expect_status=()):
        return self._connectivity.check_http(url, family, timeout, expect_status)

    def nameservers(self) -> List[str]:
        """Resolvers the DNS probes query."""
        return self._dns.effective_nameservers()

    def check_gateway(self, gateway: str, family: AddressFamily, timeout: float,
                      deadline: Optional[float] = None) -> ReachabilityResult:
        """
        Check reachability of the gateway address ("ip" or "ip:port").

        Without a port the usual service ports are tried in turn.
        """
        address, port = split_gateway(gateway)
        ports = (port,) if port else GATEWAY_PORTS
        if deadline is not None:
            timeout = min(timeout, deadline - time.monotonic())
            if timeout <= 0:
                return ReachabilityResult(address=address, ports=list(ports), family=family,
                                          reachable=False, response_time_ms=0.0,
                                          error=TcpError.TIMEOUT, detail="Run timeout expired")
        return self._connectivity.check_reachability(address, ports, family, timeout)

    def run(self, request: ProbeRequest, deadline: Optional[float] = None) -> ProbeResult:
        """
        Run one probe.

        Args:
            request: Probe to run
            deadline: time.monotonic() value of the run deadline; the probe
                timeout is clamped to the time left

        Returns:
            ProbeResult
        """
        timeout = request.timeout
        if deadline is not None:
            timeout = min(timeout, deadline - time.monotonic())
            if timeout <= 0:
                return ProbeResult.timed_out(request, 0.0)

        endpoint = request.endpoint
        logger.debug(f"Probe {endpoint.name}/{request.kind.value} "
                     f"({request.family.label}, {timeout:.1f}s)")

        if request.kind is ProbeKind.DNS:
            lookup = self.resolve_dns(endpoint.host, request.family, timeout)
            return ProbeResult.from_error(
                request, lookup.error, lookup.response_time_ms or 0.0, lookup.detail,
                addresses=tuple(lookup.answers)
            )

        if request.kind is ProbeKind.TCP:
            tcp = self.check_tcp(endpoint.host, endpoint.port, request.family, timeout)
            return ProbeResult.from_error(
                request, tcp.error, tcp.response_time_ms or 0.0, tcp.detail,
                addresses=(tcp.address,) if tcp.address else tuple(tcp.addresses)
            )

        if endpoint.url is None:
            return ProbeResult.skipped(request, "endpoint has no HTTP path")

        http = self.check_http(endpoint.url, request.family, timeout, endpoint.expect_status)
        return ProbeResult.from_error(
            request, http.error, http.response_time_ms or 0.0, http.detail,
            status_code=http.status_code,
            content_type=http.content_type,
            body_excerpt=http.body_excerpt
        )
