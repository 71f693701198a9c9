"""TCP and HTTP connectivity probes."""

import socket
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException

from .family import AddressFamily
from ..utils import get_logger

logger = get_logger(__name__)

# Tried in order by the reachability check
GATEWAY_PORTS = (53, 443, 80)


class TcpError(Enum):
    """Ways a TCP connection attempt can fail."""
    CONNECTION_REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"


class HttpError(Enum):
    """Ways an HTTP request can fail."""
    CONNECT_FAILED = "connect_failed"
    TLS_FAILED = "tls_failed"
    TIMEOUT = "timeout"
    NON_SUCCESS_STATUS = "non_success_status"


@dataclass
class TCPCheckResult:
    """Result of a TCP connection test."""
    host: str
    port: int
    family: AddressFamily
    success: bool
    address: Optional[str] = None
    addresses: List[str] = field(default_factory=list)
    response_time_ms: Optional[float] = None
    error: Optional[TcpError] = None
    detail: Optional[str] = None


@dataclass
class HTTPCheckResult:
    """Result of an HTTP endpoint test."""
    url: str
    family: AddressFamily
    success: bool
    status_code: Optional[int] = None
    body_excerpt: Optional[str] = None
    response_time_ms: Optional[float] = None
    content_type: Optional[str] = None
    error: Optional[HttpError] = None
    detail: Optional[str] = None


class FamilyBoundAdapter(HTTPAdapter):
    """
    Transport adapter that binds every outgoing socket to a wildcard
    source address of one family.

    urllib3 tries each getaddrinfo result in turn; sockets of the other
    family fail to bind and are skipped, so the request never widens to
    the other family.
    """

    def __init__(self, family: AddressFamily, **kwargs):
        self.family = family
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        source_address = self.family.bind_address
        if source_address is not None:
            pool_kwargs['source_address'] = source_address
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


@dataclass
class ReachabilityResult:
    """Result of a gateway reachability check."""
    address: str
    ports: List[int]
    family: AddressFamily
    reachable: bool
    port: Optional[int] = None
    response_time_ms: Optional[float] = None
    error: Optional[TcpError] = None
    detail: Optional[str] = None


def status_accepted(status_code: int, expect_status=()) -> bool:
    """Explicit expected codes win; otherwise any 2xx/3xx passes."""
    if expect_status:
        return status_code in expect_status
    return 200 <= status_code < 400


class _Deadline(Exception):
    """A bounded call did not finish in time."""


class ConnectivityTester:
    """
    Tests TCP reachability and HTTP(S) endpoints, one address family at a time.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        http_timeout: Optional[float] = None,
        body_excerpt_chars: int = 200
    ):
        self.timeout = timeout
        self.http_timeout = http_timeout if http_timeout is not None else timeout
        self.body_excerpt_chars = body_excerpt_chars
        self._cancel_flag = threading.Event()

    def cancel(self) -> None:
        """Cancel ongoing tests."""
        self._cancel_flag.set()

    def reset_cancel(self) -> None:
        """Reset cancel flag."""
        self._cancel_flag.clear()

    def _call_bounded(self, func, timeout: float, *args, **kwargs):
        """
        Call func on a daemon thread and wait at most timeout seconds.

        getaddrinfo and requests cannot be stopped once started, so the
        caller stops waiting instead; an abandoned call finishes on its own
        without holding up the run or interpreter exit.

        Raises:
            _Deadline: if the call is still running at the deadline or the
                tester was cancelled
        """
        outcome = {}

        def target():
            try:
                outcome["value"] = func(*args, **kwargs)
            except Exception as e:
                outcome["error"] = e

        worker = threading.Thread(target=target, name="probe-io", daemon=True)
        worker.start()

        deadline = time.perf_counter() + timeout
        while worker.is_alive():
            remaining = deadline - time.perf_counter()
            if remaining <= 0 or self._cancel_flag.is_set():
                raise _Deadline()
            worker.join(min(remaining, 0.05))

        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("value")

    def check_tcp(
        self,
        host: str,
        port: int,
        family: AddressFamily = AddressFamily.ANY,
        timeout: Optional[float] = None
    ) -> TCPCheckResult:
        """
        Open a TCP connection to host:port using only addresses of the
        requested family.

        Every candidate address is tried until one connects or the time
        budget runs out. The reported error is the one from the last
        attempt.

        Returns:
            TCPCheckResult
        """
        timeout = self.timeout if timeout is None else timeout
        logger.info(f"TCP check: {host}:{port} ({family.label})")

        result = TCPCheckResult(host=host, port=port, family=family, success=False)
        start = time.perf_counter()
        deadline = start + timeout

        try:
            infos = self._call_bounded(socket.getaddrinfo, timeout, host.strip("[]"), port,
                                       family.socket_family, socket.SOCK_STREAM)
        except _Deadline:
            result.error = TcpError.TIMEOUT
            result.detail = ("Cancelled" if self._cancel_flag.is_set()
                             else f"Name resolution did not finish within {timeout:.1f}s")
            result.response_time_ms = (time.perf_counter() - start) * 1000
            logger.warning(f"TCP {host}:{port}: {result.detail}")
            return result
        except (socket.gaierror, UnicodeError) as e:
            # UnicodeError: the name cannot be IDNA-encoded (empty or overlong label)
            result.error = TcpError.UNREACHABLE
            result.detail = f"No address to connect to ({family.label}): {e}"
            result.response_time_ms = (time.perf_counter() - start) * 1000
            logger.warning(f"TCP {host}:{port} has no {family.label} address: {e}")
            return result

        for af, socktype, proto, _canonname, sockaddr in infos:
            result.addresses.append(sockaddr[0])

        for af, socktype, proto, _canonname, sockaddr in infos:
            if self._cancel_flag.is_set():
                result.error = TcpError.TIMEOUT
                result.detail = "Cancelled"
                break

            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                result.error = TcpError.TIMEOUT
                result.detail = f"Connection timeout after {timeout:.1f}s"
                break

            sock = socket.socket(af, socktype, proto)
            try:
                sock.settimeout(remaining)
                sock.connect(sockaddr)
                result.success = True
                result.address = sockaddr[0]
                result.error = None
                result.detail = None
                break
            except socket.timeout:
                result.error = TcpError.TIMEOUT
                result.detail = f"Connection to {sockaddr[0]} timed out after {timeout:.1f}s"
            except ConnectionRefusedError:
                result.error = TcpError.CONNECTION_REFUSED
                result.detail = f"Connection refused by {sockaddr[0]}"
            except OSError as e:
                result.error = TcpError.UNREACHABLE
                result.detail = f"{sockaddr[0]}: {e.strerror or e}"
            finally:
                sock.close()

        result.response_time_ms = (time.perf_counter() - start) * 1000

        if result.success:
            logger.info(f"TCP {host}:{port} open via {result.address} "
                        f"({result.response_time_ms:.1f}ms)")
        else:
            if result.error is None:
                result.error = TcpError.UNREACHABLE
                result.detail = "No address to connect to"
            logger.warning(f"TCP {host}:{port} failed: {result.error.value} - {result.detail}")

        return result

    def check_reachability(
        self,
        address: str,
        ports: Sequence[int] = GATEWAY_PORTS,
        family: AddressFamily = AddressFamily.ANY,
        timeout: Optional[float] = None
    ) -> ReachabilityResult:
        """
        Check that an outside address answers at all.

        Uses TCP connects in place of ICMP echo, which needs raw sockets.
        A refused connection still proves the route to the host works.
        The time budget is shared between the ports.

        Args:
            address: IP address to check (e.g. 8.8.8.8)
            ports: Ports tried in order until one answers
            family: Address family constraint
            timeout: Overall time limit in seconds

        Returns:
            ReachabilityResult
        """
        timeout = self.timeout if timeout is None else timeout
        ports = list(ports)
        logger.info(f"Reachability check: {address} ports {ports}")

        result = ReachabilityResult(address=address, ports=ports, family=family,
                                    reachable=False)
        start = time.perf_counter()
        deadline = start + timeout
        per_port = timeout / max(len(ports), 1)

        for port in ports:
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                break

            tcp = self.check_tcp(address, port, family, min(remaining, per_port))
            if tcp.success or tcp.error is TcpError.CONNECTION_REFUSED:
                result.reachable = True
                result.port = port
                result.error = None
                result.detail = (f"port {port} open" if tcp.success
                                 else f"port {port} refused, host answered")
                break

            result.error = tcp.error
            result.detail = tcp.detail
            if tcp.detail == "Cancelled":
                break

        result.response_time_ms = (time.perf_counter() - start) * 1000

        if result.reachable:
            logger.info(f"{address} reachable: {result.detail} "
                        f"({result.response_time_ms:.1f}ms)")
        else:
            if result.error is None:
                result.error = TcpError.TIMEOUT
                result.detail = f"No port answered within {timeout:.1f}s"
            logger.warning(f"{address} unreachable: {result.error.value} - {result.detail}")

        return result

    def check_http(
        self,
        url: str,
        family: AddressFamily = AddressFamily.ANY,
        timeout: Optional[float] = None,
        expect_status=()
    ) -> HTTPCheckResult:
        """
        Fetch a URL over connections pinned to one address family.

        TLS certificates are verified. At most body_excerpt_chars of the
        body are kept. The whole exchange, redirects and body excerpt
        included, is bounded by timeout of wall-clock time.

        Args:
            url: Full URL to request
            family: Address family constraint
            timeout: Overall time limit in seconds
            expect_status: Status codes counted as success (default 2xx/3xx)

        Returns:
            HTTPCheckResult
        """
        timeout = self.http_timeout if timeout is None else timeout
        logger.info(f"HTTP check: {url} ({family.label})")

        result = HTTPCheckResult(url=url, family=family, success=False)
        start = time.perf_counter()

        with requests.Session() as session:
            # Test the direct path, not whatever proxy the environment names
            session.trust_env = False
            adapter = FamilyBoundAdapter(family)
            session.mount("http://", adapter)
            session.mount("https://", adapter)

            try:
                status_code, content_type, excerpt = self._call_bounded(
                    self._fetch, timeout, session, url, timeout, start + timeout
                )
                result.status_code = status_code
                result.content_type = content_type
                result.body_excerpt = excerpt
                result.response_time_ms = (time.perf_counter() - start) * 1000

                if status_accepted(result.status_code, expect_status):
                    result.success = True
                    logger.info(f"HTTP {result.status_code}: {url} "
                                f"({result.response_time_ms:.1f}ms)")
                else:
                    result.error = HttpError.NON_SUCCESS_STATUS
                    result.detail = f"HTTP status {result.status_code}"
                    logger.warning(f"HTTP {result.status_code}: {url}")
                return result

            except _Deadline:
                result.error = HttpError.TIMEOUT
                result.detail = ("Cancelled" if self._cancel_flag.is_set()
                                 else f"No complete response within {timeout:.1f}s")
                logger.warning(f"HTTP timeout: {url}")
            except requests.exceptions.SSLError as e:
                result.error = HttpError.TLS_FAILED
                result.detail = f"TLS error: {e}"
                logger.warning(f"HTTP TLS error: {url} - {e}")
            except requests.exceptions.Timeout as e:
                result.error = HttpError.TIMEOUT
                result.detail = f"Timeout after {timeout:.1f}s: {e}"
                logger.warning(f"HTTP timeout: {url}")
            except requests.exceptions.ConnectionError as e:
                result.error = HttpError.CONNECT_FAILED
                result.detail = f"Connection error: {e}"
                logger.warning(f"HTTP connection error: {url}")
            except RequestException as e:
                result.error = HttpError.CONNECT_FAILED
                result.detail = f"Request error: {e}"
                logger.error(f"HTTP request error: {url} - {e}")
            except ValueError as e:
                # urllib3 rejects hosts it cannot encode before any request is sent
                result.error = HttpError.CONNECT_FAILED
                result.detail = f"Invalid request target: {e}"
                logger.warning(f"HTTP invalid target: {url} - {e}")

        result.response_time_ms = (time.perf_counter() - start) * 1000
        return result

    def _fetch(self, session: requests.Session, url: str, timeout: float, deadline: float):
        """Send the request; returns (status code, content type, body excerpt)."""
        with session.get(url, timeout=timeout, stream=True,
                         allow_redirects=True) as response:
            return (
                response.status_code,
                response.headers.get('Content-Type'),
                self._read_excerpt(response, deadline),
            )

    def _read_excerpt(self, response: requests.Response, deadline: float) -> str:
        """Read just enough of the body for the excerpt, within the deadline."""
        limit = self.body_excerpt_chars
        if limit <= 0:
            return ""

        chunks = []
        size = 0
        for chunk in response.iter_content(chunk_size=1024):
            chunks.append(chunk)
            size += len(chunk)
            if size >= limit * 4 or time.perf_counter() >= deadline:
                break

        raw = b"".join(chunks)
        try:
            text = raw.decode(response.encoding or 'utf-8', errors='replace')
        except LookupError:
            text = raw.decode('utf-8', errors='replace')
        return text[:limit]
