"""DNS lookup probe."""

import ipaddress
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import dns.exception
import dns.name
import dns.resolver

from .family import AddressFamily
from ..utils import get_logger

logger = get_logger(__name__)


class DnsError(Enum):
    """Ways a DNS lookup can fail."""
    NO_RECORD = "no_record"
    TIMEOUT = "timeout"
    RESOLVER_UNREACHABLE = "resolver_unreachable"


# When several record types fail differently, report the most severe
_SEVERITY = {
    DnsError.NO_RECORD: 0,
    DnsError.TIMEOUT: 1,
    DnsError.RESOLVER_UNREACHABLE: 2,
}


@dataclass
class DNSLookupResult:
    """Result of a DNS lookup."""
    query: str
    family: AddressFamily
    success: bool
    answers: List[str] = field(default_factory=list)
    response_time_ms: Optional[float] = None
    error: Optional[DnsError] = None
    detail: Optional[str] = None


class DNSTester:
    """
    Resolves hostnames for one address family at a time.

    Uses the host's resolver configuration unless explicit nameservers
    are given.
    """

    def __init__(self, timeout: float = 5.0, nameservers: Optional[Sequence[str]] = None):
        self.timeout = timeout
        self.nameservers = list(nameservers or [])

    def _make_resolver(self) -> dns.resolver.Resolver:
        resolver = dns.resolver.Resolver(configure=not self.nameservers)
        if self.nameservers:
            resolver.nameservers = list(self.nameservers)
        return resolver

    def effective_nameservers(self) -> List[str]:
        """The nameservers lookups will use: the configured ones, else the system's."""
        if self.nameservers:
            return list(self.nameservers)
        try:
            return [str(ns) for ns in dns.resolver.Resolver().nameservers]
        except dns.resolver.NoResolverConfiguration as e:
            logger.error(f"Failed to get system DNS servers: {e}")
            return []

    def resolve(
        self,
        hostname: str,
        family: AddressFamily = AddressFamily.ANY,
        timeout: Optional[float] = None
    ) -> DNSLookupResult:
        """
        Resolve a hostname to the addresses of the requested family.

        Only the record types of that family are queried: an IPv6-only
        lookup of a host without AAAA records is a NO_RECORD failure even
        if the host has A records.

        Args:
            hostname: Hostname to resolve
            family: Address family constraint
            timeout: Overall time budget, defaults to the tester timeout

        Returns:
            DNSLookupResult
        """
        timeout = self.timeout if timeout is None else timeout
        logger.info(f"DNS lookup: {hostname} ({family.label})")

        result = DNSLookupResult(query=hostname, family=family, success=False)

        start = time.perf_counter()

        literal = self._parse_literal(hostname)
        if literal is not None:
            wanted = {AddressFamily.IPV4: 4, AddressFamily.IPV6: 6}.get(family)
            if wanted is None or literal.version == wanted:
                result.success = True
                result.answers = [str(literal)]
            else:
                result.error = DnsError.NO_RECORD
                result.detail = f"{hostname} is an IPv{literal.version} literal"
            result.response_time_ms = (time.perf_counter() - start) * 1000
            return result

        try:
            dns.name.from_text(hostname)
        except dns.exception.DNSException as e:
            # Empty or overlong label: no record can exist for this name
            result.error = DnsError.NO_RECORD
            result.detail = f"Invalid hostname: {e}"
            result.response_time_ms = (time.perf_counter() - start) * 1000
            logger.warning(f"DNS invalid hostname: {hostname} - {e}")
            return result

        try:
            resolver = self._make_resolver()
        except dns.resolver.NoResolverConfiguration as e:
            result.error = DnsError.RESOLVER_UNREACHABLE
            result.detail = f"No resolver configuration: {e}"
            logger.error(f"DNS resolver not configured: {e}")
            return result

        deadline = start + timeout
        errors = []

        for record_type in family.record_types:
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                errors.append((DnsError.TIMEOUT, f"{record_type}: time budget exhausted"))
                break

            resolver.timeout = remaining
            resolver.lifetime = remaining

            try:
                answers = resolver.resolve(hostname, record_type)
                result.answers.extend(str(rdata) for rdata in answers)
            except dns.resolver.NXDOMAIN:
                errors.append((DnsError.NO_RECORD, "Domain does not exist (NXDOMAIN)"))
                logger.warning(f"DNS NXDOMAIN: {hostname}")
                # No other record type can exist either
                break
            except dns.resolver.NoAnswer:
                errors.append((DnsError.NO_RECORD, f"No {record_type} record found"))
                logger.warning(f"DNS no {record_type} answer: {hostname}")
            except dns.resolver.NoNameservers as e:
                errors.append((DnsError.RESOLVER_UNREACHABLE, f"No nameservers available: {e}"))
                logger.error(f"DNS no nameservers for: {hostname}")
            except dns.exception.Timeout:
                errors.append((DnsError.TIMEOUT, f"{record_type} query timeout"))
                logger.warning(f"DNS timeout: {hostname} ({record_type})")
            except (dns.exception.DNSException, OSError) as e:
                errors.append((DnsError.RESOLVER_UNREACHABLE, f"{record_type}: {e}"))
                logger.error(f"DNS error: {hostname} - {e}")

        result.response_time_ms = (time.perf_counter() - start) * 1000

        if result.answers:
            result.success = True
            logger.info(f"DNS resolved: {hostname} -> {result.answers}")
        else:
            result.error = max((e for e, _ in errors), key=_SEVERITY.get,
                               default=DnsError.NO_RECORD)
            result.detail = "; ".join(d for _, d in errors) or "No address records"

        return result

    @staticmethod
    def _parse_literal(hostname: str):
        try:
            return ipaddress.ip_address(hostname.strip("[]"))
        except ValueError:
            return None
