"""Remediation hints derived from failure patterns."""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..network import AddressFamily, DnsError, HttpError, ReachabilityResult, TcpError
from .probes import Outcome, ProbeKind, ProbeResult

Layers = Dict[ProbeKind, ProbeResult]


@dataclass(frozen=True)
class RemediationHint:
    """A suggested fix triggered by a failure pattern."""
    rule: str
    message: str
    endpoints: Tuple[str, ...] = ()


def _failed(result) -> bool:
    return result is not None and result.outcome in (Outcome.FAILURE, Outcome.TIMEOUT)


def _ok(result) -> bool:
    return result is not None and result.ok


def group_by_endpoint(results: Sequence[ProbeResult]) -> Dict[str, Layers]:
    """Results keyed by endpoint name, then probe kind. Keeps endpoint order."""
    grouped: Dict[str, Layers] = {}
    for result in results:
        grouped.setdefault(result.endpoint, {})[result.kind] = result
    return grouped


def _all_dns_failed(grouped: Dict[str, Layers]) -> List[str]:
    with_dns = [name for name, layers in grouped.items() if ProbeKind.DNS in layers]
    if with_dns and all(_failed(grouped[n][ProbeKind.DNS]) for n in with_dns):
        return with_dns
    return []


def _forced_family_no_record(grouped: Dict[str, Layers]) -> List[str]:
    return [
        name for name, layers in grouped.items()
        if _failed(layers.get(ProbeKind.DNS))
        and layers[ProbeKind.DNS].error is DnsError.NO_RECORD
        and layers[ProbeKind.DNS].family is not AddressFamily.ANY
    ]


def _resolver_unresponsive(grouped: Dict[str, Layers]) -> List[str]:
    return [
        name for name, layers in grouped.items()
        if _failed(layers.get(ProbeKind.DNS))
        and layers[ProbeKind.DNS].error in (DnsError.TIMEOUT, DnsError.RESOLVER_UNREACHABLE)
    ]


def _dns_ok_tcp_failed(grouped: Dict[str, Layers]) -> List[str]:
    return [
        name for name, layers in grouped.items()
        if _ok(layers.get(ProbeKind.DNS)) and _failed(layers.get(ProbeKind.TCP))
    ]


def _no_outbound_route(grouped: Dict[str, Layers]) -> List[str]:
    affected = _dns_ok_tcp_failed(grouped)
    if not affected or len(affected) != len(grouped):
        return []
    # A refusal means packets got through
    if any(grouped[n][ProbeKind.TCP].error is TcpError.CONNECTION_REFUSED for n in affected):
        return []
    return affected


def _tls_failed(grouped: Dict[str, Layers]) -> List[str]:
    return [
        name for name, layers in grouped.items()
        if _ok(layers.get(ProbeKind.TCP))
        and _failed(layers.get(ProbeKind.HTTP))
        and layers[ProbeKind.HTTP].error is HttpError.TLS_FAILED
    ]


def _non_success_status(grouped: Dict[str, Layers]) -> List[str]:
    return [
        name for name, layers in grouped.items()
        if _failed(layers.get(ProbeKind.HTTP))
        and layers[ProbeKind.HTTP].error is HttpError.NON_SUCCESS_STATUS
    ]


RULES: Tuple[Tuple[str, Callable[[Dict[str, Layers]], List[str]], str], ...] = (
    (
        "resolver-config",
        _all_dns_failed,
        "DNS failed for every endpoint: check resolver configuration "
        "(/etc/resolv.conf), e.g. public resolvers 1.1.1.1 and 8.8.8.8",
    ),
    (
        "family-records",
        _forced_family_no_record,
        "No records for the forced address family: the host may not support it "
        "(e.g. no AAAA record for IPv6); retry with --family any or the other family",
    ),
    (
        "resolver-unreachable",
        _resolver_unresponsive,
        "Resolver did not answer: check the nameserver entries and that "
        "outbound port 53 is allowed",
    ),
    (
        "outbound-firewall",
        _dns_ok_tcp_failed,
        "DNS ok but TCP connect failed: check outbound firewall / security-group "
        "rules (allow the endpoint port to 0.0.0.0/0)",
    ),
    (
        "no-route",
        _no_outbound_route,
        "No endpoint accepted a TCP connection: check the default route, "
        "internet gateway and route table",
    ),
    (
        "tls-trust",
        _tls_failed,
        "TCP ok but TLS handshake failed: check system clock / CA trust store",
    ),
    (
        "endpoint-side",
        _non_success_status,
        "HTTP returned a non-success status: endpoint-side issue, not local network",
    ),
)


def evaluate_rules(results: Sequence[ProbeResult],
                   gateway: Optional[ReachabilityResult] = None) -> List[RemediationHint]:
    """
    Evaluate every rule against the complete result set.

    Rules are additive: each one that matches contributes a hint, in
    table order. A failed gateway check comes first.
    """
    grouped = group_by_endpoint(results)
    hints = []
    if gateway is not None and not gateway.reachable:
        hints.append(RemediationHint(
            rule="gateway-unreachable",
            message=(f"{gateway.address} did not answer: no path to the internet, check "
                     "the default route, uplink and NAT / internet gateway"),
        ))
    for rule, predicate, message in RULES:
        affected = predicate(grouped)
        if affected:
            hints.append(RemediationHint(rule=rule, message=message, endpoints=tuple(affected)))
    return hints
