"""
Remediation rule unit tests
"""
from netdiag.diagnostics.probes import Outcome, ProbeKind
from netdiag.diagnostics.rules import evaluate_rules
from netdiag.network import AddressFamily, DnsError, HttpError, ReachabilityResult, TcpError

DNS, TCP, HTTP = ProbeKind.DNS, ProbeKind.TCP, ProbeKind.HTTP


def rules_fired(results):
    return [hint.rule for hint in evaluate_rules(results)]


class TestRemediationRules:

    def test_healthy_run_has_no_hints(self, healthy_results):
        assert evaluate_rules(healthy_results("a") + healthy_results("b")) == []

    def test_all_dns_failed(self, make_result):
        results = [
            make_result("a", DNS, Outcome.FAILURE, DnsError.NO_RECORD),
            make_result("a", TCP, Outcome.FAILURE, TcpError.UNREACHABLE),
            make_result("b", DNS, Outcome.TIMEOUT, DnsError.TIMEOUT),
            make_result("b", TCP, Outcome.FAILURE, TcpError.UNREACHABLE),
        ]

        hints = evaluate_rules(results)

        assert hints[0].rule == "resolver-config"
        assert "check resolver configuration" in hints[0].message
        assert hints[0].endpoints == ("a", "b")
        assert "resolver-unreachable" in [h.rule for h in hints]

    def test_partial_dns_failure_is_not_a_resolver_problem(self, make_result, healthy_results):
        results = healthy_results("a") + [
            make_result("b", DNS, Outcome.FAILURE, DnsError.NO_RECORD),
            make_result("b", TCP, Outcome.FAILURE, TcpError.UNREACHABLE),
        ]

        assert "resolver-config" not in rules_fired(results)

    def test_forced_family_without_records(self, make_result, healthy_results):
        results = healthy_results("a") + [
            make_result("jup", DNS, Outcome.FAILURE, DnsError.NO_RECORD,
                        family=AddressFamily.IPV6),
            make_result("jup", TCP, Outcome.FAILURE, TcpError.UNREACHABLE,
                        family=AddressFamily.IPV6),
        ]

        hints = evaluate_rules(results)

        assert [h.rule for h in hints] == ["family-records"]
        assert hints[0].endpoints == ("jup",)

    def test_dns_ok_tcp_failed(self, make_result, healthy_results):
        results = healthy_results("a") + [
            make_result("b", DNS),
            make_result("b", TCP, Outcome.TIMEOUT, TcpError.TIMEOUT),
            make_result("b", HTTP, Outcome.TIMEOUT, HttpError.TIMEOUT),
        ]

        hints = evaluate_rules(results)

        assert [h.rule for h in hints] == ["outbound-firewall"]
        assert "firewall/security-group" in hints[0].message.replace(" / ", "/")

    def test_no_route_when_every_tcp_connect_fails(self, make_result):
        results = [
            make_result("a", DNS),
            make_result("a", TCP, Outcome.TIMEOUT, TcpError.TIMEOUT),
            make_result("b", DNS),
            make_result("b", TCP, Outcome.FAILURE, TcpError.UNREACHABLE),
        ]

        assert rules_fired(results) == ["outbound-firewall", "no-route"]

    def test_refusal_means_there_is_a_route(self, make_result):
        results = [
            make_result("a", DNS),
            make_result("a", TCP, Outcome.FAILURE, TcpError.CONNECTION_REFUSED),
        ]

        assert rules_fired(results) == ["outbound-firewall"]

    def test_tls_failure(self, make_result):
        results = [
            make_result("a", DNS),
            make_result("a", TCP),
            make_result("a", HTTP, Outcome.FAILURE, HttpError.TLS_FAILED),
        ]

        hints = evaluate_rules(results)

        assert [h.rule for h in hints] == ["tls-trust"]
        assert "system clock" in hints[0].message

    def test_non_success_status(self, make_result):
        results = [
            make_result("a", DNS),
            make_result("a", TCP),
            make_result("a", HTTP, Outcome.FAILURE, HttpError.NON_SUCCESS_STATUS,
                        status_code=503),
        ]

        hints = evaluate_rules(results)

        assert [h.rule for h in hints] == ["endpoint-side"]
        assert "not local network" in hints[0].message

    def test_rules_are_additive(self, make_result):
        results = [
            make_result("a", DNS),
            make_result("a", TCP),
            make_result("a", HTTP, Outcome.FAILURE, HttpError.TLS_FAILED),
            make_result("b", DNS),
            make_result("b", TCP),
            make_result("b", HTTP, Outcome.FAILURE, HttpError.NON_SUCCESS_STATUS),
        ]

        assert rules_fired(results) == ["tls-trust", "endpoint-side"]

    def test_skipped_probes_do_not_trigger_rules(self, make_result):
        results = [
            make_result("a", DNS, Outcome.FAILURE, DnsError.NO_RECORD),
            make_result("a", TCP, Outcome.SKIPPED),
            make_result("a", HTTP, Outcome.SKIPPED),
        ]

        assert rules_fired(results) == ["resolver-config"]


class TestGatewayHint:

    def _gateway(self, reachable):
        return ReachabilityResult(address="10.0.0.1", ports=[53, 443, 80],
                                  family=AddressFamily.ANY, reachable=reachable,
                                  error=None if reachable else TcpError.TIMEOUT)

    def test_unreachable_gateway_comes_first(self, make_result):
        results = [
            make_result("a", DNS),
            make_result("a", TCP, Outcome.TIMEOUT, TcpError.TIMEOUT),
        ]

        hints = evaluate_rules(results, self._gateway(reachable=False))

        assert [h.rule for h in hints] == ["gateway-unreachable", "outbound-firewall", "no-route"]
        assert hints[0].endpoints == ()
        assert "10.0.0.1 did not answer" in hints[0].message

    def test_reachable_gateway_adds_nothing(self, healthy_results):
        assert evaluate_rules(healthy_results("a"), self._gateway(reachable=True)) == []
