"""Report rendering for diagnostics."""

import json
from typing import Any, Dict, Optional

from ..network import ReachabilityResult
from .probes import Outcome, ProbeResult
from .runner import DiagnosticReport

REPORT_VERSION = "1.0"

STYLES = ("text", "json")

_STATUS_TAGS = {
    Outcome.SUCCESS: "[PASS]",
    Outcome.FAILURE: "[FAIL]",
    Outcome.TIMEOUT: "[TIME]",
    Outcome.SKIPPED: "[SKIP]",
}


def _serialize_result(result: ProbeResult) -> Dict[str, Any]:
    """Serialize a ProbeResult with stable field names."""
    return {
        'endpoint': result.endpoint,
        'probe': result.kind.value,
        'outcome': result.outcome.value,
        'family': result.family.value,
        'error': result.error.value if result.error else None,
        'detail': result.detail,
        'addresses': list(result.addresses),
        'status_code': result.status_code,
        'content_type': result.content_type,
        'body_excerpt': result.body_excerpt,
        'elapsed_ms': round(result.elapsed_ms, 1),
    }


def _serialize_gateway(gateway: Optional[ReachabilityResult]) -> Optional[Dict[str, Any]]:
    if gateway is None:
        return None
    return {
        'address': gateway.address,
        'ports': list(gateway.ports),
        'reachable': gateway.reachable,
        'port': gateway.port,
        'error': gateway.error.value if gateway.error else None,
        'detail': gateway.detail,
        'elapsed_ms': round(gateway.response_time_ms or 0.0, 1),
    }


def _describe_gateway(gateway: ReachabilityResult) -> str:
    elapsed = f"{gateway.response_time_ms or 0.0:.0f}ms"
    if gateway.reachable:
        return f"{gateway.address} reachable ({gateway.detail}, {elapsed})"
    return f"{gateway.address} UNREACHABLE ({gateway.error.value}: {gateway.detail})"


def _describe(result: ProbeResult) -> str:
    """One-line description of a probe result."""
    if result.outcome is Outcome.SKIPPED:
        return result.detail or "skipped"
    if result.ok:
        parts = []
        if result.status_code is not None:
            parts.append(f"HTTP {result.status_code}")
        if result.addresses:
            parts.append(", ".join(result.addresses))
        return " ".join(parts) or "ok"
    error = result.error.value if result.error else "failed"
    return f"{error}: {result.detail}" if result.detail else error


class ReportGenerator:
    """
    Renders diagnostic reports as text or JSON.

    Rendering is a pure function of the report.
    """

    def format(self, report: DiagnosticReport, style: str = "text") -> str:
        """Render the report in the given style ("text" or "json")."""
        if style == "text":
            return self.to_text(report)
        if style == "json":
            return self.to_json(report)
        raise ValueError(f"unknown report style {style!r} (expected one of {', '.join(STYLES)})")

    def to_json(self, report: DiagnosticReport) -> str:
        """
        Export report to JSON with stable field names for downstream tooling.
        """
        data = {
            'report_version': REPORT_VERSION,
            'timestamp': report.timestamp.isoformat(),
            'overall_status': report.status.value,
            'exit_code': report.exit_code,
            'duration_ms': round(report.duration_ms, 1),
            'options': {
                'timeout': report.options.timeout,
                'run_timeout': report.options.run_timeout,
                'family': report.options.family.value,
                'concurrency': report.options.concurrency,
                'fail_fast': report.options.fail_fast,
                'gateway': report.options.gateway,
            },
            'resolver': {
                'nameservers': list(report.nameservers),
            },
            'gateway': _serialize_gateway(report.gateway),
            'endpoints': [
                {
                    'name': e.name,
                    'host': e.host,
                    'port': e.port,
                    'url': e.url,
                    'family': e.family.value,
                }
                for e in report.endpoints
            ],
            'summary': {
                'endpoints': len(report.endpoints),
                'probes': len(report.results),
                'failing_endpoints': report.failing_endpoints(),
                **report.summary,
            },
            'results': [_serialize_result(r) for r in report.results],
            'hints': [
                {
                    'rule': hint.rule,
                    'message': hint.message,
                    'endpoints': list(hint.endpoints),
                }
                for hint in report.hints
            ],
        }
        return json.dumps(data, indent=2)

    def to_text(self, report: DiagnosticReport) -> str:
        """
        Export report to plain text: header, one section per endpoint with
        one line per probe, summary and remediation hints.
        """
        summary = report.summary
        lines = [
            "=" * 60,
            "NETWORK DIAGNOSTIC REPORT",
            "=" * 60,
            "",
            f"Timestamp:      {report.timestamp.strftime('%Y-%m-%d %H:%M:%S')}",
            f"Duration:       {report.duration_ms:.0f}ms",
            f"Family:         {report.options.family.label}",
            f"Resolvers:      {', '.join(report.nameservers) or '(none found)'}",
        ]
        if report.gateway is not None:
            lines.append(f"Gateway:        {_describe_gateway(report.gateway)}")
        lines.extend([
            f"Overall Status: {report.status.value.upper()}",
            "",
            "-" * 60,
            "PROBE RESULTS",
            "-" * 60,
        ])

        by_name = {}
        for result in report.results:
            by_name.setdefault(result.endpoint, []).append(result)

        for endpoint in report.endpoints:
            lines.append("")
            lines.append(f"{endpoint.name} ({endpoint.label})")
            for result in by_name.get(endpoint.name, []):
                tag = _STATUS_TAGS[result.outcome]
                elapsed = f"{result.elapsed_ms:.0f}ms" if result.outcome is not Outcome.SKIPPED else "-"
                lines.append(f"  {tag} {result.kind.value.upper():<5} {elapsed:>7}  {_describe(result)}")

        lines.extend([
            "",
            "-" * 60,
            "SUMMARY",
            "-" * 60,
            f"  Endpoints: {len(report.endpoints)}",
            f"  Probes:    {len(report.results)}",
            f"  Passed:    {summary['success']}",
            f"  Failed:    {summary['failure']}",
            f"  Timed out: {summary['timeout']}",
            f"  Skipped:   {summary['skipped']}",
        ])

        if report.hints:
            lines.extend([
                "",
                "-" * 60,
                "REMEDIATION HINTS",
                "-" * 60,
            ])
            for hint in report.hints:
                lines.append(f"  - {hint.message}")
                if hint.endpoints:
                    lines.append(f"    affects: {', '.join(hint.endpoints)}")

        lines.extend([
            "",
            "=" * 60,
        ])

        return "\n".join(lines)


def format_report(report: DiagnosticReport, style: str = "text") -> str:
    """Render a report; see ReportGenerator.format."""
    return ReportGenerator().format(report, style)
