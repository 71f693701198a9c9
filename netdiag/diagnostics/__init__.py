"""Diagnostic orchestration and reporting."""

from .endpoints import (
    DEFAULT_ENDPOINTS,
    Endpoint,
    EndpointRegistry,
    load_endpoints_file,
)
from .probes import Outcome, ProbeKind, ProbeRequest, ProbeResult, ProbeRunner
from .rules import RemediationHint, evaluate_rules
from .runner import (
    DiagnosticPipeline,
    DiagnosticReport,
    OverallStatus,
    PipelineOptions,
    run_diagnostics,
)
from .reports import ReportGenerator, format_report

__all__ = [
    "DEFAULT_ENDPOINTS",
    "Endpoint",
    "EndpointRegistry",
    "load_endpoints_file",
    "Outcome",
    "ProbeKind",
    "ProbeRequest",
    "ProbeResult",
    "ProbeRunner",
    "RemediationHint",
    "evaluate_rules",
    "DiagnosticPipeline",
    "DiagnosticReport",
    "OverallStatus",
    "PipelineOptions",
    "run_diagnostics",
    "ReportGenerator",
    "format_report",
]
